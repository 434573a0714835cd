"""
Claim metrics for a replica.

The running count of distinct claimed cells is the externally visible
progress counter; listeners are notified synchronously on every accepted
insert, before the inserting call returns.
"""
import logging
import time
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, List

from community_grid.domain.claims.entities.claim import ClaimOrigin
from community_grid.shared.types import CountListener

logger = logging.getLogger(__name__)


@dataclass
class ClaimMetrics:
    claimed_cells: int = 0
    local_claims: int = 0
    remote_claims: int = 0
    duplicate_local: int = 0
    duplicate_remote: int = 0
    publish_failures: int = 0
    malformed_events: int = 0
    rejected_positions: int = 0
    started_at: float = field(default_factory=time.time)


class ClaimMetricsCollector:
    """Counters plus count-change listeners."""

    def __init__(self):
        self.metrics = ClaimMetrics()
        self._count_listeners: List[CountListener] = []

    def add_count_listener(self, listener: CountListener) -> Callable[[], None]:
        """Register a listener; returns a callable that removes it again."""
        self._count_listeners.append(listener)

        def remove() -> None:
            if listener in self._count_listeners:
                self._count_listeners.remove(listener)

        return remove

    def record_inserted(self, origin: ClaimOrigin, claimed_cells: int) -> None:
        if origin is ClaimOrigin.LOCAL:
            self.metrics.local_claims += 1
        else:
            self.metrics.remote_claims += 1
        self.metrics.claimed_cells = claimed_cells
        for listener in list(self._count_listeners):
            try:
                listener(claimed_cells)
            except Exception as e:
                logger.error(f"Claim count listener failed: {e}", exc_info=True)

    def record_duplicate(self, origin: ClaimOrigin) -> None:
        if origin is ClaimOrigin.LOCAL:
            self.metrics.duplicate_local += 1
        else:
            self.metrics.duplicate_remote += 1

    def record_publish_failure(self) -> None:
        self.metrics.publish_failures += 1

    def record_malformed_event(self) -> None:
        self.metrics.malformed_events += 1

    def record_rejected_position(self) -> None:
        self.metrics.rejected_positions += 1

    @property
    def claimed_cells(self) -> int:
        return self.metrics.claimed_cells

    def get_statistics(self) -> Dict[str, Any]:
        stats = asdict(self.metrics)
        stats["uptime_seconds"] = time.time() - self.metrics.started_at
        return stats
