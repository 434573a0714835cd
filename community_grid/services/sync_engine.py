"""
Claim synchronization between the local ClaimSet and the shared log.

Handles:
- Local claims: claim-if-absent, render, count, publish (fire-and-forget)
- Remote claims: decode, claim-if-absent with locally rebuilt geometry, render, count
- Shared-log subscription lifecycle

Every distinct cell id is applied exactly once, however many times it is
observed (replays, duplicate deliveries, this replica's own echoes, or a
local visit racing a remote event for the same cell).
"""
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from community_grid.application.interfaces.collaborators import (
    NullRenderSink,
    RenderingSink,
    SharedLog,
    Subscription,
)
from community_grid.core.exceptions import MalformedRemoteEventError, PublishFailureError
from community_grid.domain.claims.entities.claim import Claim, ClaimOrigin
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.claims.events.remote_event import RemoteEvent
from community_grid.domain.grid.services.grid_indexer import GridIndexer
from community_grid.domain.grid.value_objects.cell_id import CellId
from community_grid.services.color_picker import ColorPicker, RandomPaletteColorPicker
from community_grid.shared.types import WirePayload
from community_grid.utils.background_tasks import BackgroundTaskTracker
from community_grid.utils.metrics_collector import ClaimMetricsCollector

logger = logging.getLogger(__name__)


class ClaimStatus(Enum):
    INSERTED = "inserted"
    ALREADY_PRESENT = "already_present"
    REJECTED = "rejected"


@dataclass(frozen=True)
class ClaimResult:
    """Outcome of a local or remote claim attempt."""
    status: ClaimStatus
    cell_id: Optional[CellId] = None
    claim: Optional[Claim] = None
    reason: Optional[str] = None

    @property
    def inserted(self) -> bool:
        return self.status is ClaimStatus.INSERTED

    @classmethod
    def accepted(cls, claim: Claim) -> "ClaimResult":
        return cls(status=ClaimStatus.INSERTED, cell_id=claim.cell_id, claim=claim)

    @classmethod
    def already_present(cls, cell_id: CellId) -> "ClaimResult":
        return cls(status=ClaimStatus.ALREADY_PRESENT, cell_id=cell_id)

    @classmethod
    def rejected(cls, reason: str) -> "ClaimResult":
        return cls(status=ClaimStatus.REJECTED, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "cell_id": self.cell_id.key if self.cell_id else None,
            "color": self.claim.color if self.claim else None,
            "reason": self.reason,
        }


def epoch_millis() -> int:
    return int(time.time() * 1000)


class SyncEngine:
    """
    Bridges one replica's ClaimSet to the shared log.

    `try_claim_local` and `on_remote_event` are synchronous and never
    suspend; publishing runs as a tracked background task.
    """

    def __init__(
        self,
        claim_set: ClaimSet,
        indexer: GridIndexer,
        shared_log: SharedLog,
        render_sink: Optional[RenderingSink] = None,
        color_picker: Optional[ColorPicker] = None,
        metrics: Optional[ClaimMetricsCollector] = None,
        task_tracker: Optional[BackgroundTaskTracker] = None,
        replica_id: Optional[str] = None,
        clock: Callable[[], int] = epoch_millis,
    ):
        self.claim_set = claim_set
        self.indexer = indexer
        self.shared_log = shared_log
        self.render_sink = render_sink or NullRenderSink()
        self.color_picker = color_picker or RandomPaletteColorPicker()
        self.metrics = metrics or ClaimMetricsCollector()
        self.task_tracker = task_tracker or BackgroundTaskTracker(name="sync-engine")
        self.replica_id = replica_id
        self._clock = clock
        self._subscription: Optional[Subscription] = None
        self._running = False
        logger.info(f"SyncEngine initialized (replica={replica_id}, grid_size={indexer.grid_size})")

    # --- Local path ---

    def try_claim_local(self, lng: float, lat: float, color_picker: Optional[ColorPicker] = None) -> ClaimResult:
        """
        Claim the cell containing (lng, lat) for this replica.

        Publishes only when the claim is newly inserted; a cell that is
        already claimed never produces another shared-log event.

        Raises:
            InvalidCoordinateError: If the coordinate cannot be indexed.
        """
        cell_id = self.indexer.cell_id_for(lng, lat)
        if self.claim_set.contains(cell_id):
            self.metrics.record_duplicate(ClaimOrigin.LOCAL)
            return ClaimResult.already_present(cell_id)

        color = (color_picker or self.color_picker)()
        timestamp = self._clock()
        outcome = self.claim_set.try_insert(
            cell_id,
            color,
            self.indexer.polygon_for(cell_id),
            origin_timestamp=timestamp,
            origin=ClaimOrigin.LOCAL,
        )
        if not outcome.inserted:
            self.metrics.record_duplicate(ClaimOrigin.LOCAL)
            return ClaimResult.already_present(cell_id)

        self._accept(outcome.claim)
        logger.info(f"Claimed cell {cell_id.key} locally ({color}); total={self.claim_set.size()}")
        self._schedule_publish(
            RemoteEvent(
                cell_id=cell_id.key,
                lng=lng,
                lat=lat,
                color=color,
                timestamp=timestamp,
                origin=self.replica_id,
            )
        )
        return ClaimResult.accepted(outcome.claim)

    def _schedule_publish(self, event: RemoteEvent) -> None:
        coro = self._publish(event)
        try:
            self.task_tracker.spawn(coro, name=f"publish:{event.cell_id}")
        except RuntimeError as e:
            coro.close()
            self.metrics.record_publish_failure()
            logger.warning(f"Could not schedule publish for cell {event.cell_id}; local claim kept: {e}")

    async def _publish(self, event: RemoteEvent) -> None:
        try:
            await self.shared_log.append(event)
            logger.debug(f"Published claim for cell {event.cell_id}")
        except PublishFailureError as e:
            # local-first: the claim stays; retries belong to the transport
            self.metrics.record_publish_failure()
            logger.warning(f"{e}; local claim kept")
        except Exception:
            # unexpected adapter error; the task tracker logs it
            self.metrics.record_publish_failure()
            raise

    # --- Remote path ---

    def on_remote_event(self, event: RemoteEvent) -> ClaimResult:
        """
        Apply a claim observed on the shared log.

        Geometry is rebuilt from the cell id with the local indexer; the
        event's transmitted coordinates are never used for the polygon.
        """
        cell_id = event.cell
        outcome = self.claim_set.try_insert(
            cell_id,
            event.color,
            self.indexer.polygon_for(cell_id),
            origin_timestamp=event.timestamp,
            origin=ClaimOrigin.REMOTE,
        )
        if not outcome.inserted:
            self.metrics.record_duplicate(ClaimOrigin.REMOTE)
            return ClaimResult.already_present(cell_id)

        self._accept(outcome.claim)
        logger.debug(f"Applied remote claim for cell {cell_id.key} from {event.origin or 'unknown'}")
        return ClaimResult.accepted(outcome.claim)

    def on_remote_payload(self, payload: WirePayload) -> ClaimResult:
        """Decode and apply a raw shared-log payload; malformed payloads are dropped."""
        try:
            event = RemoteEvent.from_payload(payload)
        except MalformedRemoteEventError as e:
            self.metrics.record_malformed_event()
            logger.warning(f"Dropping malformed remote event: {e.reason}")
            return ClaimResult.rejected(e.reason)
        return self.on_remote_event(event)

    def _handle_remote_payload(self, payload: WirePayload) -> None:
        if not self._running:
            return
        self.on_remote_payload(payload)

    def _accept(self, claim: Claim) -> None:
        self.metrics.record_inserted(claim.origin, self.claim_set.size())
        try:
            self.render_sink.set_features(self.claim_set.snapshot())
        except Exception as e:
            logger.error(f"Rendering sink failed for cell {claim.key}: {e}", exc_info=True)

    # --- Subscription lifecycle ---

    @property
    def is_subscribed(self) -> bool:
        return self._subscription is not None and self._subscription.active

    async def start(self, replay: bool = True) -> None:
        """Subscribe to the shared log; no-op when already subscribed."""
        if self.is_subscribed:
            return
        self._running = True
        try:
            self._subscription = await self.shared_log.subscribe(self._handle_remote_payload, replay=replay)
        except Exception:
            self._running = False
            raise
        logger.info(f"SyncEngine subscribed to shared log (replay={replay})")

    def stop(self) -> None:
        """Unsubscribe; safe to call repeatedly or before start()."""
        self._running = False
        subscription, self._subscription = self._subscription, None
        if subscription is not None:
            subscription.unsubscribe()
            logger.info("SyncEngine unsubscribed from shared log")

    async def drain(self, timeout: Optional[float] = None) -> bool:
        """Wait for in-flight publishes."""
        return await self.task_tracker.drain(timeout=timeout)
