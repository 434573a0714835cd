"""
Local, append-only, deduplicated collection of claims.

The ClaimSet is the single authoritative owner of accepted claims on a
replica. It is mutated from two independent streams (local motion and the
shared log) and exposes only whole-claim inserts.
"""
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, Optional, Tuple

from community_grid.domain.claims.entities.claim import Claim, ClaimOrigin
from community_grid.domain.grid.value_objects.cell_id import CellId
from community_grid.shared.types import ClosedRing, FeatureCollection

logger = logging.getLogger(__name__)


class InsertStatus(Enum):
    INSERTED = "inserted"
    ALREADY_PRESENT = "already_present"


@dataclass(frozen=True)
class InsertOutcome:
    """Result of ClaimSet.try_insert; `claim` is set only when inserted."""
    status: InsertStatus
    claim: Optional[Claim] = None

    @property
    def inserted(self) -> bool:
        return self.status is InsertStatus.INSERTED


ALREADY_PRESENT = InsertOutcome(status=InsertStatus.ALREADY_PRESENT)


class ClaimSet:
    """
    Mapping CellId -> Claim with atomic claim-if-absent semantics.

    The dict doubles as the O(1) existence index. Insertion order is kept so
    snapshots list claims in the order they were accepted. The lock makes
    `try_insert` a single critical section even if callers share the set
    across threads; on a single event loop it is never contended.
    """

    def __init__(self):
        self._claims: Dict[CellId, Claim] = {}
        self._lock = threading.Lock()

    def contains(self, cell_id: CellId) -> bool:
        return cell_id in self._claims

    def __contains__(self, cell_id: object) -> bool:
        return isinstance(cell_id, CellId) and self.contains(cell_id)

    def try_insert(
        self,
        cell_id: CellId,
        color: str,
        geometry: ClosedRing,
        origin_timestamp: Optional[int] = None,
        origin: ClaimOrigin = ClaimOrigin.LOCAL,
    ) -> InsertOutcome:
        """
        Insert a claim for `cell_id` unless one already exists.

        Exactly one call per cell id ever returns INSERTED; every other call
        returns ALREADY_PRESENT and leaves the existing claim untouched.
        """
        with self._lock:
            if cell_id in self._claims:
                return ALREADY_PRESENT
            claim = Claim(
                cell_id=cell_id,
                color=color,
                geometry=geometry,
                origin_timestamp=origin_timestamp,
                origin=origin,
            )
            self._claims[cell_id] = claim
        logger.debug(f"ClaimSet: accepted {origin.value} claim for cell {cell_id.key}")
        return InsertOutcome(status=InsertStatus.INSERTED, claim=claim)

    def get(self, cell_id: CellId) -> Optional[Claim]:
        return self._claims.get(cell_id)

    def claims(self) -> Tuple[Claim, ...]:
        """Point-in-time copy of all claims, in acceptance order."""
        with self._lock:
            return tuple(self._claims.values())

    def snapshot(self) -> FeatureCollection:
        """
        GeoJSON FeatureCollection of every claim.

        Only the copy of the claim list happens under the lock; features are
        built outside it.
        """
        return {
            "type": "FeatureCollection",
            "features": [claim.to_feature() for claim in self.claims()],
        }

    def size(self) -> int:
        return len(self._claims)

    def __len__(self) -> int:
        return self.size()

    def __iter__(self) -> Iterator[Claim]:
        return iter(self.claims())
