"""
Claim entity: a grid cell that has been visited and colored.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from community_grid.domain.grid.value_objects.cell_id import CellId
from community_grid.shared.types import ClosedRing, Feature, ring_to_coordinates


class ClaimOrigin(Enum):
    """Where the accepted claim was first observed."""
    LOCAL = "local"
    REMOTE = "remote"


@dataclass(frozen=True)
class Claim:
    """
    Immutable record of a claimed cell.

    Identity is the cell id. Color and origin timestamp are informational;
    neither takes part in ordering or conflict decisions.
    """
    cell_id: CellId
    color: str
    geometry: ClosedRing
    origin_timestamp: Optional[int] = None  # epoch milliseconds
    origin: ClaimOrigin = ClaimOrigin.LOCAL

    @property
    def key(self) -> str:
        return self.cell_id.key

    def to_feature(self) -> Feature:
        """GeoJSON Feature view of the claim."""
        return {
            "type": "Feature",
            "id": self.key,
            "properties": {
                "cellId": self.key,
                "color": self.color,
            },
            "geometry": {
                "type": "Polygon",
                "coordinates": ring_to_coordinates(self.geometry),
            },
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cell_id": self.key,
            "color": self.color,
            "origin_timestamp": self.origin_timestamp,
            "origin": self.origin.value,
        }
