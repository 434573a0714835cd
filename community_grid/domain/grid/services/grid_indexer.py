"""
Grid indexing service.

Maps continuous WGS84 coordinates onto a fixed square grid. Stateless apart
from the grid size it was built with.
"""
import logging
import math

from community_grid.core.exceptions import InvalidCoordinateError
from community_grid.domain.grid.value_objects.cell_id import CellId
from community_grid.shared.types import ClosedRing

logger = logging.getLogger(__name__)

MAX_ABS_LONGITUDE = 180.0
MAX_ABS_LATITUDE = 90.0


class GridIndexer:
    """
    Pure coordinate -> cell mapping.

    A point belongs to cell (x, y) iff it lies in the half-open region
    [x*G, (x+1)*G) x [y*G, (y+1)*G). Floor division keeps that true south and
    west of the origin, where truncation would fold cell -1 into cell 0.
    """

    def __init__(self, grid_size: float):
        if not isinstance(grid_size, (int, float)) or not math.isfinite(grid_size) or grid_size <= 0:
            raise ValueError(f"Grid size must be a positive finite number, got {grid_size!r}")
        self.grid_size = float(grid_size)
        logger.info(f"GridIndexer initialized with grid size {self.grid_size}")

    def cell_id_for(self, lng: float, lat: float) -> CellId:
        """
        Map a coordinate to its cell.

        Raises:
            InvalidCoordinateError: For non-numeric, non-finite or out-of-range input.
        """
        self.validate_coordinate(lng, lat)
        return CellId(
            x=math.floor(lng / self.grid_size),
            y=math.floor(lat / self.grid_size),
        )

    def polygon_for(self, cell_id: CellId) -> ClosedRing:
        """Closed, axis-aligned five-point ring bounding the cell."""
        min_lng = cell_id.x * self.grid_size
        min_lat = cell_id.y * self.grid_size
        max_lng = min_lng + self.grid_size
        max_lat = min_lat + self.grid_size
        return (
            (min_lng, min_lat),
            (max_lng, min_lat),
            (max_lng, max_lat),
            (min_lng, max_lat),
            (min_lng, min_lat),
        )

    @staticmethod
    def validate_coordinate(lng: float, lat: float) -> None:
        for value in (lng, lat):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidCoordinateError(lng, lat, "coordinates must be numbers")
            if not math.isfinite(value):
                raise InvalidCoordinateError(lng, lat, "coordinates must be finite")
        if abs(lng) > MAX_ABS_LONGITUDE:
            raise InvalidCoordinateError(lng, lat, "longitude outside [-180, 180]")
        if abs(lat) > MAX_ABS_LATITUDE:
            raise InvalidCoordinateError(lng, lat, "latitude outside [-90, 90]")
