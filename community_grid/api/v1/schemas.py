from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

from community_grid.core.config import Settings

# --- Request Schemas ---

class ManualPositionRequest(BaseModel):
    """A user-selected point to claim in place of a device fix."""
    lng: float = Field(..., ge=-180.0, le=180.0, allow_inf_nan=False, description="Longitude in degrees.")
    lat: float = Field(..., ge=-90.0, le=90.0, allow_inf_nan=False, description="Latitude in degrees.")

# --- Response Schemas ---

class ClaimResultResponse(BaseModel):
    """Outcome of a claim attempt."""
    status: str = Field(..., description="inserted, already_present or rejected")
    cell_id: Optional[str] = Field(None, description="Cell key 'x_y' (null when rejected).")
    color: Optional[str] = Field(None, description="Color of the new claim (only when inserted).")
    reason: Optional[str] = None

class ClaimCountResponse(BaseModel):
    count: int = Field(..., ge=0, description="Number of distinct claimed cells.")

class GridCellResponse(BaseModel):
    """Cell id and closed polygon ring for a coordinate."""
    cell_id: str
    x: int
    y: int
    polygon: List[List[List[float]]] = Field(..., description="GeoJSON Polygon coordinates (one closed ring).")
    claimed: bool
    color: Optional[str] = None

class MapConfigResponse(BaseModel):
    center: List[float] = Field(..., description="[lng, lat]")
    zoom: float
    style_url: str
    palette: List[str]
    grid_size: float

    @classmethod
    def from_settings(cls, settings: Settings) -> "MapConfigResponse":
        return cls(
            center=[settings.MAP_CENTER_LNG, settings.MAP_CENTER_LAT],
            zoom=settings.MAP_ZOOM,
            style_url=settings.MAP_STYLE_URL,
            palette=list(settings.COLOR_PALETTE),
            grid_size=settings.GRID_SIZE,
        )

class ClaimStatsResponse(BaseModel):
    replica_id: Optional[str]
    subscribed: bool
    statistics: Dict[str, Any]
