import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status

from community_grid.api.v1.schemas import GridCellResponse, MapConfigResponse
from community_grid.core.config import settings
from community_grid.core.dependencies import get_claim_set, get_indexer
from community_grid.core.exceptions import InvalidCoordinateError
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.grid.services.grid_indexer import GridIndexer
from community_grid.shared.types import ring_to_coordinates

logger = logging.getLogger(__name__)

router = APIRouter(tags=["grid"])


@router.get("/grid/cell", response_model=GridCellResponse)
async def get_grid_cell(
    lng: float = Query(..., ge=-180.0, le=180.0),
    lat: float = Query(..., ge=-90.0, le=90.0),
    indexer: GridIndexer = Depends(get_indexer),
    claim_set: ClaimSet = Depends(get_claim_set),
):
    """Resolve the cell containing (lng, lat) and whether it is claimed."""
    try:
        cell_id = indexer.cell_id_for(lng, lat)
    except InvalidCoordinateError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.reason)
    claim = claim_set.get(cell_id)
    return GridCellResponse(
        cell_id=cell_id.key,
        x=cell_id.x,
        y=cell_id.y,
        polygon=ring_to_coordinates(indexer.polygon_for(cell_id)),
        claimed=claim is not None,
        color=claim.color if claim else None,
    )


@router.get("/map/config", response_model=MapConfigResponse)
async def get_map_config():
    return MapConfigResponse.from_settings(settings)
