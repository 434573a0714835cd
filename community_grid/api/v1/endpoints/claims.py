"""
Claim API endpoints.

- Current claims as a GeoJSON FeatureCollection
- Claimed-cell counter and replica statistics
- Manual position override (same path as a device fix)
"""
import logging

from fastapi import APIRouter, Depends, HTTPException, status

from community_grid.api.v1.schemas import (
    ClaimCountResponse,
    ClaimResultResponse,
    ClaimStatsResponse,
    ManualPositionRequest,
)
from community_grid.core.dependencies import get_claim_set, get_metrics, get_sync_engine
from community_grid.core.exceptions import InvalidCoordinateError
from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.services.sync_engine import SyncEngine
from community_grid.utils.metrics_collector import ClaimMetricsCollector

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/claims", tags=["claims"])


@router.get("")
async def list_claims(claim_set: ClaimSet = Depends(get_claim_set)):
    """Every claimed cell as a Polygon feature."""
    return claim_set.snapshot()


@router.get("/count", response_model=ClaimCountResponse)
async def get_claim_count(claim_set: ClaimSet = Depends(get_claim_set)):
    return ClaimCountResponse(count=claim_set.size())


@router.get("/stats", response_model=ClaimStatsResponse)
async def get_claim_stats(
    sync_engine: SyncEngine = Depends(get_sync_engine),
    metrics: ClaimMetricsCollector = Depends(get_metrics),
):
    return ClaimStatsResponse(
        replica_id=sync_engine.replica_id,
        subscribed=sync_engine.is_subscribed,
        statistics=metrics.get_statistics(),
    )


@router.post("/manual", response_model=ClaimResultResponse)
async def claim_manual_position(
    request: ManualPositionRequest,
    sync_engine: SyncEngine = Depends(get_sync_engine),
):
    """Claim the cell under a user-selected point."""
    try:
        result = sync_engine.try_claim_local(request.lng, request.lat)
    except InvalidCoordinateError as e:
        logger.warning(f"Rejected manual position: {e}")
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.reason)
    return ClaimResultResponse(**result.to_dict())
