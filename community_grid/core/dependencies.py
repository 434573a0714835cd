"""
Module for providing application dependencies.
Leverages FastAPI's dependency injection system and app.state for components built at startup.
"""
import logging

from fastapi import HTTPException, Request, status

from community_grid.domain.claims.entities.claim_set import ClaimSet
from community_grid.domain.grid.services.grid_indexer import GridIndexer
from community_grid.services.sync_engine import SyncEngine
from community_grid.utils.metrics_collector import ClaimMetricsCollector

logger = logging.getLogger(__name__)


def _from_state(request: Request, attribute: str, label: str):
    component = getattr(request.app.state, attribute, None)
    if component is None:
        logger.error(f"{label} not found in app.state (attribute '{attribute}'). Startup might have failed.")
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=f"{label} not available.")
    return component


def get_sync_engine(request: Request) -> SyncEngine:
    """Retrieves the replica's SyncEngine from app.state."""
    return _from_state(request, "sync_engine", "SyncEngine")


def get_claim_set(request: Request) -> ClaimSet:
    return _from_state(request, "claim_set", "ClaimSet")


def get_indexer(request: Request) -> GridIndexer:
    return _from_state(request, "indexer", "GridIndexer")


def get_metrics(request: Request) -> ClaimMetricsCollector:
    return _from_state(request, "metrics", "Claim metrics")
