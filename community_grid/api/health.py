"""Health check for a single replica."""
import logging
import time
from typing import Any, Dict

from fastapi import APIRouter, Request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Reports the replica's claim count and shared-log subscription.

    A replica that failed to subscribe keeps serving local claims and is
    reported as "degraded".
    """
    sync_engine = getattr(request.app.state, "sync_engine", None)
    if sync_engine is None:
        return {"status": "unhealthy", "timestamp": time.time(), "detail": "SyncEngine not initialized"}

    subscribed = sync_engine.is_subscribed
    status_report = {
        "status": "healthy" if subscribed else "degraded",
        "timestamp": time.time(),
        "replica_id": sync_engine.replica_id,
        "claimed_cells": sync_engine.claim_set.size(),
        "shared_log_subscribed": subscribed,
        "pending_tasks": sync_engine.task_tracker.pending,
    }
    if not subscribed:
        logger.warning(f"Health check: shared log not subscribed: {status_report}")
    return status_report
