import logging

from community_grid.application.interfaces.collaborators import SharedLog
from community_grid.core.config import Settings
from community_grid.infrastructure.cache.redis_client import RedisClient
from community_grid.infrastructure.shared_log.memory_log import InMemorySharedLog
from community_grid.infrastructure.shared_log.redis_stream_log import RedisStreamSharedLog

logger = logging.getLogger(__name__)


def build_shared_log(settings: Settings) -> SharedLog:
    """Create the shared log selected by SHARED_LOG_BACKEND."""
    if settings.SHARED_LOG_BACKEND == "memory":
        logger.info("Using in-memory shared log (single-node mode)")
        return InMemorySharedLog()
    logger.info(f"Using Redis stream shared log at {settings.REDIS_HOST}:{settings.REDIS_PORT}")
    return RedisStreamSharedLog(
        redis_client=RedisClient.from_settings(settings),
        stream_key=settings.SHARED_LOG_STREAM_KEY,
        block_ms=settings.SHARED_LOG_READ_BLOCK_MS,
        batch_size=settings.SHARED_LOG_READ_BATCH,
        retry_seconds=settings.SHARED_LOG_RETRY_SECONDS,
    )
