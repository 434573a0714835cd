"""Redis client configuration and utilities."""

from redis.asyncio import Redis as AsyncRedis
from typing import Optional
import logging

from community_grid.core.config import Settings

logger = logging.getLogger(__name__)


class RedisClient:
    """Lazily connected async Redis client wrapper."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: Optional[str] = None,
        socket_timeout: float = 5.0,
    ):
        self.host = host
        self.port = port
        self.db = db
        self.password = password
        self.socket_timeout = socket_timeout
        self.async_redis: Optional[AsyncRedis] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "RedisClient":
        # blocking stream reads must finish well inside the socket timeout
        read_block_seconds = settings.SHARED_LOG_READ_BLOCK_MS / 1000.0
        return cls(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            password=settings.REDIS_PASSWORD,
            socket_timeout=max(5.0, read_block_seconds + 5.0),
        )

    async def connect_async(self) -> AsyncRedis:
        """Connect to Redis server asynchronously."""
        if self.async_redis is None:
            client = AsyncRedis(
                host=self.host,
                port=self.port,
                db=self.db,
                password=self.password,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=self.socket_timeout,
                retry_on_timeout=True,
                max_connections=20
            )
            # Test connection
            try:
                await client.ping()
                logger.info(f"Async Redis connection established successfully ({self.host}:{self.port}/{self.db})")
            except Exception as e:
                logger.error(f"Failed to connect to async Redis: {e}")
                await client.aclose()
                raise
            self.async_redis = client
        return self.async_redis

    async def close(self) -> None:
        """Close Redis connections."""
        if self.async_redis is not None:
            await self.async_redis.aclose()
            self.async_redis = None
            logger.info("Async Redis connection closed")
