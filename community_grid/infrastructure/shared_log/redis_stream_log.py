"""
Redis Streams-backed shared log.

Append is XADD on a single stream; every subscriber runs its own blocking
XREAD loop, so each replica sees every entry (its own included). Delivery
is at-least-once across reconnects; consumers must be idempotent.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

from redis.exceptions import RedisError

from community_grid.application.interfaces.collaborators import SharedLog, Subscription
from community_grid.core.exceptions import PublishFailureError
from community_grid.domain.claims.events.remote_event import RemoteEvent
from community_grid.infrastructure.cache.redis_client import RedisClient
from community_grid.shared.types import PayloadCallback

logger = logging.getLogger(__name__)

STREAM_START_ID = "0-0"


class RedisStreamSharedLog(SharedLog):
    """
    Shared log on a Redis stream.

    Features:
    - Fire-and-forget appends surfacing PublishFailureError on Redis errors
    - History replay from the start of the stream, or tail-only subscription
    - Read loop that survives Redis outages and failing callbacks
    """

    def __init__(
        self,
        redis_client: RedisClient,
        stream_key: str = "community_grid",
        block_ms: int = 5000,
        batch_size: int = 100,
        retry_seconds: float = 2.0,
    ):
        self.redis_client = redis_client
        self.stream_key = stream_key
        self.block_ms = block_ms
        self.batch_size = batch_size
        self.retry_seconds = retry_seconds
        self._reader_tasks: Dict[str, asyncio.Task] = {}
        self._subscription_counter = 0
        logger.info(f"RedisStreamSharedLog initialized for stream '{stream_key}'")

    async def append(self, event: RemoteEvent) -> None:
        try:
            redis = await self.redis_client.connect_async()
            await redis.xadd(self.stream_key, event.to_wire())
        except (RedisError, OSError) as e:
            raise PublishFailureError(event.cell_id, e) from e

    async def subscribe(self, callback: PayloadCallback, replay: bool = True) -> Subscription:
        """
        Start a reader task for `callback`.

        Without replay, the current tail id is resolved here so entries
        appended between subscribe and the first XREAD are not skipped.
        """
        start_id = STREAM_START_ID if replay else await self._resolve_tail_id()
        self._subscription_counter += 1
        name = f"redis-log:{self.stream_key}:{self._subscription_counter}"
        task = asyncio.create_task(self._read_loop(callback, start_id), name=name)
        self._reader_tasks[name] = task
        task.add_done_callback(lambda _t: self._reader_tasks.pop(name, None))
        logger.info(f"Subscribed to stream '{self.stream_key}' from id {start_id}")
        return Subscription(cancel=task.cancel, name=name)

    async def _resolve_tail_id(self) -> str:
        redis = await self.redis_client.connect_async()
        latest = await redis.xrevrange(self.stream_key, count=1)
        return latest[0][0] if latest else STREAM_START_ID

    async def _read_loop(self, callback: PayloadCallback, last_id: str) -> None:
        while True:
            try:
                redis = await self.redis_client.connect_async()
                response = await redis.xread(
                    {self.stream_key: last_id},
                    count=self.batch_size,
                    block=self.block_ms,
                )
            except (RedisError, OSError) as e:
                logger.warning(f"Shared log read failed on '{self.stream_key}': {e}. Retrying in {self.retry_seconds}s")
                await asyncio.sleep(self.retry_seconds)
                continue

            for _stream, entries in response or []:
                for entry_id, fields in entries:
                    last_id = entry_id
                    self._dispatch(callback, entry_id, fields)

    def _dispatch(self, callback: PayloadCallback, entry_id: str, fields: Optional[Dict[str, Any]]) -> None:
        try:
            callback(dict(fields or {}))
        except Exception as e:
            logger.error(f"Shared log subscriber failed on entry {entry_id}: {e}", exc_info=True)

    async def close(self) -> None:
        tasks = list(self._reader_tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self.redis_client.close()
        logger.info(f"RedisStreamSharedLog for '{self.stream_key}' closed")
