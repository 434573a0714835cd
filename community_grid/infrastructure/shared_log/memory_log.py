"""
Process-local shared log.

Stands in for a networked log on a single node and in tests. Appended
payloads are delivered to every active subscriber, the appender included,
on a later loop iteration.
"""
import asyncio
import logging
from typing import List

from community_grid.application.interfaces.collaborators import SharedLog, Subscription
from community_grid.domain.claims.events.remote_event import RemoteEvent
from community_grid.shared.types import PayloadCallback, WirePayload

logger = logging.getLogger(__name__)


class _Subscriber:
    def __init__(self, callback: PayloadCallback):
        self.callback = callback
        self.active = True


class InMemorySharedLog(SharedLog):
    """Append-only list of wire payloads with asynchronous fan-out."""

    def __init__(self):
        self.history: List[WirePayload] = []
        self._subscribers: List[_Subscriber] = []
        logger.info("InMemorySharedLog initialized")

    async def append(self, event: RemoteEvent) -> None:
        await self.append_raw(event.to_wire())

    async def append_raw(self, payload: WirePayload) -> None:
        """Append a payload as-is, without validating it."""
        self.history.append(payload)
        loop = asyncio.get_running_loop()
        for subscriber in list(self._subscribers):
            loop.call_soon(self._deliver, subscriber, payload)

    async def subscribe(self, callback: PayloadCallback, replay: bool = True) -> Subscription:
        subscriber = _Subscriber(callback)
        self._subscribers.append(subscriber)
        if replay:
            loop = asyncio.get_running_loop()
            for payload in list(self.history):
                loop.call_soon(self._deliver, subscriber, payload)

        def cancel() -> None:
            subscriber.active = False
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return Subscription(cancel=cancel, name="memory-log")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _deliver(self, subscriber: _Subscriber, payload: WirePayload) -> None:
        if not subscriber.active:
            return
        try:
            subscriber.callback(payload)
        except Exception as e:
            logger.error(f"Shared log subscriber failed on payload {payload!r}: {e}", exc_info=True)
