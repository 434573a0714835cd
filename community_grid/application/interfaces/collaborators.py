"""
Collaborator interfaces for the claim protocol.

These define the contracts the core relies on without coupling it to a
concrete transport, map surface or position provider.
"""
import logging
from abc import ABC, abstractmethod
from typing import Callable, Optional

from community_grid.domain.claims.events.remote_event import RemoteEvent
from community_grid.domain.position.position_status import PositionStatus
from community_grid.shared.types import ErrorCallback, FeatureCollection, FixCallback, PayloadCallback

logger = logging.getLogger(__name__)


class Subscription:
    """
    Cancellation handle returned by every subscribe call.

    `unsubscribe()` is idempotent. A subscription built without a cancel
    callback stands for "never subscribed" and can be torn down safely.
    """

    def __init__(self, cancel: Optional[Callable[[], None]] = None, name: str = "subscription"):
        self._cancel = cancel
        self.name = name
        self._active = cancel is not None

    @property
    def active(self) -> bool:
        return self._active

    def unsubscribe(self) -> None:
        if not self._active:
            return
        self._active = False
        cancel, self._cancel = self._cancel, None
        try:
            cancel()
        finally:
            logger.debug(f"Subscription '{self.name}' cancelled")


class SharedLog(ABC):
    """
    Append-only, at-least-once broadcast log shared by all replicas.

    No total order is provided; subscribers also see their own appends.
    """

    @abstractmethod
    async def append(self, event: RemoteEvent) -> None:
        """
        Append an event.

        Raises:
            PublishFailureError: If the log did not confirm the append.
        """
        pass

    @abstractmethod
    async def subscribe(self, callback: PayloadCallback, replay: bool = True) -> Subscription:
        """
        Deliver each raw wire payload appended after subscription start
        (and every earlier one when `replay` is set) to `callback`.
        """
        pass

    async def close(self) -> None:
        """Release transport resources."""
        pass


class RenderingSink(ABC):
    """Map surface receiving claim features and viewport updates."""

    @abstractmethod
    def set_features(self, collection: FeatureCollection) -> None:
        """Replace every rendered claim with `collection` (idempotent)."""
        pass

    @abstractmethod
    def recenter(self, lng: float, lat: float) -> None:
        pass

    @abstractmethod
    def place_marker(self, lng: float, lat: float) -> None:
        pass


class StatusSink(ABC):
    """UI collaborator that shows transient position status."""

    @abstractmethod
    def show_status(self, status: PositionStatus) -> None:
        pass

    @abstractmethod
    def clear_status(self) -> None:
        pass


class PositionSource(ABC):
    """Local producer of coordinate fixes; may error or pause indefinitely."""

    @abstractmethod
    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription:
        pass


class NullRenderSink(RenderingSink, StatusSink):
    """Sink that discards everything; used where no surface is attached."""

    def set_features(self, collection: FeatureCollection) -> None:
        pass

    def recenter(self, lng: float, lat: float) -> None:
        pass

    def place_marker(self, lng: float, lat: float) -> None:
        pass

    def show_status(self, status: PositionStatus) -> None:
        pass

    def clear_status(self) -> None:
        pass
