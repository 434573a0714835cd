"""
Push-based position source.

Participants' devices relay their geolocation fixes and errors (over the
WebSocket channel); every active subscriber receives them in arrival order.
"""
import logging
from typing import Any, List

from community_grid.application.interfaces.collaborators import PositionSource, Subscription
from community_grid.shared.types import ErrorCallback, FixCallback

logger = logging.getLogger(__name__)


class _Listener:
    def __init__(self, on_fix: FixCallback, on_error: ErrorCallback):
        self.on_fix = on_fix
        self.on_error = on_error


class ClientPositionSource(PositionSource):

    def __init__(self, name: str = "client"):
        self.name = name
        self._listeners: List[_Listener] = []
        self.fix_count = 0
        self.error_count = 0

    def subscribe(self, on_fix: FixCallback, on_error: ErrorCallback) -> Subscription:
        listener = _Listener(on_fix, on_error)
        self._listeners.append(listener)

        def cancel() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(cancel=cancel, name=f"position:{self.name}")

    def push_fix(self, lng: float, lat: float) -> None:
        self.fix_count += 1
        for listener in list(self._listeners):
            listener.on_fix(lng, lat)

    def push_error(self, error: Any) -> None:
        self.error_count += 1
        logger.debug(f"Position source '{self.name}' reported error {error!r}")
        for listener in list(self._listeners):
            listener.on_error(error)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)
