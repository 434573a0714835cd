"""
WebSocket-backed rendering and status sinks.

BroadcastRenderSink renders the shared map (claims and counter) for every
connected participant; SessionRenderSink drives one participant's viewport
and position status.
"""

import logging
from typing import Any, Dict, Optional

from fastapi import WebSocket

from community_grid.api.websockets.connection_manager import (
    GRID_CHANNEL,
    ConnectionManager,
    MessageType,
    OrderedOutbox,
)
from community_grid.application.interfaces.collaborators import RenderingSink, StatusSink
from community_grid.domain.position.position_status import PositionStatus
from community_grid.services.sync_engine import ClaimResult
from community_grid.shared.types import FeatureCollection
from community_grid.utils.background_tasks import BackgroundTaskTracker

logger = logging.getLogger(__name__)


def features_message(collection: FeatureCollection) -> Dict[str, Any]:
    return {"type": MessageType.FEATURES.value, "payload": collection}


def count_message(count: int) -> Dict[str, Any]:
    return {"type": MessageType.CLAIM_COUNT.value, "count": count}


def position_message(message_type: MessageType, lng: float, lat: float) -> Dict[str, Any]:
    return {"type": message_type.value, "lng": lng, "lat": lat}


def status_message(status: Optional[PositionStatus]) -> Dict[str, Any]:
    return {"type": MessageType.POSITION_STATUS.value, "status": status.to_dict() if status else None}


class BroadcastRenderSink(RenderingSink):
    """Renders onto every client connected to the grid channel."""

    def __init__(self, manager: ConnectionManager, task_tracker: BackgroundTaskTracker, channel: str = GRID_CHANNEL):
        self.manager = manager
        self.channel = channel
        self._outbox = OrderedOutbox(
            send=lambda message: manager.broadcast(channel, message),
            task_tracker=task_tracker,
            name=f"broadcast:{channel}",
        )

    def set_features(self, collection: FeatureCollection) -> None:
        self._outbox.put(features_message(collection))

    def recenter(self, lng: float, lat: float) -> None:
        self._outbox.put(position_message(MessageType.RECENTER, lng, lat))

    def place_marker(self, lng: float, lat: float) -> None:
        self._outbox.put(position_message(MessageType.MARKER, lng, lat))

    def publish_count(self, count: int) -> None:
        self._outbox.put(count_message(count))

    def close(self) -> None:
        self._outbox.close()


class SessionRenderSink(RenderingSink, StatusSink):
    """Renders onto a single participant's WebSocket."""

    def __init__(self, websocket: WebSocket, manager: ConnectionManager, task_tracker: BackgroundTaskTracker):
        self.websocket = websocket
        self._outbox = OrderedOutbox(
            send=lambda message: manager.send_personal(websocket, message),
            task_tracker=task_tracker,
            name=f"session:{websocket.client}",
        )

    def set_features(self, collection: FeatureCollection) -> None:
        self._outbox.put(features_message(collection))

    def recenter(self, lng: float, lat: float) -> None:
        self._outbox.put(position_message(MessageType.RECENTER, lng, lat))

    def place_marker(self, lng: float, lat: float) -> None:
        self._outbox.put(position_message(MessageType.MARKER, lng, lat))

    def show_status(self, status: PositionStatus) -> None:
        self._outbox.put(status_message(status))

    def clear_status(self) -> None:
        self._outbox.put(status_message(None))

    def send_claim_result(self, result: ClaimResult) -> None:
        self._outbox.put({"type": MessageType.CLAIM_RESULT.value, **result.to_dict()})

    def close(self) -> None:
        self._outbox.close()
