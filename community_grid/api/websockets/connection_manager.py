"""
WebSocket connection management for the grid channel.

Handles:
- Connection registry keyed by channel
- Broadcast with cleanup of failed sockets
- Ordered, coalescing per-destination outboxes
"""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple

from fastapi import WebSocket

from community_grid.utils.background_tasks import BackgroundTaskTracker

logger = logging.getLogger(__name__)

GRID_CHANNEL = "grid"


class MessageType(Enum):
    """Server -> client message types."""
    CONNECTION_ESTABLISHED = "connection_established"
    FEATURES = "features"
    CLAIM_COUNT = "claim_count"
    RECENTER = "recenter"
    MARKER = "marker"
    POSITION_STATUS = "position_status"
    CLAIM_RESULT = "claim_result"


class ClientMessageType(Enum):
    """Client -> server message types."""
    POSITION_FIX = "position_fix"
    POSITION_ERROR = "position_error"
    MANUAL_POSITION = "manual_position"


# Only the newest pending message of these types matters (full-replace semantics)
COALESCED_TYPES: Tuple[str, ...] = (MessageType.FEATURES.value, MessageType.CLAIM_COUNT.value)


class ConnectionManager:
    """Manages active WebSocket connections for each channel."""

    def __init__(self):
        self.active_connections: Dict[str, List[WebSocket]] = {}
        logger.info("ConnectionManager initialized.")

    async def connect(self, websocket: WebSocket, channel: str = GRID_CHANNEL):
        """
        Accepts a new WebSocket connection and stores it for the channel.

        Raises:
            Exception: If `websocket.accept()` fails.
        """
        try:
            await websocket.accept()
        except Exception as e_accept:
            logger.error(
                f"MANAGER: Error during websocket.accept() for channel '{channel}', client {websocket.client}: {e_accept}",
                exc_info=True
            )
            raise

        self.active_connections.setdefault(channel, []).append(websocket)
        logger.info(
            f"MANAGER: WebSocket stored for channel '{channel}', client {websocket.client}. "
            f"Total connections for this channel: {len(self.active_connections[channel])}"
        )

    def disconnect(self, websocket: WebSocket, channel: str = GRID_CHANNEL):
        """Removes a WebSocket connection from the active list for a channel."""
        if channel not in self.active_connections:
            logger.warning(
                f"MANAGER: channel '{channel}' not found in active_connections "
                f"during disconnect for client {websocket.client}."
            )
            return
        if websocket not in self.active_connections[channel]:
            logger.warning(
                f"MANAGER: WebSocket client {websocket.client} not found in active list "
                f"for channel '{channel}' during disconnect."
            )
            return
        self.active_connections[channel].remove(websocket)
        if not self.active_connections[channel]:
            del self.active_connections[channel]
        logger.info(f"MANAGER: WebSocket client {websocket.client} disconnected from channel '{channel}'")

    def connection_count(self, channel: str = GRID_CHANNEL) -> int:
        return len(self.active_connections.get(channel, []))

    async def broadcast(self, channel: str, message: Dict[str, Any]) -> int:
        """
        Broadcasts a JSON message to every WebSocket on the channel.

        Returns:
            Number of clients the message reached.
        """
        connections = list(self.active_connections.get(channel, []))
        disconnected_sockets = []
        delivered = 0
        for connection in connections:
            try:
                await connection.send_json(message)
                delivered += 1
            except RuntimeError as e_runtime:
                logger.warning(
                    f"MANAGER: RuntimeError sending to client {connection.client} for channel '{channel}': {e_runtime}. Marking for disconnect."
                )
                disconnected_sockets.append(connection)
            except Exception as e_send:
                logger.error(
                    f"MANAGER: Error sending message to client {connection.client} for channel '{channel}': {e_send}",
                    exc_info=True
                )
                disconnected_sockets.append(connection)

        for connection in disconnected_sockets:
            self.disconnect(connection, channel)
        return delivered

    async def send_personal(self, websocket: WebSocket, message: Dict[str, Any]) -> bool:
        try:
            await websocket.send_json(message)
            return True
        except Exception as e:
            logger.warning(f"MANAGER: Failed to send to client {websocket.client}: {e}")
            return False


class OrderedOutbox:
    """
    FIFO queue drained by at most one task at a time.

    Messages reach the destination in the order they were put. A message of a
    coalesced type replaces a pending message of the same type at the tail,
    so a burst of snapshots collapses into the newest one.
    """

    def __init__(
        self,
        send: Callable[[Dict[str, Any]], Awaitable[Any]],
        task_tracker: BackgroundTaskTracker,
        name: str = "outbox",
        coalesced_types: Tuple[str, ...] = COALESCED_TYPES,
    ):
        self._send = send
        self._task_tracker = task_tracker
        self.name = name
        self.coalesced_types = coalesced_types
        self._queue: Deque[Dict[str, Any]] = deque()
        self._drain_task: Optional[asyncio.Task] = None
        self.closed = False

    def put(self, message: Dict[str, Any]) -> None:
        if self.closed:
            return
        message_type = message.get("type")
        if self._queue and message_type in self.coalesced_types and self._queue[-1].get("type") == message_type:
            self._queue[-1] = message
        else:
            self._queue.append(message)

        if self._drain_task is None or self._drain_task.done():
            drain = self._drain()
            try:
                self._drain_task = self._task_tracker.spawn(drain, name=f"outbox:{self.name}")
            except RuntimeError as e:
                drain.close()
                logger.warning(f"Outbox '{self.name}' has no running loop; dropping {len(self._queue)} message(s): {e}")
                self._queue.clear()

    async def _drain(self) -> None:
        while self._queue and not self.closed:
            message = self._queue.popleft()
            try:
                await self._send(message)
            except Exception as e:
                logger.error(f"Outbox '{self.name}' failed to send '{message.get('type')}': {e}", exc_info=True)

    @property
    def pending(self) -> int:
        return len(self._queue)

    def close(self) -> None:
        self.closed = True
        self._queue.clear()
