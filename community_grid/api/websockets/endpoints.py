"""
WebSocket endpoint for participants.

Each connection is one participant: its device relays geolocation fixes and
errors, and it receives the shared map state plus its own viewport updates.
"""

import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from community_grid.api.v1.schemas import MapConfigResponse
from community_grid.api.websockets.connection_manager import (
    GRID_CHANNEL,
    ClientMessageType,
    MessageType,
)
from community_grid.api.websockets.render_sink import SessionRenderSink, count_message, features_message
from community_grid.core.config import settings
from community_grid.infrastructure.position.client_position_source import ClientPositionSource
from community_grid.services.motion_tracker import MotionTracker

logger = logging.getLogger(__name__)

router = APIRouter()


def handle_client_message(
    message: Dict[str, Any],
    position_source: ClientPositionSource,
    tracker: MotionTracker,
    session_sink: SessionRenderSink,
) -> None:
    """Dispatch one decoded client message."""
    message_type = message.get("type")

    if message_type == ClientMessageType.POSITION_FIX.value:
        position_source.push_fix(message.get("lng"), message.get("lat"))
        if tracker.last_result is not None:
            session_sink.send_claim_result(tracker.last_result)
    elif message_type == ClientMessageType.POSITION_ERROR.value:
        position_source.push_error(message.get("code"))
    elif message_type == ClientMessageType.MANUAL_POSITION.value:
        result = tracker.manual_override(message.get("lng"), message.get("lat"))
        session_sink.send_claim_result(result)
    else:
        logger.warning(f"Unknown message type from client {session_sink.websocket.client}: {message_type!r}")


@router.websocket("/grid")
async def websocket_grid_endpoint(websocket: WebSocket):
    state = websocket.app.state
    sync_engine = getattr(state, "sync_engine", None)
    manager = getattr(state, "connection_manager", None)
    task_tracker = getattr(state, "task_tracker", None)
    if sync_engine is None or manager is None or task_tracker is None:
        logger.error("WebSocket grid connection refused: application components not initialized")
        await websocket.close(code=1011, reason="Service not initialized")
        return

    await manager.connect(websocket, GRID_CHANNEL)
    client_label = f"{websocket.client}"

    session_sink = SessionRenderSink(websocket, manager, task_tracker)
    position_source = ClientPositionSource(name=client_label)
    tracker = MotionTracker(
        sync_engine,
        position_source,
        render_sink=session_sink,
        status_sink=session_sink,
        name=client_label,
    )

    try:
        await manager.send_personal(websocket, {
            "type": MessageType.CONNECTION_ESTABLISHED.value,
            "replica_id": sync_engine.replica_id,
            "map": MapConfigResponse.from_settings(settings).model_dump(),
        })
        await manager.send_personal(websocket, features_message(sync_engine.claim_set.snapshot()))
        await manager.send_personal(websocket, count_message(sync_engine.claim_set.size()))
        tracker.start()

        while True:
            data = await websocket.receive_text()
            try:
                message = json.loads(data)
            except json.JSONDecodeError:
                logger.warning(f"Invalid JSON received from client {client_label}: {data}")
                continue
            if not isinstance(message, dict):
                logger.warning(f"Ignoring non-object message from client {client_label}: {data}")
                continue
            handle_client_message(message, position_source, tracker, session_sink)

    except WebSocketDisconnect:
        logger.info(f"WebSocket client {client_label} disconnected gracefully")
    except Exception as e:
        logger.error(f"Error in WebSocket grid endpoint for client {client_label}: {e}", exc_info=True)
    finally:
        tracker.stop()
        session_sink.close()
        manager.disconnect(websocket, GRID_CHANNEL)
