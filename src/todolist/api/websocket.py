"""Change feed over WebSocket."""

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from todolist.factory import get_store
from todolist.websocket.connection_manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()

# Injected by create_app
_manager: ConnectionManager | None = None


def set_connection_manager(manager: ConnectionManager) -> None:
    global _manager
    _manager = manager


async def _handle_command(websocket: WebSocket, text: str) -> None:
    """Answer a client command: "ping" gets "pong", "reload" re-reads the replicas."""
    command = text.strip().lower()
    if command == "ping":
        await websocket.send_text("pong")
    elif command == "reload":
        get_store().schedule_reload(0)
    else:
        logger.debug(f"[ChangesFeed] Unknown command: {command!r}")


@router.websocket("/ws")
async def changes_feed(websocket: WebSocket) -> None:
    """Push ``{"type": "changed", "reason": ...}`` after every store change."""
    manager = _manager
    if manager is None:
        logger.error("[ChangesFeed] Connection manager not set")
        await websocket.close(code=1011, reason="Server not ready")
        return

    await manager.connect(websocket)
    try:
        while True:
            await _handle_command(websocket, await websocket.receive_text())
    except WebSocketDisconnect:
        logger.info("[ChangesFeed] Client disconnected")
    except Exception as e:
        logger.error(f"[ChangesFeed] Error: {e}", exc_info=True)
    finally:
        manager.disconnect(websocket)
