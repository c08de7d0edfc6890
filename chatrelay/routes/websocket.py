"""
ChatRelay - WebSocket event handlers.
Browser sources receive queue items and report back when one has finished displaying.
"""

import logging
from flask import current_app
from flask_socketio import SocketIO, emit

logger = logging.getLogger(__name__)


def _item_id(data):
    if isinstance(data, dict) and isinstance(data.get("id"), str):
        return data["id"]
    return None


def register_handlers(socketio: SocketIO):
    """Register WebSocket event handlers."""

    @socketio.on("connect")
    def handle_connect():
        # A reconnecting browser source needs the item it may have missed
        status = current_app.display_queue.get_status()
        logger.info(f"Browser source connected ({status['size']} items pending)")
        emit("connected", {"status": "ok", "queue": status})

    @socketio.on("disconnect")
    def handle_disconnect():
        logger.info("Browser source disconnected")

    @socketio.on("play_complete")
    def handle_play_complete(data):
        item_id = _item_id(data)
        if item_id is None:
            logger.warning(f"play_complete without an item id: {data!r}")
            return
        logger.debug(f"Display complete: {item_id}")
        current_app.display_queue.mark_complete(item_id)

    @socketio.on("error")
    def handle_error(data):
        """A browser source failed to display an item; move past it."""
        item_id = _item_id(data)
        error = data.get("error", "Unknown error") if isinstance(data, dict) else data
        logger.error(f"Browser source error for item {item_id}: {error}")
        if item_id is not None:
            current_app.display_queue.mark_complete(item_id)
