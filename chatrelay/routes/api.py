"""
ChatRelay - API routes.
REST API endpoints for controlling the application.
"""

import logging
import time
from flask import Blueprint, current_app, request, jsonify

from chatrelay.services.timestamps import ms_to_iso

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


@api_bp.route("/settings")
def get_settings():
    """Get current settings (non-sensitive)."""
    config = current_app.chatrelay_config
    return jsonify(config.to_public_dict())


@api_bp.route("/queue")
def get_queue():
    """Get current queue status."""
    return jsonify(current_app.display_queue.get_status())


@api_bp.route("/queue/clear", methods=["POST"])
def clear_queue():
    """Clear the display queue."""
    current_app.display_queue.clear()
    return jsonify({"status": "ok"})


@api_bp.route("/queue/skip", methods=["POST"])
def skip_current():
    """Skip the currently displayed item."""
    current_app.display_queue.skip_current()
    return jsonify({"status": "ok"})


@api_bp.route("/spam")
def get_spam_statistics():
    """Get donation spam detector statistics."""
    return jsonify(current_app.spam_detector.statistics())


@api_bp.route("/spam/reset", methods=["POST"])
def reset_spam_tracking():
    """Drop all donation spam tracking state."""
    current_app.spam_detector.reset()
    return jsonify({"status": "ok"})


@api_bp.route("/test", methods=["POST"])
def inject_test_event():
    """Inject a test chat event for development/testing."""
    config = current_app.chatrelay_config

    # Only allow in debug mode
    if not config.WEB_DEBUG:
        return jsonify({"error": "Test events only available in debug mode"}), 403

    data = request.get_json(silent=True) or {}
    username = data.get("username", "TestUser")
    payload = {
        "user": {
            "userId": data.get("userId", "0"),
            "uniqueId": data.get("uniqueId", username.lower()),
            "nickname": username,
        },
        "comment": data.get("message", "Hello from the test endpoint!"),
        "timestamp": ms_to_iso(time.time() * 1000),
    }

    result = current_app.ingestor.ingest_chat("tiktok", payload)
    if result is None:
        return jsonify({"error": "Test event could not be normalized"}), 422

    logger.info(f"Injected test event from {username}")
    return jsonify({"status": "ok", **result.to_dict()})
