"""
ChatRelay - Webhook routes.
Platform adapters post raw chat and gift payloads here.
"""

import logging
from flask import Blueprint, current_app, request, jsonify

from chatrelay.config import SUPPORTED_PLATFORMS, parse_number
from chatrelay.errors import InvalidPlatformError, NormalizationError

logger = logging.getLogger(__name__)

webhooks_bp = Blueprint("webhooks", __name__, url_prefix="/webhooks")


def _json_body():
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else None


@webhooks_bp.route("/<platform>/chat", methods=["POST"])
def chat_webhook(platform: str):
    """Ingest one raw chat payload."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Expected a JSON object"}), 400

    try:
        result = current_app.ingestor.ingest_chat(platform, body)
    except InvalidPlatformError as e:
        return jsonify({"error": str(e)}), 404

    if result is None:
        return jsonify({"error": "Payload could not be normalized"}), 422

    return jsonify({
        "status": "accepted",
        "fallback": result.fallback,
        "items": [item.type.value for item in result.items],
    }), 202


@webhooks_bp.route("/<platform>/gift", methods=["POST"])
def gift_webhook(platform: str):
    """Ingest one raw gift payload."""
    body = _json_body()
    if body is None:
        return jsonify({"error": "Expected a JSON object"}), 400

    try:
        items = current_app.ingestor.ingest_gift(platform, body)
    except InvalidPlatformError as e:
        return jsonify({"error": str(e)}), 404
    except NormalizationError as e:
        logger.warning(f"Rejected {platform} gift payload: {e}")
        return jsonify({"error": str(e)}), 422

    return jsonify({"status": "accepted", "items": [item.type.value for item in items]}), 202


@webhooks_bp.route("/<platform>/connected", methods=["POST"])
def connected_webhook(platform: str):
    """Record that a platform adapter (re)connected."""
    platform = platform.lower()
    if platform not in SUPPORTED_PLATFORMS:
        return jsonify({"error": f"Unsupported platform: {platform}"}), 404

    body = request.get_json(silent=True) or {}
    connected_at = parse_number(body.get("connectedAt"), None, "connectedAt") if isinstance(body, dict) else None

    recorded = current_app.lifecycle_service.record_connection(platform, connected_at)
    return jsonify({"status": "ok", "platform": platform, "connectedAt": recorded}), 202
