"""
ChatRelay - Routes package.
"""

from chatrelay.routes.webhooks import webhooks_bp
from chatrelay.routes.api import api_bp

__all__ = ["webhooks_bp", "api_bp"]
