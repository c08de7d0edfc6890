"""
ChatRelay - Models package.
"""

from chatrelay.models.events import (
    ChatEvent,
    CheermoteSummary,
    CheermoteType,
    GiftEvent,
    ItemType,
    Platform,
    QueueItem,
)

__all__ = [
    "ChatEvent",
    "CheermoteSummary",
    "CheermoteType",
    "GiftEvent",
    "ItemType",
    "Platform",
    "QueueItem",
]
