"""
ChatRelay - Event data models.
Dataclasses for canonical chat events, gift events and display queue items.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
import uuid


class Platform(str, Enum):
    """Platform tags a ChatEvent may carry."""
    TWITCH = "twitch"
    TWITCH_EVENTSUB = "twitch-eventsub"
    YOUTUBE = "youtube"
    TIKTOK = "tiktok"
    TIKTOK_GIFT = "tiktok-gift"

    @classmethod
    def values(cls) -> List[str]:
        return [member.value for member in cls]


class ItemType(str, Enum):
    """Kinds of items the router hands to the display queue."""
    CHAT = "chat"
    GREETING = "greeting"
    COMMAND = "command"
    GIFT = "gift"


@dataclass
class ChatEvent:
    """Canonical chat event produced by the normalizer."""
    platform: str
    user_id: str
    username: str
    message: str
    timestamp: str
    is_mod: bool = False
    is_subscriber: bool = False
    is_broadcaster: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    raw_data: Optional[Any] = field(default=None, repr=False, compare=False)

    def to_dict(self) -> dict:
        """Convert to the camelCase shape used on the wire (rawData excluded)."""
        return {
            "platform": self.platform,
            "userId": self.user_id,
            "username": self.username,
            "message": self.message,
            "timestamp": self.timestamp,
            "isMod": self.is_mod,
            "isSubscriber": self.is_subscriber,
            "isBroadcaster": self.is_broadcaster,
            "metadata": dict(self.metadata),
        }


@dataclass
class CheermoteType:
    prefix: str
    count: int

    def to_dict(self) -> dict:
        return {"prefix": self.prefix, "count": self.count}


@dataclass
class CheermoteSummary:
    """Summary of the bits fragments in a Twitch message."""
    total_bits: int = 0
    primary_type: Optional[str] = None
    clean_primary_type_original_case: Optional[str] = None
    text_content: str = ""
    mixed_types: bool = False
    other_types_count: int = 0
    types: List[CheermoteType] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return self.total_bits == 0 and not self.types

    def to_dict(self) -> dict:
        return {
            "totalBits": self.total_bits,
            "primaryType": self.primary_type,
            "cleanPrimaryTypeOriginalCase": self.clean_primary_type_original_case,
            "textContent": self.text_content,
            "mixedTypes": self.mixed_types,
            "otherTypesCount": self.other_types_count,
            "types": [t.to_dict() for t in self.types],
        }


@dataclass
class GiftEvent:
    """A monetized interaction, reduced to what the spam detector needs."""
    platform: str
    user_id: str
    username: str
    unit_amount: float
    gift_type: str
    gift_count: int = 1
    message: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "userId": self.user_id,
            "username": self.username,
            "unitAmount": self.unit_amount,
            "giftType": self.gift_type,
            "giftCount": self.gift_count,
            "message": self.message,
            **self.metadata,
        }


@dataclass
class QueueItem:
    """An item handed to the display queue."""
    type: ItemType
    platform: str
    data: Dict[str, Any] = field(default_factory=dict)
    priority: Optional[int] = None
    skip_chat_tts: bool = False
    vfx_config: Optional[Dict[str, Any]] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        payload = {
            "id": self.id,
            "type": self.type.value,
            "platform": self.platform,
            "priority": self.priority,
            "data": dict(self.data),
            "created_at": self.created_at.isoformat(),
        }
        if self.type == ItemType.CHAT:
            payload["skipChatTTS"] = self.skip_chat_tts
        if self.vfx_config is not None:
            payload["vfxConfig"] = dict(self.vfx_config)
        return payload
