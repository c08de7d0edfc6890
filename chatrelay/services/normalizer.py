"""
ChatRelay - Message normalizer.
Converts raw YouTube, TikTok and Twitch payloads into canonical ChatEvents.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Tuple

from chatrelay.errors import (
    InvalidPlatformError,
    InvalidTypeError,
    MissingFieldError,
    NormalizationError,
)
from chatrelay.models.events import ChatEvent, CheermoteSummary, Platform
from chatrelay.services.cheermotes import CheermoteProcessor
from chatrelay.services.timestamps import TimestampResolver, parse_iso_ms

logger = logging.getLogger(__name__)

REQUIRED_STRING_FIELDS = ("platform", "userId", "username", "message", "timestamp")
NON_EMPTY_FIELDS = ("userId", "username", "timestamp")
BOOLEAN_FIELDS = ("isMod", "isSubscriber", "isBroadcaster")

# Gift fields TikTok sends alongside the chat-shaped user block
TIKTOK_GIFT_FIELDS = ("giftDetails", "repeatCount", "repeatEnd", "groupId")


@dataclass
class ValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)


@dataclass
class TwitchMessageData:
    text_content: str = ""
    cheermote_info: Optional[CheermoteSummary] = None


def _trimmed(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _flag(value) -> bool:
    """Strict truthiness for platform flags that arrive as bools or "1"/"true" strings."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true")
    if isinstance(value, int):
        return value == 1
    return False


# ---------------------------------------------------------------------------
# Message text extraction
# ---------------------------------------------------------------------------

def _youtube_part_text(part) -> str:
    """Text for one element of a runs array (or a top-level parts array)."""
    if isinstance(part, str):
        return part
    if not isinstance(part, dict):
        return ""
    emoji = part.get("emoji")
    if isinstance(emoji, dict):
        shortcuts = emoji.get("shortcuts")
        if isinstance(shortcuts, list) and shortcuts and isinstance(shortcuts[0], str):
            return shortcuts[0]
    if isinstance(part.get("text"), str):
        return part["text"]
    if isinstance(part.get("emojiText"), str):
        return part["emojiText"]
    return ""


def extract_youtube_message_text(message_obj) -> str:
    """
    Extract plain text from the shapes YouTube uses for chat messages.

    Handles a bare string, {text}, {simpleText}, {runs: [...]} and a
    top-level list of runs. Emoji runs contribute their first shortcut.
    """
    if isinstance(message_obj, str):
        result = message_obj
    elif not message_obj:
        result = ""
    elif isinstance(message_obj, list):
        result = "".join(_youtube_part_text(part) for part in message_obj)
    elif isinstance(message_obj, dict):
        if isinstance(message_obj.get("runs"), list):
            result = "".join(_youtube_part_text(run) for run in message_obj["runs"])
        elif isinstance(message_obj.get("text"), str):
            result = message_obj["text"]
        elif isinstance(message_obj.get("simpleText"), str):
            result = message_obj["simpleText"]
        elif isinstance(message_obj.get("emojiText"), str):
            result = message_obj["emojiText"]
        else:
            result = ""
    else:
        result = ""

    return result.strip()


def extract_twitch_message_data(message_obj) -> TwitchMessageData:
    """
    Split an EventSub message object into its text and its cheermote summary.

    Only messages that carry fragments are processed; anything else yields
    empty text and no cheermote info.
    """
    if not isinstance(message_obj, dict):
        return TwitchMessageData()

    fragments = message_obj.get("fragments")
    if not isinstance(fragments, list) or not fragments:
        return TwitchMessageData()

    summary = CheermoteProcessor.process_fragments(fragments)
    result = TwitchMessageData(
        text_content=summary.text_content.strip(),
        cheermote_info=None if summary.is_empty else summary,
    )
    logger.debug(
        f"Twitch message data: text={result.text_content!r}, "
        f"bits={summary.total_bits}"
    )
    return result


# ---------------------------------------------------------------------------
# Validation and fallback
# ---------------------------------------------------------------------------

def validate(event) -> ValidationResult:
    """
    Structural check of a ChatEvent (or its camelCase dict form).

    All problems are collected in one pass; the caller decides what to do.
    """
    if isinstance(event, ChatEvent):
        data = event.to_dict()
    elif isinstance(event, Mapping):
        data = event
    else:
        return ValidationResult(False, ["Event is not an object"])

    errors = []

    for name in REQUIRED_STRING_FIELDS:
        value = data.get(name)
        if value is None:
            errors.append(f"Missing required field: {name}")
        elif not isinstance(value, str):
            errors.append(f"{name} must be a string")
        elif name in NON_EMPTY_FIELDS and not value.strip():
            errors.append(f"{name} must not be empty")

    for name in BOOLEAN_FIELDS:
        value = data.get(name)
        if value is None:
            errors.append(f"Missing required field: {name}")
        elif not isinstance(value, bool):
            errors.append(f"{name} must be a boolean")

    platform = data.get("platform")
    if isinstance(platform, str) and platform.lower() not in Platform.values():
        errors.append(f"Invalid platform: {platform}")

    if not isinstance(data.get("metadata"), Mapping):
        errors.append("Missing or invalid metadata field")

    timestamp = data.get("timestamp")
    if isinstance(timestamp, str) and timestamp.strip() and parse_iso_ms(timestamp) is None:
        errors.append("Invalid timestamp format")

    return ValidationResult(is_valid=not errors, errors=errors)


def create_fallback(platform=None, user_id=None, username=None, message=None,
                    error=None, timestamp=None) -> Optional[ChatEvent]:
    """
    Build a minimal ChatEvent after normalization failed.

    Returns None unless platform, user id, a non-empty username and a
    parseable timestamp string are all available.
    """
    if not isinstance(platform, str) or not platform.strip():
        return None
    if user_id is None or not str(user_id).strip():
        return None
    name = _trimmed(username)
    if not name:
        return None
    if not isinstance(timestamp, str) or parse_iso_ms(timestamp) is None:
        return None

    return ChatEvent(
        platform=platform.strip().lower(),
        user_id=str(user_id).strip(),
        username=name,
        message=_trimmed(message),
        timestamp=timestamp,
        metadata={
            "fallback": True,
            "error": str(error) if error else "Unknown error",
        },
        raw_data=None,
    )


# ---------------------------------------------------------------------------
# Twitch EventSub translation
# ---------------------------------------------------------------------------

def _eventsub_badges(badges) -> dict:
    if isinstance(badges, dict):
        return {k: v for k, v in badges.items() if v}
    if isinstance(badges, list):
        return {
            b["set_id"]: b.get("id") or "1"
            for b in badges
            if isinstance(b, dict) and b.get("set_id")
        }
    return {}


def eventsub_to_twitch_args(event: dict) -> Tuple[dict, Any, dict]:
    """
    Translate an EventSub channel.chat.message event into IRC-style
    (user, message, context) arguments for normalize_twitch.
    """
    if not isinstance(event, dict):
        raise InvalidTypeError("event", "object")

    badges = _eventsub_badges(event.get("badges"))
    user = {
        "user-id": event.get("chatter_user_id"),
        "username": event.get("chatter_user_login"),
        "display-name": event.get("chatter_user_name"),
    }
    context = {
        "user-id": event.get("chatter_user_id"),
        "display-name": event.get("chatter_user_name"),
        "badges": badges,
        "color": event.get("color"),
        "emotes": None,
        "room-id": event.get("broadcaster_user_id"),
        "timestamp": event.get("message_timestamp"),
        "message-id": event.get("message_id"),
        "source": "eventsub",
        "mod": "moderator" in badges,
        "subscriber": "subscriber" in badges or "founder" in badges,
    }
    return user, event.get("message"), context


# ---------------------------------------------------------------------------
# Normalizer
# ---------------------------------------------------------------------------

class MessageNormalizer:
    """Normalizes raw platform payloads into ChatEvents."""

    def __init__(self, timestamp_resolver: Optional[TimestampResolver] = None):
        self.timestamp_resolver = timestamp_resolver or TimestampResolver()

    def normalize(self, platform, *args, **kwargs) -> ChatEvent:
        """Dispatch on the lower-cased platform tag."""
        tag = platform.lower() if isinstance(platform, str) else ""

        if tag == Platform.YOUTUBE.value:
            return self.normalize_youtube(*args, platform_tag=tag, **kwargs)
        if tag in (Platform.TIKTOK.value, Platform.TIKTOK_GIFT.value):
            return self.normalize_tiktok(*args, platform_tag=tag, **kwargs)
        if tag in (Platform.TWITCH.value, Platform.TWITCH_EVENTSUB.value):
            return self.normalize_twitch(*args, platform_tag=tag, **kwargs)

        logger.warning(f"Cannot normalize message for unsupported platform: {platform}")
        raise InvalidPlatformError(platform)

    def _timestamp(self, platform_tag: str, raw) -> str:
        timestamp = self.timestamp_resolver.extract_timestamp(platform_tag, raw)
        if not isinstance(timestamp, str) or not timestamp:
            raise InvalidTypeError("timestamp", "ISO-8601 string")
        return timestamp

    def normalize_youtube(self, chat_item, platform_tag: str = "youtube") -> ChatEvent:
        """Normalize a YouTube chat item ({item: {...}})."""
        try:
            if not isinstance(chat_item, dict):
                raise InvalidTypeError("chatItem", "object")
            item = chat_item.get("item")
            if not isinstance(item, dict):
                raise MissingFieldError("item", "youtube")
            author = item.get("author")
            if not isinstance(author, dict):
                raise MissingFieldError("author", "youtube")

            user_id = _trimmed(author.get("id"))
            username = _trimmed(author.get("name"))
            if username.startswith("@"):
                username = username[1:].strip()
            if not user_id:
                raise MissingFieldError("userId", "youtube")
            if not username:
                raise MissingFieldError("username", "youtube")

            superchat = item.get("superchat")
            if isinstance(superchat, dict):
                message = extract_youtube_message_text(superchat.get("message"))
            else:
                message = extract_youtube_message_text(item.get("message"))

            is_monetized = bool(superchat or item.get("supersticker") or item.get("isMembership"))
            if not message and not is_monetized:
                raise MissingFieldError("message", "youtube")

            timestamp = self._timestamp(platform_tag, chat_item)

            badges = author.get("badges") if isinstance(author.get("badges"), list) else []
            is_broadcaster = author.get("isOwner") is True or any(
                isinstance(b, dict) and b.get("icon_type") == "OWNER" for b in badges
            )
            is_member = author.get("isMember") is True or any(
                isinstance(b, dict)
                and isinstance(b.get("tooltip"), str)
                and "member" in b["tooltip"].lower()
                for b in badges
            )
            thumbnails = author.get("thumbnails")
            author_photo = None
            if isinstance(thumbnails, list) and thumbnails and isinstance(thumbnails[0], dict):
                author_photo = thumbnails[0].get("url")

            event = ChatEvent(
                platform=platform_tag.lower(),
                user_id=user_id,
                username=username,
                message=message,
                timestamp=timestamp,
                is_mod=author.get("is_moderator") is True or author.get("isModerator") is True,
                is_subscriber=is_member,
                is_broadcaster=is_broadcaster,
                metadata={
                    "uniqueId": item.get("id"),
                    "isSuperChat": bool(superchat),
                    "isSuperSticker": bool(item.get("supersticker")),
                    "isMembership": bool(item.get("isMembership")),
                    "authorPhoto": author_photo,
                },
                raw_data={"chatItem": chat_item},
            )
            logger.debug(f"Normalized YouTube message from {event.username}")
            return event

        except NormalizationError as e:
            logger.warning(f"Failed to normalize YouTube message: {e}")
            raise

    def normalize_tiktok(self, data, platform_tag: str = "tiktok") -> ChatEvent:
        """Normalize a TikTok chat or gift event."""
        try:
            if not isinstance(data, dict):
                raise InvalidTypeError("data", "object")
            user = data.get("user")
            if not isinstance(user, dict):
                raise MissingFieldError("user", "tiktok")

            user_id = _trimmed(user.get("uniqueId"))
            username = _trimmed(user.get("nickname"))
            if not user_id:
                raise MissingFieldError("userId", "tiktok")
            if not username:
                raise MissingFieldError("username", "tiktok")

            is_gift = platform_tag.lower() == Platform.TIKTOK_GIFT.value or "giftDetails" in data
            message = _trimmed(data.get("comment"))
            if not message and not is_gift:
                raise MissingFieldError("message", "tiktok")

            timestamp = self._timestamp(platform_tag, data)

            picture = user.get("profilePictureUrl")
            if not picture and isinstance(user.get("profilePicture"), dict):
                urls = user["profilePicture"].get("url")
                if isinstance(urls, list) and urls:
                    picture = urls[0]

            raw_data = {"data": data}
            for name in TIKTOK_GIFT_FIELDS:
                if name in data:
                    raw_data[name] = data[name]

            numeric_id = user.get("userId")
            event = ChatEvent(
                platform=platform_tag.lower(),
                user_id=user_id,
                username=username,
                message=message,
                timestamp=timestamp,
                is_mod=_flag(data.get("isModerator")),
                is_subscriber=_flag(data.get("isSubscriber")),
                is_broadcaster=_flag(data.get("isOwner")),
                metadata={
                    "profilePicture": picture or None,
                    "followRole": user.get("followRole"),
                    "userBadges": user.get("userBadges") if isinstance(user.get("userBadges"), list) else None,
                    "createTime": parse_iso_ms(timestamp),
                    "numericId": str(numeric_id).strip() if numeric_id is not None else None,
                },
                raw_data=raw_data,
            )
            logger.debug(f"Normalized TikTok message from {event.username}")
            return event

        except NormalizationError as e:
            logger.warning(f"Failed to normalize TikTok message: {e}")
            raise

    def normalize_twitch(self, user, message, context=None,
                         platform_tag: str = "twitch") -> ChatEvent:
        """
        Normalize a Twitch chat message.

        Args:
            user: Username string or a mapping with user-id / display-name
            message: Message text, or an EventSub message object with fragments
            context: IRC tags (badges, color, emotes, room-id, tmi-sent-ts, ...)
            platform_tag: "twitch" or "twitch-eventsub"
        """
        try:
            context = context if isinstance(context, dict) else {}
            user_info = user if isinstance(user, dict) else {}

            user_id = _trimmed(str(context.get("user-id") or user_info.get("user-id")
                                   or user_info.get("userId") or user_info.get("id") or ""))
            if isinstance(user, str):
                username = _trimmed(user)
            else:
                username = _trimmed(user_info.get("display-name") or user_info.get("username")
                                    or user_info.get("login"))
            if not username:
                username = _trimmed(context.get("display-name") or context.get("username"))

            if not user_id:
                raise MissingFieldError("userId", "twitch")
            if not username:
                raise MissingFieldError("username", "twitch")

            cheermote = None
            if isinstance(message, dict):
                message_data = extract_twitch_message_data(message)
                cheermote = message_data.cheermote_info
                text = message_data.text_content if message.get("fragments") else _trimmed(message.get("text"))
            elif isinstance(message, str):
                text = message.strip()
            elif message is None:
                text = ""
            else:
                raise InvalidTypeError("message", "string or message object")

            if not text and cheermote is None:
                raise MissingFieldError("message", "twitch")

            timestamp = self._timestamp(platform_tag, context)

            badges = context.get("badges") if isinstance(context.get("badges"), dict) else {}
            room_id = context.get("room-id")
            metadata = {
                "badges": badges,
                "color": context.get("color"),
                "emotes": context.get("emotes"),
                "roomId": room_id,
            }
            message_id = context.get("message-id") or context.get("id")
            if message_id:
                metadata["messageId"] = message_id
            if context.get("source"):
                metadata["source"] = context["source"]
            if cheermote is not None:
                metadata["cheermote"] = cheermote.to_dict()

            event = ChatEvent(
                platform=platform_tag.lower(),
                user_id=user_id,
                username=username,
                message=text,
                timestamp=timestamp,
                is_mod=_flag(context.get("mod")) or "moderator" in badges,
                is_subscriber=_flag(context.get("subscriber")) or "subscriber" in badges or "founder" in badges,
                is_broadcaster="broadcaster" in badges or (room_id is not None and str(room_id) == user_id),
                metadata=metadata,
                raw_data={"user": user, "message": message, "context": context},
            )
            logger.debug(f"Normalized Twitch message from {event.username}")
            return event

        except NormalizationError as e:
            logger.warning(f"Failed to normalize Twitch message: {e}")
            raise
