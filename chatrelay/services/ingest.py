"""
ChatRelay - Event ingestion.
Entry point for platform adapters: normalize raw payloads and hand them to the router.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from chatrelay.errors import InvalidPlatformError, InvalidTypeError, MissingFieldError, NormalizationError
from chatrelay.models.events import ChatEvent, GiftEvent, Platform, QueueItem
from chatrelay.services.normalizer import (
    MessageNormalizer,
    create_fallback,
    eventsub_to_twitch_args,
    extract_twitch_message_data,
    extract_youtube_message_text,
)
from chatrelay.services.timestamps import ms_to_iso

logger = logging.getLogger(__name__)

# TikTok gift types that stream repeat counts until repeatEnd
STREAKABLE_GIFT_TYPES = (1,)

# youtubei item types for paid messages
YOUTUBE_SUPER_STICKER = "LiveChatPaidSticker"
YOUTUBE_GIFT_MEMBERSHIPS = "LiveChatSponsorshipsGiftPurchaseAnnouncement"

# "USD 5.00", "CAD$5.00"
CODE_AMOUNT = re.compile(r"^([A-Za-z]{3})\s*\$?\s*([0-9][0-9.,]*)$")
# "$5.00", "CA$5.00", "€5,00"
SYMBOL_AMOUNT = re.compile(r"^(\D*?)\s*([0-9][0-9.,]*)$")
CURRENCY_SYMBOLS = {
    "$": "USD", "US$": "USD", "CA$": "CAD", "A$": "AUD", "NZ$": "NZD", "R$": "BRL",
    "€": "EUR", "£": "GBP", "¥": "JPY", "₩": "KRW", "₹": "INR", "₺": "TRY", "₽": "RUB",
}

# Settings, cooldowns and connection times are kept per base platform
ROUTING_PLATFORMS = {
    Platform.TWITCH_EVENTSUB.value: Platform.TWITCH.value,
    Platform.TIKTOK_GIFT.value: Platform.TIKTOK.value,
}


@dataclass
class IngestResult:
    event: Optional[ChatEvent]
    items: List[QueueItem] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> dict:
        return {
            "event": self.event.to_dict() if self.event else None,
            "items": [item.to_dict() for item in self.items],
            "fallback": self.fallback,
        }


def _text(value) -> str:
    return value.strip() if isinstance(value, str) else ""


def _parse_decimal(digits: str) -> Optional[float]:
    if "," in digits and "." in digits:
        if digits.rfind(",") > digits.rfind("."):
            digits = digits.replace(".", "").replace(",", ".")
        else:
            digits = digits.replace(",", "")
    elif "," in digits:
        whole, _, frac = digits.rpartition(",")
        digits = f"{whole.replace(',', '')}.{frac}" if len(frac) == 2 else digits.replace(",", "")
    try:
        return float(digits)
    except ValueError:
        return None


def parse_purchase_amount(text) -> Optional[Tuple[float, str]]:
    """
    Parse a display amount such as "$5.00", "CA$2.00", "€4,99" or "JPY 500".

    Returns:
        (amount, currency code), or None when the text is not recognized
    """
    if not isinstance(text, str):
        return None
    text = text.strip()

    match = CODE_AMOUNT.match(text)
    if match:
        amount = _parse_decimal(match.group(2))
        return (amount, match.group(1).upper()) if amount is not None else None

    match = SYMBOL_AMOUNT.match(text)
    if match and match.group(1).strip() in CURRENCY_SYMBOLS:
        amount = _parse_decimal(match.group(2))
        if amount is not None:
            return amount, CURRENCY_SYMBOLS[match.group(1).strip()]
    return None


def _youtube_purchase(item: dict) -> Tuple[float, str]:
    raw = item.get("purchase_amount")
    currency = item.get("purchase_currency")
    if raw is None:
        for key in ("superchat", "supersticker"):
            paid = item.get(key)
            if isinstance(paid, dict):
                raw = paid.get("amount")
                currency = currency or paid.get("currency")
                break

    if raw is None:
        raise MissingFieldError("purchase_amount", "youtube")

    if isinstance(raw, str):
        parsed = parse_purchase_amount(raw)
        if parsed is None:
            raise InvalidTypeError("purchase_amount", "currency amount")
        amount, currency = parsed
    elif isinstance(raw, (int, float)) and not isinstance(raw, bool):
        if not isinstance(currency, str) or not currency.strip():
            raise MissingFieldError("purchase_currency", "youtube")
        amount, currency = float(raw), currency.strip().upper()
    else:
        raise InvalidTypeError("purchase_amount", "currency amount")

    if amount <= 0:
        raise InvalidTypeError("purchase_amount", "positive amount")
    return amount, currency


class EventIngestor:
    """Normalizes raw platform payloads and routes the results."""

    def __init__(self, normalizer: MessageNormalizer, router, clock=time.time):
        self.normalizer = normalizer
        self.router = router
        self.clock = clock

    def ingest_chat(self, platform: str, payload: dict) -> Optional[IngestResult]:
        """
        Normalize and route one chat payload.

        Returns:
            IngestResult, or None when the payload could not be normalized
            and no fallback event could be built

        Raises:
            InvalidPlatformError: Unknown platform tag
        """
        tag = (platform or "").lower()
        if tag not in Platform.values():
            raise InvalidPlatformError(platform)

        fallback = False
        try:
            event = self._normalize_chat(tag, payload)
        except NormalizationError as e:
            logger.warning(f"Normalization failed for {tag} chat payload: {e}")
            event = self._fallback(tag, payload, e)
            if event is None:
                logger.warning(f"Dropped {tag} chat payload with no usable fallback")
                return None
            fallback = True

        routing_platform = ROUTING_PLATFORMS.get(event.platform, event.platform)
        items = self.router.handle_chat_message(routing_platform, event)
        return IngestResult(event=event, items=items, fallback=fallback)

    def _normalize_chat(self, tag: str, payload) -> ChatEvent:
        if tag == Platform.TWITCH_EVENTSUB.value:
            user, message, context = eventsub_to_twitch_args(payload)
            return self.normalizer.normalize(tag, user, message, context)
        if tag == Platform.TWITCH.value:
            if not isinstance(payload, dict):
                raise MissingFieldError("context", "twitch")
            return self.normalizer.normalize(tag, payload.get("user"), payload.get("message"),
                                             payload.get("context"))
        return self.normalizer.normalize(tag, payload)

    def _fallback(self, tag: str, payload, error) -> Optional[ChatEvent]:
        """Pull whatever identity fields are present into a minimal event."""
        payload = payload if isinstance(payload, dict) else {}
        user_id = username = message = None

        if tag in (Platform.TIKTOK.value, Platform.TIKTOK_GIFT.value):
            user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
            user_id, username, message = user.get("uniqueId"), user.get("nickname"), payload.get("comment")
        elif tag == Platform.YOUTUBE.value:
            item = payload.get("item") if isinstance(payload.get("item"), dict) else {}
            author = item.get("author") if isinstance(item.get("author"), dict) else {}
            name = _text(author.get("name")).lstrip("@")
            user_id, username, message = author.get("id"), name, item.get("message")
        elif tag == Platform.TWITCH_EVENTSUB.value:
            body = payload.get("message")
            user_id, username = payload.get("chatter_user_id"), payload.get("chatter_user_name")
            message = body.get("text") if isinstance(body, dict) else body
        elif tag == Platform.TWITCH.value:
            context = payload.get("context") if isinstance(payload.get("context"), dict) else {}
            user = payload.get("user")
            user_id = context.get("user-id")
            username = context.get("display-name") or (user if isinstance(user, str) else None)
            message = payload.get("message")

        return create_fallback(
            platform=tag,
            user_id=user_id,
            username=username,
            message=message if isinstance(message, str) else "",
            error=error,
            timestamp=ms_to_iso(self.clock() * 1000),
        )

    def ingest_gift(self, platform: str, payload: dict) -> List[QueueItem]:
        """
        Extract a gift from a raw payload and route it.

        Raises:
            InvalidPlatformError: Platform has no gift support
            NormalizationError: Payload is missing the gift fields
        """
        tag = (platform or "").lower()
        if not isinstance(payload, dict):
            raise MissingFieldError("payload", tag)

        if tag in (Platform.TIKTOK.value, Platform.TIKTOK_GIFT.value):
            gift = self._tiktok_gift(payload)
        elif tag in (Platform.TWITCH.value, Platform.TWITCH_EVENTSUB.value):
            gift = self._twitch_cheer(payload)
        elif tag == Platform.YOUTUBE.value:
            gift = self._youtube_gift(payload)
        else:
            raise InvalidPlatformError(platform)

        if gift is None:
            return []
        # Gifted memberships carry no amount to judge
        return self.router.handle_gift(gift, skip_spam_detection=bool(gift.metadata.get("membership")))

    @staticmethod
    def _tiktok_gift(payload: dict) -> Optional[GiftEvent]:
        user = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        details = payload.get("giftDetails") if isinstance(payload.get("giftDetails"), dict) else {}

        user_id = _text(user.get("uniqueId"))
        username = _text(user.get("nickname")) or user_id
        if not user_id:
            raise MissingFieldError("userId", "tiktok")

        amount = details.get("diamondCount")
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise MissingFieldError("giftDetails.diamondCount", "tiktok")

        if details.get("giftType") in STREAKABLE_GIFT_TYPES and not payload.get("repeatEnd"):
            logger.debug(f"Gift streak from {username} still running, waiting for repeatEnd")
            return None

        count = payload.get("repeatCount")
        if isinstance(count, bool) or not isinstance(count, int) or count < 1:
            count = 1

        return GiftEvent(
            platform=Platform.TIKTOK.value,
            user_id=user_id,
            username=username,
            unit_amount=amount,
            gift_type=_text(details.get("giftName")) or "gift",
            gift_count=count,
            message=_text(payload.get("comment")),
            metadata={"groupId": payload.get("groupId")} if payload.get("groupId") else {},
        )

    @staticmethod
    def _twitch_cheer(payload: dict) -> GiftEvent:
        user_id = _text(str(payload.get("user_id") or payload.get("user_login") or ""))
        username = _text(payload.get("user_name")) or user_id
        if not user_id:
            raise MissingFieldError("user_id", "twitch")

        bits = payload.get("bits")
        if isinstance(bits, bool) or not isinstance(bits, int) or bits < 1:
            raise MissingFieldError("bits", "twitch")

        message = payload.get("message")
        metadata = {"currency": "bits"}
        if isinstance(message, dict):
            data = extract_twitch_message_data(message)
            text = data.text_content if message.get("fragments") else message.get("text")
            if data.cheermote_info is not None:
                metadata["cheermoteInfo"] = data.cheermote_info.to_dict()
            mixed = data.cheermote_info is not None and data.cheermote_info.mixed_types
        else:
            text, mixed = message, False

        # One cheer is one gift worth all of its bits
        return GiftEvent(
            platform=Platform.TWITCH.value,
            user_id=user_id,
            username=username,
            unit_amount=bits,
            gift_type="mixed bits" if mixed else "bits",
            gift_count=1,
            message=_text(text),
            metadata=metadata,
        )

    @staticmethod
    def _youtube_gift(payload: dict) -> GiftEvent:
        item = payload.get("item")
        if not isinstance(item, dict):
            raise MissingFieldError("item", "youtube")
        author = item.get("author") if isinstance(item.get("author"), dict) else {}

        user_id = _text(author.get("id"))
        username = _text(author.get("name")).lstrip("@").strip() or user_id
        if not user_id:
            raise MissingFieldError("userId", "youtube")

        kind = item.get("type")
        if kind == YOUTUBE_GIFT_MEMBERSHIPS or "giftMembershipsCount" in item:
            count = item.get("giftMembershipsCount")
            if isinstance(count, bool) or not isinstance(count, int) or count < 1:
                raise MissingFieldError("giftMembershipsCount", "youtube")
            return GiftEvent(
                platform=Platform.YOUTUBE.value,
                user_id=user_id,
                username=username,
                unit_amount=0,
                gift_type="Gift Membership",
                gift_count=count,
                message=extract_youtube_message_text(item.get("message")),
                metadata={"membership": True},
            )

        if kind == YOUTUBE_SUPER_STICKER or isinstance(item.get("supersticker"), dict):
            gift_type = "Super Sticker"
            sticker = item.get("sticker") or item.get("supersticker")
            sticker = sticker if isinstance(sticker, dict) else {}
            message = _text(sticker.get("name")) or _text(sticker.get("altText"))
        else:
            gift_type = "Super Chat"
            superchat = item.get("superchat") if isinstance(item.get("superchat"), dict) else {}
            message = extract_youtube_message_text(superchat.get("message") or item.get("message"))

        amount, currency = _youtube_purchase(item)
        return GiftEvent(
            platform=Platform.YOUTUBE.value,
            user_id=user_id,
            username=username,
            unit_amount=amount,
            gift_type=gift_type,
            gift_count=1,
            message=message,
            metadata={"currency": currency},
        )
