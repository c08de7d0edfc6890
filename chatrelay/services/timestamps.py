"""
ChatRelay - Timestamp resolver.
Turns platform-specific timestamp fields into ISO-8601 UTC strings.
"""

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

from chatrelay.errors import (
    InvalidPlatformError,
    InvalidTimestampError,
    MissingTimestampError,
)

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Anything above this is a microsecond value (10^13 ms is the year 2286)
MICROSECOND_THRESHOLD = 10 ** 13

_MISSING = object()


def ms_to_iso(ms) -> str:
    """Format epoch milliseconds as YYYY-MM-DDTHH:MM:SS.sssZ."""
    moment = EPOCH + timedelta(milliseconds=int(ms))
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_iso_ms(value) -> Optional[int]:
    """
    Parse an ISO-8601 string into epoch milliseconds.

    Returns None when the value is not a string or does not parse.
    Naive timestamps are taken as UTC.
    """
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return (parsed - EPOCH) // timedelta(milliseconds=1)


def _to_number(text: str):
    try:
        return int(text)
    except ValueError:
        return float(text)


def coerce_timestamp_ms(value) -> Optional[float]:
    """
    Interpret a raw timestamp value as epoch milliseconds.

    Numbers (and numeric strings) are taken as milliseconds; other strings
    must be ISO-8601. Returns None for anything unusable, including
    non-positive and non-finite numbers. Booleans are not numbers here.
    """
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        number = value
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = _to_number(text)
        except ValueError:
            return parse_iso_ms(text)
    else:
        return None
    if isinstance(number, float) and not math.isfinite(number):
        return None
    if number <= 0:
        return None
    return number


class TimestampResolver:
    """Extracts an ISO-8601 timestamp from raw platform payloads."""

    def __init__(self):
        self._strategies: Dict[str, Callable[[Any], str]] = {
            "twitch": self.extract_twitch_timestamp,
            "twitch-eventsub": self.extract_twitch_timestamp,
            "youtube": self.extract_youtube_timestamp,
            "tiktok": self.extract_tiktok_timestamp,
            "tiktok-gift": self.extract_tiktok_timestamp,
        }

    def extract_timestamp(self, platform: str, raw_event) -> str:
        """
        Extract the event timestamp for a platform.

        Args:
            platform: Platform tag (case-insensitive)
            raw_event: The raw payload (for Twitch, the IRC context mapping)

        Returns:
            ISO-8601 UTC string with millisecond precision

        Raises:
            InvalidPlatformError: Unknown platform tag
            MissingTimestampError: No usable source field present
            InvalidTimestampError: A source field is present but unusable
        """
        key = platform.lower() if isinstance(platform, str) else ""
        strategy = self._strategies.get(key)
        if strategy is None:
            raise InvalidPlatformError(platform)

        timestamp = strategy(raw_event)
        logger.debug(f"Extracted timestamp for {key}: {timestamp}")
        return timestamp

    def extract_twitch_timestamp(self, context) -> str:
        if not isinstance(context, dict):
            raise MissingTimestampError("twitch")
        candidates = self._pick(context, ("tmi-sent-ts", "timestamp"))
        return self._resolve("twitch", candidates)

    def extract_youtube_timestamp(self, chat_item) -> str:
        if not isinstance(chat_item, dict):
            raise MissingTimestampError("youtube")
        source = chat_item.get("item") if isinstance(chat_item.get("item"), dict) else chat_item
        candidates = self._pick(source, ("timestamp", "timestamp_usec"))
        return self._resolve("youtube", candidates, scale_microseconds=True)

    def extract_tiktok_timestamp(self, data) -> str:
        if not isinstance(data, dict):
            raise MissingTimestampError("tiktok")
        candidates = []
        common = data.get("common")
        if isinstance(common, dict):
            candidates.extend(self._pick(common, ("clientSendTime", "createTime")))
        candidates.extend(self._pick(data, ("createTime", "timestamp")))
        return self._resolve("tiktok", candidates)

    @staticmethod
    def _pick(source: dict, keys: Iterable[str]) -> list:
        picked = []
        for key in keys:
            value = source.get(key, _MISSING)
            if value is not _MISSING and value is not None:
                picked.append((key, value))
        return picked

    @staticmethod
    def _resolve(platform: str, candidates: Iterable[Tuple[str, Any]],
                 scale_microseconds: bool = False) -> str:
        candidates = list(candidates)
        if not candidates:
            raise MissingTimestampError(platform)

        for key, value in candidates:
            ms = coerce_timestamp_ms(value)
            if ms is None:
                logger.debug(f"Unusable {platform} timestamp in {key}: {value!r}")
                continue
            if scale_microseconds and ms > MICROSECOND_THRESHOLD:
                ms = ms // 1000
            try:
                return ms_to_iso(ms)
            except (OverflowError, ValueError):
                logger.debug(f"Out of range {platform} timestamp in {key}: {value!r}")

        raise InvalidTimestampError(platform, candidates[0][1])
