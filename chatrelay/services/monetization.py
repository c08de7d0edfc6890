"""
ChatRelay - Monetization detector.
Spots Twitch cheermote tokens in chat text so TTS does not read them twice.
"""

import logging
import re
import time

logger = logging.getLogger(__name__)

# Word followed by digits: Cheer100, uni50, ShowLove25
CHEERMOTE_PATTERN = re.compile(r"\b[A-Za-z]+\d+\b")
TRAILING_NUMBER = re.compile(r"\d+$")

TWITCH_BITS = "twitch_bits"
CHEER_PLATFORMS = ("twitch", "twitch-eventsub")


class MonetizationDetector:
    """Detects bits cheers embedded in message text."""

    def detect_monetization(self, text: str, platform: str = "twitch") -> dict:
        """
        Scan text for cheermote tokens. Only Twitch chat carries cheermotes;
        other platforms are never flagged.

        Returns:
            {"detected", "type", "details", "timingMs"}; details carries
            totalBits and the matched cheermotes when something was found

        Raises:
            TypeError: text or platform is not a string
        """
        if not isinstance(text, str):
            raise TypeError(f"text must be a string, got {type(text).__name__}")
        if not isinstance(platform, str) or not platform:
            raise TypeError("platform must be a non-empty string")

        started = time.perf_counter()
        cheermotes = []
        total_bits = 0
        tokens = CHEERMOTE_PATTERN.findall(text) if platform.lower() in CHEER_PLATFORMS else []
        for match in tokens:
            amount = int(TRAILING_NUMBER.search(match).group())
            if amount > 0:
                cheermotes.append(match)
                total_bits += amount

        timing_ms = round((time.perf_counter() - started) * 1000, 2)
        if not cheermotes:
            return {"detected": False, "type": None, "details": None, "timingMs": timing_ms}

        logger.debug(f"Detected {len(cheermotes)} cheermotes ({total_bits} bits)")
        return {
            "detected": True,
            "type": TWITCH_BITS,
            "details": {"totalBits": total_bits, "cheermotes": cheermotes},
            "timingMs": timing_ms,
        }
