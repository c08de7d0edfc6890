"""
ChatRelay - Cheermote processor.
Summarizes the bits fragments of a Twitch EventSub chat message.
"""

import logging
import re
from typing import Dict, Iterable, List

from chatrelay.models.events import CheermoteSummary, CheermoteType

logger = logging.getLogger(__name__)

TRAILING_DIGITS = re.compile(r"\d+$")


def clean_prefix(prefix: str) -> str:
    """Strip the trailing bit amount from a cheermote prefix ("uni1" -> "uni")."""
    return TRAILING_DIGITS.sub("", prefix)


def _bits(cheermote: dict) -> int:
    value = cheermote.get("bits", 0)
    if isinstance(value, bool):
        return 0
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


class CheermoteProcessor:
    """Parses Twitch bits fragments into a CheermoteSummary."""

    @staticmethod
    def process_fragments(fragments: Iterable[dict]) -> CheermoteSummary:
        """
        Process an ordered list of EventSub message fragments.

        Text fragments are concatenated as-is into text_content. Cheermote
        fragments are grouped by their prefix with the bit amount removed;
        fragments without a prefix are ignored.
        """
        fragments = [f for f in (fragments or []) if isinstance(f, dict)]
        text_content = "".join(
            f.get("text") or "" for f in fragments if f.get("type") == "text"
        )

        counts: Dict[str, int] = {}
        original_case: Dict[str, str] = {}
        total_bits = 0

        for fragment in fragments:
            if fragment.get("type") != "cheermote":
                continue
            cheermote = fragment.get("cheermote")
            if not isinstance(cheermote, dict):
                continue
            prefix = cheermote.get("prefix")
            if not isinstance(prefix, str) or not prefix:
                continue

            cleaned = clean_prefix(prefix)
            key = cleaned.lower()
            if key not in counts:
                counts[key] = 0
                original_case[key] = cleaned
            counts[key] += 1
            total_bits += _bits(cheermote)

        if not counts:
            return CheermoteSummary(text_content=text_content)

        # Highest count wins; ties go to the alphabetically first prefix
        primary = min(counts, key=lambda k: (-counts[k], k))
        types: List[CheermoteType] = [
            CheermoteType(prefix=original_case[k], count=counts[k]) for k in counts
        ]

        summary = CheermoteSummary(
            total_bits=total_bits,
            primary_type=primary,
            clean_primary_type_original_case=original_case[primary],
            text_content=text_content,
            mixed_types=len(counts) > 1,
            other_types_count=max(0, len(counts) - 1),
            types=types,
        )
        logger.debug(f"Processed cheermotes: {total_bits} bits, primary={primary}, types={len(types)}")
        return summary
