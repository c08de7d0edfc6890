"""
ChatRelay - User tracking service.
Remembers who has spoken this session so first messages can be greeted.
"""

import logging
from threading import Lock
from typing import Optional, Set, Tuple

logger = logging.getLogger(__name__)


class UserTrackingService:
    """In-memory registry of (platform, user_id) pairs seen this session."""

    def __init__(self):
        self._seen: Set[Tuple[str, str]] = set()
        self._lock = Lock()

    def is_first_message(self, user_id: str, context: Optional[dict] = None) -> bool:
        """True the first time a user speaks on a platform, False afterwards."""
        if not user_id:
            return False
        platform = ((context or {}).get("platform") or "").lower()
        key = (platform, str(user_id))
        with self._lock:
            if key in self._seen:
                return False
            self._seen.add(key)
        logger.debug(f"First message from {platform}:{user_id}")
        return True

    def reset(self):
        with self._lock:
            self._seen.clear()

    def __len__(self):
        return len(self._seen)
