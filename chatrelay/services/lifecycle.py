"""
ChatRelay - Platform lifecycle and graceful exit.
"""

import logging
import time
from threading import Lock
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


class PlatformLifecycleService:
    """Records when each platform adapter last connected."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._connection_times: Dict[str, float] = {}
        self._lock = Lock()

    def record_connection(self, platform: str, connected_at_ms: Optional[float] = None) -> float:
        """Record a connection, defaulting to now; returns the stored epoch ms."""
        if connected_at_ms is None:
            connected_at_ms = self.clock() * 1000
        with self._lock:
            self._connection_times[platform.lower()] = connected_at_ms
        logger.info(f"{platform} connected at {connected_at_ms:.0f}")
        return connected_at_ms

    def record_disconnection(self, platform: str):
        with self._lock:
            self._connection_times.pop(platform.lower(), None)
        logger.info(f"{platform} disconnected")

    def get_platform_connection_time(self, platform: str) -> Optional[float]:
        with self._lock:
            return self._connection_times.get((platform or "").lower())

    def get_status(self) -> dict:
        with self._lock:
            return dict(self._connection_times)


class GracefulExitService:
    """Shuts the app down after a fixed number of chat messages."""

    def __init__(self, target_message_count: int, on_exit: Optional[Callable[[], None]] = None):
        self.target_message_count = target_message_count
        self.on_exit = on_exit
        self.processed_message_count = 0
        self.is_shutting_down = False
        self._lock = Lock()

        if self.is_enabled():
            logger.info(f"Graceful exit enabled after {target_message_count} messages")

    def is_enabled(self) -> bool:
        return bool(self.target_message_count) and self.target_message_count > 0

    def increment_message_count(self) -> bool:
        """Count a message; True once the target is reached."""
        if not self.is_enabled():
            return False
        with self._lock:
            if self.is_shutting_down:
                return False
            self.processed_message_count += 1
            logger.debug(f"Processed message {self.processed_message_count}/{self.target_message_count}")
            return self.processed_message_count >= self.target_message_count

    def trigger_exit(self):
        """Invoke the exit callback, once."""
        with self._lock:
            if self.is_shutting_down:
                logger.warning("Shutdown already in progress")
                return
            self.is_shutting_down = True

        logger.info(
            f"Graceful exit after processing {self.processed_message_count} messages "
            f"(target: {self.target_message_count})"
        )
        if self.on_exit is not None:
            self.on_exit()

    def get_stats(self) -> dict:
        return {
            "enabled": self.is_enabled(),
            "processed": self.processed_message_count,
            "target": self.target_message_count,
            "shutting_down": self.is_shutting_down,
        }
