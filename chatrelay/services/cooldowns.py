"""
ChatRelay - Command cooldown service.
Per-user, heavy-use and per-command global cooldowns for chat commands.
"""

import logging
import time
from collections import OrderedDict
from threading import Lock
from typing import Callable, Dict, List

logger = logging.getLogger(__name__)

# Global cooldown entries older than this are pruned
GLOBAL_ENTRY_TTL_MS = 600000


class CommandCooldownService:
    """Tracks when users and commands last fired."""

    def __init__(self, config, clock: Callable[[], float] = time.time):
        self.heavy_command_threshold = config.HEAVY_COMMAND_THRESHOLD
        self.heavy_command_window_ms = config.HEAVY_COMMAND_WINDOW_MS
        self.max_entries = config.COOLDOWN_MAX_ENTRIES
        self.clock = clock

        self._user_last_command: "OrderedDict[str, float]" = OrderedDict()
        self._user_heavy_limit: Dict[str, bool] = {}
        self._user_command_timestamps: Dict[str, List[float]] = {}
        self._global_cooldowns: Dict[str, float] = {}
        self._lock = Lock()

        logger.debug("Command cooldown service initialized")

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def check_user_cooldown(self, user_id: str, cooldown_ms: int, heavy_cooldown_ms: int) -> bool:
        """
        Check whether a user may run a command now.

        Users who ran heavy_command_threshold commands within the heavy window
        wait heavy_cooldown_ms; everyone else waits cooldown_ms.

        Returns:
            True if allowed, False if blocked or the input is invalid
        """
        if not user_id or not isinstance(user_id, str):
            logger.warning("Invalid user_id provided to check_user_cooldown")
            return False
        if cooldown_ms < 0 or heavy_cooldown_ms < 0:
            logger.warning("Negative cooldown values provided")
            return False

        with self._lock:
            now = self._now_ms()
            last = self._user_last_command.get(user_id)
            if last is None:
                return True

            if self._user_heavy_limit.get(user_id):
                remaining = heavy_cooldown_ms - (now - last)
                if remaining > 0:
                    logger.debug(f"User {user_id} is under heavy command limit ({remaining / 1000:.0f}s remaining)")
                    return False
                self._user_heavy_limit[user_id] = False
                logger.debug(f"Reset heavy command limit for user {user_id}")

            remaining = cooldown_ms - (now - last)
            if remaining > 0:
                logger.debug(f"User {user_id} is on cooldown ({remaining / 1000:.0f}s remaining)")
                return False

        return True

    def check_global_cooldown(self, command: str, cooldown_ms: int) -> bool:
        """True when the command has not fired (for anyone) within cooldown_ms."""
        with self._lock:
            last = self._global_cooldowns.get(command)
            if last is None:
                return True
            remaining = cooldown_ms - (self._now_ms() - last)
            if remaining > 0:
                logger.debug(f"Command {command} is on global cooldown ({remaining / 1000:.0f}s remaining)")
                return False
        return True

    def update_user_cooldown(self, user_id: str):
        if not user_id or not isinstance(user_id, str):
            logger.warning("Invalid user_id provided to update_user_cooldown")
            return

        with self._lock:
            now = self._now_ms()
            self._user_last_command[user_id] = now
            self._user_last_command.move_to_end(user_id)

            window_start = now - self.heavy_command_window_ms
            timestamps = [t for t in self._user_command_timestamps.get(user_id, []) if t >= window_start]
            timestamps.append(now)
            self._user_command_timestamps[user_id] = timestamps

            if len(timestamps) >= self.heavy_command_threshold:
                self._user_heavy_limit[user_id] = True
                logger.debug(
                    f"User {user_id} is now under heavy command limit "
                    f"({len(timestamps)} commands in {self.heavy_command_window_ms}ms)"
                )

        self.cleanup()

    def update_global_cooldown(self, command: str):
        with self._lock:
            self._global_cooldowns[command] = self._now_ms()
        logger.debug(f"Global cooldown started for command {command}")

    def cleanup(self):
        """Drop the oldest half of user entries past max_entries and stale global entries."""
        with self._lock:
            removed = 0
            if len(self._user_last_command) > self.max_entries:
                for _ in range(self.max_entries // 2 or 1):
                    user_id, _ = self._user_last_command.popitem(last=False)
                    self._user_heavy_limit.pop(user_id, None)
                    self._user_command_timestamps.pop(user_id, None)
                    removed += 1

            now = self._now_ms()
            for command, last in list(self._global_cooldowns.items()):
                if now - last > GLOBAL_ENTRY_TTL_MS:
                    del self._global_cooldowns[command]

        if removed:
            logger.debug(f"Cleaned up {removed} old cooldown entries")

    def reset_user_cooldown(self, user_id: str):
        with self._lock:
            self._user_last_command.pop(user_id, None)
            self._user_heavy_limit.pop(user_id, None)
            self._user_command_timestamps.pop(user_id, None)
        logger.debug(f"Reset all cooldowns for user {user_id}")

    def get_status(self) -> dict:
        with self._lock:
            return {
                "active_users": len(self._user_last_command),
                "heavy_limit_users": sum(1 for v in self._user_heavy_limit.values() if v),
                "global_commands_tracked": len(self._global_cooldowns),
            }
