"""
ChatRelay - Donation spam detection.
Coalesces floods of low-value gifts from one user into a single summary.
"""

import itertools
import logging
import threading
import time
from dataclasses import dataclass, field
from threading import RLock
from typing import Any, Callable, Dict, List, Optional, Tuple

from chatrelay.config import DEFAULT_SPAM_DETECTION, SUPPORTED_PLATFORMS, parse_bool, parse_int, parse_number

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_SECONDS = 30
DEFAULT_MAX_TRACKED_USERS = 10000


@dataclass(frozen=True)
class PlatformSpamSettings:
    enabled: bool
    low_value_threshold: float
    detection_window: float  # seconds
    max_individual_notifications: int


class SpamDetectionConfig:
    """Global spam detection settings with optional per-platform overrides."""

    def __init__(self, enabled=True, low_value_threshold=10, detection_window=5,
                 max_individual_notifications=2, platforms: Optional[Dict[str, dict]] = None):
        self.defaults = self._parse(
            {
                "enabled": enabled,
                "low_value_threshold": low_value_threshold,
                "detection_window": detection_window,
                "max_individual_notifications": max_individual_notifications,
            },
            PlatformSpamSettings(**DEFAULT_SPAM_DETECTION),
            "spam_detection",
        )

        self.platform_configs: Dict[str, PlatformSpamSettings] = {}
        for platform in SUPPORTED_PLATFORMS:
            overrides = (platforms or {}).get(platform) or {}
            self.platform_configs[platform] = self._parse(
                overrides, self.defaults, f"spam_detection.{platform}"
            )

        logger.info(
            f"Spam detection initialized: enabled={self.defaults.enabled}, "
            f"threshold={self.defaults.low_value_threshold}, "
            f"window={self.defaults.detection_window}s, "
            f"max_individual={self.defaults.max_individual_notifications}"
        )

    @classmethod
    def from_dict(cls, settings: Optional[dict]) -> "SpamDetectionConfig":
        """Build from the SPAM_DETECTION settings mapping."""
        settings = dict(settings or {})
        platforms = settings.pop("platforms", None)
        known = {k: v for k, v in settings.items() if k in DEFAULT_SPAM_DETECTION}
        return cls(platforms=platforms if isinstance(platforms, dict) else None, **known)

    @staticmethod
    def _parse(values: dict, fallback: PlatformSpamSettings, name: str) -> PlatformSpamSettings:
        enabled = parse_bool(values.get("enabled"), fallback.enabled, f"{name}.enabled")

        threshold = parse_number(values.get("low_value_threshold"), fallback.low_value_threshold,
                                 f"{name}.low_value_threshold")
        if threshold < 0:
            logger.warning(f"Negative {name}.low_value_threshold, using {fallback.low_value_threshold}")
            threshold = fallback.low_value_threshold

        window = parse_number(values.get("detection_window"), fallback.detection_window,
                              f"{name}.detection_window")
        if window <= 0:
            logger.warning(f"Non-positive {name}.detection_window, using {fallback.detection_window}")
            window = fallback.detection_window

        max_individual = parse_int(values.get("max_individual_notifications"),
                                   fallback.max_individual_notifications,
                                   f"{name}.max_individual_notifications")
        if max_individual < 0:
            max_individual = fallback.max_individual_notifications

        return PlatformSpamSettings(enabled, threshold, window, max_individual)

    @property
    def enabled(self) -> bool:
        return self.defaults.enabled

    @property
    def low_value_threshold(self):
        return self.defaults.low_value_threshold

    def get_platform_config(self, platform: str) -> PlatformSpamSettings:
        """Settings for a platform; unknown platforms get the global settings."""
        key = (platform or "").lower()
        config = self.platform_configs.get(key)
        if config is None:
            logger.debug(f"No spam config for platform {platform}, using defaults")
            return self.defaults
        return config


@dataclass
class DonationRecord:
    timestamp_ms: float
    unit_amount: float
    gift_type: str
    gift_count: int
    platform: str


@dataclass
class UserSpamState:
    username: str
    platform: str
    last_reset: float
    notifications: List[DonationRecord] = field(default_factory=list)
    aggregated_count: int = 0
    flush_timer: Any = None
    flush_token: Optional[int] = None


@dataclass
class SpamDecision:
    should_show: bool
    aggregated_message: Optional[str] = None


@dataclass
class FlushResult:
    should_show: bool
    aggregated_message: Optional[str]
    total_coin_value: float
    total_gift_count: int


@dataclass
class AggregatedDonation:
    """Payload handed to the on_aggregated_donation callback."""
    user_id: str
    username: str
    platform: str
    total_coin_value: float
    total_gift_count: int
    gift_types: List[str]
    message: str
    notifications: List[DonationRecord]

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "username": self.username,
            "platform": self.platform,
            "totalCoinValue": self.total_coin_value,
            "totalGiftCount": self.total_gift_count,
            "giftTypes": list(self.gift_types),
            "message": self.message,
        }


def _format_amount(value) -> str:
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def start_timer(delay: float, callback: Callable[[], None]):
    """Default timer factory: a daemon threading.Timer, already started."""
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    timer.start()
    return timer


class DonationSpamDetector:
    """
    Per-user sliding-window aggregation of low-value gifts.

    The first max_individual_notifications low-value gifts from a user in a
    window are shown individually. Later ones are suppressed and a flush
    timer is armed; when it fires, one aggregated summary is emitted through
    on_aggregated_donation. All state lives in one dict guarded by a lock,
    and each user has at most one armed flush timer.
    """

    def __init__(self, config: SpamDetectionConfig,
                 on_aggregated_donation: Optional[Callable[[AggregatedDonation], None]] = None,
                 auto_cleanup: bool = True,
                 clock: Callable[[], float] = time.time,
                 timer_factory: Callable[[float, Callable[[], None]], Any] = start_timer,
                 cleanup_interval: float = CLEANUP_INTERVAL_SECONDS,
                 max_tracked_users: int = DEFAULT_MAX_TRACKED_USERS):
        self.config = config
        self.on_aggregated_donation = on_aggregated_donation
        self.clock = clock
        self.timer_factory = timer_factory
        self.cleanup_interval = cleanup_interval
        self.max_tracked_users = max_tracked_users

        self._states: Dict[str, UserSpamState] = {}
        self._lock = RLock()
        self._tokens = itertools.count(1)
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

        if auto_cleanup:
            self._start_periodic_cleanup()
            logger.debug(f"Periodic cleanup scheduled every {cleanup_interval} seconds")

        logger.info("Donation spam detector initialized")

    def _now_ms(self) -> float:
        return self.clock() * 1000

    def is_low_value(self, unit_amount, platform: str = "unknown") -> bool:
        """True when spam detection is on for the platform and the amount is at or below threshold."""
        settings = self.config.get_platform_config(platform)
        if not settings.enabled:
            return False
        if isinstance(unit_amount, bool) or not isinstance(unit_amount, (int, float)):
            logger.debug(f"Invalid gift amount: {unit_amount!r}")
            return False
        return unit_amount <= settings.low_value_threshold

    def handle(self, user_id: str, username: str, unit_amount, gift_type: str,
               gift_count: int = 1, platform: str = "unknown") -> SpamDecision:
        """
        Decide whether a gift notification should be shown individually.

        Returns:
            SpamDecision; should_show is False when the gift was folded into
            a pending aggregate. Any unexpected error shows the gift.
        """
        try:
            settings = self.config.get_platform_config(platform)
            if not settings.enabled or not self.is_low_value(unit_amount, platform):
                return SpamDecision(should_show=True)

            with self._lock:
                now = self._now_ms()
                window_ms = settings.detection_window * 1000

                state = self._states.get(user_id)
                if state is None:
                    self._evict_if_full()
                    state = UserSpamState(username=username, platform=platform, last_reset=now)
                    self._states[user_id] = state
                    logger.debug(f"Initialized spam tracking for user: {user_id}")

                state.notifications = [
                    n for n in state.notifications if now - n.timestamp_ms <= window_ms
                ]
                state.notifications.append(
                    DonationRecord(now, unit_amount, gift_type, gift_count, platform)
                )

                count = len(state.notifications)
                if count <= settings.max_individual_notifications:
                    logger.info(
                        f"{platform} - {username}: individual notification "
                        f"{count}/{settings.max_individual_notifications}"
                    )
                    return SpamDecision(should_show=True)

                state.aggregated_count += gift_count
                state.username = username
                state.platform = platform

                if state.flush_timer is None:
                    logger.info(f"{platform} - {username}: starting aggregation timer ({settings.detection_window}s)")
                    token = next(self._tokens)
                    state.flush_token = token
                    state.flush_timer = self.timer_factory(
                        settings.detection_window,
                        lambda: self._on_flush_timer(user_id, token),
                    )

                logger.info(f"{platform} - {username}: suppressing notification {count} (aggregating)")
                return SpamDecision(should_show=False)

        except Exception as e:
            logger.error(f"Error processing donation spam for {username}: {e}",
                         extra={"context": {"userId": user_id, "platform": platform, "giftType": gift_type}})
            logger.debug(f"Spam detection failed open for {user_id}")
            return SpamDecision(should_show=True)

    def flush(self, user_id: str) -> FlushResult:
        """Emit the aggregated summary for a user and reset their window."""
        try:
            with self._lock:
                result, payload = self._flush_locked(user_id)
            self._emit(payload)
            return result
        except Exception as e:
            logger.error(f"Error flushing aggregated donation for {user_id}: {e}")
            return FlushResult(False, None, 0, 0)

    def _on_flush_timer(self, user_id: str, token: int):
        try:
            with self._lock:
                state = self._states.get(user_id)
                if state is None or state.flush_token != token:
                    # Superseded by reset, cleanup or an earlier flush
                    return
                _, payload = self._flush_locked(user_id)
            self._emit(payload)
        except Exception as e:
            logger.error(f"Error in aggregation timer for {user_id}: {e}")

    def _flush_locked(self, user_id: str) -> Tuple[FlushResult, Optional[AggregatedDonation]]:
        state = self._states.get(user_id)
        if state is None or not state.notifications:
            if state is not None:
                self._cancel_timer(state)
            logger.debug(f"No notifications to aggregate for user {user_id}")
            return FlushResult(False, None, 0, 0), None

        total_coins = sum(n.unit_amount * n.gift_count for n in state.notifications)
        total_gifts = sum(n.gift_count for n in state.notifications)
        gift_types = list(dict.fromkeys(n.gift_type for n in state.notifications))

        noun = "gift" if total_gifts == 1 else "gifts"
        message = (
            f"{state.username} sent {total_gifts} {noun} worth "
            f"{_format_amount(total_coins)} coins ({', '.join(gift_types)})"
        )
        logger.info(f"{state.platform} - aggregated donation: {message}")

        payload = AggregatedDonation(
            user_id=user_id,
            username=state.username,
            platform=state.platform,
            total_coin_value=total_coins,
            total_gift_count=total_gifts,
            gift_types=gift_types,
            message=message,
            notifications=list(state.notifications),
        )

        self._cancel_timer(state)
        state.notifications = []
        state.aggregated_count = 0
        state.last_reset = self._now_ms()

        return FlushResult(True, message, total_coins, total_gifts), payload

    def _emit(self, payload: Optional[AggregatedDonation]):
        if payload is None or self.on_aggregated_donation is None:
            return
        try:
            self.on_aggregated_donation(payload)
        except Exception as e:
            logger.error(f"Aggregated donation callback failed for {payload.user_id}: {e}")

    @staticmethod
    def _cancel_timer(state: UserSpamState):
        if state.flush_timer is not None:
            state.flush_timer.cancel()
        state.flush_timer = None
        state.flush_token = None

    def _evict_if_full(self):
        if self.max_tracked_users and len(self._states) >= self.max_tracked_users:
            oldest = min(self._states, key=lambda uid: self._states[uid].last_reset)
            self._cancel_timer(self._states.pop(oldest))
            logger.warning(f"Spam tracker full, evicted user: {oldest}")

    def cleanup(self, force: bool = False):
        """
        Sweep expired tracking data.

        Notifications older than twice the detection window are dropped and
        users with nothing left (and no recent flush) are removed. A forced
        cleanup removes every user and cancels every timer.
        """
        try:
            with self._lock:
                total = len(self._states)
                if force:
                    for state in self._states.values():
                        self._cancel_timer(state)
                    self._states.clear()
                    logger.info(f"Forced cleanup removed {total} users")
                    return

                now = self._now_ms()
                removed = 0
                for user_id in list(self._states):
                    state = self._states[user_id]
                    window_ms = self.config.get_platform_config(state.platform).detection_window * 1000 * 2
                    state.notifications = [
                        n for n in state.notifications if now - n.timestamp_ms <= window_ms
                    ]
                    if not state.notifications and now - state.last_reset > window_ms:
                        self._cancel_timer(state)
                        del self._states[user_id]
                        removed += 1
                        logger.debug(f"Cleaned up stale entry for user: {user_id}")

                logger.info(f"Cleanup complete: {removed} users removed, {len(self._states)} remaining")
        except Exception as e:
            logger.error(f"Error during spam detection cleanup: {e}")

    def _start_periodic_cleanup(self):
        def run():
            while not self._stop_event.wait(self.cleanup_interval):
                self.cleanup()

        self._cleanup_thread = threading.Thread(target=run, name="spam-cleanup", daemon=True)
        self._cleanup_thread.start()

    def reset(self):
        """Drop all tracking data and pending timers."""
        with self._lock:
            for state in self._states.values():
                self._cancel_timer(state)
            self._states.clear()
        logger.debug("All spam tracking data reset")

    def statistics(self) -> dict:
        with self._lock:
            return {
                "tracked_users": len(self._states),
                "total_notifications": sum(len(s.notifications) for s in self._states.values()),
                "enabled": self.config.enabled,
                "threshold": self.config.low_value_threshold,
            }

    def pending_timers(self) -> int:
        """Number of armed flush timers."""
        with self._lock:
            return sum(1 for s in self._states.values() if s.flush_timer is not None)

    def destroy(self):
        """Stop the periodic sweep and cancel every timer."""
        self._stop_event.set()
        if self._cleanup_thread is not None:
            self._cleanup_thread.join(timeout=1)
            self._cleanup_thread = None
        self.reset()
        logger.debug("Spam detector destroyed")
