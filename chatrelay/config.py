"""
ChatRelay - Configuration loader.
Loads and validates settings from SETTINGS.py.
"""

import importlib.util
import logging
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


# Spam detection defaults, restored when a configured value does not parse
DEFAULT_SPAM_DETECTION = {
    "enabled": True,
    "low_value_threshold": 10,
    "detection_window": 5,
    "max_individual_notifications": 2,
}

SUPPORTED_PLATFORMS = ("twitch", "youtube", "tiktok")


def parse_bool(value, default: bool, name: str = "value") -> bool:
    """Accept real booleans and the legacy strings "true"/"false"."""
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text == "true":
            return True
        if text == "false":
            return False
    if value is not None:
        logger.warning(f"Invalid boolean for {name}: {value!r}, using default {default}")
    return default


def parse_number(value, default, name: str = "value"):
    """Accept numbers and numeric strings; anything else restores the default."""
    if isinstance(value, bool):
        parsed = None
    elif isinstance(value, (int, float)):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            try:
                parsed = float(value.strip())
            except ValueError:
                parsed = None
    else:
        parsed = None

    if parsed is None or (isinstance(parsed, float) and not math.isfinite(parsed)):
        if value is not None:
            logger.warning(f"Invalid number for {name}: {value!r}, using default {default}")
        return default
    return parsed


def parse_int(value, default: int, name: str = "value") -> int:
    parsed = parse_number(value, default, name)
    if isinstance(parsed, float):
        if not parsed.is_integer():
            logger.warning(f"Invalid integer for {name}: {value!r}, using default {default}")
            return default
        return int(parsed)
    return parsed


@dataclass
class Config:
    """Application configuration loaded from SETTINGS.py."""

    # Chat routing
    MESSAGES_ENABLED: bool = True
    GREETINGS_ENABLED: bool = True
    FILTER_OLD_MESSAGES: bool = True
    MAX_MESSAGE_LENGTH: int = 200
    TTS_DEDUPLICATION_ENABLED: bool = False

    # Per-platform overrides, e.g. {"twitch": {"messages_enabled": False}}
    PLATFORMS: Dict[str, Dict[str, Any]] = field(default_factory=dict)

    # Command cooldowns
    CMD_COOLDOWN_MS: int = 60000
    GLOBAL_CMD_COOLDOWN_MS: int = 60000
    HEAVY_COMMAND_COOLDOWN_MS: int = 300000
    HEAVY_COMMAND_THRESHOLD: int = 4
    HEAVY_COMMAND_WINDOW_MS: int = 360000
    COOLDOWN_MAX_ENTRIES: int = 1000

    # Commands: {"hello": "!hello|!hi, VFX Top, hello there, 5000"}
    COMMANDS: Dict[str, str] = field(default_factory=dict)
    VFX_FILE_PATH: str = ""
    KEYWORD_PARSING_ENABLED: bool = True
    GREETING_COMMAND: str = ""

    # Donation spam detection
    SPAM_DETECTION: Dict[str, Any] = field(default_factory=lambda: dict(DEFAULT_SPAM_DETECTION))

    # Stop after this many chat messages (0 = never)
    EXIT_AFTER_MESSAGES: int = 0

    # Display queue
    QUEUE_MAX_SIZE: int = 50
    PRIORITY_CHAT: int = 1
    PRIORITY_GREETING: int = 2
    PRIORITY_GIFT: int = 2
    PRIORITY_COMMAND: int = 3

    # Web Server Configuration
    WEB_HOST: str = "0.0.0.0"
    WEB_PORT: int = 5000
    WEB_DEBUG: bool = False
    WEBSOCKET_PING_INTERVAL: int = 25
    WEBSOCKET_PING_TIMEOUT: int = 120

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    settings_path: Optional[str] = None

    def __post_init__(self):
        """Load settings from SETTINGS.py file."""
        self._load_settings()
        self._normalize()
        self._validate()

    def _load_settings(self):
        """Load settings from SETTINGS.py."""
        settings_paths = [
            "/app/SETTINGS.py",  # Docker mount path
            os.path.join(os.path.dirname(os.path.dirname(__file__)), "SETTINGS.py"),  # Local path
        ]
        if self.settings_path:
            settings_paths = [self.settings_path]

        settings_module = None
        for path in settings_paths:
            if os.path.exists(path):
                logger.info(f"Loading settings from {path}")
                spec = importlib.util.spec_from_file_location("settings", path)
                settings_module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(settings_module)
                break

        if settings_module is None:
            logger.warning("SETTINGS.py not found, using defaults")
            return

        for attr in dir(self):
            if attr.isupper() and not attr.startswith('_'):
                if hasattr(settings_module, attr):
                    setattr(self, attr, getattr(settings_module, attr))
                    logger.debug(f"Loaded setting: {attr}")

        # Merge spam detection with defaults
        if hasattr(settings_module, 'SPAM_DETECTION'):
            merged = dict(DEFAULT_SPAM_DETECTION)
            merged.update(settings_module.SPAM_DETECTION or {})
            self.SPAM_DETECTION = merged

    def _normalize(self):
        """Coerce legacy string values ("true", "5") into proper types."""
        for name in ("MESSAGES_ENABLED", "GREETINGS_ENABLED", "FILTER_OLD_MESSAGES",
                     "TTS_DEDUPLICATION_ENABLED", "KEYWORD_PARSING_ENABLED", "WEB_DEBUG"):
            default = type(self).__dataclass_fields__[name].default
            setattr(self, name, parse_bool(getattr(self, name), default, name))

        for name in ("MAX_MESSAGE_LENGTH", "CMD_COOLDOWN_MS", "GLOBAL_CMD_COOLDOWN_MS",
                     "HEAVY_COMMAND_COOLDOWN_MS", "HEAVY_COMMAND_THRESHOLD",
                     "HEAVY_COMMAND_WINDOW_MS", "COOLDOWN_MAX_ENTRIES", "EXIT_AFTER_MESSAGES",
                     "QUEUE_MAX_SIZE", "PRIORITY_CHAT", "PRIORITY_GREETING", "PRIORITY_GIFT",
                     "PRIORITY_COMMAND", "WEB_PORT"):
            default = type(self).__dataclass_fields__[name].default
            setattr(self, name, parse_int(getattr(self, name), default, name))

        platforms = {}
        for platform, overrides in (self.PLATFORMS or {}).items():
            if not isinstance(overrides, dict):
                logger.warning(f"Ignoring non-mapping platform settings for {platform}")
                continue
            platforms[str(platform).lower()] = dict(overrides)
        self.PLATFORMS = platforms

    def _validate(self):
        """Validate configuration values."""
        errors = []

        for name in ("CMD_COOLDOWN_MS", "GLOBAL_CMD_COOLDOWN_MS", "HEAVY_COMMAND_COOLDOWN_MS",
                     "HEAVY_COMMAND_WINDOW_MS"):
            if getattr(self, name) < 0:
                errors.append(f"{name} must not be negative, got {getattr(self, name)}")

        if self.HEAVY_COMMAND_THRESHOLD < 1:
            errors.append(f"HEAVY_COMMAND_THRESHOLD must be at least 1, got {self.HEAVY_COMMAND_THRESHOLD}")

        if self.MAX_MESSAGE_LENGTH < 1:
            errors.append(f"MAX_MESSAGE_LENGTH must be positive, got {self.MAX_MESSAGE_LENGTH}")

        if self.QUEUE_MAX_SIZE < 1:
            errors.append(f"QUEUE_MAX_SIZE must be positive, got {self.QUEUE_MAX_SIZE}")

        # The queue plays lower numbers first; chat must never play after its greeting
        if self.PRIORITY_CHAT > self.PRIORITY_GREETING:
            errors.append("PRIORITY_CHAT must be less than or equal to PRIORITY_GREETING")
        if self.PRIORITY_GREETING > self.PRIORITY_COMMAND:
            errors.append("PRIORITY_GREETING must be less than or equal to PRIORITY_COMMAND")

        for platform in self.PLATFORMS:
            if platform not in SUPPORTED_PLATFORMS:
                logger.warning(f"Settings for unknown platform: {platform}")

        if not isinstance(self.COMMANDS, dict):
            errors.append("COMMANDS must be a mapping of command key to definition")

        for error in errors:
            logger.error(f"Configuration error: {error}")

        if errors:
            raise ValueError(f"Configuration validation failed: {'; '.join(errors)}")

    def platform_setting(self, platform: str, key: str, default=None):
        """Look up a per-platform override."""
        overrides = self.PLATFORMS.get((platform or "").lower(), {})
        return overrides.get(key, default)

    def messages_enabled(self, platform: str) -> bool:
        """Global switch AND the platform override (when one is set)."""
        if not self.MESSAGES_ENABLED:
            return False
        override = self.platform_setting(platform, "messages_enabled")
        return parse_bool(override, True, f"{platform}.messages_enabled")

    def greetings_enabled(self, platform: str) -> bool:
        if not self.GREETINGS_ENABLED:
            return False
        override = self.platform_setting(platform, "greetings_enabled")
        return parse_bool(override, True, f"{platform}.greetings_enabled")

    def cooldown_settings(self, platform: str) -> Dict[str, int]:
        """Per-user, heavy and global command cooldowns for a platform, in ms."""
        return {
            "per_user": parse_int(self.platform_setting(platform, "cmd_cooldown_ms"),
                                  self.CMD_COOLDOWN_MS, f"{platform}.cmd_cooldown_ms"),
            "heavy": parse_int(self.platform_setting(platform, "heavy_command_cooldown_ms"),
                               self.HEAVY_COMMAND_COOLDOWN_MS, f"{platform}.heavy_command_cooldown_ms"),
            "global": parse_int(self.platform_setting(platform, "global_cmd_cooldown_ms"),
                                self.GLOBAL_CMD_COOLDOWN_MS, f"{platform}.global_cmd_cooldown_ms"),
        }

    def to_public_dict(self) -> Dict:
        """Return non-sensitive settings for the API."""
        return {
            "messages_enabled": self.MESSAGES_ENABLED,
            "greetings_enabled": self.GREETINGS_ENABLED,
            "filter_old_messages": self.FILTER_OLD_MESSAGES,
            "tts_deduplication_enabled": self.TTS_DEDUPLICATION_ENABLED,
            "platforms": {
                platform: {
                    "messages_enabled": self.messages_enabled(platform),
                    "greetings_enabled": self.greetings_enabled(platform),
                }
                for platform in SUPPORTED_PLATFORMS
            },
            "commands": sorted(self.COMMANDS),
            "spam_detection": dict(self.SPAM_DETECTION),
            "queue_max_size": self.QUEUE_MAX_SIZE,
        }
