# =============================================================================
# CHATRELAY CONFIGURATION
# =============================================================================
# Copy this file to SETTINGS.py and fill in your values.
# SETTINGS.py is gitignored and will not be committed to version control.
#
# Booleans may also be given as the strings "true" / "false", and numbers as
# numeric strings. Values that do not parse fall back to the defaults below.
# =============================================================================

# -----------------------------------------------------------------------------
# CHAT ROUTING
# -----------------------------------------------------------------------------
MESSAGES_ENABLED = True             # Show chat messages at all
GREETINGS_ENABLED = True            # Greet each user's first message of the session
FILTER_OLD_MESSAGES = True          # Drop messages sent before the platform connected
MAX_MESSAGE_LENGTH = 200            # Chat log lines are truncated to this length
TTS_DEDUPLICATION_ENABLED = False   # Mark cheer messages so TTS does not read them twice

# Per-platform overrides (any key may be omitted)
PLATFORMS = {
    "twitch": {
        "messages_enabled": True,
        "greetings_enabled": True,
        # "cmd_cooldown_ms": 30000,
        # "global_cmd_cooldown_ms": 60000,
        # "heavy_command_cooldown_ms": 300000,
    },
    "youtube": {
        "messages_enabled": True,
        "greetings_enabled": True,
    },
    "tiktok": {
        "messages_enabled": True,
        "greetings_enabled": False,
    },
}

# -----------------------------------------------------------------------------
# COMMANDS
# -----------------------------------------------------------------------------
# Key = VFX file name. Value = "triggers, media source, keywords, duration ms"
# Triggers and keywords are separated by "|". Keywords match anywhere in the
# message on word boundaries (when KEYWORD_PARSING_ENABLED is on).
COMMANDS = {
    "hello": "!hello|!hi, VFX Top, hello there|hey there, 5000",
    "boom": "!boom, VFX Center, , 3000",
    "welcome": "!welcome, VFX Top, , 4000",
}
VFX_FILE_PATH = ""                  # Directory holding the VFX media files
KEYWORD_PARSING_ENABLED = True
GREETING_COMMAND = "welcome"        # Command key played for greetings ("" = no VFX)

# Cooldowns (milliseconds)
CMD_COOLDOWN_MS = 60000             # Per user
GLOBAL_CMD_COOLDOWN_MS = 60000      # Per command, across all users
HEAVY_COMMAND_COOLDOWN_MS = 300000  # Applied to users who spam commands
HEAVY_COMMAND_THRESHOLD = 4         # Commands within the window that count as heavy use
HEAVY_COMMAND_WINDOW_MS = 360000
COOLDOWN_MAX_ENTRIES = 1000

# -----------------------------------------------------------------------------
# DONATION SPAM DETECTION
# -----------------------------------------------------------------------------
# Floods of cheap gifts from one user are folded into a single summary.
SPAM_DETECTION = {
    "enabled": True,
    "low_value_threshold": 10,          # Gifts worth this or less are "low value"
    "detection_window": 5,              # Seconds
    "max_individual_notifications": 2,  # Shown individually before aggregating
    "platforms": {
        # "tiktok": {"low_value_threshold": 5},
        # "twitch": {"enabled": False},
    },
}

# -----------------------------------------------------------------------------
# GRACEFUL EXIT
# -----------------------------------------------------------------------------
EXIT_AFTER_MESSAGES = 0             # Stop after this many chat messages (0 = never)

# -----------------------------------------------------------------------------
# DISPLAY QUEUE
# -----------------------------------------------------------------------------
QUEUE_MAX_SIZE = 50
# Lower numbers play first. Chat must not be higher than greetings.
PRIORITY_CHAT = 1
PRIORITY_GREETING = 2
PRIORITY_GIFT = 2
PRIORITY_COMMAND = 3

# -----------------------------------------------------------------------------
# WEB SERVER CONFIGURATION
# -----------------------------------------------------------------------------
WEB_HOST = "0.0.0.0"        # Bind address (0.0.0.0 for Docker, 127.0.0.1 for local only)
WEB_PORT = 5000             # Web server port
WEB_DEBUG = False           # Flask debug mode (disable in production!)
WEBSOCKET_PING_INTERVAL = 25
WEBSOCKET_PING_TIMEOUT = 120

# -----------------------------------------------------------------------------
# LOGGING
# -----------------------------------------------------------------------------
LOG_LEVEL = "INFO"          # DEBUG, INFO, WARNING, ERROR
LOG_FILE = ""               # Empty = console only
