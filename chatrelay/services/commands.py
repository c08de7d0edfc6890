"""
ChatRelay - Chat command parser.
Maps chat triggers and keywords to VFX command configs.
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_DURATION_MS = 5000


@dataclass
class CommandDefinition:
    """One parsed COMMANDS line."""
    command_key: str
    triggers: List[str]
    media_source: str
    keywords: List[str]
    duration: int
    vfx_file_path: str

    @property
    def primary_command(self) -> str:
        return self.triggers[0] if self.triggers else self.command_key

    def to_config(self, keyword: Optional[str] = None, match_type: str = "trigger") -> dict:
        return {
            "command": self.primary_command,
            "commandKey": self.command_key,
            "filename": self.command_key,
            "mediaSource": self.media_source,
            "vfxFilePath": self.vfx_file_path,
            "duration": self.duration,
            "keyword": keyword,
            "matchType": match_type,
        }


def _parse_duration(parts: List[str]) -> int:
    for part in parts[2:]:
        try:
            value = int(part)
        except ValueError:
            continue
        if value > 0:
            return value
    return DEFAULT_DURATION_MS


def parse_command_line(key: str, line: str, vfx_file_path: str = "") -> Optional[CommandDefinition]:
    """
    Parse a definition like "!hello|!hi, VFX Top, hello there|hey, 5000".

    Fields are triggers, media source, keywords and duration; only the
    triggers are required.
    """
    if not isinstance(line, str) or not line.strip():
        return None

    parts = [p.strip() for p in line.split(",")]
    triggers = [t.strip().lower() for t in parts[0].split("|") if t.strip()]
    if not triggers:
        return None

    keywords = []
    if len(parts) > 2:
        keywords = [k.strip().lower() for k in parts[2].split("|") if k.strip()]

    return CommandDefinition(
        command_key=key,
        triggers=triggers,
        media_source=parts[1] if len(parts) > 1 else "",
        keywords=keywords,
        duration=_parse_duration(parts),
        vfx_file_path=vfx_file_path,
    )


class CommandParser:
    """Trigger and keyword lookup over the configured commands."""

    def __init__(self, commands: Dict[str, str], vfx_file_path: str = "",
                 keyword_parsing_enabled: bool = True, greeting_command: str = ""):
        self.vfx_file_path = vfx_file_path
        self.keyword_parsing_enabled = keyword_parsing_enabled
        self.greeting_command = greeting_command

        self.definitions: Dict[str, CommandDefinition] = {}
        self._triggers: Dict[str, CommandDefinition] = {}
        self._keywords: Dict[str, CommandDefinition] = {}
        self._regex_cache: Dict[str, re.Pattern] = {}

        for key, line in (commands or {}).items():
            definition = parse_command_line(key, line, vfx_file_path)
            if definition is None:
                logger.warning(f"Ignoring malformed command definition: {key}")
                continue
            self.definitions[key] = definition
            for trigger in definition.triggers:
                self._triggers[trigger] = definition
            for keyword in definition.keywords:
                self._keywords[keyword] = definition

        logger.info(
            f"Command parser loaded {len(self.definitions)} commands "
            f"({len(self._triggers)} triggers, {len(self._keywords)} keywords)"
        )

    @classmethod
    def from_config(cls, config) -> "CommandParser":
        return cls(
            config.COMMANDS,
            vfx_file_path=config.VFX_FILE_PATH,
            keyword_parsing_enabled=config.KEYWORD_PARSING_ENABLED,
            greeting_command=config.GREETING_COMMAND,
        )

    def _keyword_regex(self, keyword: str) -> re.Pattern:
        pattern = self._regex_cache.get(keyword)
        if pattern is None:
            pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
            self._regex_cache[keyword] = pattern
        return pattern

    def get_vfx_config(self, token, message=None) -> Optional[dict]:
        """
        Resolve a command config for a chat message.

        Args:
            token: First word of the message
            message: Whole message, searched for keywords

        Returns:
            Command config dict, or None when nothing matches
        """
        if not token or not isinstance(token, str):
            return None

        definition = self._triggers.get(token.lower())
        if definition is not None:
            return definition.to_config(match_type="trigger")

        if self.keyword_parsing_enabled and isinstance(message, str) and message:
            for keyword, definition in self._keywords.items():
                if self._keyword_regex(keyword).search(message):
                    return definition.to_config(keyword=keyword, match_type="keyword")

        return None

    def get_greeting_config(self) -> Optional[dict]:
        """Config for the greeting command, if one is configured."""
        if not self.greeting_command:
            return None
        definition = self.definitions.get(self.greeting_command)
        if definition is None:
            logger.warning(f"Greeting command not found: {self.greeting_command}")
            return None
        return definition.to_config(match_type="greeting")

    def get_stats(self) -> dict:
        return {
            "total_commands": len(self.definitions),
            "total_triggers": len(self._triggers),
            "total_keywords": len(self._keywords),
            "keyword_parsing_enabled": self.keyword_parsing_enabled,
        }


class VFXCommandService:
    """Command selection front end used by the router."""

    def __init__(self, parser: CommandParser):
        self.parser = parser

    def select_vfx_command(self, token, message=None) -> Optional[dict]:
        return self.parser.get_vfx_config(token, message)

    def get_vfx_config(self, kind: str, payload=None) -> Optional[dict]:
        """Look up a config by kind; "greetings" returns the greeting command."""
        if kind == "greetings":
            return self.parser.get_greeting_config()
        return self.parser.get_vfx_config(kind, payload)
