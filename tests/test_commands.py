"""
ChatRelay - Tests for the command parser.
"""

import pytest

from chatrelay.services.commands import (
    DEFAULT_DURATION_MS,
    CommandParser,
    VFXCommandService,
    parse_command_line,
)

COMMANDS = {
    "hello": "!hello|!hi, VFX Top, hello there|howdy, 4000",
    "boom": "!boom, VFX Center",
    "welcome": "!welcome, VFX Top, , 3000",
}


@pytest.fixture
def parser():
    return CommandParser(COMMANDS, vfx_file_path="/vfx", greeting_command="welcome")


class TestParseCommandLine:
    """Tests for parse_command_line."""

    def test_full_line(self):
        """Test a definition with every field."""
        definition = parse_command_line("hello", "!Hello|!hi, VFX Top, hello there, 4000", "/vfx")

        assert definition.triggers == ["!hello", "!hi"]
        assert definition.media_source == "VFX Top"
        assert definition.keywords == ["hello there"]
        assert definition.duration == 4000
        assert definition.primary_command == "!hello"

    def test_triggers_only(self):
        """Test that missing fields get defaults."""
        definition = parse_command_line("boom", "!boom")

        assert definition.media_source == ""
        assert definition.keywords == []
        assert definition.duration == DEFAULT_DURATION_MS

    @pytest.mark.parametrize("line", ["", "   ", None, ", VFX Top"])
    def test_malformed(self, line):
        """Test that lines without triggers are rejected."""
        assert parse_command_line("bad", line) is None


class TestCommandParser:
    """Tests for CommandParser lookups."""

    def test_trigger_case_insensitive(self, parser):
        """Test trigger lookup ignores case."""
        config = parser.get_vfx_config("!HI", "!HI everyone")

        assert config["commandKey"] == "hello"
        assert config["command"] == "!hello"
        assert config["matchType"] == "trigger"
        assert config["vfxFilePath"] == "/vfx"

    def test_keyword_match(self, parser):
        """Test that keywords are matched on word boundaries."""
        config = parser.get_vfx_config("well", "well howdy partner")

        assert config["commandKey"] == "hello"
        assert config["keyword"] == "howdy"
        assert config["matchType"] == "keyword"

    def test_keyword_needs_word_boundary(self, parser):
        """Test that keywords inside other words do not match."""
        assert parser.get_vfx_config("showdyne", "showdyne") is None

    def test_keyword_parsing_disabled(self):
        """Test that keyword matching can be turned off."""
        parser = CommandParser(COMMANDS, keyword_parsing_enabled=False)

        assert parser.get_vfx_config("well", "well howdy") is None

    def test_no_match(self, parser):
        """Test that unknown tokens give None."""
        assert parser.get_vfx_config("!nope", "!nope") is None
        assert parser.get_vfx_config("", "") is None
        assert parser.get_vfx_config(None) is None

    def test_malformed_entries_skipped(self):
        """Test that bad definitions do not break loading."""
        parser = CommandParser({"good": "!good", "bad": ""})

        assert parser.get_stats()["total_commands"] == 1

    def test_greeting_config(self, parser):
        """Test the configured greeting command."""
        config = parser.get_greeting_config()

        assert config["commandKey"] == "welcome"
        assert config["command"] == "!welcome"
        assert config["duration"] == 3000

    def test_missing_greeting(self):
        """Test that a greeting command not in COMMANDS gives None."""
        assert CommandParser(COMMANDS, greeting_command="nope").get_greeting_config() is None
        assert CommandParser(COMMANDS).get_greeting_config() is None

    def test_from_config(self, config):
        """Test construction from Config."""
        config.COMMANDS = COMMANDS
        config.GREETING_COMMAND = "welcome"

        parser = CommandParser.from_config(config)

        assert parser.get_stats()["total_triggers"] == 4
        assert parser.get_greeting_config() is not None


class TestVFXCommandService:
    """Tests for VFXCommandService."""

    def test_select(self, parser):
        """Test that selection delegates to the parser."""
        service = VFXCommandService(parser)

        assert service.select_vfx_command("!boom", "!boom")["mediaSource"] == "VFX Center"

    def test_greetings_kind(self, parser):
        """Test the greetings lookup."""
        service = VFXCommandService(parser)

        assert service.get_vfx_config("greetings")["commandKey"] == "welcome"
