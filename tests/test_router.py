"""
ChatRelay - Tests for the chat notification router.
"""

import pytest
from unittest.mock import Mock, MagicMock

from chatrelay.models.events import ChatEvent, GiftEvent, ItemType
from chatrelay.services.commands import CommandParser, VFXCommandService
from chatrelay.services.monetization import MonetizationDetector
from chatrelay.services.router import ChatNotificationRouter, sanitize_chat_content
from chatrelay.services.spam import SpamDecision
from chatrelay.services.timestamps import ms_to_iso

CONNECTED_AT = 1700000000000


def make_event(message="!hello world", user_id="tester", timestamp=None, **kwargs):
    return ChatEvent(
        platform="tiktok",
        user_id=user_id,
        username="Tester",
        message=message,
        timestamp=timestamp or ms_to_iso(CONNECTED_AT + 5000),
        metadata={"profilePicture": "https://img/p.jpg"},
        **kwargs,
    )


@pytest.fixture
def display_queue():
    queue = MagicMock()
    queue.add_item.return_value = True
    return queue


@pytest.fixture
def vfx_service():
    parser = CommandParser(
        {"hello": "!hello|!hi, VFX Top, , 4000", "welcome": "!welcome, VFX Top, , 3000"},
        vfx_file_path="/vfx",
        greeting_command="welcome",
    )
    return VFXCommandService(parser)


@pytest.fixture
def cooldowns():
    service = Mock()
    service.check_user_cooldown.return_value = True
    service.check_global_cooldown.return_value = True
    return service


@pytest.fixture
def user_tracking():
    service = Mock()
    service.is_first_message.return_value = True
    return service


@pytest.fixture
def lifecycle():
    service = Mock()
    service.get_platform_connection_time.return_value = CONNECTED_AT
    return service


@pytest.fixture
def router(config, display_queue, vfx_service, cooldowns, user_tracking, lifecycle):
    return ChatNotificationRouter(
        config,
        display_queue=display_queue,
        vfx_command_service=vfx_service,
        cooldown_service=cooldowns,
        user_tracking=user_tracking,
        lifecycle=lifecycle,
    )


def queued_types(display_queue):
    return [call.args[0].type for call in display_queue.add_item.call_args_list]


class TestSanitize:
    """Tests for sanitize_chat_content."""

    def test_strips_tags(self):
        """Test that tags are removed but their text kept."""
        assert sanitize_chat_content("<b>bold</b> move") == "bold move"

    def test_script_reduced_to_text(self):
        """Test that script-like content keeps only its visible text."""
        assert sanitize_chat_content("<script>alert(1)</script>") == "alert(1)"

    def test_zero_width_removed(self):
        """Test that zero-width characters are removed."""
        assert sanitize_chat_content("he\u200bllo\ufeff") == "hello"

    def test_javascript_url(self):
        """Test that javascript: is dropped."""
        assert sanitize_chat_content("javascript:void(0)") == "void(0)"

    def test_not_truncated(self):
        """Test that long messages are kept whole."""
        assert len(sanitize_chat_content("a" * 1000)) == 1000


class TestOrdering:
    """Tests for enqueue ordering."""

    def test_chat_greeting_command(self, router, display_queue):
        """Test that a first message with a command queues chat, greeting, command."""
        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.CHAT, ItemType.GREETING, ItemType.COMMAND]
        assert queued_types(display_queue) == [ItemType.CHAT, ItemType.GREETING, ItemType.COMMAND]

    def test_chat_priority_not_above_greeting(self, router):
        """Test that chat never sorts after its greeting."""
        chat, greeting, command = router.handle_chat_message("tiktok", make_event())

        assert chat.priority <= greeting.priority <= command.priority

    def test_chat_only(self, router, user_tracking):
        """Test a returning user with no command."""
        user_tracking.is_first_message.return_value = False

        items = router.handle_chat_message("tiktok", make_event("just chatting"))

        assert [item.type for item in items] == [ItemType.CHAT]

    def test_chat_payload(self, router):
        """Test the chat item data."""
        chat = router.handle_chat_message("tiktok", make_event("<i>hey</i>"))[0]

        assert chat.data["message"] == "hey"
        assert chat.data["userId"] == "tester"
        assert chat.data["profilePicture"] == "https://img/p.jpg"
        assert chat.skip_chat_tts is False


class TestGates:
    """Tests for early exits."""

    def test_messages_disabled_globally(self, router, config, display_queue):
        """Test the global messages switch."""
        config.MESSAGES_ENABLED = False

        assert router.handle_chat_message("tiktok", make_event()) == []
        display_queue.add_item.assert_not_called()

    def test_messages_disabled_for_platform(self, router, config, display_queue):
        """Test a per-platform override."""
        config.PLATFORMS = {"tiktok": {"messages_enabled": False}}

        assert router.handle_chat_message("tiktok", make_event()) == []
        assert router.handle_chat_message("twitch", make_event()) != []

    @pytest.mark.parametrize("message", ["", "   ", None])
    def test_empty_message(self, router, display_queue, message):
        """Test that empty messages are skipped."""
        assert router.handle_chat_message("tiktok", make_event(message)) == []
        display_queue.add_item.assert_not_called()

    def test_empty_after_sanitization(self, router, display_queue):
        """Test that markup-only messages are skipped."""
        assert router.handle_chat_message("tiktok", make_event("<img src=x>")) == []

    def test_greetings_disabled(self, router, config):
        """Test that greetings respect the greeting switch."""
        config.PLATFORMS = {"tiktok": {"greetings_enabled": False}}

        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.CHAT, ItemType.COMMAND]


class TestOldMessages:
    """Tests for the old-message filter."""

    def test_old_message_skipped(self, router, display_queue):
        """Test that messages sent before the connection are dropped."""
        event = make_event(timestamp=ms_to_iso(CONNECTED_AT - 1000))

        assert router.handle_chat_message("tiktok", event) == []
        display_queue.add_item.assert_not_called()

    def test_filter_disabled(self, router, config):
        """Test that the filter can be turned off."""
        config.FILTER_OLD_MESSAGES = False
        event = make_event("hello", timestamp=ms_to_iso(CONNECTED_AT - 1000))

        items = router.handle_chat_message("tiktok", event)

        assert items[0].type == ItemType.CHAT

    def test_unparseable_timestamp_passes(self, router):
        """Test that a bad timestamp bypasses the filter."""
        items = router.handle_chat_message("tiktok", make_event("hello", timestamp="garbage"))

        assert items[0].type == ItemType.CHAT

    def test_no_connection_time(self, router, lifecycle):
        """Test that an unconnected platform does not filter."""
        lifecycle.get_platform_connection_time.return_value = None
        event = make_event("hello", timestamp=ms_to_iso(CONNECTED_AT - 1000))

        assert router.handle_chat_message("tiktok", event)


class TestCommands:
    """Tests for command dispatch."""

    def test_trigger_word_is_original_token(self, router):
        """Test that triggerWord is what the user typed."""
        items = router.handle_chat_message("tiktok", make_event("!HI there"))
        command = items[-1]

        assert command.type == ItemType.COMMAND
        assert command.vfx_config["triggerWord"] == "!HI"
        assert command.vfx_config["commandKey"] == "hello"
        assert command.data["command"] == "!hello"

    def test_user_cooldown_blocks_command_only(self, router, cooldowns):
        """Test that a per-user block drops only the command."""
        cooldowns.check_user_cooldown.return_value = False

        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.CHAT, ItemType.GREETING]
        cooldowns.check_global_cooldown.assert_not_called()
        cooldowns.update_user_cooldown.assert_not_called()

    def test_global_cooldown_blocks(self, router, cooldowns):
        """Test that a global block drops the command."""
        cooldowns.check_global_cooldown.return_value = False

        items = router.handle_chat_message("tiktok", make_event())

        assert ItemType.COMMAND not in [item.type for item in items]
        cooldowns.update_global_cooldown.assert_not_called()

    def test_cooldowns_updated(self, router, cooldowns):
        """Test that a successful command updates both cooldowns."""
        router.handle_chat_message("tiktok", make_event())

        cooldowns.check_user_cooldown.assert_called_once_with("tester", 60000, 300000)
        cooldowns.check_global_cooldown.assert_called_once_with("!hello", 60000)
        cooldowns.update_user_cooldown.assert_called_once_with("tester")
        cooldowns.update_global_cooldown.assert_called_once_with("!hello")

    def test_platform_cooldown_override(self, router, config, cooldowns):
        """Test that per-platform cooldowns are used."""
        config.PLATFORMS = {"tiktok": {"cmd_cooldown_ms": "1000"}}

        router.handle_chat_message("tiktok", make_event())

        cooldowns.check_user_cooldown.assert_called_once_with("tester", 1000, 300000)

    def test_selector_failure(self, router, vfx_service):
        """Test that a failing selector drops only the command."""
        vfx_service.select_vfx_command = Mock(side_effect=RuntimeError("down"))

        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.CHAT, ItemType.GREETING]

    def test_command_parser_used_without_vfx_service(self, config, display_queue, cooldowns):
        """Test the synchronous parser path."""
        parser = Mock()
        parser.get_vfx_config.return_value = {"command": "!boom", "commandKey": "boom"}
        router = ChatNotificationRouter(config, display_queue=display_queue,
                                        command_parser=parser, cooldown_service=cooldowns)

        items = router.handle_chat_message("tiktok", make_event("!boom now"))

        parser.get_vfx_config.assert_called_once_with("!boom", "!boom now")
        assert items[-1].vfx_config["triggerWord"] == "!boom"

    def test_no_cooldown_service(self, config, display_queue, vfx_service):
        """Test that commands need a cooldown service."""
        router = ChatNotificationRouter(config, display_queue=display_queue,
                                        vfx_command_service=vfx_service)

        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.CHAT]


class TestGreetings:
    """Tests for greeting items."""

    def test_greeting_vfx(self, router):
        """Test that the greeting carries the greeting command config."""
        greeting = router.handle_chat_message("tiktok", make_event("hello"))[1]

        assert greeting.vfx_config["commandKey"] == "welcome"
        assert greeting.vfx_config["triggerWord"] == "!welcome"
        assert greeting.data == {"userId": "tester", "username": "Tester"}

    def test_incomplete_greeting_config(self, router, vfx_service):
        """Test that an incomplete greeting config is dropped but the greeting still queues."""
        vfx_service.get_vfx_config = Mock(return_value={"command": "!welcome"})

        greeting = router.handle_chat_message("tiktok", make_event("hello"))[1]

        assert greeting.type == ItemType.GREETING
        assert greeting.vfx_config is None


class TestFailures:
    """Tests for collaborator failures."""

    def test_queue_failure_does_not_stop_pipeline(self, router, display_queue):
        """Test that a queue error on chat still lets the rest run."""
        display_queue.add_item.side_effect = [RuntimeError("full"), True, True]

        items = router.handle_chat_message("tiktok", make_event())

        assert [item.type for item in items] == [ItemType.GREETING, ItemType.COMMAND]

    def test_queue_rejection(self, router, display_queue):
        """Test that a rejected item is not reported as queued."""
        display_queue.add_item.return_value = False

        assert router.handle_chat_message("tiktok", make_event()) == []

    def test_no_queue(self, config):
        """Test that the router works without a display queue."""
        router = ChatNotificationRouter(config)

        assert router.handle_chat_message("tiktok", make_event()) == []

    def test_monetization_marks_skip_tts(self, router, config):
        """Test that detected cheers mark the chat item."""
        config.TTS_DEDUPLICATION_ENABLED = True
        router.monetization_detector = Mock()
        router.monetization_detector.detect_monetization.return_value = {"detected": True}

        chat = router.handle_chat_message("twitch", make_event("Cheer100 hi"))[0]

        assert chat.skip_chat_tts is True
        router.monetization_detector.detect_monetization.assert_called_once_with("Cheer100 hi", "twitch")

    @pytest.mark.parametrize("platform,expected", [("twitch", True), ("youtube", False), ("tiktok", False)])
    def test_cheermotes_only_on_twitch(self, router, config, platform, expected):
        """Test that digit-suffixed words only skip TTS on Twitch."""
        config.TTS_DEDUPLICATION_ENABLED = True
        router.monetization_detector = MonetizationDetector()

        chat = router.handle_chat_message(platform, make_event("gg2 Player1"))[0]

        assert chat.skip_chat_tts is expected

    def test_monetization_error_ignored(self, router, config):
        """Test that a detector error counts as not detected."""
        config.TTS_DEDUPLICATION_ENABLED = True
        router.monetization_detector = Mock()
        router.monetization_detector.detect_monetization.side_effect = TypeError("bad")

        chat = router.handle_chat_message("tiktok", make_event("Cheer100 hi"))[0]

        assert chat.skip_chat_tts is False


class TestGracefulExit:
    """Tests for the graceful-exit gate."""

    def test_exit_stops_processing(self, router, display_queue):
        """Test that tripping the exit threshold queues nothing."""
        router.graceful_exit = Mock()
        router.graceful_exit.is_enabled.return_value = True
        router.graceful_exit.increment_message_count.return_value = True

        assert router.handle_chat_message("tiktok", make_event()) == []
        router.graceful_exit.trigger_exit.assert_called_once()
        display_queue.add_item.assert_not_called()

    def test_below_threshold_continues(self, router):
        """Test that counting without tripping continues."""
        router.graceful_exit = Mock()
        router.graceful_exit.is_enabled.return_value = True
        router.graceful_exit.increment_message_count.return_value = False

        assert router.handle_chat_message("tiktok", make_event())
        router.graceful_exit.trigger_exit.assert_not_called()


class TestGifts:
    """Tests for gift routing."""

    def gift(self):
        return GiftEvent(platform="tiktok", user_id="u", username="U", unit_amount=1, gift_type="Rose")

    def test_gift_queued(self, router):
        """Test that a gift without spam detection is queued."""
        items = router.handle_gift(self.gift())

        assert items[0].type == ItemType.GIFT
        assert items[0].data["giftType"] == "Rose"

    def test_suppressed_gift(self, router, display_queue):
        """Test that a suppressed gift is not queued."""
        router.spam_detector = Mock()
        router.spam_detector.handle.return_value = SpamDecision(should_show=False)

        assert router.handle_gift(self.gift()) == []
        display_queue.add_item.assert_not_called()

    def test_skip_spam_detection(self, router):
        """Test that gifts without an amount bypass the spam detector."""
        router.spam_detector = Mock()

        items = router.handle_gift(self.gift(), skip_spam_detection=True)

        assert items[0].type == ItemType.GIFT
        router.spam_detector.handle.assert_not_called()

    def test_aggregated_donation(self, router):
        """Test that a flush payload becomes an aggregated gift item."""
        payload = Mock(platform="tiktok")
        payload.to_dict.return_value = {"message": "U sent 3 gifts worth 3 coins (Rose)"}

        item = router.handle_aggregated_donation(payload)

        assert item.type == ItemType.GIFT
        assert item.data["aggregated"] is True
