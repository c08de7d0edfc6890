"""
ChatRelay - Tests for the display queue.
"""

import threading

import pytest
from unittest.mock import MagicMock

from chatrelay.models.events import ItemType, QueueItem
from chatrelay.services.queue import DisplayQueue


class MockConfig:
    """Mock configuration for testing."""
    QUEUE_MAX_SIZE = 5
    PRIORITY_CHAT = 1
    PRIORITY_GREETING = 2
    PRIORITY_GIFT = 2
    PRIORITY_COMMAND = 3


@pytest.fixture
def mock_socketio():
    """Create a mock SocketIO instance."""
    return MagicMock()


@pytest.fixture
def display_queue(mock_socketio):
    """Create a display queue instance."""
    return DisplayQueue(MockConfig(), mock_socketio)


def item(item_type=ItemType.CHAT, priority=None, platform="twitch"):
    return QueueItem(type=item_type, platform=platform, data={}, priority=priority)


def emitted(mock_socketio, event):
    return [c.args[1] for c in mock_socketio.emit.call_args_list if c.args[0] == event]


class TestDisplayQueue:
    """Tests for DisplayQueue."""

    def test_first_item_sent_immediately(self, display_queue, mock_socketio):
        """Test that an idle queue displays the first item right away."""
        first = item()

        assert display_queue.add_item(first) is True

        assert emitted(mock_socketio, "display_item")[0]["id"] == first.id
        assert display_queue.get_status()["current"]["id"] == first.id

    def test_lower_priority_number_first(self, display_queue):
        """Test that lower priority numbers play first."""
        display_queue.add_item(item())
        command = item(ItemType.COMMAND)
        chat = item(ItemType.CHAT)
        display_queue.add_item(command)
        display_queue.add_item(chat)

        assert display_queue.get_next() is chat
        assert display_queue.get_next() is command

    def test_equal_priority_is_fifo(self, display_queue):
        """Test insertion order among equal priorities."""
        display_queue.add_item(item())
        queued = [item() for _ in range(3)]
        for entry in queued:
            display_queue.add_item(entry)

        assert [display_queue.get_next() for _ in range(3)] == queued

    def test_chat_greeting_command_order(self, display_queue):
        """Test that routed items for one message play in order."""
        display_queue.add_item(item())
        chat, greeting, command = item(ItemType.CHAT), item(ItemType.GREETING), item(ItemType.COMMAND)
        for entry in (chat, greeting, command):
            display_queue.add_item(entry)

        assert display_queue.get_status()["pending"] == ["chat", "greeting", "command"]

    def test_default_priority_filled(self, display_queue):
        """Test that a missing priority comes from config."""
        gift = item(ItemType.GIFT)

        display_queue.add_item(gift)

        assert gift.priority == MockConfig.PRIORITY_GIFT

    def test_full_queue_rejects(self, display_queue):
        """Test that the queue refuses items past max size."""
        display_queue.add_item(item())
        for _ in range(MockConfig.QUEUE_MAX_SIZE):
            assert display_queue.add_item(item()) is True

        assert display_queue.add_item(item()) is False
        assert display_queue.get_status()["size"] == MockConfig.QUEUE_MAX_SIZE

    def test_mark_complete_sends_next(self, display_queue, mock_socketio):
        """Test that completing the current item displays the next."""
        first, second = item(), item()
        display_queue.add_item(first)
        display_queue.add_item(second)

        display_queue.mark_complete(first.id)

        assert emitted(mock_socketio, "display_item")[-1]["id"] == second.id

    def test_mark_complete_unknown_id(self, display_queue, mock_socketio):
        """Test that a stale completion does nothing."""
        first, second = item(), item()
        display_queue.add_item(first)
        display_queue.add_item(second)

        display_queue.mark_complete("not-an-id")

        assert display_queue.get_status()["current"]["id"] == first.id
        assert len(emitted(mock_socketio, "display_item")) == 1

    def test_skip_current(self, display_queue, mock_socketio):
        """Test that skip emits and advances."""
        first, second = item(), item()
        display_queue.add_item(first)
        display_queue.add_item(second)

        display_queue.skip_current()

        assert emitted(mock_socketio, "skip") == [{}]
        assert display_queue.get_status()["current"]["id"] == second.id

    def test_clear(self, display_queue, mock_socketio):
        """Test that clear drops pending items and notifies."""
        display_queue.add_item(item())
        display_queue.add_item(item())

        display_queue.clear()

        assert display_queue.get_status()["size"] == 0
        assert emitted(mock_socketio, "queue_update")[-1]["size"] == 0

    def test_get_item(self, display_queue):
        """Test lookup of current and pending items."""
        current, pending = item(), item()
        display_queue.add_item(current)
        display_queue.add_item(pending)

        assert display_queue.get_item(current.id) is current
        assert display_queue.get_item(pending.id) is pending
        assert display_queue.get_item("missing") is None

    def test_emit_failure_contained(self, display_queue, mock_socketio):
        """Test that a socket error does not break queueing."""
        mock_socketio.emit.side_effect = RuntimeError("socket closed")

        assert display_queue.add_item(item()) is True

    def test_without_socketio(self):
        """Test that the queue works with no socket attached."""
        queue = DisplayQueue(MockConfig())

        assert queue.add_item(item()) is True
        assert queue.get_status()["current"] is not None

    def test_concurrent_adds_send_one_item(self, mock_socketio):
        """Test that adds racing on an idle queue display exactly one item."""
        for _ in range(20):
            mock_socketio.reset_mock()
            queue = DisplayQueue(MockConfig(), mock_socketio)
            barrier = threading.Barrier(4)

            def add():
                barrier.wait()
                queue.add_item(item())

            threads = [threading.Thread(target=add) for _ in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            sent = emitted(mock_socketio, "display_item")
            assert len(sent) == 1
            assert queue.get_status()["current"]["id"] == sent[0]["id"]
            assert queue.get_status()["size"] == 3

    def test_completion_then_add_keeps_order(self, display_queue, mock_socketio):
        """Test that an add after the last completion displays the new item."""
        first = item()
        display_queue.add_item(first)
        display_queue.mark_complete(first.id)
        assert display_queue.get_status()["current"] is None

        second = item()
        display_queue.add_item(second)

        assert [p["id"] for p in emitted(mock_socketio, "display_item")] == [first.id, second.id]
