"""
ChatRelay - Tests for event models.
"""

from chatrelay.models.events import ChatEvent, GiftEvent, ItemType, Platform, QueueItem


class TestPlatform:
    """Tests for Platform."""

    def test_values(self):
        """Test the accepted platform tags."""
        assert Platform.values() == ["twitch", "twitch-eventsub", "youtube", "tiktok", "tiktok-gift"]

    def test_str_enum(self):
        """Test that members compare equal to their tags."""
        assert Platform.TIKTOK_GIFT == "tiktok-gift"


class TestChatEvent:
    """Tests for ChatEvent."""

    def test_to_dict(self):
        """Test the camelCase shape without raw data."""
        event = ChatEvent(
            platform="twitch",
            user_id="42",
            username="Viewer",
            message="hi",
            timestamp="2023-11-14T22:13:20.000Z",
            is_mod=True,
            metadata={"color": "#FFF"},
            raw_data={"secret": True},
        )

        data = event.to_dict()

        assert data["userId"] == "42"
        assert data["isMod"] is True
        assert data["isSubscriber"] is False
        assert data["metadata"] == {"color": "#FFF"}
        assert "rawData" not in data

    def test_raw_data_ignored_in_equality(self):
        """Test that raw payloads do not affect comparison."""
        first = ChatEvent("tiktok", "u", "U", "m", "2023-11-14T22:13:20.000Z", raw_data={"a": 1})
        second = ChatEvent("tiktok", "u", "U", "m", "2023-11-14T22:13:20.000Z", raw_data={"b": 2})

        assert first == second


class TestGiftEvent:
    """Tests for GiftEvent."""

    def test_to_dict_includes_metadata(self):
        """Test that metadata is spread into the payload."""
        gift = GiftEvent("tiktok", "u", "U", 1, "Rose", 3, metadata={"groupId": "g1"})

        data = gift.to_dict()

        assert data["giftType"] == "Rose"
        assert data["giftCount"] == 3
        assert data["groupId"] == "g1"


class TestQueueItem:
    """Tests for QueueItem."""

    def test_chat_item_carries_skip_flag(self):
        """Test that chat items report skipChatTTS."""
        item = QueueItem(type=ItemType.CHAT, platform="twitch", skip_chat_tts=True)

        data = item.to_dict()

        assert data["type"] == "chat"
        assert data["skipChatTTS"] is True
        assert "vfxConfig" not in data

    def test_command_item_carries_vfx(self):
        """Test that VFX config is included when set."""
        item = QueueItem(type=ItemType.COMMAND, platform="twitch",
                         vfx_config={"commandKey": "hello", "triggerWord": "!hi"})

        data = item.to_dict()

        assert data["vfxConfig"]["triggerWord"] == "!hi"
        assert "skipChatTTS" not in data

    def test_unique_ids(self):
        """Test that each item gets its own id."""
        assert QueueItem(ItemType.GIFT, "tiktok").id != QueueItem(ItemType.GIFT, "tiktok").id
