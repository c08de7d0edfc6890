"""
ChatRelay - Chat notification router.
Turns canonical chat and gift events into display queue items.
"""

import logging
import re
from typing import List, Optional

from chatrelay.models.events import ChatEvent, GiftEvent, ItemType, QueueItem
from chatrelay.services.normalizer import validate
from chatrelay.services.timestamps import parse_iso_ms

logger = logging.getLogger(__name__)

ZERO_WIDTH = re.compile("[\u200b-\u200d\ufeff]")
HTML_TAG = re.compile(r"<[^>]+>")
JAVASCRIPT_URL = re.compile(r"javascript:", re.IGNORECASE)
WHITESPACE = re.compile(r"\s+")

# Skip reasons
SKIP_MESSAGES_DISABLED = "messages disabled"
SKIP_EMPTY_MESSAGE = "empty message"
SKIP_EMPTY_AFTER_SANITIZATION = "empty after sanitization"
SKIP_OLD_MESSAGE = "old message"

GREETING_REQUIRED_FIELDS = ("commandKey", "filename", "mediaSource", "command")


def sanitize_chat_content(message) -> str:
    """
    Strip markup from a chat message for display.

    Zero-width characters are removed, tags are replaced by a space so
    "<b>hi</b>" keeps only its visible text, javascript: URLs are dropped
    and whitespace runs are collapsed. The result is never truncated.
    """
    if not isinstance(message, str):
        return ""
    text = ZERO_WIDTH.sub("", message)
    text = HTML_TAG.sub(" ", text)
    text = JAVASCRIPT_URL.sub("", text)
    return WHITESPACE.sub(" ", text).strip()


def command_token(message: str) -> str:
    """First whitespace-delimited word of a message."""
    parts = message.split()
    return parts[0] if parts else ""


class ChatNotificationRouter:
    """
    Routes canonical events to the display queue.

    Every collaborator is optional; a missing one disables its feature.
    For a single chat event, items are queued strictly in the order chat,
    greeting, command. Collaborator failures are logged and never raised.
    """

    def __init__(self, config, display_queue=None, vfx_command_service=None,
                 command_parser=None, cooldown_service=None, user_tracking=None,
                 lifecycle=None, monetization_detector=None, graceful_exit=None,
                 spam_detector=None):
        self.config = config
        self.display_queue = display_queue
        self.vfx_command_service = vfx_command_service
        self.command_parser = command_parser
        self.cooldown_service = cooldown_service
        self.user_tracking = user_tracking
        self.lifecycle = lifecycle
        self.monetization_detector = monetization_detector
        self.graceful_exit = graceful_exit
        self.spam_detector = spam_detector

        logger.info("Chat notification router initialized")

    # Chat

    def handle_chat_message(self, platform: str, event: ChatEvent) -> List[QueueItem]:
        """
        Route one chat event.

        Args:
            platform: Platform the event arrived on
            event: Normalized chat event

        Returns:
            The items that were queued, in queue order
        """
        queued: List[QueueItem] = []
        try:
            if self._graceful_exit_tripped():
                return queued

            if not self.config.messages_enabled(platform):
                self._log_skip(platform, event, SKIP_MESSAGES_DISABLED)
                return queued

            if not isinstance(event.message, str) or not event.message.strip():
                self._log_skip(platform, event, SKIP_EMPTY_MESSAGE)
                return queued

            message = sanitize_chat_content(event.message)
            if not message:
                self._log_skip(platform, event, SKIP_EMPTY_AFTER_SANITIZATION)
                return queued

            if self._is_old_message(platform, event.timestamp):
                self._log_skip(platform, event, SKIP_OLD_MESSAGE)
                return queued

            validation = validate(event)
            if not validation.is_valid:
                logger.warning(
                    f"Invalid normalized message from {platform}",
                    extra={"context": {"errors": validation.errors, "userId": event.user_id}},
                )

            self._log_chat(platform, event.username, message)

            chat_item = QueueItem(
                type=ItemType.CHAT,
                platform=platform,
                data=self._chat_data(event, message),
                priority=self.config.PRIORITY_CHAT,
                skip_chat_tts=self._is_monetized(platform, message),
            )
            self._enqueue(chat_item, queued)

            if self._is_first_message(platform, event) and self.config.greetings_enabled(platform):
                self._queue_greeting(platform, event, queued)

            command_config, token = self._detect_command(platform, message)
            if command_config:
                self._process_command(platform, event, command_config, token, queued)

        except Exception as e:
            logger.error(f"Error routing chat message from {platform}: {e}",
                         extra={"context": {"userId": getattr(event, "user_id", None)}})

        return queued

    def _graceful_exit_tripped(self) -> bool:
        if self.graceful_exit is None:
            return False
        try:
            if self.graceful_exit.is_enabled() and self.graceful_exit.increment_message_count():
                self.graceful_exit.trigger_exit()
                return True
        except Exception as e:
            logger.error(f"Graceful exit service failed: {e}")
        return False

    def _is_old_message(self, platform: str, timestamp) -> bool:
        if not self.config.FILTER_OLD_MESSAGES or self.lifecycle is None:
            return False
        connected_at = self.lifecycle.get_platform_connection_time(platform)
        if not connected_at:
            return False
        sent_at = parse_iso_ms(timestamp)
        if sent_at is None:
            return False
        return sent_at < connected_at

    def _is_monetized(self, platform: str, message: str) -> bool:
        if not self.config.TTS_DEDUPLICATION_ENABLED or self.monetization_detector is None:
            return False
        try:
            result = self.monetization_detector.detect_monetization(message, platform)
        except Exception as e:
            logger.error(f"Monetization detection failed for {platform} message: {e}")
            return False
        return bool(result and result.get("detected"))

    def _is_first_message(self, platform: str, event: ChatEvent) -> bool:
        if self.user_tracking is None:
            return False
        try:
            return bool(self.user_tracking.is_first_message(
                event.user_id, {"username": event.username, "platform": platform}
            ))
        except Exception as e:
            logger.error(f"User tracking failed for {event.user_id}: {e}")
            return False

    @staticmethod
    def _chat_data(event: ChatEvent, message: str) -> dict:
        data = dict(event.metadata)
        data.update({
            "userId": event.user_id,
            "username": event.username,
            "message": message,
            "timestamp": event.timestamp,
            "isMod": event.is_mod,
            "isSubscriber": event.is_subscriber,
            "isBroadcaster": event.is_broadcaster,
        })
        return data

    # Greetings

    def _queue_greeting(self, platform: str, event: ChatEvent, queued: List[QueueItem]):
        item = QueueItem(
            type=ItemType.GREETING,
            platform=platform,
            data={"userId": event.user_id, "username": event.username},
            priority=self.config.PRIORITY_GREETING,
            vfx_config=self._resolve_greeting_vfx(),
        )
        self._enqueue(item, queued)

    def _resolve_greeting_vfx(self) -> Optional[dict]:
        if self.vfx_command_service is None:
            return None
        try:
            result = self.vfx_command_service.get_vfx_config("greetings", None)
            if not result:
                return None
            missing = [name for name in GREETING_REQUIRED_FIELDS if not result.get(name)]
            if missing:
                raise ValueError(f"Greeting VFX config missing {', '.join(missing)}")
            return {**result, "triggerWord": result["command"]}
        except Exception as e:
            logger.error(f"Error getting greeting VFX config: {e}")
            return None

    # Commands

    def _detect_command(self, platform: str, message: str):
        token = command_token(message)
        if not token:
            return None, token
        try:
            if self.vfx_command_service is not None:
                return self.vfx_command_service.select_vfx_command(token, message), token
            if self.command_parser is not None:
                return self.command_parser.get_vfx_config(token, message), token
        except Exception as e:
            logger.error(f"Command lookup failed for {platform} token {token}: {e}")
        return None, token

    def _process_command(self, platform: str, event: ChatEvent, command_config: dict,
                         token: str, queued: List[QueueItem]):
        if self.cooldown_service is None:
            logger.warning("Cooldown service not available; cannot process command")
            return

        command = command_config.get("command") or token
        cooldowns = self.config.cooldown_settings(platform)

        try:
            if not self.cooldown_service.check_user_cooldown(
                event.user_id, cooldowns["per_user"], cooldowns["heavy"]
            ):
                logger.warning(f"{event.username} tried to use {command} but is on per-user cooldown")
                return

            if not self.cooldown_service.check_global_cooldown(command, cooldowns["global"]):
                logger.warning(f"{event.username} tried to use {command} but is on global cooldown")
                return

            self.cooldown_service.update_user_cooldown(event.user_id)
            self.cooldown_service.update_global_cooldown(command)
        except Exception as e:
            logger.error(f"Cooldown check failed for {event.username} using {command}: {e}")
            return

        display_command = command if command.startswith("!") else f"!{command}"
        item = QueueItem(
            type=ItemType.COMMAND,
            platform=platform,
            data={
                "userId": event.user_id,
                "username": event.username,
                "command": display_command,
                "commandName": display_command.lstrip("!"),
            },
            priority=self.config.PRIORITY_COMMAND,
            vfx_config={**command_config, "command": command, "triggerWord": token},
        )
        self._enqueue(item, queued)

    # Gifts

    def handle_gift(self, gift: GiftEvent, skip_spam_detection: bool = False) -> List[QueueItem]:
        """Queue a gift unless the spam detector folds it into an aggregate."""
        queued: List[QueueItem] = []
        try:
            if self.spam_detector is not None and not skip_spam_detection:
                decision = self.spam_detector.handle(
                    gift.user_id, gift.username, gift.unit_amount,
                    gift.gift_type, gift.gift_count, gift.platform,
                )
                if not decision.should_show:
                    logger.debug(f"Gift from {gift.username} suppressed for aggregation")
                    return queued

            logger.info(f"[{gift.platform}] {gift.username} sent {gift.gift_count}x {gift.gift_type}")
            item = QueueItem(
                type=ItemType.GIFT,
                platform=gift.platform,
                data=gift.to_dict(),
                priority=self.config.PRIORITY_GIFT,
            )
            self._enqueue(item, queued)
        except Exception as e:
            logger.error(f"Error routing gift from {gift.platform}: {e}")
        return queued

    def handle_aggregated_donation(self, payload) -> Optional[QueueItem]:
        """Spam detector flush callback: queue one summary gift item."""
        data = payload.to_dict()
        data["aggregated"] = True
        item = QueueItem(
            type=ItemType.GIFT,
            platform=payload.platform,
            data=data,
            priority=self.config.PRIORITY_GIFT,
        )
        queued: List[QueueItem] = []
        self._enqueue(item, queued)
        return queued[0] if queued else None

    # Helpers

    def _enqueue(self, item: QueueItem, queued: List[QueueItem]) -> bool:
        if self.display_queue is None:
            return False
        try:
            if self.display_queue.add_item(item) is False:
                logger.warning(f"Display queue rejected {item.type.value} item from {item.platform}")
                return False
        except Exception as e:
            logger.error(f"Failed to queue {item.type.value} item from {item.platform}: {e}")
            return False
        queued.append(item)
        return True

    def _log_chat(self, platform: str, username: str, message: str):
        limit = self.config.MAX_MESSAGE_LENGTH
        shown = message if len(message) <= limit else message[:limit] + "..."
        logger.info(f"[{platform}] {username}: {shown}")

    @staticmethod
    def _log_skip(platform: str, event: ChatEvent, reason: str):
        logger.debug(
            f"Skipped {platform} message from {getattr(event, 'username', None)}: {reason}",
            extra={"context": {"platform": platform, "userId": getattr(event, "user_id", None), "reason": reason}},
        )
