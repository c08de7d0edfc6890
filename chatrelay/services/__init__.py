"""
ChatRelay - Services package.
Initialize and manage all application services.
"""

import logging
import os
import signal
from typing import Optional
from flask import Flask
from flask_socketio import SocketIO

logger = logging.getLogger(__name__)

# Service instances (initialized on app startup)
_display_queue = None
_router = None
_ingestor = None
_spam_detector = None
_lifecycle = None
_graceful_exit = None


def get_display_queue():
    """Get the display queue instance."""
    return _display_queue


def get_router():
    """Get the chat notification router instance."""
    return _router


def get_ingestor():
    """Get the event ingestor instance."""
    return _ingestor


def get_spam_detector():
    """Get the donation spam detector instance."""
    return _spam_detector


def get_lifecycle_service():
    """Get the platform lifecycle service instance."""
    return _lifecycle


def get_graceful_exit_service():
    """Get the graceful exit service instance."""
    return _graceful_exit


def _request_shutdown():
    """Stop background services and ask the server process to exit."""
    stop_services()
    os.kill(os.getpid(), signal.SIGTERM)


def init_services(app: Flask, socketio: Optional[SocketIO], auto_cleanup: bool = True):
    """Initialize all application services."""
    global _display_queue, _router, _ingestor, _spam_detector, _lifecycle, _graceful_exit

    config = app.chatrelay_config

    from chatrelay.services.queue import DisplayQueue
    _display_queue = DisplayQueue(config, socketio)

    from chatrelay.services.commands import CommandParser, VFXCommandService
    command_parser = CommandParser.from_config(config)
    vfx_command_service = VFXCommandService(command_parser)
    logger.info("Command services initialized")

    from chatrelay.services.cooldowns import CommandCooldownService
    from chatrelay.services.users import UserTrackingService
    from chatrelay.services.lifecycle import GracefulExitService, PlatformLifecycleService
    from chatrelay.services.monetization import MonetizationDetector
    _lifecycle = PlatformLifecycleService()
    _graceful_exit = GracefulExitService(config.EXIT_AFTER_MESSAGES, on_exit=_request_shutdown)

    from chatrelay.services.router import ChatNotificationRouter
    _router = ChatNotificationRouter(
        config,
        display_queue=_display_queue,
        vfx_command_service=vfx_command_service,
        command_parser=command_parser,
        cooldown_service=CommandCooldownService(config),
        user_tracking=UserTrackingService(),
        lifecycle=_lifecycle,
        monetization_detector=MonetizationDetector(),
        graceful_exit=_graceful_exit,
    )

    from chatrelay.services.spam import DonationSpamDetector, SpamDetectionConfig
    _spam_detector = DonationSpamDetector(
        SpamDetectionConfig.from_dict(config.SPAM_DETECTION),
        on_aggregated_donation=_router.handle_aggregated_donation,
        auto_cleanup=auto_cleanup,
    )
    _router.spam_detector = _spam_detector

    from chatrelay.services.ingest import EventIngestor
    from chatrelay.services.normalizer import MessageNormalizer
    _ingestor = EventIngestor(MessageNormalizer(), _router)
    logger.info("Event ingestion initialized")

    # Store services in app context
    app.display_queue = _display_queue
    app.router = _router
    app.ingestor = _ingestor
    app.spam_detector = _spam_detector
    app.lifecycle_service = _lifecycle
    app.graceful_exit_service = _graceful_exit


def start_services(app: Flask):
    """Log the effective pipeline settings before the server starts."""
    config = app.chatrelay_config
    enabled = [p for p in ("twitch", "youtube", "tiktok") if config.messages_enabled(p)]
    logger.info(f"Chat enabled for: {', '.join(enabled) or 'none'}")
    if _graceful_exit and _graceful_exit.is_enabled():
        logger.info(f"Will exit after {config.EXIT_AFTER_MESSAGES} messages")


def stop_services():
    """Stop all background services."""
    if _spam_detector:
        _spam_detector.destroy()

    logger.info("All services stopped")
