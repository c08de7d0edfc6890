"""
ChatRelay - Live-stream chat relay
Flask application factory and initialization.
"""

import logging
import os
from flask import Flask
from flask_socketio import SocketIO

# Global SocketIO instance
socketio = SocketIO()

# Third-party loggers that are chatty at INFO
QUIET_LOGGERS = ("engineio.server", "socketio.server", "werkzeug", "geventwebsocket.handler")


def create_app(config=None, auto_cleanup: bool = True):
    """
    Build the relay application.

    Args:
        config: Config instance; loaded from SETTINGS.py when omitted
        auto_cleanup: Run the spam detector's periodic sweep thread
    """
    if config is None:
        from chatrelay.config import Config
        config = Config()

    setup_logging(config)

    app = Flask(__name__)
    app.config['SECRET_KEY'] = os.urandom(32).hex()
    app.config['DEBUG'] = config.WEB_DEBUG
    app.chatrelay_config = config

    socketio.init_app(
        app,
        cors_allowed_origins="*",
        async_mode='gevent',
        ping_interval=config.WEBSOCKET_PING_INTERVAL,
        ping_timeout=config.WEBSOCKET_PING_TIMEOUT
    )

    from chatrelay.services import init_services
    init_services(app, socketio, auto_cleanup=auto_cleanup)

    from chatrelay.routes import api_bp, webhooks_bp
    app.register_blueprint(webhooks_bp)
    app.register_blueprint(api_bp)

    from chatrelay.routes.websocket import register_handlers
    register_handlers(socketio)

    app.logger.info(
        f"ChatRelay initialized (queue max {config.QUEUE_MAX_SIZE}, "
        f"{len(config.COMMANDS)} commands)"
    )
    return app


def setup_logging(config):
    """Configure root logging from LOG_LEVEL, LOG_FORMAT and LOG_FILE."""
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(level=log_level, format=config.LOG_FORMAT)

    root = logging.getLogger()
    if config.LOG_FILE:
        log_path = os.path.abspath(config.LOG_FILE)
        already = any(
            isinstance(h, logging.FileHandler) and h.baseFilename == log_path
            for h in root.handlers
        )
        if not already:
            file_handler = logging.FileHandler(log_path)
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(config.LOG_FORMAT))
            root.addHandler(file_handler)

    if log_level > logging.DEBUG:
        for name in QUIET_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
