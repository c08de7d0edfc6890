"""
ChatRelay - Application entry point.
"""

import logging
from chatrelay import create_app, socketio

logger = logging.getLogger(__name__)


def main():
    """Main entry point for ChatRelay."""
    app = create_app()
    config = app.chatrelay_config

    logger.info(f"Starting ChatRelay on {config.WEB_HOST}:{config.WEB_PORT}")

    from chatrelay.services import start_services, stop_services
    start_services(app)

    try:
        # Run the Flask-SocketIO server
        socketio.run(
            app,
            host=config.WEB_HOST,
            port=config.WEB_PORT,
            debug=config.WEB_DEBUG,
            use_reloader=False  # Disable reloader in production
        )
    finally:
        stop_services()


if __name__ == "__main__":
    main()
