"""Main application entry point.

Runs the relay API with uvicorn (default port 3001).
Environment variables are loaded from .env file.
"""

import logging
import sys

from dotenv import load_dotenv

# Load environment variables before any other imports that might need them
load_dotenv()

from chat_relay.relay.config import get_relay_config  # noqa: E402

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


def main() -> None:
    """Application entry point.

    Builds the configuration once and serves the relay on HOST:PORT.
    """
    import uvicorn

    from chat_relay.api.app import create_app

    config = get_relay_config()
    configure_logging(config.log_level)

    app = create_app(config)

    logger.info(f"AI Chat API server running on http://{config.host}:{config.port}")
    logger.info(f"API docs available at http://{config.host}:{config.port}/docs")

    uvicorn.run(
        app,
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )


if __name__ == "__main__":
    main()
