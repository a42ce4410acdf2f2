"""
Run the FastData sandbox API.

Usage:
    python -m playground
    PLAYGROUND_PORT=3002 python -m playground
"""

import logging
import sys

import uvicorn
from pydantic import ValidationError

from .app import create_app
from .config import Settings


def setup_logging(settings: Settings) -> None:
    """Configure root logging for the sandbox process.

    Args:
        settings: Sandbox settings
    """
    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]

    # Reduce noise from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def main() -> None:
    """Main entry point."""
    try:
        settings = Settings()
    except ValidationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(settings)

    app = create_app(settings=settings)
    logging.getLogger(__name__).info(f"FastData sandbox listening on {settings.host}:{settings.port}")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
