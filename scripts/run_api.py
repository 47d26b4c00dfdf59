from __future__ import annotations

"""Entry point for the channel feed HTTP API."""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

import uvicorn

from channel_feed.config.logging_config import get_logger, setup_logging
from channel_feed.config.settings import get_settings
from channel_feed.presentation.api import create_app

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the channel feed API")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument(
        "--port",
        type=int,
        default=3000,
        help="Port to listen on",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = get_settings()
    json_logs = args.json_logs or settings.json_logs
    setup_logging(log_level=settings.log_level, json_logs=json_logs)
    logger.info("logging_initialized", level=settings.log_level, json_logs=json_logs)

    app = create_app(settings)
    logger.info("api_server_starting", host=args.host, port=args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
