"""
Run the Taskboard API under uvicorn.
"""

from __future__ import annotations

import argparse
import logging
import sys

import uvicorn

from taskboard.app import create_app
from taskboard.config import get_settings
from taskboard.errors import ConfigurationError

logger = logging.getLogger(__name__)


def main() -> int:
    settings = get_settings()

    parser = argparse.ArgumentParser(description="Taskboard API server")
    parser.add_argument(
        "--host",
        type=str,
        default=settings.host,
        help="Interface to bind",
    )
    parser.add_argument(
        "-p",
        "--port",
        type=int,
        default=settings.port,
        help="Port to listen on",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=settings.log_level,
        help="Root log level (DEBUG, INFO, WARNING, ...)",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )

    try:
        app = create_app(settings)
    except ConfigurationError as exc:
        logger.critical("%s", exc)
        return 1

    logger.info("Server running on port %d", args.port)
    uvicorn.run(app, host=args.host, port=args.port, log_config=None)
    return 0


if __name__ == "__main__":
    sys.exit(main())
