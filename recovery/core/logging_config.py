"""
Logging Configuration

Stdout logging for the service, configured once at startup.
"""

import logging
import sys

from recovery.core.config import settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(level: str | None = None) -> None:
    """
    Configure root logging.

    Args:
        level: Log level name; defaults to settings.LOG_LEVEL.
    """
    logging.basicConfig(
        stream=sys.stdout,
        level=(level or settings.LOG_LEVEL).upper(),
        format=LOG_FORMAT,
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
