"""
Logging setup for the API and the background sweep.

A single stdout handler is installed on the root logger; the level comes
from LOG_LEVEL unless passed explicitly.
"""

import logging
import sys
from typing import Optional

from lms.core.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level name. Falls back to LOG_LEVEL from settings.

    Calling it twice replaces the handler instead of stacking a second one.
    """
    settings = get_settings()
    log_level = (level or settings.LOG_LEVEL).upper()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logging.getLogger(__name__).info(f"Logging configured at level {log_level}")


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module (usually called with __name__)."""
    return logging.getLogger(name)
