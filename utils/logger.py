"""
Shared logger utility for the reservation core.
Service, cleanup and recalculation modules log through here; level comes
from ``RESERVATION_LOG_LEVEL`` unless given explicitly.
"""

import logging
import os

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _level_from_env() -> int:
    level = logging.getLevelName(os.getenv("RESERVATION_LOG_LEVEL", "INFO").upper())
    return level if isinstance(level, int) else logging.INFO


def get_logger(name: str | None = None, level: int | None = None) -> logging.Logger:
    """
    Returns a logger with a single stream handler in the standard format.
    Repeated calls reuse the handler but reapply the level.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(_level_from_env() if level is None else level)
    return logger
