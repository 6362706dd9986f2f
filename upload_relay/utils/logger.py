"""
Logging configuration for the upload relay service.

Lambda captures stderr into CloudWatch, so a single console handler is all the
service needs.
"""

import os
import logging
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(levelname)s - %(message)s"


def setup_logger(service_name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Set up a console logger for the service.

    Args:
        service_name: Logger name
        level: Level name; defaults to the LOG_LEVEL env var, then INFO.
            Unknown names fall back to INFO.

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(service_name)

    # Warm Lambda containers reuse the logger; don't stack handlers
    logger.handlers.clear()

    level_name = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    log_level = logging.getLevelName(level_name)
    if not isinstance(log_level, int):
        log_level = logging.INFO

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(handler)
    logger.setLevel(log_level)
    logger.propagate = False

    return logger
