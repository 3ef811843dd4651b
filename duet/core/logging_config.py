# File: duet/core/logging_config.py

"""
Logging setup for the Duet API.

Call ``configure_logging()`` once from ``duet.main.create_application``;
everything else just does ``logging.getLogger(__name__)``.
"""

import logging
from typing import Optional

DEFAULT_LOGGER_NAME = "duet"
LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def _parse_level(value: Optional[str]) -> int:
    if not value:
        return logging.INFO
    level = getattr(logging, value.strip().upper(), None)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> logging.Logger:
    global _configured

    logger = logging.getLogger(DEFAULT_LOGGER_NAME)
    if _configured and not force:
        return logger

    logger.setLevel(_parse_level(level))
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    _configured = True
    return logger
