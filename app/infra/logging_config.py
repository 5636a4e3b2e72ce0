"""Logging setup shared by the API process and background tasks."""

from __future__ import annotations

import logging
from typing import Optional

from app.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
ROOT_LOGGER_NAME = "report_enhancer"

_configured = False


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the root handler once; later calls only adjust the level."""
    global _configured
    resolved = (level or get_settings().log_level or "INFO").upper()
    if not _configured:
        logging.basicConfig(level=resolved, format=LOG_FORMAT)
        _configured = True
    logging.getLogger(ROOT_LOGGER_NAME).setLevel(resolved)


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a logger under the service namespace."""
    if not name:
        return logging.getLogger(ROOT_LOGGER_NAME)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
