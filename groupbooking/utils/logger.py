"""Pipe-delimited logging for the booking engine."""

from __future__ import annotations

import logging
import sys
from typing import Optional

from groupbooking.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
PACKAGE_LOGGER = "groupbooking"

_configured_level: Optional[str] = None


def configure_logging(level: Optional[str] = None) -> None:
    """Attach one stdout handler to the package logger.

    Calling again with a different level only changes the level; the handler
    is never duplicated. Records still propagate to the root logger.
    """

    global _configured_level
    resolved_level = (level or get_settings().log_level).upper()
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    if _configured_level is None:
        handler = logging.StreamHandler(stream=sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        package_logger.addHandler(handler)
    if resolved_level != _configured_level:
        package_logger.setLevel(resolved_level)
        _configured_level = resolved_level


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the package namespace.

    Modules outside the package (``app``, scripts) are nested under it so they
    share the handler.
    """
    if _configured_level is None:
        configure_logging()
    if name != PACKAGE_LOGGER and not name.startswith(PACKAGE_LOGGER + "."):
        name = f"{PACKAGE_LOGGER}.{name}"
    return logging.getLogger(name)
