"""Process-wide logging setup shared by every rentalops module."""

from __future__ import annotations

import logging
import sys
from threading import Lock
from typing import Optional

from rentalops.utils.config import get_settings


LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

_configure_lock = Lock()
_configured_level: Optional[str] = None


def _resolve_level(level: Optional[str]) -> str:
    resolved = (level or get_settings().log_level).upper()
    if not isinstance(logging.getLevelName(resolved), int):
        raise ValueError(f"Unknown log level: {resolved}")
    return resolved


def configure_logging(level: Optional[str] = None) -> str:
    """Install the stdout handler on first use and return the active level.

    Later calls are no-ops, so the first module to ask for a logger decides
    the level (RENTALOPS_LOG_LEVEL unless overridden).
    """
    global _configured_level
    with _configure_lock:
        if _configured_level is not None:
            return _configured_level
        resolved = _resolve_level(level)
        logging.basicConfig(level=resolved, format=LOG_FORMAT, stream=sys.stdout)
        _configured_level = resolved
        return resolved


def get_logger(name: str) -> logging.Logger:
    configure_logging()
    return logging.getLogger(name)
