"""
Structured logging for the question compiler.

All compiler loggers live under the ``src`` namespace.  A single stdout
handler is attached to that namespace root; module loggers propagate to it,
so the format and level are configured in one place.
"""
from __future__ import annotations

import logging
import sys

from src.core.config import get_settings

_ROOT_LOGGER = "src"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def _configure_root() -> logging.Logger:
    root = logging.getLogger(_ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
        root.addHandler(handler)
    level = get_settings().log_level.upper()
    root.setLevel(getattr(logging, level, logging.INFO))
    return root


def get_logger(name: str) -> logging.Logger:
    """Return a logger under the compiler namespace (``src.*``)."""
    root = _configure_root()
    if name == _ROOT_LOGGER or name.startswith(_ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return root.getChild(name)
