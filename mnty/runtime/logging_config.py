# mnty/runtime/logging_config.py
"""
Logging setup for the ``mnty`` logger tree.

Every module logs through ``logging.getLogger(__name__)``; switching the
``mnty`` parent logger off silences all of them at once.
"""
from __future__ import annotations

import logging
import sys
from typing import IO, Optional, Sequence

__all__: Sequence[str] = ('LOGGER_NAME', 'LOG_FORMAT', 'DATE_FORMAT', 'configure_logging', 'set_logging_enabled', 'is_logging_enabled')

LOGGER_NAME = 'mnty'
LOG_FORMAT = '[%(levelname)s] %(asctime)s %(name)s - %(message)s'
DATE_FORMAT = '%H:%M:%S'
_DISABLED_LEVEL = logging.CRITICAL + 1

_enabled_level = logging.NOTSET
_handler: Optional[logging.Handler] = None


def configure_logging(level: int = logging.DEBUG, stream: Optional[IO[str]] = None) -> logging.Logger:
    """Attach a console handler to the ``mnty`` logger (once) and set its level."""
    global _handler, _enabled_level
    root = logging.getLogger(LOGGER_NAME)
    if _handler is None:
        _handler = logging.StreamHandler(stream or sys.stderr)
        _handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(_handler)
        root.propagate = False
    _enabled_level = level
    if root.level != _DISABLED_LEVEL:
        root.setLevel(level)
    return root


def set_logging_enabled(enabled: bool) -> None:
    root = logging.getLogger(LOGGER_NAME)
    root.setLevel(_enabled_level if enabled else _DISABLED_LEVEL)
    root.debug('Logging %s', 'enabled' if enabled else 'disabled')


def is_logging_enabled() -> bool:
    return logging.getLogger(LOGGER_NAME).level != _DISABLED_LEVEL
