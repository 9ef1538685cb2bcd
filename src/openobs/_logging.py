"""Package logger setup.

Modules log through ``logging.getLogger(__name__)``; everything lands under
the ``openobs`` logger, which ``configure_logging`` points at stderr so
command output on stdout stays machine-readable.

``OPENOBS_LOG_LEVEL`` takes a level name (``debug``, ``WARNING``) or a
number (``10``).
"""

from __future__ import annotations

import logging
import os
import sys

PACKAGE_LOGGER = "openobs"
LOG_LEVEL_ENV = "OPENOBS_LOG_LEVEL"
DEFAULT_LEVEL = logging.INFO
LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"


def resolve_level(value: str | int | None) -> int:
    """Numeric level for a name or number; unknown values give the default."""
    if value is None or value == "":
        return DEFAULT_LEVEL
    if isinstance(value, int):
        return value
    text = value.strip()
    if text.isdigit():
        return int(text)
    level = logging.getLevelName(text.upper())
    return level if isinstance(level, int) else DEFAULT_LEVEL


def configure_logging(level: str | int | None = None) -> logging.Logger:
    """Attach the stderr handler to the package logger, once.

    An explicit ``level`` wins over ``OPENOBS_LOG_LEVEL``. Later calls leave
    an already configured logger untouched.
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    if logger.handlers:
        return logger

    resolved = resolve_level(level if level is not None else os.environ.get(LOG_LEVEL_ENV))
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))

    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False
    return logger
