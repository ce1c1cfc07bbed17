"""Logging for the ``budget_tracker`` package.

Modules log through ``get_logger("budget_tracker.<module>")`` and never attach
handlers of their own; until the host application calls
:func:`configure_logging` the package logger only carries a ``NullHandler``
and stays silent.

Messages follow an ``operation:event key=value`` shape
(``generate_rules:batch_done batch=2/3 proposed=8 accepted=7``) so they can
be grepped without a structured-logging backend.

Environment:

- ``BUDGET_TRACKER_LOG_LEVEL``: level name or number used when
  ``configure_logging`` is called without an explicit level.
- ``BUDGET_TRACKER_LOG_FORMAT``: overrides :data:`DEFAULT_FORMAT`.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PACKAGE_LOGGER = "budget_tracker"
DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"

_LEVEL_ENV = "BUDGET_TRACKER_LOG_LEVEL"
_FORMAT_ENV = "BUDGET_TRACKER_LOG_FORMAT"

_handler: logging.Handler | None = None


def resolve_level(level: int | str | None = None) -> int:
    """Map an int, a level name or a numeric string to a logging level.

    ``None`` consults ``BUDGET_TRACKER_LOG_LEVEL``; unknown names fall back to
    ``INFO``.
    """

    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    mapped = logging.getLevelNamesMapping().get(name)
    return mapped if mapped is not None else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> logging.Handler:
    """Attach the package's single stream handler (idempotent).

    A second call only adjusts the level of the existing handler, so the CLI
    callback can run once per invocation without duplicating output.
    ``stream`` defaults to the ``sys.stderr`` current at call time.
    """

    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    resolved = resolve_level(level)

    if _handler is None:
        for h in list(logger.handlers):
            if isinstance(h, logging.NullHandler):
                logger.removeHandler(h)
        _handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
        _handler.setFormatter(
            logging.Formatter(fmt or os.getenv(_FORMAT_ENV) or DEFAULT_FORMAT)
        )
        logger.addHandler(_handler)
        # Root handlers would print every record a second time.
        logger.propagate = False

    _handler.setLevel(resolved)
    logger.setLevel(resolved)
    return _handler


def reset_logging() -> None:
    """Detach the configured handler and restore the silent library default."""

    global _handler
    logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        logger.removeHandler(_handler)
        _handler = None
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


def get_logger(name: str) -> logging.Logger:
    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is None and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "PACKAGE_LOGGER",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "resolve_level",
]
