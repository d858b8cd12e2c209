"""Centralized structured logging for the ``btc_ledger`` package.

Two public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger and set its level. Called once by the host application.
- ``get_logger(name)``: return a structlog logger bound to ``name``. When the
  host never configured logging, the package logger gets a ``NullHandler`` so
  library use stays silent.

Library modules never attach their own handlers.
"""

import logging
import os
import sys
from typing import IO, Optional, Union

import structlog


_PKG_LOGGER_NAME = "btc_ledger"
_STRUCTLOG_CONFIGURED = False
_HANDLER_CONFIGURED = False


def _parse_level(level: Optional[Union[int, str]]) -> int:
    if level is None:
        level = os.getenv("LEDGER_LOG_LEVEL")
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    return logging.INFO


def _configure_structlog() -> None:
    global _STRUCTLOG_CONFIGURED
    if _STRUCTLOG_CONFIGURED:
        return

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            structlog.processors.JSONRenderer(default=str),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _STRUCTLOG_CONFIGURED = True


def configure_logging(
    level: Optional[Union[int, str]] = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """
    Configure the package root logger exactly once.

    Args:
        level: Level as int or name. Defaults to ``LEDGER_LOG_LEVEL`` or INFO.
        stream: Output stream for the handler.
    """
    global _HANDLER_CONFIGURED
    _configure_structlog()
    if _HANDLER_CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for handler in list(logger.handlers):
        if isinstance(handler, logging.NullHandler):
            logger.removeHandler(handler)

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.setLevel(_parse_level(level))
    logger.propagate = False

    _HANDLER_CONFIGURED = True


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger for ``name`` with library-safe defaults."""
    _configure_structlog()
    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _HANDLER_CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return structlog.get_logger(name)
