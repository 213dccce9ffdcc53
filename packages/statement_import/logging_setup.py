"""Centralized logging configuration for the ``statement_import`` package.

- ``configure_logging(...)`` attaches a single ``StreamHandler`` to the package
  root logger (``"statement_import"``). Entrypoints (the CLI or a host
  application) call it once at startup.
- ``get_logger(name)`` returns a logger and makes sure the package root logger
  carries a ``NullHandler`` until logging has been configured.

Pipeline modules never attach handlers of their own; they call
``get_logger(__name__)`` and rely on the host configuration.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "statement_import"
_LEVEL_ENV_VAR = "STATEMENT_IMPORT_LOG_LEVEL"
_FORMAT_ENV_VAR = "STATEMENT_IMPORT_LOG_FORMAT"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
_CONFIGURED = False


def _level_from_name(name: str) -> int | None:
    # Numeric strings or level names (INFO/DEBUG/etc.).
    s = name.strip().upper()
    if s.isdigit():
        return int(s)
    numeric = getattr(logging, s, None)
    return numeric if isinstance(numeric, int) else None


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        parsed = _level_from_name(level)
        if parsed is not None:
            return parsed
    env_val = os.getenv(_LEVEL_ENV_VAR)
    if env_val:
        parsed = _level_from_name(env_val)
        if parsed is not None:
            return parsed
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level name. When ``None`` the
        ``STATEMENT_IMPORT_LOG_LEVEL`` environment variable is used, falling
        back to ``logging.INFO``.
    fmt:
        Optional format string. When ``None`` the
        ``STATEMENT_IMPORT_LOG_FORMAT`` environment variable is used, falling
        back to ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the handler (``sys.stderr`` by default).
    """

    global _CONFIGURED
    if _CONFIGURED:
        return

    logger = logging.getLogger(_PKG_LOGGER_NAME)

    # Drop NullHandlers installed by get_logger() before configuration.
    for h in list(logger.handlers):
        if isinstance(h, logging.NullHandler):
            logger.removeHandler(h)

    resolved = _parse_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or os.getenv(_FORMAT_ENV_VAR) or _DEFAULT_FORMAT))

    logger.setLevel(resolved)
    logger.addHandler(handler)
    logger.propagate = False

    _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name with library-safe defaults."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
