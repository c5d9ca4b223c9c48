"""Logging setup shared by the command line parsers."""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(message)s"
# Playwright's asyncio transport is chatty at DEBUG.
QUIET_LOGGERS = ("asyncio",)


def resolve_level(name: str | int | None) -> int:
    """Map a level name such as ``"debug"`` to its ``logging`` constant."""

    if isinstance(name, int):
        return name
    level = getattr(logging, str(name or "INFO").upper(), None)
    return level if isinstance(level, int) else logging.INFO


def configure_logging(level: str | int | None, log_path: Path | None = None) -> int:
    """Send parser logs to STDOUT and, when ``log_path`` is set, a rotating file.

    ``level`` accepts either a ``logging`` constant or the ``--log-level``
    string; unknown names fall back to INFO.  Returns the level applied.
    """

    resolved = resolve_level(level)
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    if log_path is not None:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_path,
                maxBytes=1_000_000,
                backupCount=3,
                encoding="utf-8",
            )
        )

    logging.basicConfig(
        level=resolved,
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(resolved, logging.INFO))
    return resolved
