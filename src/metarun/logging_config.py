"""
Logging setup for metarun.

metarun modules log through `logging.getLogger(__name__)` under the
"metarun" logger and never configure handlers themselves. Applications
(the `run` CLI included) call setup_logging() once.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

LOGGER_NAME = "metarun"

FORMATS = {
    "simple": "%(levelname)s: %(message)s",
    "standard": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    "detailed": "%(asctime)s [%(levelname)s] %(name)s (%(filename)s:%(lineno)d): %(message)s",
}

_HANDLER_ATTR = "_metarun_handler"


def get_log_file_path() -> Path:
    """Location of the metarun log file ($XDG_CACHE_HOME/metarun/metarun.log)."""
    cache = os.environ.get("XDG_CACHE_HOME") or os.path.expanduser("~/.cache")
    return Path(cache) / "metarun" / "metarun.log"


def _remove_own_handlers(logger: logging.Logger) -> None:
    for handler in list(logger.handlers):
        if getattr(handler, _HANDLER_ATTR, False):
            logger.removeHandler(handler)
            handler.close()


def setup_logging(
    level: str | int = "INFO",
    *,
    console: bool = True,
    file: bool = False,
    format: str = "simple",
    format_string: str | None = None,
    propagate: bool = True,
) -> logging.Logger:
    """
    Configure the "metarun" logger.

    Calling it again replaces the handlers it installed before.

    Args:
        level: Level name or number
        console: Log to stderr
        file: Also log to get_log_file_path()
        format: One of "simple", "standard", "detailed"
        format_string: Explicit logging format, overrides `format`
        propagate: Whether records also reach the root logger
    """
    logger = logging.getLogger(LOGGER_NAME)
    _remove_own_handlers(logger)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    logger.setLevel(level)
    logger.propagate = propagate

    formatter = logging.Formatter(format_string or FORMATS.get(format, FORMATS["simple"]))

    handlers: list[logging.Handler] = []
    if console:
        handlers.append(logging.StreamHandler())
    if file:
        log_path = get_log_file_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        setattr(handler, _HANDLER_ATTR, True)
        logger.addHandler(handler)

    logger.debug(f"Logging configured (level={logging.getLevelName(level)}, console={console}, file={file})")
    return logger


def disable_logging() -> None:
    """Silence metarun logging entirely (useful in tests)."""
    logger = logging.getLogger(LOGGER_NAME)
    _remove_own_handlers(logger)
    handler = logging.NullHandler()
    setattr(handler, _HANDLER_ATTR, True)
    logger.addHandler(handler)
    logger.propagate = False
    logger.setLevel(logging.CRITICAL + 1)
