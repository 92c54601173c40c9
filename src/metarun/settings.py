# metarun/settings.py
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, BinaryIO

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # <3.11

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SETTINGS_ENV_VAR = "RUN_SETTINGS"
DEFAULT_SETTINGS_PATH = Path("~/.config/metarun/settings.toml")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class RunSettings:
    """
    User-level settings for the `run` CLI.
    Read from the [run] table of a TOML file; SRC and LOCALHOST_SRC
    environment variables take precedence over the file.
    """

    src: Path | None = None
    """Root of the source tree. `tmux --all` and meta helpers search below it."""

    localhost_src: Path | None = None
    """The same source tree as seen from the SSH host; used for remote panes."""

    log_level: str = "WARNING"
    """Default log level when no -v flag is given."""

    log_file: bool = False
    """Also write logs to the metarun log file."""

    strict_routines: bool = False
    """Unknown routine names are errors instead of literal commands."""

    command_pause_secs: float = 0.5
    """Pause between commands sent to tmux panes by `tmux attach --run`."""

    def __post_init__(self) -> None:
        if self.log_level.upper() not in LOG_LEVELS:
            logger.warning(f"Invalid settings: unknown log_level {self.log_level!r}")
            raise ConfigurationError(
                f"log_level must be one of {', '.join(LOG_LEVELS)}, got {self.log_level!r}"
            )
        if self.command_pause_secs < 0:
            logger.warning("Invalid settings: command_pause_secs cannot be negative")
            raise ConfigurationError("command_pause_secs cannot be negative")

    def source_root(self) -> Path:
        """SRC if configured, otherwise the current directory."""
        return self.src or Path.cwd()


def settings_path(environ: Mapping[str, str] | None = None) -> Path:
    environ = os.environ if environ is None else environ
    return Path(environ.get(SETTINGS_ENV_VAR) or DEFAULT_SETTINGS_PATH).expanduser()


def _read_table(path: str | Path | BinaryIO | None, environ: Mapping[str, str]) -> dict[str, Any]:
    if path is not None and hasattr(path, "read"):
        return tomli.load(path).get("run", {})  # type: ignore[arg-type]

    config_path = Path(path).expanduser() if path is not None else settings_path(environ)
    if not config_path.is_file():
        if path is not None:
            raise ConfigurationError(f"Settings file not found: {config_path}")
        logger.debug(f"No settings file at {config_path}, using defaults")
        return {}
    try:
        with open(config_path, "rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in {config_path}: {e}") from None
    logger.debug(f"Loaded settings from {config_path}")
    return data.get("run", {})


def load_settings(
    path: str | Path | BinaryIO | None = None,
    environ: Mapping[str, str] | None = None,
) -> RunSettings:
    """
    Load RunSettings from TOML, then apply environment overrides.

    Without an explicit path, $RUN_SETTINGS or ~/.config/metarun/settings.toml
    is used when it exists.
    """
    environ = os.environ if environ is None else environ
    table = _read_table(path, environ)
    if not isinstance(table, dict):
        raise ConfigurationError("[run] must be a table")
    table = dict(table)

    for key, env_name in (("src", "SRC"), ("localhost_src", "LOCALHOST_SRC")):
        if environ.get(env_name):
            table[key] = environ[env_name]
        if table.get(key) is not None:
            table[key] = Path(table[key]).expanduser()

    try:
        return RunSettings(**table)
    except TypeError as e:
        raise ConfigurationError(f"Invalid settings in [run]: {e}") from None
