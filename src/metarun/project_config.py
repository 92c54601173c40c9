from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_TYPES = ("project", "app", "config")


# ─────────────────────────────────────────────────────────────────────────────
# Routine validation
# ─────────────────────────────────────────────────────────────────────────────
def validate_routines(project: str, routines: Any) -> dict[str, str]:
    """
    Validate the `routines` section of a meta.json document.

    Args:
        project: Project name, used in error messages
        routines: Raw value of the `routines` key

    Raises:
        ConfigurationError: If routines is not a mapping of non-empty names to strings
    """
    if routines is None:
        return {}
    if not isinstance(routines, dict):
        raise ConfigurationError(f"'routines' in project '{project}' must be an object")

    validated: dict[str, str] = {}
    for name, command in routines.items():
        if not name.strip():
            raise ConfigurationError(f"Routine names in project '{project}' cannot be empty")
        if not isinstance(command, str):
            raise ConfigurationError(
                f"Routine '{name}' in project '{project}' must be a string, "
                f"got {type(command).__name__}"
            )
        validated[name] = command
    return validated


@dataclass(frozen=True)
class ProjectConfig:
    """
    Immutable view of one project's meta.json after placeholder substitution.
    Built by load_meta() and consumed by the resolver and the tmux commands.
    """

    name: str
    """Project name. Used by `every !name` exclusions and tmux window names."""

    id: str | None = None
    """Short unique id. Uniqueness across a tree is only checked on demand."""

    type: str | None = None
    """One of 'project', 'app' or 'config'."""

    routines: dict[str, str] = field(default_factory=dict)
    """Routine name → routine command string."""

    tmux: dict[str, Any] | None = None
    """Raw `tmux` section (sessions / windows / panes)."""

    path: Path | None = None
    """Directory holding the meta.json file."""

    document: dict[str, Any] = field(default_factory=dict)
    """The full resolved document, including sections metarun does not model."""

    def __post_init__(self) -> None:
        if not self.name or not str(self.name).strip():
            logger.warning(f"Invalid meta.json in {self.path}: name cannot be empty")
            raise ConfigurationError(f"Project name cannot be empty ({self.path})")
        if self.type is not None and self.type not in PROJECT_TYPES:
            logger.warning(f"Invalid meta.json for '{self.name}': unknown type {self.type!r}")
            raise ConfigurationError(
                f"Project '{self.name}' has type {self.type!r}; "
                f"expected one of {', '.join(PROJECT_TYPES)}"
            )
        if self.tmux is not None and not isinstance(self.tmux, dict):
            raise ConfigurationError(f"'tmux' in project '{self.name}' must be an object")

    @classmethod
    def from_document(cls, document: dict[str, Any], path: Path | None = None) -> ProjectConfig:
        """Build a ProjectConfig from an already-resolved meta.json document."""
        if not isinstance(document, dict):
            raise ConfigurationError(f"meta.json in {path} must contain a JSON object")
        name = document.get("name") or ""
        return cls(
            name=name,
            id=document.get("id"),
            type=document.get("type"),
            routines=validate_routines(name, document.get("routines")),
            tmux=document.get("tmux"),
            path=path,
            document=document,
        )

    @property
    def tmux_sessions(self) -> list[dict[str, Any]]:
        """Session definitions from the tmux section (empty if none)."""
        if not self.tmux:
            return []
        sessions = self.tmux.get("sessions") or []
        if not isinstance(sessions, list):
            raise ConfigurationError(f"'tmux.sessions' in project '{self.name}' must be a list")
        return sessions

    def section(self, key: str, default: Any = None) -> Any:
        """Return an arbitrary top-level section of the document."""
        return self.document.get(key, default)
