from __future__ import annotations

import json
import logging
import os
import re
import secrets
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError
from .project_config import ProjectConfig

logger = logging.getLogger(__name__)

META_FILENAME = "meta.json"

_ENV_PLACEHOLDER = re.compile(r"\$\{(.*?)\}")
_SELF_PLACEHOLDER = re.compile(r"\$\{this\.(.*?)\}")
_ID_ALPHABET = "_-0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

_MISSING = object()


# =====================================================================
#   Placeholder substitution
# =====================================================================
def resolve_env_vars(value: Any, environ: Mapping[str, str]) -> Any:
    """
    Replace ${NAME} placeholders with environment values, recursively.

    Placeholders of the form ${this.path} are left for resolve_self_references().
    Unknown variables are replaced with an empty string.
    """
    if isinstance(value, str):

        def _replace(match: re.Match[str]) -> str:
            name = match.group(1)
            if name.startswith("this."):
                return match.group(0)
            if name not in environ:
                logger.debug(f"Environment variable '{name}' is not set, using ''")
            return environ.get(name, "")

        return _ENV_PLACEHOLDER.sub(_replace, value)
    if isinstance(value, dict):
        return {key: resolve_env_vars(item, environ) for key, item in value.items()}
    if isinstance(value, list):
        return [resolve_env_vars(item, environ) for item in value]
    return value


def get_property(document: Any, dotted_path: str, default: Any = None) -> Any:
    """
    Look up a dotted path ("tunnel.subdomain", "windows.0.name") in a document.

    Dots traverse mappings by key and lists by integer index.
    """
    current = document
    for part in dotted_path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
            current = current[int(part)]
        else:
            return default
    return current


def resolve_self_references(document: dict[str, Any], *, max_nested_depth: int = 10) -> dict[str, Any]:
    """
    Replace ${this.path} placeholders with values from the document itself.

    A referenced value that contains its own ${this.} placeholders is resolved
    first, up to `max_nested_depth` levels, so references can chain.
    Missing paths resolve to an empty string.

    Raises:
        ConfigurationError: If the nesting limit is exceeded (usually a cycle)
    """

    def _lookup(path: str, depth: int) -> Any:
        if depth > max_nested_depth:
            raise ConfigurationError(
                f"Exceeded max self-reference depth ({max_nested_depth}) "
                f"while resolving '${{this.{path}}}'"
            )
        value = get_property(document, path, _MISSING)
        if value is _MISSING:
            logger.debug(f"Self reference 'this.{path}' not found, using ''")
            return ""
        return _resolve(value, depth + 1)

    def _resolve(value: Any, depth: int) -> Any:
        if isinstance(value, str):
            whole = _SELF_PLACEHOLDER.fullmatch(value)
            if whole:
                return _lookup(whole.group(1), depth)
            return _SELF_PLACEHOLDER.sub(lambda m: _stringify(_lookup(m.group(1), depth)), value)
        if isinstance(value, dict):
            return {key: _resolve(item, depth) for key, item in value.items()}
        if isinstance(value, list):
            return [_resolve(item, depth) for item in value]
        return value

    return _resolve(document, 0)


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value)
    return str(value)


def resolve_placeholders(document: dict[str, Any], environ: Mapping[str, str] | None = None) -> dict[str, Any]:
    """Apply environment substitution, then self-reference substitution."""
    if environ is None:
        environ = os.environ
    return resolve_self_references(resolve_env_vars(document, environ))


# =====================================================================
#   Reading and writing meta.json
# =====================================================================
def meta_path(directory: str | Path) -> Path:
    return Path(directory) / META_FILENAME


def meta_exists(directory: str | Path) -> bool:
    return meta_path(directory).is_file()


def read_meta_document(directory: str | Path) -> dict[str, Any] | None:
    """
    Read the raw (unresolved) meta.json document of a directory.

    Returns None when the directory has no meta.json.

    Raises:
        ConfigurationError: If the file is not valid JSON or not an object
    """
    path = meta_path(directory)
    if not path.is_file():
        return None
    try:
        with open(path, encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid JSON in {path}: {e}") from None
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from None
    if not isinstance(document, dict):
        raise ConfigurationError(f"{path} must contain a JSON object")
    return document


def load_meta(directory: str | Path, environ: Mapping[str, str] | None = None) -> ProjectConfig | None:
    """
    Load and validate the meta.json of a directory into a ProjectConfig.

    Placeholders are resolved on every call; nothing is cached.
    Returns None when the directory has no meta.json.
    """
    directory = Path(directory).resolve()
    document = read_meta_document(directory)
    if document is None:
        logger.debug(f"No {META_FILENAME} in {directory}")
        return None
    resolved = resolve_placeholders(document, environ)
    project = ProjectConfig.from_document(resolved, path=directory)
    logger.debug(
        f"Loaded project '{project.name}' from {directory} "
        f"({len(project.routines)} routines, tmux={'yes' if project.tmux else 'no'})"
    )
    return project


def write_meta(directory: str | Path, document: dict[str, Any]) -> Path:
    """Write a document as meta.json (2-space indentation) and return its path."""
    path = meta_path(directory)
    path.write_text(json.dumps(document, indent=2) + "\n", encoding="utf-8")
    logger.debug(f"Wrote {path}")
    return path


def create_short_id(length: int = 12) -> str:
    """Return a random URL-safe id (same alphabet as nanoid)."""
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(_ID_ALPHABET) for _ in range(length))
