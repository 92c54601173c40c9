"""
Directory discovery over a project tree.

Walks a source tree looking for sub-projects (directories holding a
meta.json). Version-control, dependency and hidden folders are never entered.
"""

from __future__ import annotations

import logging
import os
from collections import defaultdict
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from .exceptions import ConfigurationError
from .meta_config import get_property, load_meta, meta_exists
from .project_config import ProjectConfig

logger = logging.getLogger(__name__)

EXCLUDED_DIRECTORIES = frozenset({".git", "node_modules", ".terraform"})


def is_excluded(name: str) -> bool:
    """True for folders discovery never descends into."""
    return name in EXCLUDED_DIRECTORIES or name.startswith(".")


def discover_directories(root: str | Path) -> list[Path]:
    """
    Return every subdirectory of `root`, recursively, in depth-first pre-order.

    `root` itself is not included. Entries are visited in sorted order so the
    result is deterministic. Symlinked directories are not followed.
    """
    root = Path(root)
    found: list[Path] = []

    def _walk(directory: Path) -> None:
        try:
            with os.scandir(directory) as entries:
                children = sorted(
                    entry.name
                    for entry in entries
                    if entry.is_dir(follow_symlinks=False) and not is_excluded(entry.name)
                )
        except OSError as e:
            logger.warning(f"Cannot list {directory}: {e}")
            return
        for name in children:
            child = directory / name
            found.append(child)
            _walk(child)

    _walk(root)
    logger.debug(f"Discovered {len(found)} directories under {root}")
    return found


def iter_projects(
    root: str | Path,
    *,
    include_root: bool = True,
    root_first: bool = True,
    environ: Mapping[str, str] | None = None,
) -> list[ProjectConfig]:
    """
    Load every project (directory with a meta.json) under `root`.

    Projects whose meta.json cannot be loaded are logged and skipped so one
    broken file does not hide the rest of the tree.
    """
    root = Path(root)
    directories = discover_directories(root)
    if include_root:
        if root_first:
            directories.insert(0, root)
        else:
            directories.append(root)

    projects: list[ProjectConfig] = []
    for directory in directories:
        if not meta_exists(directory):
            continue
        try:
            project = load_meta(directory, environ)
        except ConfigurationError as e:
            logger.warning(f"Skipping {directory}: {e}")
            continue
        if project is not None:
            projects.append(project)
    return projects


def with_meta_matching(
    key: str,
    value: Any = None,
    root: str | Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> list[Path]:
    """
    Return directories whose meta.json has `key` set (and equal to `value`, if given).

    `key` may be a dotted path such as "tunnel.subdomain".
    Defaults to searching under $SRC.
    """
    if root is None:
        root = (environ or os.environ).get("SRC") or os.getcwd()

    matches: list[Path] = []
    for project in iter_projects(root, include_root=False, environ=environ):
        found = get_property(project.document, key)
        if not found:
            continue
        if value is None or found == value:
            matches.append(project.path)
    return matches


def find_duplicate_ids(root: str | Path, environ: Mapping[str, str] | None = None) -> dict[str, list[Path]]:
    """Return {id: [directories]} for every id used by more than one project under `root`."""
    by_id: dict[str, list[Path]] = defaultdict(list)
    for project in iter_projects(root, environ=environ):
        if project.id:
            by_id[project.id].append(project.path)
    return {project_id: paths for project_id, paths in by_id.items() if len(paths) > 1}
