# metarun/environment.py
"""
Process environment preparation done before every `run` command:
`.env.<cible>` files and the ENV variable derived from the git branch.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import MutableMapping
from pathlib import Path

from dotenv import dotenv_values

from .exceptions import ExecutionError
from .meta_config import read_meta_document
from .process_runner import LocalProcessRunner, ProcessRunner

logger = logging.getLogger(__name__)

DEFAULT_CIBLE = "local"
DEFAULT_ENV = "default"
BRANCH_ENVIRONMENTS = {"main": "prod"}


def env_files(directory: str | Path, cible: str = DEFAULT_CIBLE) -> list[Path]:
    """
    Files to load for `cible`: `secrets.base` (when meta.json names one) then `.env.<cible>`.

    With a base configured both files must exist, otherwise nothing is loaded.
    """
    directory = Path(directory)
    target = directory / f".env.{cible}"
    document = read_meta_document(directory) or {}
    secrets = document.get("secrets")
    base = secrets.get("base") if isinstance(secrets, dict) else None

    if base:
        base_file = directory / base
        if not (base_file.is_file() and target.is_file()):
            logger.debug(f"Skipping env files: {base_file} or {target} missing")
            return []
        return [base_file, target]
    return [target] if target.is_file() else []


def load_env_files(
    directory: str | Path,
    cible: str = DEFAULT_CIBLE,
    environ: MutableMapping[str, str] | None = None,
) -> dict[str, str]:
    """
    Load the env files of `directory` into `environ` without overriding existing variables.

    Later files win over earlier ones. Returns the variables that were set.
    """
    environ = os.environ if environ is None else environ
    merged: dict[str, str] = {}
    for path in env_files(directory, cible):
        values = dotenv_values(path)
        merged.update({key: value for key, value in values.items() if value is not None})
        logger.debug(f"Read {len(values)} variables from {path}")

    applied = {key: value for key, value in merged.items() if key not in environ}
    environ.update(applied)
    return applied


def current_branch(directory: str | Path, runner: ProcessRunner | None = None) -> str | None:
    """Current git branch of `directory`, or None when it cannot be determined."""
    runner = runner or LocalProcessRunner()
    argv = ["git", "branch", "--show-current"]
    try:
        result = asyncio.run(runner.run(argv, cwd=directory, capture=True))
    except ExecutionError as e:
        logger.warning(f"Failed to determine Git branch in {directory}: {e}")
        return None
    if result.returncode != 0:
        logger.warning(f"Failed to determine Git branch in {directory}: {result.stderr.strip() or result.returncode}")
        return None
    return result.stdout.strip() or None


def set_env_from_branch(
    directory: str | Path,
    environ: MutableMapping[str, str] | None = None,
    runner: ProcessRunner | None = None,
) -> str | None:
    """
    Set ENV from the git branch of `directory` (`main` becomes `prod`).

    Directories without a .git folder are left alone. Returns the value set.
    """
    environ = os.environ if environ is None else environ
    if not (Path(directory) / ".git").exists():
        return None
    branch = current_branch(directory, runner)
    value = BRANCH_ENVIRONMENTS.get(branch, branch) if branch else DEFAULT_ENV
    environ["ENV"] = value
    logger.debug(f"ENV={value}")
    return value


def prepare_environment(
    directory: str | Path,
    cible: str = DEFAULT_CIBLE,
    environ: MutableMapping[str, str] | None = None,
    runner: ProcessRunner | None = None,
) -> None:
    """Everything done before a command runs. Skipped inside GitHub Actions."""
    environ = os.environ if environ is None else environ
    if environ.get("GITHUB_ACTIONS"):
        logger.debug("GITHUB_ACTIONS set, leaving the environment untouched")
        return
    set_env_from_branch(directory, environ, runner)
    load_env_files(directory, cible, environ)
