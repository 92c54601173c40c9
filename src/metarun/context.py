from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path


@dataclass(frozen=True)
class ExecutionContext:
    """
    Working directory and environment for one branch of an execution tree.

    Contexts are never mutated: `cd` produces a new context, sequences thread
    it forward and parallel branches each receive their own fork, so a
    directory change in one branch is invisible to its siblings.
    """

    cwd: Path
    env: dict[str, str] = field(default_factory=dict)

    @classmethod
    def current(cls, environ: Mapping[str, str] | None = None) -> ExecutionContext:
        """Context seeded from the process working directory and environment."""
        return cls(cwd=Path.cwd(), env=dict(os.environ if environ is None else environ))

    def with_cwd(self, directory: str | Path) -> ExecutionContext:
        """Return a copy whose cwd is `directory`, resolved against the current cwd."""
        target = Path(os.path.expanduser(str(directory)))
        if not target.is_absolute():
            target = self.cwd / target
        return ExecutionContext(cwd=target.resolve(), env=dict(self.env))

    def with_env(self, **overrides: str) -> ExecutionContext:
        return ExecutionContext(cwd=self.cwd, env={**self.env, **overrides})

    def fork(self) -> ExecutionContext:
        """Independent copy for a parallel branch."""
        return ExecutionContext(cwd=self.cwd, env=dict(self.env))
