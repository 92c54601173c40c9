"""
MockProcessRunner - a ProcessRunner that records invocations instead of running them.

Useful for tests and dry runs. Results are looked up by exact command string
(argv joined with spaces), then by program name, then fall back to a default.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from .process_runner import ProcessResult, ProcessRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Invocation:
    """One recorded call to MockProcessRunner.run()."""

    argv: tuple[str, ...]
    cwd: str | None
    env: dict[str, str] = field(default_factory=dict)
    capture: bool = False

    @property
    def command(self) -> str:
        return " ".join(self.argv)


class MockProcessRunner(ProcessRunner):
    """Records every invocation and returns canned results."""

    def __init__(
        self,
        results: Mapping[str, ProcessResult | int] | None = None,
        *,
        default: ProcessResult | int = 0,
        delay: float = 0.0,
        delays: Mapping[str, float] | None = None,
    ):
        """
        Args:
            results: Command string or program name → result (or bare exit code)
            default: Result for anything not listed in `results`
            delay: Seconds every invocation sleeps before returning
            delays: Per-command overrides of `delay`
        """
        self._results = {key: self._as_result(value) for key, value in (results or {}).items()}
        self._default = self._as_result(default)
        self._delay = delay
        self._delays = dict(delays or {})
        self.invocations: list[Invocation] = []
        self.completed: list[Invocation] = []

    @staticmethod
    def _as_result(value: ProcessResult | int) -> ProcessResult:
        return value if isinstance(value, ProcessResult) else ProcessResult(returncode=value)

    def set_result(self, key: str, result: ProcessResult | int) -> None:
        self._results[key] = self._as_result(result)

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        invocation = Invocation(
            argv=tuple(argv),
            cwd=str(cwd) if cwd is not None else None,
            env=dict(env or {}),
            capture=capture,
        )
        self.invocations.append(invocation)
        logger.debug(f"Mock run: {invocation.command} (cwd={invocation.cwd})")

        delay = self._delays.get(invocation.command, self._delay)
        if delay:
            await asyncio.sleep(delay)

        self.completed.append(invocation)
        if invocation.command in self._results:
            return self._results[invocation.command]
        if argv and argv[0] in self._results:
            return self._results[argv[0]]
        return self._default

    @property
    def commands(self) -> list[str]:
        """Recorded command strings in start order."""
        return [invocation.command for invocation in self.invocations]

    def __repr__(self) -> str:
        return f"MockProcessRunner(invocations={len(self.invocations)})"
