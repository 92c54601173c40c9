# metarun/process_runner.py
"""
Subprocess primitive used for every external tool invocation.

ProcessRunner is the abstract interface (routine commands, tmux, ssh, git all
go through it); LocalProcessRunner runs real asyncio subprocesses:
- argv execution (no shell)
- inherited stdio for live, interactive output, or captured output
- the child is killed if the awaiting task is cancelled
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

from .exceptions import ExecutionError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one subprocess invocation."""

    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class ProcessRunner(ABC):
    """
    Abstract subprocess runner.

    Implementations must be safe to call concurrently from many tasks.
    """

    @abstractmethod
    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        """
        Run argv to completion.

        Args:
            argv: Program and arguments
            cwd: Working directory (defaults to the process cwd)
            env: Full environment for the child (defaults to the process environment)
            capture: If True, stdout/stderr are captured and returned;
                otherwise they are inherited from the parent

        Raises:
            ExecutionError: If the program cannot be started at all
        """
        ...


class LocalProcessRunner(ProcessRunner):
    """Runs argv lists as local subprocesses using asyncio."""

    def __init__(self, cancel_grace_period: float = 3.0):
        """
        Args:
            cancel_grace_period: Seconds to wait after SIGTERM before SIGKILL on cancellation
        """
        self._cancel_grace_period = cancel_grace_period

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: str | Path | None = None,
        env: Mapping[str, str] | None = None,
        capture: bool = False,
    ) -> ProcessResult:
        argv = list(argv)
        if not argv:
            raise ExecutionError("", reason="is empty")

        stream = asyncio.subprocess.PIPE if capture else None
        logger.debug(f"Launching {argv} (cwd={cwd}, capture={capture})")
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=stream,
                stderr=stream,
                cwd=str(cwd) if cwd is not None else None,
                env=dict(env) if env is not None else None,
            )
        except (FileNotFoundError, PermissionError, NotADirectoryError) as e:
            raise ExecutionError(" ".join(argv), cwd=cwd, reason=f"could not start: {e}") from e

        try:
            stdout, stderr = await process.communicate()
        except asyncio.CancelledError:
            logger.debug(f"Run of {argv[0]} was cancelled, terminating pid {process.pid}")
            await self._terminate(process)
            raise

        result = ProcessResult(
            returncode=process.returncode,
            stdout=stdout.decode("utf-8", errors="replace") if stdout else "",
            stderr=stderr.decode("utf-8", errors="replace") if stderr else "",
        )
        logger.debug(f"{argv[0]} exited with code {result.returncode}")
        return result

    async def _terminate(self, process: asyncio.subprocess.Process) -> None:
        """SIGTERM, wait for the grace period, then SIGKILL."""
        try:
            if process.returncode is None:
                process.terminate()
                try:
                    await asyncio.wait_for(process.wait(), timeout=self._cancel_grace_period)
                    return
                except asyncio.TimeoutError:
                    logger.warning(f"pid {process.pid} didn't terminate, sending SIGKILL")
            if process.returncode is None:
                process.kill()
                await process.wait()
        except ProcessLookupError:
            # Already dead
            pass

    def __repr__(self) -> str:
        return f"LocalProcessRunner(cancel_grace_period={self._cancel_grace_period}s)"
