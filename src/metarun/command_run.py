# metarun/command_run.py
"""
Bookkeeping for leaf commands.

The RoutineExecutor appends one CommandRun per command leaf it reaches,
including commands that fail to start. `cd` leaves only move the execution
context and get no record.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class RunState(Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCESS = "success"
    FAILED = "failed"


def format_duration(seconds: float | None) -> str:
    """'-' when unknown, then '850ms', '3.2s', '4m 10s' or '1h 2m'."""
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{round(seconds * 1000)}ms"
    if seconds < 60:
        return f"{seconds:.1f}s"
    minutes = int(seconds // 60)
    if minutes < 60:
        return f"{minutes}m {round(seconds % 60)}s"
    return f"{minutes // 60}h {minutes % 60}m"


@dataclass
class CommandRun:
    """One leaf command of an execution tree and how it ended."""

    command: str
    cwd: str
    path: str = ""
    """Dotted position of the leaf in the tree, e.g. "0.2.1"."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: RunState = RunState.PENDING
    returncode: int | None = None
    error: str | None = None
    started_at: datetime | None = None
    duration_secs: float | None = None

    _clock: float | None = field(default=None, repr=False, compare=False)

    def mark_running(self) -> None:
        if self.state is not RunState.PENDING:
            logger.warning(f"{self.command!r} restarted from state {self.state.value}")
        self.state = RunState.RUNNING
        self.started_at = datetime.now()
        self._clock = time.monotonic()
        logger.debug(f"[{self.path or '-'}] {self.command} (cwd={self.cwd})")

    def mark_success(self, returncode: int = 0) -> None:
        self._finish(RunState.SUCCESS, returncode)
        logger.debug(f"[{self.path or '-'}] {self.command} done in {self.duration_str}")

    def mark_failed(self, error: str | Exception, returncode: int | None = None) -> None:
        self.error = str(error)
        self._finish(RunState.FAILED, returncode)
        logger.debug(f"[{self.path or '-'}] {self.command} failed: {self.error}")

    def _finish(self, state: RunState, returncode: int | None) -> None:
        self.state = state
        self.returncode = returncode
        # Never started (e.g. a bad `cd`): zero duration
        self.duration_secs = time.monotonic() - self._clock if self._clock is not None else 0.0

    @property
    def duration_str(self) -> str:
        return format_duration(self.duration_secs)

    @property
    def is_finished(self) -> bool:
        return self.state in (RunState.SUCCESS, RunState.FAILED)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "path": self.path,
            "command": self.command,
            "cwd": self.cwd,
            "state": self.state.value,
            "returncode": self.returncode,
            "error": self.error,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "duration": self.duration_str,
        }
