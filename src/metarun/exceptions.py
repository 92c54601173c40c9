# metarun/exceptions.py
"""
Custom exception hierarchy for metarun.

All metarun-specific exceptions inherit from MetarunError so the CLI can
catch them in one place and turn them into an exit code, while library
callers can still handle the specific conditions.
"""

from __future__ import annotations

from pathlib import Path


class MetarunError(Exception):
    """
    Base exception for all metarun errors.

    Catch this to handle any metarun-specific error.
    """

    pass


class ConfigurationError(MetarunError):
    """
    Raised when a meta.json document or the settings file is unusable.

    Covers unparsable JSON, invalid field types, an unknown project type,
    unresolvable self-references and missing required sections.

    Example:
        >>> ProjectConfig(name="")
        ConfigurationError: Project name cannot be empty
    """

    pass


class ResolutionError(MetarunError):
    """
    Raised when a requested routine cannot be resolved.

    Only raised in strict mode; by default unknown names are treated as
    literal shell commands.
    """

    pass


class CyclicRoutineError(ResolutionError):
    """
    Raised when a routine refers back to itself while it is being expanded.

    Attributes:
        routine: The routine name that would re-enter the expansion
        cycle_path: Ordered list of routine names currently being expanded
    """

    def __init__(self, routine: str, cycle_path: list[str]):
        """
        Initialize CyclicRoutineError with cycle information.

        Args:
            routine: Routine that triggered the cycle detection
            cycle_path: Routines being expanded when the cycle was found
        """
        self.routine = routine
        self.cycle_path = cycle_path
        cycle_display = " -> ".join(cycle_path) + f" -> {routine}"
        super().__init__(f"Routine cycle detected: {cycle_display}")


class ExecutionError(MetarunError):
    """
    Raised when a leaf command of an execution tree fails.

    Attributes:
        command: The command string that failed
        returncode: Process exit code (None if the process never started)
        cwd: Working directory the command ran in
        path: Position of the leaf in the execution tree (e.g. "0.2.1")
    """

    def __init__(
        self,
        command: str,
        returncode: int | None = None,
        cwd: str | Path | None = None,
        path: str | None = None,
        reason: str | None = None,
    ):
        self.command = command
        self.returncode = returncode
        self.cwd = str(cwd) if cwd is not None else None
        self.path = path
        if reason is None:
            reason = f"exited with code {returncode}"
        location = f" at node {path}" if path else ""
        super().__init__(f"Command '{command}'{location} {reason}")


class LayoutError(MetarunError):
    """
    Raised when a tmux window specification cannot be turned into a layout.

    Example:
        >>> plan_window(...)
        LayoutError: Target pane 'logs' not found. Available panes: editor, shell
    """

    pass


class TmuxError(MetarunError):
    """
    Raised when a tmux invocation exits with a non-zero status.

    Attributes:
        argv: The tmux arguments (without the leading "tmux")
        returncode: Exit status of tmux
        stderr: Captured error output
    """

    def __init__(self, argv: list[str], returncode: int, stderr: str = ""):
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"tmux {' '.join(argv)} exited with code {returncode}{detail}")
