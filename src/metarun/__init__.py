__version__ = "0.1.0"

from .command_run import CommandRun, RunState
from .context import ExecutionContext
from .discovery import discover_directories, find_duplicate_ids, iter_projects, with_meta_matching
from .exceptions import (
    ConfigurationError,
    CyclicRoutineError,
    ExecutionError,
    LayoutError,
    MetarunError,
    ResolutionError,
    TmuxError,
)
from .execution_tree import CrossProjectTask, ExecutionMode, ExecutionNode, TaskNode
from .executor import RoutineExecutor, run_routines
from .logging_config import disable_logging, get_log_file_path, setup_logging
from .meta_config import create_short_id, load_meta, write_meta
from .mock_runner import MockProcessRunner
from .process_runner import LocalProcessRunner, ProcessResult, ProcessRunner
from .project_config import ProjectConfig
from .routine_expr import parse_routine
from .routine_resolver import RoutineResolver, resolve
from .settings import RunSettings, load_settings
from .tmux import TmuxClient, TmuxWorkspace, layout_window
from .tmux_layout import PaneList, WindowPlan, plan_window

__all__ = [
    # Version
    "__version__",
    # Config
    "create_short_id",
    "discover_directories",
    "find_duplicate_ids",
    "iter_projects",
    "load_meta",
    "load_settings",
    "ProjectConfig",
    "RunSettings",
    "with_meta_matching",
    "write_meta",
    # Routines
    "CommandRun",
    "CrossProjectTask",
    "ExecutionContext",
    "ExecutionMode",
    "ExecutionNode",
    "parse_routine",
    "resolve",
    "RoutineExecutor",
    "RoutineResolver",
    "run_routines",
    "RunState",
    "TaskNode",
    # Tmux
    "layout_window",
    "PaneList",
    "plan_window",
    "TmuxClient",
    "TmuxWorkspace",
    "WindowPlan",
    # Process runners
    "LocalProcessRunner",
    "MockProcessRunner",
    "ProcessResult",
    "ProcessRunner",
    # Logging
    "disable_logging",
    "get_log_file_path",
    "setup_logging",
    # Exceptions
    "ConfigurationError",
    "CyclicRoutineError",
    "ExecutionError",
    "LayoutError",
    "MetarunError",
    "ResolutionError",
    "TmuxError",
]
