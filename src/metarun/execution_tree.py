"""
Execution tree produced by the routine resolver and consumed by the executor.

An ExecutionNode is one of:
- a plain string: a literal shell command (including the `cd <dir>` pseudo-command),
- a TaskNode: an ordered group of child nodes run in parallel or in sequence,
- a CrossProjectTask: a resolved routine of another project, run from that project's directory.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Union


class ExecutionMode(str, Enum):
    """How the children of a TaskNode are scheduled."""

    PARALLEL = "parallel"
    SEQUENCE = "sequence"


@dataclass(frozen=True)
class TaskNode:
    tasks: tuple["ExecutionNode", ...]
    mode: ExecutionMode = ExecutionMode.PARALLEL

    def to_dict(self) -> dict[str, Any]:
        return {"tasks": [node_to_dict(task) for task in self.tasks], "mode": self.mode.value}


@dataclass(frozen=True)
class CrossProjectTask:
    """One project's share of an `every` fan-out."""

    directory: Path
    project: str
    routine: str
    task: "ExecutionNode"

    def to_dict(self) -> dict[str, Any]:
        return {
            "directory": str(self.directory),
            "project": self.project,
            "routine": self.routine,
            "task": node_to_dict(self.task),
        }


ExecutionNode = Union[str, TaskNode, CrossProjectTask]


def node_to_dict(node: ExecutionNode) -> Any:
    """JSON-serializable form of a node (strings stay strings)."""
    if isinstance(node, str):
        return node
    return node.to_dict()


def iter_leaves(node: ExecutionNode):
    """Yield every literal command of a tree in depth-first order."""
    if isinstance(node, str):
        yield node
    elif isinstance(node, CrossProjectTask):
        yield from iter_leaves(node.task)
    else:
        for task in node.tasks:
            yield from iter_leaves(task)
