"""
RoutineResolver - expands requested routine names into an execution tree.

Resolution is recursive and depth-first with no memoization:

- a name that is not a routine is kept as a literal command,
- `parallel a b` / `sequence a b` resolve each name and group the results,
- `every r !p` fans out to every project in the tree defining routine `r`,
- `a && b` and `a & b` are shorthands for sequence and parallel groups,
- anything else is a literal command.

Cycles are detected with a stack of (project directory, routine name)
pairs that are currently being expanded.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from pathlib import Path

from .discovery import iter_projects
from .exceptions import CyclicRoutineError, ResolutionError
from .execution_tree import CrossProjectTask, ExecutionMode, ExecutionNode, TaskNode
from .routine_expr import (
    EveryExpr,
    LiteralExpr,
    ParallelExpr,
    RoutineExpr,
    SequenceExpr,
    ShorthandAmpExpr,
    ShorthandAndExpr,
    compile_routines,
)

logger = logging.getLogger(__name__)

_Frame = tuple[Path, str]


class RoutineResolver:
    """
    Turns routine names into a TaskNode tree.

    The resolver is stateless between calls to resolve(); the same inputs
    always produce a structurally identical tree.
    """

    def __init__(
        self,
        root: str | Path | None = None,
        *,
        strict: bool = False,
        environ: Mapping[str, str] | None = None,
    ):
        """
        Initialize the resolver.

        Args:
            root: Project directory the routines belong to; `every` searches below it.
                Defaults to the current working directory.
            strict: If True, unknown routine names raise ResolutionError instead of
                being treated as literal commands.
            environ: Environment used when loading other projects' meta.json.
        """
        self.root = Path(root or os.getcwd()).resolve()
        self.strict = strict
        self.environ = environ

    def resolve(self, requested: Sequence[str], routines: Mapping[str, str]) -> TaskNode:
        """
        Resolve the requested names against a routine map.

        The top level is always a parallel group: requested routines run
        concurrently unless they are explicitly sequenced.
        """
        book = compile_routines(routines)
        stack: list[_Frame] = []
        tasks = tuple(self._resolve_name(name, book, self.root, stack) for name in requested)
        logger.debug(f"Resolved {list(requested)} into {len(tasks)} top-level tasks")
        return TaskNode(tasks, ExecutionMode.PARALLEL)

    # ------------------------------------------------------------------ #
    # Recursion
    # ------------------------------------------------------------------ #
    def _resolve_name(
        self,
        name: str,
        book: dict[str, RoutineExpr],
        scope: Path,
        stack: list[_Frame],
    ) -> ExecutionNode:
        """Resolve a name that is expected to be a routine."""
        if name not in book:
            if self.strict:
                known = ", ".join(sorted(book)) or "(none)"
                raise ResolutionError(f"Routine '{name}' not found. Available: {known}")
            return name
        return self._expand(name, book, scope, stack)

    def _resolve_part(
        self,
        part: str,
        book: dict[str, RoutineExpr],
        scope: Path,
        stack: list[_Frame],
    ) -> ExecutionNode:
        """Resolve one side of `&&` / `&`: a routine name or a raw command."""
        if part in book:
            return self._expand(part, book, scope, stack)
        return part

    def _expand(
        self,
        name: str,
        book: dict[str, RoutineExpr],
        scope: Path,
        stack: list[_Frame],
    ) -> ExecutionNode:
        frame = (scope, name)
        if frame in stack:
            start = stack.index(frame)
            raise CyclicRoutineError(name, [routine for _, routine in stack[start:]])

        stack.append(frame)
        try:
            expr = book[name]
            logger.debug(f"Expanding routine '{name}' in {scope}: {expr}")

            if isinstance(expr, ParallelExpr):
                return TaskNode(
                    tuple(self._resolve_name(n, book, scope, stack) for n in expr.names),
                    ExecutionMode.PARALLEL,
                )
            if isinstance(expr, SequenceExpr):
                return TaskNode(
                    tuple(self._resolve_name(n, book, scope, stack) for n in expr.names),
                    ExecutionMode.SEQUENCE,
                )
            if isinstance(expr, EveryExpr):
                return self._expand_every(expr, stack)
            if isinstance(expr, ShorthandAndExpr):
                return TaskNode(
                    tuple(self._resolve_part(p, book, scope, stack) for p in expr.parts),
                    ExecutionMode.SEQUENCE,
                )
            if isinstance(expr, ShorthandAmpExpr):
                return TaskNode(
                    tuple(self._resolve_part(p, book, scope, stack) for p in expr.parts),
                    ExecutionMode.PARALLEL,
                )
            if isinstance(expr, LiteralExpr):
                # An empty routine runs its own name
                return expr.command.strip() or name
            raise TypeError(f"Unknown routine expression: {expr!r}")
        finally:
            stack.pop()

    def _expand_every(self, expr: EveryExpr, stack: list[_Frame]) -> TaskNode:
        """
        Fan a routine out to every project under the root that defines it.

        Subdirectories are visited first and the root project last. Each
        project's routine is resolved against that project's own routines.
        The routine holding the `every` is skipped in its own project.
        """
        excluded = set(expr.exclude)
        issuer = stack[-1] if stack else None
        tasks: list[ExecutionNode] = []

        for project in iter_projects(self.root, root_first=False, environ=self.environ):
            if project.name in excluded:
                logger.debug(f"every: excluding project '{project.name}'")
                continue
            book = None
            for routine in expr.include:
                if routine not in project.routines:
                    continue
                # "test": "every test" must not run itself
                if (project.path, routine) == issuer:
                    continue
                if book is None:
                    book = compile_routines(project.routines)
                node = self._expand(routine, book, project.path, stack)
                tasks.append(CrossProjectTask(project.path, project.name, routine, node))

        logger.debug(f"every {' '.join(expr.include)}: {len(tasks)} project tasks")
        return TaskNode(tuple(tasks), ExecutionMode.PARALLEL)


def resolve(
    requested: Sequence[str],
    routines: Mapping[str, str],
    root: str | Path | None = None,
    *,
    strict: bool = False,
) -> TaskNode:
    """Convenience wrapper around RoutineResolver(root, strict=strict).resolve()."""
    return RoutineResolver(root, strict=strict).resolve(requested, routines)
