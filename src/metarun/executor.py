# metarun/executor.py
"""
RoutineExecutor - runs an execution tree produced by the RoutineResolver.

Semantics:
- `cd <dir>` leaves change the working directory of the enclosing sequence only
- other leaves are tokenized with shlex and run through a ProcessRunner with inherited stdio
- parallel groups run every child to completion, then re-raise the first error
- sequence groups stop at the first failing child
- cross-project tasks run from their project's directory
"""

from __future__ import annotations

import asyncio
import logging
import shlex
from collections.abc import Sequence
from pathlib import Path

from rich.console import Console

from .command_run import CommandRun
from .context import ExecutionContext
from .exceptions import ExecutionError, MetarunError
from .execution_tree import CrossProjectTask, ExecutionMode, ExecutionNode, TaskNode
from .process_runner import LocalProcessRunner, ProcessRunner
from .project_config import ProjectConfig
from .routine_resolver import RoutineResolver

logger = logging.getLogger(__name__)

CD_PREFIX = "cd "
SUCCESS_MESSAGE = "All tasks executed successfully."


class RoutineExecutor:
    """Walks an execution tree and runs its leaves."""

    def __init__(self, runner: ProcessRunner | None = None):
        self.runner = runner or LocalProcessRunner()
        self.runs: list[CommandRun] = []

    async def execute(self, node: ExecutionNode, context: ExecutionContext | None = None) -> None:
        """
        Execute a tree. Raises the first ExecutionError encountered.

        The caller's context is never modified.
        """
        context = context or ExecutionContext.current()
        await self._execute_node(node, context, "0")

    # ------------------------------------------------------------------ #
    # Dispatch
    # ------------------------------------------------------------------ #
    async def _execute_node(self, node: ExecutionNode, context: ExecutionContext, path: str) -> ExecutionContext:
        """Run one node and return the context that follows it."""
        if isinstance(node, str):
            return await self._execute_leaf(node, context, path)
        if isinstance(node, CrossProjectTask):
            logger.debug(f"[{path}] {node.project}: {node.routine} in {node.directory}")
            await self._execute_node(node.task, context.with_cwd(node.directory), f"{path}.0")
            return context
        if node.mode is ExecutionMode.PARALLEL:
            await self._execute_parallel(node, context, path)
        else:
            await self._execute_sequence(node, context, path)
        return context

    async def _execute_parallel(self, node: TaskNode, context: ExecutionContext, path: str) -> None:
        results = await asyncio.gather(
            *(
                self._execute_node(child, context.fork(), f"{path}.{index}")
                for index, child in enumerate(node.tasks)
            ),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, BaseException)]
        if errors:
            if len(errors) > 1:
                logger.debug(f"[{path}] {len(errors)} of {len(results)} parallel branches failed")
            raise errors[0]

    async def _execute_sequence(self, node: TaskNode, context: ExecutionContext, path: str) -> None:
        scoped = context
        for index, child in enumerate(node.tasks):
            scoped = await self._execute_node(child, scoped, f"{path}.{index}")

    async def _execute_leaf(self, command: str, context: ExecutionContext, path: str) -> ExecutionContext:
        command = command.strip()
        if not command:
            return context

        if command.startswith(CD_PREFIX):
            target = command[len(CD_PREFIX):].strip()
            new_context = context.with_cwd(target)
            if not new_context.cwd.is_dir():
                raise ExecutionError(command, cwd=context.cwd, path=path, reason="failed: no such directory")
            logger.debug(f"[{path}] cd {new_context.cwd}")
            return new_context

        run = CommandRun(command=command, cwd=str(context.cwd), path=path)
        self.runs.append(run)
        try:
            argv = shlex.split(command)
        except ValueError as e:
            run.mark_failed(e)
            raise ExecutionError(command, cwd=context.cwd, path=path, reason=f"cannot be parsed: {e}") from None

        run.mark_running()
        logger.info(f"[{path}] $ {command}")
        try:
            result = await self.runner.run(argv, cwd=context.cwd, env=context.env)
        except ExecutionError as e:
            run.mark_failed(e)
            e.path = e.path or path
            raise
        if result.returncode != 0:
            run.mark_failed(f"exit code {result.returncode}", result.returncode)
            raise ExecutionError(command, result.returncode, context.cwd, path)
        run.mark_success(result.returncode)
        return context


async def run_routines(
    requested: Sequence[str],
    project: ProjectConfig,
    *,
    runner: ProcessRunner | None = None,
    context: ExecutionContext | None = None,
    strict: bool = False,
    console: Console | None = None,
) -> int:
    """
    Resolve and execute routines of a project.

    Returns:
        0 when every command succeeded, 1 on any resolution or execution failure
    """
    root = project.path or Path.cwd()
    context = context or ExecutionContext.current()
    try:
        tree = RoutineResolver(root, strict=strict, environ=context.env).resolve(requested, project.routines)
        executor = RoutineExecutor(runner)
        await executor.execute(tree, context)
    except MetarunError as e:
        logger.error(f"Error executing tasks: {e}")
        if console:
            console.print(f"[red]❌ Error executing tasks: {e}[/red]")
        return 1

    logger.info(SUCCESS_MESSAGE)
    if console:
        console.print(f"[green]{SUCCESS_MESSAGE}[/green]")
    return 0
