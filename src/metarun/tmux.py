# metarun/tmux.py
"""
tmux sessions built from meta.json.

TmuxClient is a thin async wrapper over the tmux binary; TmuxWorkspace
implements the `run tmux` commands on top of it and of the offline planner
in tmux_layout.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from rich.console import Console

from .discovery import iter_projects
from .exceptions import LayoutError, TmuxError
from .process_runner import LocalProcessRunner, ProcessResult, ProcessRunner
from .project_config import ProjectConfig
from .settings import RunSettings
from .tmux_layout import WindowPlan, plan_window

logger = logging.getLogger(__name__)

TMUX = "tmux"

# Pastel window-status colours for `--color`
TMUX_COLORS = (
    "colour146",
    "colour152",
    "colour182",
    "colour189",
    "colour219",
    "colour151",
    "colour225",
    "colour194",
    "colour174",
    "colour223",
    "colour158",
    "colour195",
)


class TmuxClient:
    """Runs tmux subcommands through a ProcessRunner."""

    def __init__(self, runner: ProcessRunner | None = None):
        self.runner = runner or LocalProcessRunner()

    async def run(self, *args: str, check: bool = True, capture: bool = True) -> ProcessResult:
        argv = [str(arg) for arg in args]
        logger.debug(f"tmux {' '.join(argv)}")
        result = await self.runner.run([TMUX, *argv], capture=capture)
        if check and result.returncode != 0:
            raise TmuxError(argv, result.returncode, result.stderr)
        return result

    async def has_session(self, session: str) -> bool:
        result = await self.run("has-session", "-t", session, check=False)
        return result.returncode == 0

    async def kill_session(self, session: str) -> None:
        await self.run("kill-session", "-t", session)

    async def send_keys(self, target: str, command: str) -> None:
        await self.run("send-keys", "-t", target, command, "Enter")

    async def attach(self, session: str) -> None:
        await self.run("attach-session", "-t", session, capture=False)

    async def list_sessions(self) -> str:
        result = await self.run("list-sessions", check=False)
        return result.stdout if result.returncode == 0 else ""

    async def apply(self, plan: WindowPlan) -> None:
        """
        Run a plan's operations in order.

        Failing send-keys operations are logged and skipped; any other
        failure raises TmuxError.
        """
        for argv in plan.operations:
            if argv[0] == "send-keys":
                try:
                    await self.run(*argv)
                except TmuxError as e:
                    logger.warning(f"Could not send command to {argv[2]}: {e}")
                continue
            await self.run(*argv)


async def layout_window(
    client: TmuxClient,
    window: dict[str, Any],
    base_path: str | Path,
    session_name: str,
    window_name: str,
    run_commands: bool = False,
    **kwargs: Any,
) -> dict[str, int]:
    """Plan one window, build it in tmux and return its pane-name → index map."""
    plan = plan_window(window, base_path, session_name, window_name, run_commands, **kwargs)
    await client.apply(plan)
    return plan.pane_map


# ─────────────────────────────────────────────────────────────────────────────
# Attach targets
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PaneTarget:
    """A `--run` target: `window`, `window.pane` or `window.pane[index]`."""

    window: str
    pane: str | None = None
    index: int | None = None

    @classmethod
    def parse(cls, text: str) -> PaneTarget:
        window, _, pane = text.partition(".")
        if not window:
            raise ValueError(f"Invalid target {text!r}")
        if not pane:
            return cls(window)
        if pane.startswith("pane[") and pane.endswith("]"):
            number = pane[len("pane["):-1]
            if not number.isdigit():
                raise ValueError(f"Invalid pane index in target {text!r}")
            return cls(window, index=int(number))
        return cls(window, pane=pane)

    def matches(self, window: str, pane: str, index: int) -> bool:
        if window != self.window:
            return False
        if self.pane is not None:
            return pane == self.pane
        if self.index is not None:
            return index == self.index
        return True


def window_name(project: ProjectConfig, window: dict[str, Any]) -> str:
    return f"{project.name}-{window.get('name') or 'window'}"


def session_root(project: ProjectConfig, session: dict[str, Any]) -> Path:
    base = project.path or Path.cwd()
    return base / session["root"] if session.get("root") else base


# ─────────────────────────────────────────────────────────────────────────────
# Commands
# ─────────────────────────────────────────────────────────────────────────────
class TmuxWorkspace:
    """Implements `run tmux init/attach/terminate/list`."""

    def __init__(
        self,
        client: TmuxClient | None = None,
        settings: RunSettings | None = None,
        console: Console | None = None,
    ):
        self.client = client or TmuxClient()
        self.settings = settings or RunSettings()
        self.console = console or Console()

    def _session_configs(self, project: ProjectConfig, session_name: str) -> list[dict[str, Any]]:
        return [s for s in project.tmux_sessions if isinstance(s, dict) and s.get("name") == session_name]

    def _plan(
        self,
        project: ProjectConfig,
        session: dict[str, Any],
        window: dict[str, Any],
        session_name: str,
        run_commands: bool,
        create: str = "window",
    ) -> WindowPlan:
        return plan_window(
            window,
            session_root(project, session),
            session_name,
            window_name(project, window),
            run_commands,
            create=create,  # type: ignore[arg-type]
            src_root=self.settings.src,
            remote_root=self.settings.localhost_src,
        )

    async def init_session(
        self,
        session_name: str,
        project: ProjectConfig,
        *,
        reset: bool = False,
        color: bool = False,
        run_commands: bool = False,
        append: bool = False,
        session_exists: bool | None = None,
    ) -> list[str]:
        """
        Create the windows of one project's session definition.

        Returns:
            Names of the windows created. A window whose layout is invalid, or
            whose tmux commands fail, is reported and skipped; the others are
            still created.
        """
        configs = self._session_configs(project, session_name)
        if not configs:
            logger.warning(f"No tmux session '{session_name}' defined in {project.name}")
            if not append:
                self.console.print(f"[yellow]⚠️  No tmux configuration found in {project.name}[/yellow]")
            return []

        exists = await self.client.has_session(session_name) if session_exists is None else session_exists
        if reset and exists:
            self.console.print(f"[yellow]🔄 Resetting session: {session_name}[/yellow]")
            await self.client.kill_session(session_name)
            exists = False

        if not append:
            self.console.print(f"[green]🚀 Initializing tmux session '{session_name}' for {project.name}...[/green]")

        created: list[str] = []
        for session in configs:
            for window in session.get("windows") or []:
                name = window_name(project, window)
                try:
                    plan = self._plan(
                        project, session, window, session_name, run_commands,
                        create="window" if exists else "session",
                    )
                except LayoutError as e:
                    logger.error(f"Window {name}: {e}")
                    self.console.print(f"[red]❌ Window '{name}': {e}[/red]")
                    continue

                try:
                    await self.client.apply(plan)
                except TmuxError as e:
                    # Past a failed new-session the session is there
                    exists = exists or e.argv[0] != "new-session"
                    logger.error(f"Window {name}: {e}")
                    self.console.print(f"[red]❌ Window '{name}' is incomplete: {e}[/red]")
                    continue
                exists = True
                created.append(name)
                if color:
                    colour = random.choice(TMUX_COLORS)
                    await self.client.run(
                        "set-window-option", "-t", f"{session_name}:{name}", "window-status-style", f"bg={colour}"
                    )
                self.console.print(f"[dim]  ✓ {name} ({len(plan.pane_map)} panes)[/dim]")

        if created and not append:
            await self.focus(session_name, created[0])
            self._print_created(session_name)
        return created

    async def init_all(
        self,
        session_name: str,
        root: str | Path | None = None,
        *,
        reset: bool = False,
        color: bool = False,
        run_commands: bool = False,
    ) -> list[str]:
        """Append the `session_name` windows of every project under root (SRC) into one session."""
        root = Path(root) if root is not None else self.settings.source_root()
        projects = [p for p in iter_projects(root) if self._session_configs(p, session_name)]
        if not projects:
            self.console.print("[yellow]⚠️  No tmux configurations found in project[/yellow]")
            return []

        self.console.print(f"[blue]📦 Found {len(projects)} tmux configurations[/blue]")
        exists = await self.client.has_session(session_name)
        if reset and exists:
            self.console.print(f"[yellow]🔄 Resetting existing session: {session_name}[/yellow]")
            await self.client.kill_session(session_name)
            exists = False

        created: list[str] = []
        session_exists: bool | None = exists
        for project in projects:
            self.console.print(f"[dim]📁 Processing: {project.name} ({project.path})[/dim]")
            created += await self.init_session(
                session_name, project, color=color, run_commands=run_commands,
                append=True, session_exists=session_exists,
            )
            # A project whose windows all failed may still have created the session
            session_exists = True if created else None

        if created:
            await self.focus(session_name, created[0])
            self._print_created(session_name)
        return created

    async def focus(self, session_name: str, window: str) -> None:
        await self.client.run("select-window", "-t", f"{session_name}:{window}")
        await self.client.run("select-pane", "-t", f"{session_name}:{window}.0")

    def _print_created(self, session_name: str) -> None:
        self.console.print(f"[green]✅ Session '{session_name}' created successfully![/green]")
        self.console.print(f"[cyan]   To attach: tmux attach-session -t {session_name}[/cyan]")

    async def execute_session_commands(
        self,
        session_name: str,
        root: str | Path | None = None,
        *,
        run_all: bool = False,
        targets: list[str] | None = None,
    ) -> int:
        """
        Type pane commands into an existing session.

        Every pane with a command is selected by `run_all`; otherwise only
        panes matching one of `targets`. Returns the number of commands sent.
        """
        parsed = [PaneTarget.parse(t) for t in targets or []]
        if not run_all and not parsed:
            return 0

        root = Path(root) if root is not None else self.settings.source_root()
        sent = 0
        for project in iter_projects(root):
            for session in self._session_configs(project, session_name):
                for window in session.get("windows") or []:
                    try:
                        plan = self._plan(project, session, window, session_name, run_commands=True)
                    except LayoutError as e:
                        logger.warning(f"Skipping window {window_name(project, window)}: {e}")
                        continue
                    for pane, command in plan.commands.items():
                        index = plan.pane_map[pane]
                        if not run_all and not any(t.matches(plan.window, pane, index) for t in parsed):
                            continue
                        if sent:
                            await asyncio.sleep(self.settings.command_pause_secs)
                        try:
                            await self.client.send_keys(plan.target(index), command)
                        except TmuxError as e:
                            logger.warning(f"Could not send command to {plan.target(index)}: {e}")
                            self.console.print(f"[yellow]⚠️  {plan.window}.{pane}: {e}[/yellow]")
                            continue
                        sent += 1
                        self.console.print(f"[dim]  ▶ {plan.window}.{pane}: {command}[/dim]")
        return sent

    async def attach(
        self,
        session_name: str,
        root: str | Path | None = None,
        *,
        run_all: bool = False,
        targets: list[str] | None = None,
    ) -> None:
        if not await self.client.has_session(session_name):
            raise TmuxError(["has-session", "-t", session_name], 1, f"session '{session_name}' does not exist")
        await self.execute_session_commands(session_name, root, run_all=run_all, targets=targets)
        await self.client.attach(session_name)

    async def terminate(self, session_name: str) -> bool:
        """Kill a session. Returns False if it did not exist."""
        if not await self.client.has_session(session_name):
            self.console.print(f"[yellow]⚠️  Session '{session_name}' does not exist[/yellow]")
            return False
        await self.client.kill_session(session_name)
        self.console.print(f"[green]✅ Session '{session_name}' terminated successfully[/green]")
        return True

    async def list_sessions(self) -> list[str]:
        output = await self.client.list_sessions()
        sessions = [line for line in output.splitlines() if line.strip()]
        if not sessions:
            self.console.print("[yellow]No tmux sessions running[/yellow]")
        for line in sessions:
            self.console.print(line)
        return sessions
