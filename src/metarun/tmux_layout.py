# metarun/tmux_layout.py
"""
Offline tmux layout planning.

plan_window() turns one window definition from meta.json into the ordered
tmux operations that build it and the final pane-name → pane-index map.
Nothing here talks to tmux, so every layout can be checked without a server.

Pane indices follow tmux's own numbering: the first pane is 0 and a split
inserts the new pane directly after the pane it was split from, shifting
every later pane up by one. PaneList simulates exactly that.

Supported window shapes:
- panes     flat list; each pane splits the previous one or a live `target` index
- grid      fixed 2x2 grid of four cells addressed by row/col
- sections  recursive tree of split directions and children
- steps     explicit split instructions against named panes
Any pane may carry an `sshTarget`, which runs it on another host.
"""

from __future__ import annotations

import logging
import shlex
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from .exceptions import LayoutError

logger = logging.getLogger(__name__)

# "horizontal" means a horizontal divider: panes stacked top/bottom.
DIRECTION_FLAGS = {"horizontal": "-v", "vertical": "-h"}
DEFAULT_DIRECTION = "vertical"

GRID_POSITIONS = ((0, 0), (0, 1), (1, 0), (1, 1))
LAYOUTS = ("manual", "grid", "sections", "steps")


# ─────────────────────────────────────────────────────────────────────────────
# Pane definitions
# ─────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class PaneSpec:
    name: str
    path: str | None = None
    split: str | None = None
    size: str | None = None
    target: int | None = None
    command: str | None = None
    ssh_target: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], fallback_name: str) -> PaneSpec:
        if not isinstance(data, dict):
            raise LayoutError(f"Pane definition must be an object, got {data!r}")
        target = data.get("target")
        if target is not None and (isinstance(target, bool) or not isinstance(target, int)):
            raise LayoutError(f"Pane '{data.get('name', fallback_name)}': target must be a pane index")
        size = data.get("size")
        return cls(
            name=str(data.get("name") or fallback_name),
            path=data.get("path"),
            split=data.get("split") or data.get("direction"),
            size=str(size) if size is not None else None,
            target=target,
            command=data.get("command"),
            ssh_target=data.get("sshTarget"),
        )


def split_flags(direction: str | None, size: str | None) -> list[str]:
    """tmux split-window flags for a direction and an optional size like "30%"."""
    direction = direction or DEFAULT_DIRECTION
    if direction not in DIRECTION_FLAGS:
        raise LayoutError(f"Unknown split direction {direction!r}; expected horizontal or vertical")
    flags = [DIRECTION_FLAGS[direction]]
    if size:
        percent = size.strip().rstrip("%")
        if not percent.isdigit() or not 0 < int(percent) < 100:
            raise LayoutError(f"Invalid pane size {size!r}; expected a percentage like '30%'")
        flags += ["-p", percent]
    return flags


# ─────────────────────────────────────────────────────────────────────────────
# Live pane order
# ─────────────────────────────────────────────────────────────────────────────
class PaneList:
    """Ordered list of pane names mirroring tmux's pane numbering for one window."""

    def __init__(self, first: str):
        self._panes = [first]

    def __len__(self) -> int:
        return len(self._panes)

    def __contains__(self, name: object) -> bool:
        return name in self._panes

    @property
    def names(self) -> list[str]:
        return list(self._panes)

    def index(self, name: str) -> int:
        if name not in self._panes:
            raise LayoutError(
                f"Target pane '{name}' not found. Available panes: {', '.join(self._panes)}"
            )
        return self._panes.index(name)

    def name_at(self, index: int) -> str:
        if not 0 <= index < len(self._panes):
            raise LayoutError(
                f"Target pane index {index} out of range; window has {len(self._panes)} panes"
            )
        return self._panes[index]

    def split(self, target: str, new: str) -> int:
        """Record a split of `target`; returns the index of the new pane."""
        if new in self._panes:
            raise LayoutError(f"Pane '{new}' is created twice")
        position = self.index(target) + 1
        self._panes.insert(position, new)
        return position

    def as_map(self) -> dict[str, int]:
        return {name: index for index, name in enumerate(self._panes)}


# ─────────────────────────────────────────────────────────────────────────────
# Plan
# ─────────────────────────────────────────────────────────────────────────────
@dataclass
class WindowPlan:
    """tmux operations (argv without the leading "tmux") for one window."""

    session: str
    window: str
    operations: list[list[str]] = field(default_factory=list)
    pane_map: dict[str, int] = field(default_factory=dict)
    commands: dict[str, str] = field(default_factory=dict)
    """Pane name → command typed by `attach --run`. SSH panes are already connected, so it is never wrapped."""

    def target(self, pane: str | int) -> str:
        index = pane if isinstance(pane, int) else self.pane_map[pane]
        return f"{self.session}:{self.window}.{index}"


def remote_path(path: str | Path, src_root: str | Path | None, remote_root: str | Path | None) -> str:
    """Swap the local source-root prefix of `path` for the remote one."""
    path = str(path)
    if not src_root or not remote_root:
        return path
    src_root = str(src_root).rstrip("/")
    if path == src_root or path.startswith(src_root + "/"):
        return str(remote_root).rstrip("/") + path[len(src_root):]
    return path


def ssh_command(ssh_target: str, directory: str, command: str | None) -> str:
    """Command that opens `directory` on `ssh_target`, runs `command` and keeps a login shell."""
    steps = [f"cd {shlex.quote(directory)}"]
    if command:
        steps.append(command)
    steps.append("exec \\$SHELL -l")
    return f'ssh {ssh_target} -t "{"; ".join(steps)}"'


class _WindowPlanner:
    def __init__(
        self,
        window: dict[str, Any],
        base_path: Path,
        session_name: str,
        window_name: str,
        run_commands: bool,
        create: Literal["session", "window"],
        src_root: str | Path | None,
        remote_root: str | Path | None,
    ):
        self.window = window
        self.base_path = Path(base_path)
        self.run_commands = run_commands
        self.create = create
        self.src_root = src_root
        self.remote_root = remote_root
        self.plan = WindowPlan(session=session_name, window=window_name)
        self.definitions: dict[str, PaneSpec] = {}
        self.panes: PaneList | None = None

        for i, raw in enumerate(window.get("panes") or []):
            self._define(PaneSpec.from_dict(raw, f"pane{i}"))

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #
    def _define(self, pane: PaneSpec) -> None:
        if pane.name in self.definitions:
            raise LayoutError(f"Pane '{pane.name}' is defined twice in window '{self.plan.window}'")
        self.definitions[pane.name] = pane

    def _require(self, name: str) -> PaneSpec:
        if name not in self.definitions:
            available = ", ".join(self.definitions) or "(none)"
            raise LayoutError(
                f"Pane '{name}' is not defined in window '{self.plan.window}'. "
                f"Defined panes: {available}"
            )
        return self.definitions[name]

    def _path(self, name: str) -> str:
        pane = self.definitions.get(name)
        if pane is None or not pane.path:
            return str(self.base_path)
        path = Path(pane.path)
        return str(path if path.is_absolute() else self.base_path / path)

    def _start(self, first: str) -> None:
        self.panes = PaneList(first)
        path = self._path(first)
        if self.create == "session":
            self.plan.operations.append(
                ["new-session", "-d", "-s", self.plan.session, "-n", self.plan.window, "-c", path]
            )
        else:
            self.plan.operations.append(
                ["new-window", "-t", f"{self.plan.session}:", "-n", self.plan.window, "-c", path]
            )

    def _split(self, target: str, new: str, direction: str | None, size: str | None) -> None:
        assert self.panes is not None
        index = self.panes.index(target)
        self.plan.operations.append(
            ["split-window", "-t", self.plan.target(index), *split_flags(direction, size), "-c", self._path(new)]
        )
        self.panes.split(target, new)

    def _finish(self) -> WindowPlan:
        assert self.panes is not None
        self.plan.pane_map = self.panes.as_map()
        for name in self.panes.names:
            self.plan.operations.append(["select-pane", "-t", self.plan.target(name), "-T", name])

        for name in self.panes.names:
            pane = self.definitions.get(name)
            if pane is None:
                continue
            if pane.command:
                self.plan.commands[name] = pane.command
            if pane.ssh_target:
                # SSH panes connect at creation; the pane command rides along only with run_commands
                directory = remote_path(self._path(name), self.src_root, self.remote_root)
                keys = ssh_command(pane.ssh_target, directory, pane.command if self.run_commands else None)
            elif pane.command and self.run_commands:
                keys = pane.command
            else:
                continue
            self.plan.operations.append(["send-keys", "-t", self.plan.target(name), keys, "Enter"])
        return self.plan

    # ------------------------------------------------------------------ #
    # Strategies
    # ------------------------------------------------------------------ #
    def layout(self) -> WindowPlan:
        kind = detect_layout(self.window)
        logger.debug(f"Planning window '{self.plan.window}' with {kind} layout")
        if kind == "grid":
            self._grid()
        elif kind == "sections":
            self._sections()
        elif kind == "steps":
            self._steps()
        else:
            self._manual()
        return self._finish()

    def _manual(self) -> None:
        names = list(self.definitions)
        if not names:
            raise LayoutError(f"Window '{self.plan.window}' has no panes")
        self._start(names[0])
        previous = names[0]
        for name in names[1:]:
            pane = self.definitions[name]
            assert self.panes is not None
            target = self.panes.name_at(pane.target) if pane.target is not None else previous
            self._split(target, name, pane.split, pane.size)
            previous = name

    def _grid(self) -> None:
        cells = self.window.get("grid") or []
        if not isinstance(cells, list) or len(cells) != 4:
            raise LayoutError(f"Grid window '{self.plan.window}' needs exactly 4 cells")

        by_position: dict[tuple[int, int], str] = {}
        for i, cell in enumerate(cells):
            if not isinstance(cell, dict):
                raise LayoutError(f"Grid cell must be an object, got {cell!r}")
            position = (cell.get("row"), cell.get("col"))
            if position not in GRID_POSITIONS or position in by_position:
                raise LayoutError(
                    f"Grid window '{self.plan.window}' must cover rows/cols "
                    f"(0,0), (0,1), (1,0), (1,1) exactly once; got {position}"
                )
            pane = PaneSpec.from_dict(cell, f"cell{position[0]}{position[1]}")
            if pane.name in self.definitions and self.definitions[pane.name] != pane:
                raise LayoutError(f"Pane '{pane.name}' is defined twice in window '{self.plan.window}'")
            self.definitions[pane.name] = pane
            by_position[position] = pane.name

        top_left, top_right = by_position[(0, 0)], by_position[(0, 1)]
        bottom_left, bottom_right = by_position[(1, 0)], by_position[(1, 1)]
        self._start(top_left)
        self._split(top_left, bottom_left, "horizontal", "50%")
        self._split(top_left, top_right, "vertical", "50%")
        self._split(bottom_left, bottom_right, "vertical", "50%")

    def _sections(self) -> None:
        root = self.window.get("sections")
        if isinstance(root, list):
            root = {"direction": DEFAULT_DIRECTION, "children": root}
        if not isinstance(root, dict) or not root.get("children"):
            raise LayoutError(f"Sections of window '{self.plan.window}' need a non-empty 'children' list")
        self._start(self._first_leaf(root))
        self._section(root, self._first_leaf(root))

    def _first_leaf(self, node: dict[str, Any]) -> str:
        if _is_section(node):
            children = node.get("children") or []
            if not children:
                raise LayoutError(f"Empty section in window '{self.plan.window}'")
            return self._first_leaf(children[0])
        return self._leaf_name(node)

    def _leaf_name(self, node: Any) -> str:
        if isinstance(node, str):
            name = node
        elif isinstance(node, dict) and "pane" in node and "name" not in node:
            name = node["pane"]
        elif isinstance(node, dict):
            if not node.get("name"):
                raise LayoutError(f"Inline pane in window '{self.plan.window}' needs a name")
            pane = PaneSpec.from_dict(node, node["name"])
            if pane.name not in self.definitions:
                self._define(pane)
            name = pane.name
        else:
            raise LayoutError(f"Invalid section child {node!r}")
        self._require(name)
        return name

    def _section(self, section: dict[str, Any], region: str) -> None:
        children = section.get("children") or []
        direction = section.get("direction") or section.get("split") or DEFAULT_DIRECTION
        regions = [region]
        for child in children[1:]:
            new = self._first_leaf(child)
            size = child.get("size") if isinstance(child, dict) else None
            self._split(regions[-1], new, direction, str(size) if size is not None else None)
            regions.append(new)
        for child, child_region in zip(children, regions):
            if _is_section(child):
                self._section(child, child_region)

    def _steps(self) -> None:
        steps = self.window.get("steps") or []
        initial = self.window.get("initialPane") or next(iter(self.definitions), None)
        if not initial:
            raise LayoutError(f"Window '{self.plan.window}' has steps but no initial pane")
        self._require(initial)
        self._start(initial)
        for number, step in enumerate(steps, start=1):
            if not isinstance(step, dict):
                raise LayoutError(f"Step {number} of window '{self.plan.window}' must be an object")
            action = step.get("action", "split")
            if action != "split":
                raise LayoutError(f"Step {number}: unsupported action {action!r}")
            new = step.get("newPane")
            if not new:
                raise LayoutError(f"Step {number}: 'newPane' is required")
            self._require(new)
            target = step.get("target") or initial
            size = step.get("size")
            self._split(target, new, step.get("direction"), str(size) if size is not None else None)


def _is_section(node: Any) -> bool:
    return isinstance(node, dict) and "children" in node


def detect_layout(window: dict[str, Any]) -> str:
    """Pick the layout strategy from `layout` or from the window's shape."""
    layout = window.get("layout")
    if layout:
        if layout not in LAYOUTS:
            raise LayoutError(f"Unknown layout {layout!r}; expected one of {', '.join(LAYOUTS)}")
        return layout
    for key in ("grid", "sections", "steps"):
        if window.get(key):
            return key
    return "manual"


def plan_window(
    window: dict[str, Any],
    base_path: str | Path,
    session_name: str,
    window_name: str,
    run_commands: bool = False,
    *,
    create: Literal["session", "window"] = "window",
    src_root: str | Path | None = None,
    remote_root: str | Path | None = None,
) -> WindowPlan:
    """
    Plan one window.

    Args:
        window: Window definition from meta.json
        base_path: Directory relative pane paths are resolved against
        session_name: tmux session name
        window_name: tmux window name
        run_commands: Type each pane's command into it once the layout exists
        create: "session" to start a new session with this window, "window" to add a window
        src_root: Local source root (SRC), for SSH panes
        remote_root: Source root on the SSH host (LOCALHOST_SRC)

    Raises:
        LayoutError: If the definition is inconsistent; no operation is emitted in that case
    """
    if not isinstance(window, dict):
        raise LayoutError(f"Window definition must be an object, got {window!r}")
    planner = _WindowPlanner(
        window, Path(base_path), session_name, window_name, run_commands, create, src_root, remote_root
    )
    return planner.layout()


def describe(plan: WindowPlan) -> Iterable[str]:
    """Human-readable tmux commands of a plan."""
    for argv in plan.operations:
        yield "tmux " + " ".join(shlex.quote(arg) for arg in argv)
