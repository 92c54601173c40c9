# metarun/cli.py
"""
`run` command line.

    run [-v] [--cible ENV] [--settings PATH] <group> ...

Groups: routine, tmux, meta, misc. Library errors (MetarunError) are
printed and exit with 1, argument errors exit with 2 (argparse), Ctrl-C
exits with 130.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

from rich.console import Console
from rich.prompt import Confirm, Prompt
from rich.text import Text
from rich.tree import Tree

from . import __version__
from .context import ExecutionContext
from .discovery import find_duplicate_ids
from .environment import DEFAULT_CIBLE, prepare_environment
from .exceptions import ConfigurationError, MetarunError
from .execution_tree import CrossProjectTask, ExecutionNode
from .executor import run_routines
from .logging_config import setup_logging
from .meta_config import create_short_id, load_meta, meta_exists, read_meta_document, write_meta
from .project_config import PROJECT_TYPES, ProjectConfig
from .routine_resolver import RoutineResolver
from .settings import RunSettings, load_settings
from .tmux import TmuxWorkspace

logger = logging.getLogger(__name__)

SCRIPTS_DIRECTORY = "scripts"


def project_directory(cwd: Path | None = None) -> Path:
    """Directory holding the project's meta.json; a `scripts` folder resolves to its parent."""
    cwd = cwd or Path.cwd()
    return cwd.parent if cwd.name == SCRIPTS_DIRECTORY else cwd


def require_project(directory: Path) -> ProjectConfig:
    project = load_meta(directory)
    if project is None:
        raise ConfigurationError(f"No meta.json found in {directory}")
    return project


# ─────────────────────────────────────────────────────────────────────────────
# routine
# ─────────────────────────────────────────────────────────────────────────────
def build_tree(node: ExecutionNode, tree: Tree) -> Tree:
    """Add an execution node (and its children) under a rich Tree."""
    if isinstance(node, str):
        tree.add(Text(node))
    elif isinstance(node, CrossProjectTask):
        branch = tree.add(Text.assemble((node.project, "cyan"), f": {node.routine} ({node.directory})"))
        build_tree(node.task, branch)
    else:
        branch = tree.add(Text(node.mode.value, style="bold"))
        for child in node.tasks:
            build_tree(child, branch)
    return tree


def cmd_routine(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    project = require_project(project_directory())
    if not project.routines:
        console.print("No routines found")
        return 0

    scripts = list(args.scripts)
    if not scripts:
        scripts = [Prompt.ask("Select a script to run", choices=list(project.routines), console=console)]

    strict = args.strict or settings.strict_routines
    context = ExecutionContext.current().with_env(FORCE_COLOR="1")

    if args.dry_run:
        tree = RoutineResolver(project.path, strict=strict, environ=context.env).resolve(scripts, project.routines)
        console.print(build_tree(tree, Tree(Text.assemble((project.name, "bold"), f": {' '.join(scripts)}"))))
        return 0

    return asyncio.run(run_routines(scripts, project, context=context, strict=strict, console=console))


# ─────────────────────────────────────────────────────────────────────────────
# tmux
# ─────────────────────────────────────────────────────────────────────────────
def cmd_tmux_init(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    workspace = TmuxWorkspace(settings=settings, console=console)
    if args.all:
        created = asyncio.run(
            workspace.init_all(args.session, reset=args.reset, color=args.color, run_commands=args.command)
        )
    else:
        project = require_project(project_directory())
        created = asyncio.run(
            workspace.init_session(
                args.session, project, reset=args.reset, color=args.color, run_commands=args.command
            )
        )
    return 0 if created else 1


def cmd_tmux_attach(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    workspace = TmuxWorkspace(settings=settings, console=console)
    asyncio.run(workspace.attach(args.session, run_all=args.run_all, targets=args.run))
    return 0


def cmd_tmux_terminate(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    workspace = TmuxWorkspace(settings=settings, console=console)
    return 0 if asyncio.run(workspace.terminate(args.session)) else 1


def cmd_tmux_list(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    asyncio.run(TmuxWorkspace(settings=settings, console=console).list_sessions())
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# meta
# ─────────────────────────────────────────────────────────────────────────────
def cmd_meta_create(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    directory = project_directory()
    if meta_exists(directory) and not Confirm.ask(
        f"{directory / 'meta.json'} already exists. Overwrite?", default=False, console=console
    ):
        return 1

    interactive = args.name is None
    name = args.name or Prompt.ask("What is the name of this object?", console=console)
    kind = args.type or (
        Prompt.ask("What is the type of this object?", choices=list(PROJECT_TYPES), default="project", console=console)
        if interactive
        else "project"
    )
    is_global = args.is_global or (
        interactive and Confirm.ask("Is this an environment-based app?", default=False, console=console)
    )

    document = {"id": create_short_id(), "name": name, "type": kind}
    if is_global:
        document["global"] = "true"
    ProjectConfig.from_document(document, directory)

    path = write_meta(directory, document)
    console.print(f"[green]Created {path}[/green]")
    return 0


def cmd_meta_change(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    directory = project_directory()
    document = read_meta_document(directory)
    if document is None:
        raise ConfigurationError(f"No meta.json found in {directory}")

    key = args.property or Prompt.ask(
        "What property do you want to change?", choices=list(document), console=console
    )
    if key == "id":
        document["id"] = create_short_id()
    elif key == "global":
        value = args.value if args.value is not None else str(
            Confirm.ask("Is this an environment-based app?", console=console)
        )
        if value.lower() in ("1", "true", "yes", "y"):
            document["global"] = "true"
        else:
            document.pop("global", None)
    elif key == "type":
        document["type"] = args.value or Prompt.ask(
            "What is the new type?", choices=list(PROJECT_TYPES), console=console
        )
    else:
        document[key] = args.value if args.value is not None else Prompt.ask(
            f"What is the new {key}?", console=console
        )

    ProjectConfig.from_document(document, directory)
    write_meta(directory, document)
    console.print(f"[green]Updated '{key}' in {directory / 'meta.json'}[/green]")
    return 0


def cmd_meta_check_ids(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    root = settings.source_root()
    duplicates = find_duplicate_ids(root)
    if not duplicates:
        console.print(f"[green]No duplicate ids under {root}[/green]")
        return 0
    for project_id, paths in duplicates.items():
        console.print(f"[red]Duplicate id {project_id}:[/red]")
        for path in paths:
            console.print(f"  {path}")
    return 1


# ─────────────────────────────────────────────────────────────────────────────
# misc
# ─────────────────────────────────────────────────────────────────────────────
def cmd_misc_uuid(args: argparse.Namespace, settings: RunSettings, console: Console) -> int:
    console.print(create_short_id(args.length), highlight=False)
    return 0


# ─────────────────────────────────────────────────────────────────────────────
# Parser
# ─────────────────────────────────────────────────────────────────────────────
def _positive_int(value: str) -> int:
    number = int(value)
    if number <= 0:
        raise argparse.ArgumentTypeError("must be a positive integer")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="run", description="Project routines and tmux workspaces driven by meta.json.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="-v for info, -vv for debug logging")
    parser.add_argument("--cible", default=DEFAULT_CIBLE, help="Environment whose .env.<cible> file is loaded (default: local)")
    parser.add_argument("--settings", default=None, help="Settings TOML file (default: $RUN_SETTINGS or ~/.config/metarun/settings.toml)")
    groups = parser.add_subparsers(dest="group", metavar="<group>", required=True)

    routine = groups.add_parser("routine", help="Run routines from meta.json")
    routine.add_argument("scripts", nargs="*", help="Routine names or commands; prompts when omitted")
    routine.add_argument("--dry-run", action="store_true", help="Print the execution tree without running it")
    routine.add_argument("--strict", action="store_true", help="Unknown routine names are errors")
    routine.set_defaults(func=cmd_routine)

    tmux = groups.add_parser("tmux", help="Manage tmux sessions")
    tmux_commands = tmux.add_subparsers(dest="command", metavar="<command>", required=True)

    init = tmux_commands.add_parser("init", help="Create a session from meta.json")
    init.add_argument("session")
    init.add_argument("--all", action="store_true", help="Append the session of every project under SRC")
    init.add_argument("--reset", action="store_true", help="Kill the session first if it exists")
    init.add_argument("--color", action="store_true", help="Give each window a random status colour")
    init.add_argument("--command", action="store_true", help="Run pane commands once the layout exists")
    init.set_defaults(func=cmd_tmux_init)

    attach = tmux_commands.add_parser("attach", help="Attach to a session")
    attach.add_argument("session")
    attach.add_argument("--run-all", action="store_true", help="Send every pane command before attaching")
    attach.add_argument(
        "--run", nargs="+", action="extend", default=[], metavar="TARGET",
        help="window, window.pane or window.pane[index] whose command is sent before attaching",
    )
    attach.set_defaults(func=cmd_tmux_attach)

    terminate = tmux_commands.add_parser("terminate", help="Kill a session")
    terminate.add_argument("session")
    terminate.set_defaults(func=cmd_tmux_terminate)

    tmux_commands.add_parser("list", help="List tmux sessions").set_defaults(func=cmd_tmux_list)

    meta = groups.add_parser("meta", help="Manage meta.json files")
    meta_commands = meta.add_subparsers(dest="command", metavar="<command>", required=True)

    create = meta_commands.add_parser("create", help="Create a meta.json file")
    create.add_argument("--name")
    create.add_argument("--type", choices=PROJECT_TYPES)
    create.add_argument("--global", dest="is_global", action="store_true")
    create.set_defaults(func=cmd_meta_create)

    change = meta_commands.add_parser("change", help="Change a property of meta.json")
    change.add_argument("property", nargs="?")
    change.add_argument("value", nargs="?")
    change.set_defaults(func=cmd_meta_change)

    meta_commands.add_parser("check-ids", help="Report duplicate ids under SRC").set_defaults(func=cmd_meta_check_ids)

    misc = groups.add_parser("misc", help="Miscellaneous helpers")
    misc_commands = misc.add_subparsers(dest="command", metavar="<command>", required=True)
    uuid = misc_commands.add_parser("uuid", help="Print a random short id")
    uuid.add_argument("length", nargs="?", type=_positive_int, default=12)
    uuid.set_defaults(func=cmd_misc_uuid)

    return parser


def main(argv: list[str] | None = None, console: Console | None = None) -> int:
    args = build_parser().parse_args(sys.argv[1:] if argv is None else argv)
    console = console or Console()

    try:
        if args.group != "misc":
            prepare_environment(project_directory(), args.cible)
        settings = load_settings(args.settings)
        level = {0: settings.log_level, 1: "INFO"}.get(args.verbose, "DEBUG")
        setup_logging(level, file=settings.log_file)
        logger.debug(f"run {args.group} (cwd={os.getcwd()}, cible={args.cible})")
        return args.func(args, settings, console)
    except MetarunError as e:
        logger.debug("Command failed", exc_info=True)
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
        return 130
