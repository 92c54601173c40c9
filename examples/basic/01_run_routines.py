"""
01_run_routines.py - Resolve and run routines from a meta.json tree

Demonstrates:
- Loading a project with load_meta()
- Resolving routines into an execution tree with RoutineResolver
- Running the tree with run_routines()

The sample tree lives in examples/workspace. Every routine there only echoes.

Try it:
    python examples/basic/01_run_routines.py ci
"""
# ruff: noqa: T201

import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console

from metarun import ExecutionContext, RoutineResolver, load_meta, run_routines, setup_logging

WORKSPACE = Path(__file__).resolve().parent.parent / "workspace"


async def main(names):
    setup_logging("INFO")
    project = load_meta(WORKSPACE)

    # Resolution is pure: inspect the tree before anything runs
    tree = RoutineResolver(project.path).resolve(names, project.routines)
    print(json.dumps(tree.to_dict(), indent=2))

    # Commands run from the workspace directory, whatever the current directory is
    context = ExecutionContext.current().with_cwd(WORKSPACE)
    return await run_routines(names, project, context=context, console=Console())


if __name__ == "__main__":
    sys.exit(asyncio.run(main(sys.argv[1:] or ["ci"])))
