"""
01_plan_layouts.py - Preview the tmux commands of a session without tmux

Demonstrates:
- plan_window() for grid and sections layouts
- describe() to print the tmux commands a window would run
- the final pane-name → pane-index map

Try it:
    python examples/tmux/01_plan_layouts.py
"""
# ruff: noqa: T201

from pathlib import Path

from metarun import load_meta, plan_window
from metarun.tmux_layout import describe

WORKSPACE = Path(__file__).resolve().parent.parent / "workspace"


def main():
    project = load_meta(WORKSPACE)
    for session in project.tmux_sessions:
        create = "session"
        for window in session["windows"]:
            name = f"{project.name}-{window['name']}"
            plan = plan_window(window, project.path, session["name"], name, run_commands=True, create=create)
            create = "window"

            print(f"# {name}: {plan.pane_map}")
            for line in describe(plan):
                print(line)
            print()


if __name__ == "__main__":
    main()
