# tests/test_tmux.py
import io

import pytest
from rich.console import Console

from metarun import MockProcessRunner, ProcessResult, RunSettings, TmuxClient, TmuxError, TmuxWorkspace, load_meta
from metarun.tmux import TMUX_COLORS, PaneTarget, layout_window

TMUX_SECTION = {
    "sessions": [
        {
            "name": "dev",
            "windows": [
                {
                    "name": "main",
                    "panes": [
                        {"name": "editor", "command": "vim"},
                        {"name": "shell", "command": "npm run dev"},
                    ],
                },
                {
                    "name": "bad",
                    "panes": [{"name": "x"}],
                    "steps": [{"action": "split", "target": "ghost", "newPane": "x"}],
                },
            ],
        },
        {"name": "other", "windows": [{"name": "w", "panes": [{"name": "p"}]}]},
    ]
}


@pytest.fixture
def project_dir(tmp_path, write_meta_file):
    return write_meta_file(tmp_path, name="app", tmux=TMUX_SECTION)


def make_workspace(runner, **settings):
    console = Console(file=io.StringIO(), width=200)
    settings.setdefault("command_pause_secs", 0)
    return TmuxWorkspace(TmuxClient(runner), RunSettings(**settings), console)


# ─────────────────────────────────────────────────────────────────────────────
# Client
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_client_raises_on_failure():
    runner = MockProcessRunner({"tmux kill-session -t dev": ProcessResult(1, "", "no server running")})
    with pytest.raises(TmuxError, match="no server running") as exc:
        await TmuxClient(runner).kill_session("dev")
    assert exc.value.returncode == 1


@pytest.mark.asyncio
async def test_has_session():
    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    client = TmuxClient(runner)
    assert await client.has_session("dev") is False
    assert await client.has_session("other") is True


@pytest.mark.asyncio
async def test_layout_window_applies_plan_and_returns_map():
    runner = MockProcessRunner()
    window = {"panes": [{"name": "a"}, {"name": "b", "target": 0}, {"name": "c", "target": 0}]}
    pane_map = await layout_window(TmuxClient(runner), window, "/src", "dev", "w")
    assert pane_map == {"a": 0, "c": 1, "b": 2}
    assert runner.commands[0] == "tmux new-window -t dev: -n w -c /src"


@pytest.mark.asyncio
async def test_apply_skips_failed_send_keys():
    runner = MockProcessRunner({"tmux send-keys -t dev:w.0 vim Enter": 1})
    window = {"panes": [{"name": "a", "command": "vim"}, {"name": "b", "command": "ls"}]}
    await layout_window(TmuxClient(runner), window, "/src", "dev", "w", run_commands=True)
    assert runner.commands[-1] == "tmux send-keys -t dev:w.1 ls Enter"


# ─────────────────────────────────────────────────────────────────────────────
# Targets
# ─────────────────────────────────────────────────────────────────────────────
def test_pane_target_parse():
    assert PaneTarget.parse("app-main") == PaneTarget("app-main")
    assert PaneTarget.parse("app-main.shell") == PaneTarget("app-main", pane="shell")
    assert PaneTarget.parse("app-main.pane[2]") == PaneTarget("app-main", index=2)
    with pytest.raises(ValueError):
        PaneTarget.parse("app-main.pane[x]")


def test_pane_target_matches():
    assert PaneTarget("w").matches("w", "any", 5)
    assert not PaneTarget("w").matches("v", "any", 5)
    assert PaneTarget("w", pane="shell").matches("w", "shell", 1)
    assert not PaneTarget("w", pane="shell").matches("w", "editor", 0)
    assert PaneTarget("w", index=1).matches("w", "shell", 1)


# ─────────────────────────────────────────────────────────────────────────────
# init
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_init_session_creates_session_and_skips_bad_window(project_dir):
    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    workspace = make_workspace(runner)
    project = load_meta(project_dir, environ={})

    created = await workspace.init_session("dev", project)

    assert created == ["app-main"]
    path = str(project.path)
    assert runner.commands[:3] == [
        "tmux has-session -t dev",
        f"tmux new-session -d -s dev -n app-main -c {path}",
        f"tmux split-window -t dev:app-main.0 -h -c {path}",
    ]
    assert not any("send-keys" in c for c in runner.commands)
    assert runner.commands[-2:] == ["tmux select-window -t dev:app-main", "tmux select-pane -t dev:app-main.0"]
    assert "Window 'app-bad'" in workspace.console.file.getvalue()


@pytest.mark.asyncio
async def test_init_session_appends_to_existing_session(project_dir):
    runner = MockProcessRunner()
    workspace = make_workspace(runner)
    await workspace.init_session("dev", load_meta(project_dir, environ={}))
    assert runner.commands[1].startswith("tmux new-window -t dev: -n app-main")


@pytest.mark.asyncio
async def test_init_session_reset_kills_first(project_dir):
    runner = MockProcessRunner()
    workspace = make_workspace(runner)
    await workspace.init_session("dev", load_meta(project_dir, environ={}), reset=True)
    assert runner.commands[1] == "tmux kill-session -t dev"
    assert runner.commands[2].startswith("tmux new-session -d -s dev")


@pytest.mark.asyncio
async def test_init_session_with_commands_and_color(project_dir):
    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    workspace = make_workspace(runner)
    await workspace.init_session("dev", load_meta(project_dir, environ={}), run_commands=True, color=True)

    assert "tmux send-keys -t dev:app-main.0 vim Enter" in runner.commands
    assert "tmux send-keys -t dev:app-main.1 npm run dev Enter" in runner.commands
    (color,) = [i.argv for i in runner.invocations if i.argv[1] == "set-window-option"]
    assert color[:5] == ("tmux", "set-window-option", "-t", "dev:app-main", "window-status-style")
    assert color[5].removeprefix("bg=") in TMUX_COLORS


@pytest.mark.asyncio
async def test_init_session_unknown_session(project_dir):
    runner = MockProcessRunner()
    created = await make_workspace(runner).init_session("nope", load_meta(project_dir, environ={}))
    assert created == []
    assert runner.invocations == []


@pytest.mark.asyncio
async def test_init_all_root_first(tmp_path, write_meta_file):
    single = {"sessions": [{"name": "dev", "windows": [{"name": "main", "panes": [{"name": "p"}]}]}]}
    write_meta_file(tmp_path, name="root", tmux=single)
    write_meta_file(tmp_path / "api", name="api", tmux=single)
    write_meta_file(tmp_path / "docs", name="docs")
    runner = MockProcessRunner({"tmux has-session -t dev": 1})

    created = await make_workspace(runner, src=tmp_path).init_all("dev")

    assert created == ["root-main", "api-main"]
    windows = [c.split(" -n ")[1].split()[0] for c in runner.commands if " -n " in c]
    assert windows == ["root-main", "api-main"]
    assert any(c.startswith("tmux new-session") for c in runner.commands)
    assert any(c.startswith("tmux new-window") for c in runner.commands)


@pytest.mark.asyncio
async def test_init_all_without_configs(tmp_path, write_meta_file):
    write_meta_file(tmp_path, name="root")
    assert await make_workspace(MockProcessRunner(), src=tmp_path).init_all("dev") == []


# ─────────────────────────────────────────────────────────────────────────────
# attach / terminate / list
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_run_targets_by_pane_name(project_dir):
    runner = MockProcessRunner()
    sent = await make_workspace(runner).execute_session_commands("dev", project_dir, targets=["app-main.shell"])
    assert sent == 1
    assert runner.commands == ["tmux send-keys -t dev:app-main.1 npm run dev Enter"]


@pytest.mark.asyncio
async def test_run_targets_by_pane_index(project_dir):
    runner = MockProcessRunner()
    await make_workspace(runner).execute_session_commands("dev", project_dir, targets=["app-main.pane[0]"])
    assert runner.commands == ["tmux send-keys -t dev:app-main.0 vim Enter"]


@pytest.mark.asyncio
async def test_run_all_continues_after_send_failure(project_dir):
    runner = MockProcessRunner({"tmux send-keys -t dev:app-main.0 vim Enter": 1})
    sent = await make_workspace(runner).execute_session_commands("dev", project_dir, run_all=True)
    assert sent == 1
    assert runner.commands[-1] == "tmux send-keys -t dev:app-main.1 npm run dev Enter"


@pytest.mark.asyncio
async def test_nothing_sent_without_targets(project_dir):
    runner = MockProcessRunner()
    assert await make_workspace(runner).execute_session_commands("dev", project_dir) == 0
    assert runner.invocations == []


@pytest.mark.asyncio
async def test_attach_runs_targets_then_attaches(project_dir):
    runner = MockProcessRunner()
    await make_workspace(runner, src=project_dir).attach("dev", targets=["app-main"])
    assert runner.commands[0] == "tmux has-session -t dev"
    assert runner.commands[-1] == "tmux attach-session -t dev"
    assert runner.invocations[-1].capture is False
    assert len([c for c in runner.commands if "send-keys" in c]) == 2


@pytest.mark.asyncio
async def test_attach_missing_session():
    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    with pytest.raises(TmuxError, match="does not exist"):
        await make_workspace(runner).attach("dev")


@pytest.mark.asyncio
async def test_terminate():
    runner = MockProcessRunner()
    assert await make_workspace(runner).terminate("dev") is True
    assert runner.commands == ["tmux has-session -t dev", "tmux kill-session -t dev"]

    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    assert await make_workspace(runner).terminate("dev") is False


@pytest.mark.asyncio
async def test_list_sessions():
    runner = MockProcessRunner({"tmux list-sessions": ProcessResult(0, "dev: 2 windows\nops: 1 windows\n")})
    assert await make_workspace(runner).list_sessions() == ["dev: 2 windows", "ops: 1 windows"]

    runner = MockProcessRunner({"tmux list-sessions": 1})
    assert await make_workspace(runner).list_sessions() == []


# ─────────────────────────────────────────────────────────────────────────────
# Failures and SSH panes
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.asyncio
async def test_init_session_continues_after_tmux_failure(tmp_path, write_meta_file):
    two_windows = {
        "sessions": [
            {
                "name": "dev",
                "windows": [
                    {"name": "one", "panes": [{"name": "a"}, {"name": "b"}]},
                    {"name": "two", "panes": [{"name": "c"}]},
                ],
            }
        ]
    }
    project = load_meta(write_meta_file(tmp_path, name="app", tmux=two_windows), environ={})
    path = str(project.path)
    runner = MockProcessRunner({
        "tmux has-session -t dev": 1,
        f"tmux split-window -t dev:app-one.0 -h -c {path}": 1,
    })
    workspace = make_workspace(runner)

    created = await workspace.init_session("dev", project)

    assert created == ["app-two"]
    assert f"tmux new-window -t dev: -n app-two -c {path}" in runner.commands
    assert "Window 'app-one' is incomplete" in workspace.console.file.getvalue()
    assert runner.commands[-2:] == ["tmux select-window -t dev:app-two", "tmux select-pane -t dev:app-two.0"]


@pytest.mark.asyncio
async def test_ssh_pane_is_not_reconnected_on_attach(tmp_path, write_meta_file):
    remote = {
        "sessions": [
            {"name": "dev", "windows": [{"name": "w", "panes": [{"name": "remote", "sshTarget": "box", "command": "htop"}]}]}
        ]
    }
    project_dir = write_meta_file(tmp_path, name="app", tmux=remote)

    runner = MockProcessRunner({"tmux has-session -t dev": 1})
    await make_workspace(runner).init_session("dev", load_meta(project_dir, environ={}))
    init_keys = [i.argv[4] for i in runner.invocations if i.argv[1] == "send-keys"]
    assert len(init_keys) == 1
    assert init_keys[0].startswith("ssh box -t ")
    assert "htop" not in init_keys[0]

    runner = MockProcessRunner()
    sent = await make_workspace(runner).execute_session_commands("dev", project_dir, targets=["app-w.remote"])
    assert sent == 1
    assert runner.commands == ["tmux send-keys -t dev:app-w.0 htop Enter"]
