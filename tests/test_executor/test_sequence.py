# tests/test_executor/test_sequence.py
import pytest

from metarun import (
    ExecutionContext,
    ExecutionError,
    ExecutionMode,
    MockProcessRunner,
    RoutineExecutor,
    RunState,
    TaskNode,
    resolve,
)

S = ExecutionMode.SEQUENCE


@pytest.mark.asyncio
async def test_sequence_runs_in_order(tmp_path):
    runner = MockProcessRunner(delays={"echo one": 0.05})
    executor = RoutineExecutor(runner)

    await executor.execute(TaskNode(("echo one", "echo two"), S), ExecutionContext(tmp_path, {}))

    assert [i.command for i in runner.completed] == ["echo one", "echo two"]
    assert [r.state for r in executor.runs] == [RunState.SUCCESS, RunState.SUCCESS]


@pytest.mark.asyncio
async def test_cd_changes_directory_for_rest_of_sequence(tmp_path):
    (tmp_path / "sub").mkdir()
    runner = MockProcessRunner()

    await RoutineExecutor(runner).execute(
        TaskNode(("pwd", f"cd {tmp_path / 'sub'}", "pwd"), S), ExecutionContext(tmp_path, {})
    )

    assert [i.cwd for i in runner.invocations] == [str(tmp_path), str((tmp_path / "sub").resolve())]


@pytest.mark.asyncio
async def test_relative_cd_is_resolved_against_context(tmp_path):
    (tmp_path / "a" / "b").mkdir(parents=True)
    runner = MockProcessRunner()

    await RoutineExecutor(runner).execute(
        TaskNode(("cd a", "cd b", "ls"), S), ExecutionContext(tmp_path, {})
    )

    assert runner.invocations[0].cwd == str((tmp_path / "a" / "b").resolve())


@pytest.mark.asyncio
async def test_cd_does_not_touch_process_cwd(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "elsewhere").mkdir()
    await RoutineExecutor(MockProcessRunner()).execute(TaskNode(("cd elsewhere", "ls"), S))
    assert ExecutionContext.current().cwd == tmp_path.resolve()


@pytest.mark.asyncio
async def test_cd_to_missing_directory_fails(tmp_path):
    runner = MockProcessRunner()
    with pytest.raises(ExecutionError, match="no such directory"):
        await RoutineExecutor(runner).execute(
            TaskNode(("cd nowhere", "ls"), S), ExecutionContext(tmp_path, {})
        )
    assert runner.invocations == []


@pytest.mark.asyncio
async def test_sequence_stops_at_first_failure(tmp_path):
    runner = MockProcessRunner({"false": 1})
    executor = RoutineExecutor(runner)

    with pytest.raises(ExecutionError) as exc:
        await executor.execute(TaskNode(("true", "false", "echo never"), S), ExecutionContext(tmp_path, {}))

    assert runner.commands == ["true", "false"]
    assert exc.value.returncode == 1
    assert exc.value.command == "false"
    assert exc.value.path == "0.1"
    assert executor.runs[-1].state == RunState.FAILED


@pytest.mark.asyncio
async def test_commands_are_tokenized_with_shlex(tmp_path):
    runner = MockProcessRunner()
    await RoutineExecutor(runner).execute("echo 'hello world' x", ExecutionContext(tmp_path, {}))
    assert runner.invocations[0].argv == ("echo", "hello world", "x")


@pytest.mark.asyncio
async def test_unparsable_command_fails(tmp_path):
    with pytest.raises(ExecutionError, match="cannot be parsed"):
        await RoutineExecutor(MockProcessRunner()).execute("echo 'open", ExecutionContext(tmp_path, {}))


@pytest.mark.asyncio
async def test_environment_is_passed_to_commands(tmp_path):
    runner = MockProcessRunner()
    await RoutineExecutor(runner).execute("env", ExecutionContext(tmp_path, {"FOO": "bar"}))
    assert runner.invocations[0].env == {"FOO": "bar"}


@pytest.mark.asyncio
async def test_executing_same_tree_twice_repeats_invocation_order(tmp_path):
    routines = {
        "ci": "sequence setup checks ship",
        "setup": "npm ci && npm run build",
        "checks": "parallel lint unit",
        "lint": "ruff . & mypy src",
        "unit": "pytest -q",
        "ship": "echo done",
    }
    first_tree = resolve(["ci"], routines, tmp_path)
    second_tree = resolve(["ci"], routines, tmp_path)
    assert first_tree == second_tree

    orders = []
    for tree in (first_tree, second_tree):
        runner = MockProcessRunner()
        await RoutineExecutor(runner).execute(tree, ExecutionContext(tmp_path, {}))
        orders.append(runner.commands)

    assert orders[0] == orders[1]
    assert orders[0][:2] == ["npm ci", "npm run build"]
    assert orders[0][-1] == "echo done"
    assert sorted(orders[0][2:5]) == ["mypy src", "pytest -q", "ruff ."]


@pytest.mark.asyncio
async def test_only_command_leaves_are_recorded(tmp_path):
    (tmp_path / "sub").mkdir()
    executor = RoutineExecutor(MockProcessRunner())
    await executor.execute(TaskNode(("cd sub", "make", "cd ..", "ls"), S), ExecutionContext(tmp_path, {}))
    assert [(r.command, r.path) for r in executor.runs] == [("make", "0.1"), ("ls", "0.3")]
