# tests/test_process_runner.py
import asyncio
from unittest.mock import AsyncMock, Mock, patch

import pytest

from metarun import ExecutionError, LocalProcessRunner, MockProcessRunner, ProcessResult


@pytest.mark.asyncio
async def test_capture_decodes_output():
    proc = AsyncMock()
    proc.communicate.return_value = (b"out\n", b"err\n")
    proc.returncode = 0

    with patch("asyncio.create_subprocess_exec", return_value=proc) as spawn:
        result = await LocalProcessRunner().run(["tmux", "ls"], capture=True)

    assert result == ProcessResult(0, "out\n", "err\n")
    assert result.ok
    assert spawn.call_args.kwargs["stdout"] == asyncio.subprocess.PIPE


@pytest.mark.asyncio
async def test_empty_argv_rejected():
    with pytest.raises(ExecutionError, match="is empty"):
        await LocalProcessRunner().run([])


@pytest.mark.asyncio
async def test_missing_program_raises_execution_error():
    with patch("asyncio.create_subprocess_exec", side_effect=FileNotFoundError("no such file")):
        with pytest.raises(ExecutionError, match="could not start") as exc:
            await LocalProcessRunner().run(["definitely-not-here"])
    assert exc.value.returncode is None


@pytest.mark.asyncio
async def test_cancellation_terminates_child():
    proc = AsyncMock()
    proc.returncode = None
    proc.pid = 99
    finished = asyncio.Event()

    async def communicate():
        await finished.wait()
        return (b"", b"")

    def terminate():
        proc.returncode = -15
        finished.set()

    proc.communicate = communicate
    proc.terminate = Mock(side_effect=terminate)
    proc.kill = Mock()
    proc.wait = AsyncMock(return_value=-15)

    with patch("asyncio.create_subprocess_exec", return_value=proc):
        task = asyncio.create_task(LocalProcessRunner(cancel_grace_period=0.5).run(["sleep", "100"]))
        await asyncio.sleep(0.05)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    proc.terminate.assert_called_once()
    proc.kill.assert_not_called()


@pytest.mark.asyncio
async def test_mock_runner_result_lookup():
    runner = MockProcessRunner({"git status": 1, "git": ProcessResult(0, "main\n")}, default=5)

    assert (await runner.run(["git", "status"])).returncode == 1
    assert (await runner.run(["git", "branch"])).stdout == "main\n"
    assert (await runner.run(["make"])).returncode == 5
    assert runner.commands == ["git status", "git branch", "make"]


@pytest.mark.asyncio
async def test_mock_runner_set_result():
    runner = MockProcessRunner()
    runner.set_result("make", 2)
    assert (await runner.run(["make"], cwd="/src")).returncode == 2
    assert runner.invocations[0].cwd == "/src"
