# tests/test_executor/conftest.py
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture
def create_proc():
    """
    Build a stand-in for the object asyncio.create_subprocess_exec returns.

        with patch("asyncio.create_subprocess_exec", return_value=create_proc(returncode=2)):
            ...

    Only what LocalProcessRunner touches is provided: communicate(), returncode and pid.
    """
    pids = iter(range(1000, 2000))

    def _make(returncode=0, stdout=b"", stderr=b""):
        proc = MagicMock()
        proc.pid = next(pids)
        proc.returncode = returncode
        proc.communicate = AsyncMock(return_value=(stdout, stderr))
        return proc

    return _make
