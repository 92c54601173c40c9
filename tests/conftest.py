# tests/conftest.py
import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))

import json

import pytest

from metarun.mock_runner import MockProcessRunner


@pytest.fixture
def write_meta_file():
    """
    Factory fixture writing a meta.json into a directory (created if needed).
    Use it like:
        write_meta_file(tmp_path / "api", name="api", routines={"test": "pytest"})
    """
    def _write(directory, **document):
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "meta.json").write_text(json.dumps(document, indent=2))
        return directory

    return _write


@pytest.fixture
def meta_tree(tmp_path, write_meta_file):
    """
    A small source tree:

        root/            routines: test = every test, lint = ruff .
        root/api/        routines: test = pytest, build = sequence lint test
        root/web/        routines: test = npm test
        root/docs/       (no meta.json)
        root/.cache/x/   meta.json, must be ignored
    """
    write_meta_file(tmp_path, id="root00000001", name="root", type="project",
                    routines={"test": "every test", "lint": "ruff ."})
    write_meta_file(tmp_path / "api", id="api000000001", name="api", type="app",
                    routines={"test": "pytest", "lint": "ruff check", "build": "sequence lint test"})
    write_meta_file(tmp_path / "web", id="web000000001", name="web", type="app",
                    routines={"test": "npm test"})
    (tmp_path / "docs").mkdir()
    write_meta_file(tmp_path / ".cache" / "x", id="hidden000001", name="hidden",
                    routines={"test": "echo hidden"})
    return tmp_path


@pytest.fixture
def mock_runner():
    return MockProcessRunner()
