# tests/test_logging_config.py
import logging

import pytest

from metarun import disable_logging, get_log_file_path, setup_logging
from metarun.logging_config import LOGGER_NAME


@pytest.fixture(autouse=True)
def restore_logger():
    logger = logging.getLogger(LOGGER_NAME)
    handlers, level, propagate = list(logger.handlers), logger.level, logger.propagate
    yield
    for handler in list(logger.handlers):
        if handler not in handlers:
            logger.removeHandler(handler)
            handler.close()
    logger.setLevel(level)
    logger.propagate = propagate


def _own_handlers(logger):
    return [h for h in logger.handlers if getattr(h, "_metarun_handler", False)]


def test_setup_logging_sets_level_and_handler():
    logger = setup_logging("debug")
    assert logger.name == "metarun"
    assert logger.level == logging.DEBUG
    assert len(_own_handlers(logger)) == 1


def test_setup_logging_replaces_previous_handlers():
    setup_logging("INFO")
    logger = setup_logging("WARNING", format="detailed")
    handlers = _own_handlers(logger)
    assert len(handlers) == 1
    assert "%(lineno)d" in handlers[0].formatter._fmt


def test_custom_format_string():
    logger = setup_logging(format_string="%(message)s")
    assert _own_handlers(logger)[0].formatter._fmt == "%(message)s"


def test_file_logging(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path))
    logger = setup_logging("INFO", console=False, file=True)
    assert get_log_file_path() == tmp_path / "metarun" / "metarun.log"
    logging.getLogger("metarun.executor").info("hello file")
    for handler in _own_handlers(logger):
        handler.flush()
    assert "hello file" in get_log_file_path().read_text()


def test_disable_logging_is_idempotent():
    disable_logging()
    disable_logging()
    logger = logging.getLogger(LOGGER_NAME)
    assert len(_own_handlers(logger)) == 1
    assert not logger.propagate
    assert not logger.isEnabledFor(logging.CRITICAL)
