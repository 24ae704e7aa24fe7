from __future__ import annotations

import logging

import pytest

from convoy_ai.core import logging_config
from convoy_ai.core.logging_config import get_logger, setup_logging


@pytest.fixture
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.mark.usefixtures("_restore_root_logger")
def test_setup_logging_installs_single_console_handler() -> None:
    setup_logging("WARNING", "simple", enable_file=False)
    setup_logging("WARNING", "simple", enable_file=False)

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.handlers[0].level == logging.WARNING


@pytest.mark.usefixtures("_restore_root_logger")
def test_file_logging_writes_under_configured_dir(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(logging_config, "ENABLE_FILE_LOGGING", True)
    monkeypatch.setattr(logging_config, "LOG_FILE_DIR", str(tmp_path))
    setup_logging("INFO", "detailed", enable_file=True)

    get_logger("convoy_ai.test").warning("hello file")
    for handler in logging.getLogger().handlers:
        handler.flush()
    assert "hello file" in (tmp_path / "convoy_ai.log").read_text(encoding="utf-8")


def test_get_logger_returns_named_logger() -> None:
    assert get_logger("convoy_ai.x").name == "convoy_ai.x"
