# tests/test_logging_setup.py

from __future__ import annotations

import logging
from pathlib import Path

import pytest

from vibe_agent.logging_setup import _ConsoleNoiseFilter, setup_logging


def _record(name: str, level: int) -> logging.LogRecord:
    return logging.LogRecord(name, level, __file__, 1, "msg", None, None)


@pytest.mark.parametrize(
    ("name", "level", "shown"),
    [
        ("vibe_agent.core.lifecycle", logging.INFO, True),
        ("vibe_agent.actors.registry", logging.INFO, True),
        ("vibe_agent.actors.registry", logging.DEBUG, False),
        ("vibe_agent.tasks.task_store", logging.DEBUG, False),
        ("vibe_agent.tasks.task_store", logging.INFO, False),
        ("vibe_agent.tasks.task_store", logging.WARNING, True),
        ("vibe_agent.tasks.task_scheduler", logging.INFO, False),
        ("vibe_agent.tasks.task_scheduler", logging.WARNING, True),
        ("vibe_agent.tasks.task_graph", logging.INFO, True),
        ("vibe_agent.llm.client", logging.INFO, False),
        ("vibe_agent.llm.client", logging.WARNING, True),
        ("httpx", logging.WARNING, False),
        ("httpx", logging.ERROR, True),
        ("py.warnings", logging.WARNING, False),
    ],
)
def test_console_filter_quiets_engine_chatter(name: str, level: int, shown: bool) -> None:
    assert _ConsoleNoiseFilter().filter(_record(name, level)) is shown


def test_console_filter_overrides() -> None:
    verbose = _ConsoleNoiseFilter({"vibe_agent": logging.DEBUG})
    assert verbose.filter(_record("vibe_agent.tasks.task_store", logging.DEBUG))
    assert not verbose.filter(_record("openai", logging.INFO))


@pytest.fixture()
def restore_root_logging():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for h in list(root.handlers):
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)
    logging.captureWarnings(False)


def test_file_log_keeps_what_the_console_drops(tmp_path: Path, restore_root_logging, capsys) -> None:
    log_file = setup_logging(log_dir=tmp_path / "logs")

    logging.getLogger("vibe_agent.tasks.task_store").debug("Task queued id=abc")
    logging.getLogger("vibe_agent.core.lifecycle").info("Board created id=b1")
    for h in logging.getLogger().handlers:
        h.flush()

    assert log_file == tmp_path / "logs" / "vibe.log"
    text = log_file.read_text(encoding="utf-8")
    assert "Task queued id=abc" in text
    assert "Board created id=b1" in text
    err = capsys.readouterr().err
    assert "Board created id=b1" in err
    assert "Task queued id=abc" not in err
