# src/vibe_agent/logging_setup.py

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping
from pathlib import Path

# Console thresholds by logger name; the most specific prefix wins. The file log keeps everything.
CONSOLE_LEVELS: dict[str, int] = {
    "vibe_agent": logging.INFO,
    # one line per model call
    "vibe_agent.llm": logging.WARNING,
    # every queued insert, guarded update and save barrier
    "vibe_agent.tasks.task_store": logging.WARNING,
    # per-task transitions; /tasks shows them on demand
    "vibe_agent.tasks.task_scheduler": logging.WARNING,
}
# Third-party libraries and captured Python warnings ("py.warnings").
DEFAULT_CONSOLE_LEVEL = logging.ERROR


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console usable while a board runs in the background:
    - lifecycle, actor and command logs at INFO
    - store and scheduler chatter only at WARNING+ (integrity and cycle warnings still show)
    - model call chatter (vibe_agent.llm.*) only at WARNING+
    - everything else only at ERROR+
    """

    def __init__(self, levels: Mapping[str, int] | None = None) -> None:
        super().__init__()
        self._levels = dict(CONSOLE_LEVELS if levels is None else levels)

    def threshold(self, name: str) -> int:
        while name:
            level = self._levels.get(name)
            if level is not None:
                return level
            name = name.rpartition(".")[0]
        return DEFAULT_CONSOLE_LEVEL

    def filter(self, record: logging.LogRecord) -> bool:
        return record.levelno >= self.threshold(record.name)


def setup_logging(
    *,
    log_dir: str | Path = ".local/vibe",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
    console_levels: Mapping[str, int] | None = None,
) -> Path:
    """
    Console handler on stderr (filtered, see CONSOLE_LEVELS) plus a full debug log in
    <log_dir>/vibe.log. Replaces any handlers already on the root logger.

    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "vibe.log"

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(
        fmt="%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(console_level)
    ch.setFormatter(fmt)
    ch.addFilter(_ConsoleNoiseFilter(console_levels))
    root.addHandler(ch)

    fh = logging.FileHandler(str(log_file), encoding="utf-8")
    fh.setLevel(file_level)
    fh.setFormatter(fmt)
    root.addHandler(fh)

    logging.captureWarnings(True)
    return log_file
