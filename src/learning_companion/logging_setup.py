# src/learning_companion/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

APP_LOGGER = "learning_companion"

# Loggers that fire from background threads while the REPL waits for input.
BACKGROUND_LOGGERS: tuple[str, ...] = (
    f"{APP_LOGGER}.tasks.task_channel",
    f"{APP_LOGGER}.tasks.retry_loop",
)

LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console-only filter. App records pass, except that `quiet` loggers need
    WARNING+. Everything outside the app (werkzeug, httpx, captured
    py.warnings) needs ERROR+. The log file is not filtered.
    """

    def __init__(self, quiet: tuple[str, ...] = BACKGROUND_LOGGERS) -> None:
        super().__init__()
        self._quiet = quiet

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if name != APP_LOGGER and not name.startswith(APP_LOGGER + "."):
            return record.levelno >= logging.ERROR
        if name.startswith(self._quiet):
            return record.levelno >= logging.WARNING
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/learning_companion",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route all logging to stderr (filtered) and to `<log_dir>/learning_companion.log`.

    Replaces whatever handlers the root logger had, so it is safe to call
    again. Returns the log file path.
    """
    log_file = Path(log_dir) / "learning_companion.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.addFilter(_ConsoleNoiseFilter())

    to_file = logging.FileHandler(log_file, encoding="utf-8")
    to_file.setLevel(file_level)

    root = logging.getLogger()
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(logging.DEBUG)
    for handler in (console, to_file):
        handler.setFormatter(formatter)
        root.addHandler(handler)

    logging.captureWarnings(True)
    return log_file
