# src/taskflow/logging_setup.py

"""Process-wide logging: a quiet stderr console and a verbose log file next to the data."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "taskflow.log"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Own loggers that stay off the console below the given level.
# The scheduler logs every timer it arms and fires.
_CONSOLE_FLOORS: dict[str, int] = {
    "taskflow.notifications.reminder_scheduler": logging.WARNING,
}


class _ConsoleNoiseFilter(logging.Filter):
    """
    Console gate. taskflow records pass (minus the chatty ones in _CONSOLE_FLOORS);
    anything from other libraries, captured warnings included, needs ERROR.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        name = record.name
        if not name.startswith("taskflow."):
            return record.levelno >= logging.ERROR
        for prefix, floor in _CONSOLE_FLOORS.items():
            if name.startswith(prefix):
                return record.levelno >= floor
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/taskflow",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> None:
    """
    Install the console and file handlers on the root logger, replacing whatever was there.

    The file gets everything at file_level and above, unfiltered.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for old in list(root.handlers):
        root.removeHandler(old)
        old.close()

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    logfile = logging.FileHandler(str(log_dir / LOG_FILE_NAME), encoding="utf-8")
    logfile.setLevel(file_level)
    logfile.setFormatter(fmt)
    root.addHandler(logfile)

    logging.captureWarnings(True)
