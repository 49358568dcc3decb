"""
Logging for the yugent package.

Every module logs under the "yugent" tree through get_logger(__name__).
ConsoleLogger writes pipeline events to "yugent.events", so one call to
setup_logging() gives both the SDK's diagnostics and the event stream.

setup_logging() only touches the handlers it installed itself: calling it
twice replaces them instead of stacking duplicates, and handlers added by
the application stay where they are.
"""

import logging
import sys
from pathlib import Path
from typing import TextIO

from yugent.config.settings import Settings

ROOT_LOGGER = "yugent"
EVENTS_LOGGER = f"{ROOT_LOGGER}.events"

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Marks handlers installed by setup_logging()
_OWNED_ATTR = "_yugent_handler"


class ColoredFormatter(logging.Formatter):
    """
    Console formatter: level names in color, pipeline events in bold.

    Formats a copy of the record, so other handlers of the same record
    (e.g. the log file) still see plain text.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[36m",  # Cyan
        logging.INFO: "\033[32m",  # Green
        logging.WARNING: "\033[33m",  # Yellow
        logging.ERROR: "\033[31m",  # Red
        logging.CRITICAL: "\033[35m",  # Magenta
    }
    BOLD = "\033[1m"
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        record = logging.makeLogRecord(record.__dict__)
        color = self.LEVEL_COLORS.get(record.levelno)
        if color:
            record.levelname = f"{color}{record.levelname}{self.RESET}"
        if record.name == EVENTS_LOGGER:
            record.msg = f"{self.BOLD}{record.getMessage()}{self.RESET}"
            record.args = None
        return super().format(record)


def _own(handler: logging.Handler) -> logging.Handler:
    setattr(handler, _OWNED_ATTR, True)
    return handler


def setup_logging(settings: Settings | None = None, *, stream: TextIO | None = None) -> logging.Logger:
    """
    Attach console (and optional file) handlers to the yugent logger tree.

    Args:
        settings: Source of log_level and log_file (defaults to Settings())
        stream: Console stream (defaults to stdout)

    Returns:
        The "yugent" root logger
    """
    settings = settings or Settings()
    level = getattr(logging, settings.log_level)

    root = logging.getLogger(ROOT_LOGGER)
    for handler in [h for h in root.handlers if getattr(h, _OWNED_ATTR, False)]:
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    console = _own(logging.StreamHandler(stream or sys.stdout))
    console.setLevel(level)
    console.setFormatter(ColoredFormatter(fmt=CONSOLE_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = _own(logging.FileHandler(log_path))
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter(fmt=FILE_FORMAT, datefmt=DATE_FORMAT))
        root.addHandler(file_handler)

    # Records stop at the yugent handlers instead of duplicating via the root logger
    root.propagate = False

    root.debug(
        f"Logging initialized - level={settings.log_level}"
        + (f", file={settings.log_file}" if settings.log_file else "")
    )
    return root


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger inside the yugent tree.

    Module names that already start with "yugent" are used as-is, so
    `get_logger(__name__)` works from inside the package.
    """
    if name == ROOT_LOGGER or name.startswith(f"{ROOT_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")
