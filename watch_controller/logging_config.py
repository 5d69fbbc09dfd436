"""Log setup for a watch session.

Records go to a rotating file under ``~/.config/watch-controller/logs``.
The terminal is left alone unless ``--debug`` asks for it, since every
redraw of the watch menu clears the screen.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUPS = 3

PACKAGE_LOGGER = "watch_controller"

LOG_DIR = Path.home() / ".config" / "watch-controller" / "logs"


def get_log_file_path() -> Path:
    """Return the session log file, creating its directory."""
    LOG_DIR.mkdir(parents=True, exist_ok=True)
    return LOG_DIR / "watch-controller.log"


def setup_logging(
    *,
    level: int | str = DEFAULT_LOG_LEVEL,
    log_to_file: bool = True,
    log_to_console: bool = False,
    console_stream: TextIO = sys.stderr,
) -> None:
    """Point the ``watch_controller`` logger at its destinations.

    Calling this again replaces the handlers installed by the previous call.
    An unknown level name falls back to INFO.
    """
    if isinstance(level, str):
        level = getattr(logging, level.upper(), DEFAULT_LOG_LEVEL)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    package_logger.setLevel(level)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(DEFAULT_LOG_FORMAT, DEFAULT_DATE_FORMAT)
    handlers: list[logging.Handler] = []
    if log_to_file:
        handlers.append(
            RotatingFileHandler(
                get_log_file_path(),
                maxBytes=MAX_LOG_BYTES,
                backupCount=LOG_BACKUPS,
                encoding="utf-8",
            )
        )
    if log_to_console:
        handlers.append(logging.StreamHandler(console_stream))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    if not handlers:
        # Otherwise warnings reach logging.lastResort and land on the menu.
        package_logger.addHandler(logging.NullHandler())


def log_exception(logger: logging.Logger, exc: BaseException, message: str) -> None:
    """Log ``exc`` at ERROR under ``message``, with its own traceback."""
    logger.error("%s: %s", message, exc, exc_info=(type(exc), exc, exc.__traceback__))
