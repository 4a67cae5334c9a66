"""
Logging setup for the Classworks settings service.
Modules only call get_logger(); the entry point calls setup_logging() once.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

LOGS_DIR = Path(__file__).parent / "logs"

CONSOLE_FORMAT = '(%(filename)s:%(lineno)d) %(levelname)s - %(message)s'
FILE_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s'

# Setting change records (see SettingsManager._log_change)
CHANGES_LOGGER = 'settings.changes'

_logging_initialized = False


def setup_logging(
    console_level: str = "INFO",
    file_level: str = "DEBUG",
    console: bool = True,
    log_file: str = "classworks.log",
    log_changes: bool = True
) -> None:
    """
    Attach the console and rotating file handlers to the root logger.
    Later calls are ignored.

    Args:
        console_level: Level name for stdout output
        file_level: Level name for logs/<log_file>
        console: Whether to log to stdout at all
        log_file: File name inside the logs directory
        log_changes: Whether setting change records are emitted
    """
    global _logging_initialized
    if _logging_initialized:
        return

    LOGS_DIR.mkdir(exist_ok=True)
    log_path = LOGS_DIR / log_file

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers = []

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(getattr(logging, console_level.upper()))
        console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT))
        root_logger.addHandler(console_handler)

    # 1MB per file, 10 backups
    file_handler = logging.handlers.RotatingFileHandler(
        log_path,
        maxBytes=1024 * 1024,
        backupCount=10,
        encoding='utf-8'
    )
    file_handler.setLevel(getattr(logging, file_level.upper()))
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
    root_logger.addHandler(file_handler)

    logging.getLogger(CHANGES_LOGGER).setLevel(logging.INFO if log_changes else logging.WARNING)

    # Hypercorn's own startup and access lines duplicate ours
    for name in ('hypercorn.error', 'hypercorn.access'):
        logging.getLogger(name).setLevel(logging.ERROR)

    _logging_initialized = True
    root_logger.debug(f"Logging to {log_path} (console: {console_level if console else 'off'})")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
