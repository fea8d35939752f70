"""
Logging setup shared by the Streamlit app and scripts.

- console: INFO
- file: INFO, one file per day (TimedRotatingFileHandler)

Usage:
    from bookkeeping.logging import setup_logging
    setup_logging("app", log_dir=settings.log_dir)
"""

import logging
import sys
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_BACKUP_COUNT = 7

NOISY_LOGGERS = [
    "httpcore",
    "httpx",
    "urllib3",
    "asyncio",
    "watchdog",
]


def setup_logging(
    process_name: str,
    log_dir: Optional[Path] = None,
    console_level: int = logging.INFO,
    file_level: int = logging.INFO,
) -> logging.Logger:
    """Configure the root logger.

    Args:
        process_name: base name of the log file ("app" -> app.log)
        log_dir: directory for the rotating file; no file handler when None
        console_level: level for stdout
        file_level: level for the file handler

    Returns:
        the root logger
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    # Streamlit reruns the script; avoid stacking handlers
    root_logger.handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(console_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"{process_name}.log"
        file_handler = TimedRotatingFileHandler(
            filename=log_file,
            when="midnight",
            interval=1,
            backupCount=LOG_FILE_BACKUP_COUNT,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)

    root_logger.info("Logging initialised for %s", process_name)
    return root_logger
