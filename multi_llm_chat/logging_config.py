"""Centralized logging configuration module"""

import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Union

LOG_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_FILE_NAME = "multi_llm_chat.log"
MAX_LOG_BYTES = 10 * 1024 * 1024
BACKUP_COUNT = 3

# Whether already initialized
_initialized = False


def setup_logging(log_dir: Union[str, Path] = "logs", level: str = "INFO") -> Path:
    """Configure console and rotating file logging once per process.

    Args:
        log_dir: Directory for the rotating log file
        level: Root log level name

    Returns:
        Path of the log file
    """
    global _initialized

    logs_dir = Path(log_dir)
    log_file = logs_dir / LOG_FILE_NAME
    if _initialized:
        return log_file

    logs_dir.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    file_handler = RotatingFileHandler(
        log_file, maxBytes=MAX_LOG_BYTES, backupCount=BACKUP_COUNT, encoding='utf-8'
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)

    logging.basicConfig(level=level, handlers=[console_handler, file_handler], force=True)

    logging.getLogger('multi_llm_chat').setLevel(level)
    logging.getLogger('llm_interactions').setLevel(logging.INFO)

    # Reduce log level for third-party libraries
    logging.getLogger('httpx').setLevel(logging.WARNING)
    logging.getLogger('httpcore').setLevel(logging.WARNING)

    _initialized = True
    logging.getLogger(__name__).info(
        f"Logging initialized at {datetime.now().strftime(DATE_FORMAT)}; writing to {log_file.absolute()}"
    )
    return log_file


def reset_logging() -> None:
    """Allow setup_logging to run again (used by tests)."""
    global _initialized
    _initialized = False
