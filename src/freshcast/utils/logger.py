"""
Centralized Logging Configuration
==================================
Provides consistent logging across all modules with structured output.

Usage:
    from freshcast.utils.logger import get_logger
    logger = get_logger(__name__)
    logger.info("Forecast started")
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple, Type, Union


LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(
    name: str,
    log_file: Optional[str] = None,
    level: Optional[Union[int, str]] = None
) -> logging.Logger:
    """
    Create and configure a logger instance.

    Parameters
    ----------
    name : str
        Logger name (typically __name__ of the calling module)
    log_file : str, optional
        Path to log file. Falls back to FRESHCAST_LOG_FILE, else console only.
    level : int or str, optional
        Logging level. Falls back to FRESHCAST_LOG_LEVEL, else INFO.

    Returns
    -------
    logging.Logger
        Configured logger instance

    Example
    -------
    >>> logger = get_logger(__name__)
    >>> logger.info("Cleaning sales history")
    2026-02-04 10:30:00 | INFO     | freshcast.data_cleaner | Cleaning sales history
    """
    logger = logging.getLogger(name)

    # Avoid adding duplicate handlers
    if logger.handlers:
        return logger

    if level is None:
        level = os.getenv('FRESHCAST_LOG_LEVEL', 'INFO').upper()
    if isinstance(level, str):
        level = logging.getLevelName(level)
        if not isinstance(level, int):
            level = logging.INFO

    logger.setLevel(level)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    # Console handler on stderr, stdout carries command output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    log_file = log_file or os.getenv('FRESHCAST_LOG_FILE')
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # Prevent propagation to root logger
    logger.propagate = False

    return logger


def set_level(level: Union[int, str], prefix: str = 'freshcast') -> None:
    """Change the level of every already-created logger under ``prefix``."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    for name, logger in logging.Logger.manager.loggerDict.items():
        if name.startswith(prefix) and isinstance(logger, logging.Logger):
            logger.setLevel(level)
            for handler in logger.handlers:
                handler.setLevel(level)


class LogContext:
    """
    Context manager for structured logging of operations.

    Usage:
        with LogContext(logger, "Forecast P001 @ market M1"):
            # ... operation code ...

    Exceptions of the ``expected`` types are logged at WARNING instead of
    ERROR; nothing is suppressed.
    """

    def __init__(
        self,
        logger: logging.Logger,
        operation: str,
        level: int = logging.INFO,
        expected: Tuple[Type[BaseException], ...] = ()
    ):
        self.logger = logger
        self.operation = operation
        self.level = level
        self.expected = expected
        self.start_time = None

    def __enter__(self):
        self.start_time = datetime.now()
        self.logger.log(self.level, f"Starting: {self.operation}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        elapsed = (datetime.now() - self.start_time).total_seconds()

        if exc_type is None:
            self.logger.log(self.level, f"Completed: {self.operation} ({elapsed:.2f}s)")
        elif self.expected and issubclass(exc_type, self.expected):
            self.logger.warning(f"Stopped: {self.operation} ({elapsed:.2f}s) - {exc_val}")
        else:
            self.logger.error(f"Failed: {self.operation} ({elapsed:.2f}s) - {exc_val}")

        # Don't suppress exceptions
        return False
