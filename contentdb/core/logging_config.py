"""
Centralized logging configuration.

This module provides consistent logging across all contentdb modules.
Logs are written to the console (stdout) and, optionally, to a daily log file.

Why centralized logging:
1. Consistent format - Every log entry follows the same structure
2. Single configuration point - Change format/level in one place
3. Library friendly - Nothing is configured until setup_logging() is called
"""
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


# Module-level flag to prevent duplicate handler registration
_logging_configured = False


def setup_logging(log_level: str = "INFO", log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Configure contentdb logging.

    This function should be called once by the embedding application.
    It configures console logging and, when log_dir is given, file logging
    with the same formatting.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_dir: Directory for log files. No file handler when omitted.

    Returns:
        Configured package logger instance

    Example:
        >>> from contentdb.core.logging_config import setup_logging
        >>> logger = setup_logging("DEBUG")
        >>> logger.info("Content database starting")
    """
    global _logging_configured

    package_logger = logging.getLogger("contentdb")

    # Prevent duplicate handler registration on repeated calls
    if _logging_configured:
        return package_logger

    level = getattr(logging, log_level.upper(), None)
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    # Format: timestamp | level | module:line | message
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(level)
    package_logger.addHandler(console_handler)

    log_file = None
    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_dir / f"contentdb_{datetime.now().strftime('%Y%m%d')}.log"
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(formatter)
        file_handler.setLevel(logging.DEBUG)  # File captures everything
        package_logger.addHandler(file_handler)

    package_logger.setLevel(logging.DEBUG if log_file else level)

    # Engine-level SQL chatter is only useful when debugging the SQL backend
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _logging_configured = True

    package_logger.debug(f"Logging configured: level={log_level}, file={log_file}")

    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger for a specific module.

    This is the primary way modules should obtain a logger.
    Using __name__ as the logger name preserves the module hierarchy,
    so every contentdb logger inherits the handlers set by setup_logging().

    Args:
        name: Logger name, typically __name__ of the calling module

    Returns:
        Logger instance for the specified name
    """
    return logging.getLogger(name)


class LoggerMixin:
    """
    Mixin class to add logging capability to any class.

    Provides a self.logger attribute named after the class, nested under
    the class's module so package-level configuration applies.

    Example:
        >>> class MyStore(LoggerMixin):
        ...     def swap(self):
        ...         self.logger.info("Swapping generation...")
    """

    @property
    def logger(self) -> logging.Logger:
        """Get logger named after this class."""
        return get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")
