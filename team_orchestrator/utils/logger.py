"""
Logger module - Logging configuration and utilities

This module provides logging configuration with support for:
- Console and rotating file logging
- Configuration from .env (ORCH_LOG_* variables)
- A single package-level logger tree ("team_orchestrator.*")
"""

import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

PACKAGE_LOGGER_NAME = "team_orchestrator"
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

# Flag to track if the package logger has been configured
_logging_initialized = False


def _ensure_logging_initialized() -> None:
    """
    Configure the package logger from .env on first use.
    This is called automatically by get_logger().
    """
    global _logging_initialized

    if _logging_initialized:
        return

    _logging_initialized = True

    from team_orchestrator.config.env_config import EnvConfig

    EnvConfig.load_env_file()

    configure_logging(
        log_level=EnvConfig.get("ORCH_LOG_LEVEL", "INFO"),
        log_folder=EnvConfig.get("ORCH_LOG_FOLDER", "./logs"),
        enable_console=EnvConfig.get_bool("ORCH_ENABLE_CONSOLE_LOGGING", True),
        enable_file=EnvConfig.get_bool("ORCH_ENABLE_FILE_LOGGING", False),
        max_bytes=EnvConfig.get_int("ORCH_LOG_MAX_BYTES", 10485760),  # 10MB default
        backup_count=EnvConfig.get_int("ORCH_LOG_BACKUP_COUNT", 5),
    )


def configure_logging(
    log_level: str = "INFO",
    log_folder: Optional[str] = None,
    enable_console: bool = True,
    enable_file: bool = False,
    max_bytes: int = 10485760,
    backup_count: int = 5,
) -> logging.Logger:
    """
    (Re)configure handlers on the package logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_folder: Folder for the rotating log file
        enable_console: Attach a stdout handler
        enable_file: Attach a RotatingFileHandler writing orchestrator.log
        max_bytes: Rotation threshold for the log file
        backup_count: Number of rotated files to keep

    Returns:
        The configured package logger
    """
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(level)

    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    if enable_console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        package_logger.addHandler(console_handler)

    if enable_file:
        folder = Path(log_folder or "./logs")
        folder.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            folder / "orchestrator.log",
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

    if not package_logger.handlers:
        package_logger.addHandler(logging.NullHandler())

    return package_logger


def get_logger(name: str, level: Optional[str] = None) -> logging.Logger:
    """
    Get or create a logger with standard formatting and .env configuration.

    Args:
        name: Logger name (typically __name__)
        level: Optional logging level override (DEBUG, INFO, WARNING, ERROR, CRITICAL)

    Returns:
        Logger under the package logger tree
    """
    _ensure_logging_initialized()

    if not name.startswith(PACKAGE_LOGGER_NAME):
        name = f"{PACKAGE_LOGGER_NAME}.{name}"

    logger = logging.getLogger(name)
    if level:
        logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
