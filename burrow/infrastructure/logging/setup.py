"""
Logging setup and configuration utilities.

Library modules log through the standard logging module; setup_logging
routes those records into loguru sinks with file rotation.
"""

import logging
import sys
from pathlib import Path
from types import FrameType
from typing import Optional

from loguru import logger as loguru_logger

from ..config.models import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)
LOG_FILE_NAME = "burrow.log"


class InterceptHandler(logging.Handler):
    """Forwards standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = str(record.levelno)

        # Find the caller outside the logging module
        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage())


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup application logging with the given configuration.

    Args:
        config: Logging configuration
    """
    loguru_logger.remove()
    level = config.level.upper()

    if config.console_enabled:
        loguru_logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False
        )

    if config.file_enabled:
        log_dir = Path(config.log_directory)
        log_dir.mkdir(parents=True, exist_ok=True)
        loguru_logger.add(
            log_dir / LOG_FILE_NAME,
            format=FILE_FORMAT,
            level=level,
            rotation=config.max_file_size,
            retention=config.backup_count,
            compression="zip",
            backtrace=True,
            diagnose=False
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    # asyncssh is chatty at INFO
    asyncssh_level = logging.DEBUG if level in ("TRACE", "DEBUG") else logging.WARNING
    logging.getLogger("asyncssh").setLevel(asyncssh_level)
