"""Logging utilities for the application.

This module configures Loguru to emit structured logs to both the console
and an optional file.  It also bridges the standard Python ``logging``
module to Loguru so that messages from uvicorn, httpx and redis are
captured consistently.
"""

from __future__ import annotations

import sys
import logging
from pathlib import Path

from loguru import logger

from ..config.app_config import get_app_config


class LoguruHandler(logging.Handler):
    """Handler to forward standard logging records to Loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except (KeyError, ValueError):
            level = record.levelno

        # Find the caller from where the logging call was made
        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage()
        )


def setup_logging() -> "loguru.Logger":
    """Configure Loguru logging for the application.

    Removes the default Loguru handler, ensures the log directory exists
    if a log file is configured, and adds sinks for console and file
    outputs.  The standard ``logging`` module is redirected to Loguru.

    Returns
    -------
    loguru.Logger
        The configured Loguru logger instance.
    """
    app_config = get_app_config()

    # Remove default handler to prevent duplicate logs
    logger.remove()

    if app_config.log_file:
        log_path = Path(app_config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    logger.add(
        sys.stdout,
        level=app_config.log_level,
        format=log_format,
        colorize=True,
        backtrace=True,
        diagnose=app_config.app_debug,
    )

    if app_config.log_file:
        logger.add(
            app_config.log_file,
            level=app_config.log_level,
            format=log_format,
            rotation="10 MB",
            retention="30 days",
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=app_config.app_debug,
        )

    logging.basicConfig(handlers=[LoguruHandler()], level=logging.WARNING, force=True)
    # uvicorn installs its own handlers; route them through Loguru as well
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [LoguruHandler()]
        std_logger.propagate = False

    logger.info("Logging configured successfully")
    logger.debug(f"App environment: {app_config.app_env}")
    logger.debug(f"Store type: {app_config.store_type}")

    return logger
