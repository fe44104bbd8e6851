"""Logging setup with rich console output."""

import logging
import os
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "dive_inspector"
DEFAULT_LEVEL = os.environ.get("DIVE_INSPECTOR_LOG_LEVEL", "INFO")


def setup_logger(name: Optional[str] = None, level: str = DEFAULT_LEVEL) -> logging.Logger:
    """
    Configure the project logger with a rich handler.

    Args:
        name: Logger name (only used for the startup debug message)
        level: Log level name (DEBUG, INFO, ...)

    Returns:
        The configured project root logger
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level.upper())

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
        logger.propagate = False

    logger.debug(f"Logging configured for {name or ROOT_LOGGER_NAME} at {level.upper()}")
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the project namespace."""
    if not name.startswith(ROOT_LOGGER_NAME):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)
