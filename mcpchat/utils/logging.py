"""Logging configuration."""

import logging
import os
import sys

from pydantic import BaseModel


class LogConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"


def setup_logging(config: LogConfig | None = None) -> None:
    """Set up logging for the chat backend and quiet chatty client libraries."""
    if config is None:
        config = LogConfig(level=os.getenv("LOG_LEVEL", "INFO"))

    logging.basicConfig(
        level=getattr(logging, config.level.upper()),
        format=config.format,
        datefmt=config.date_format,
        stream=sys.stdout,
        force=True,
    )

    # Fragment-level chatter from the SDKs drowns out round transitions
    for noisy in ("anthropic", "httpx", "httpcore", "uvicorn.access"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


def get_logger(name: str, level: str | None = None) -> logging.Logger:
    """Get a logger for a specific module.

    Args:
        name: Module name (typically __name__)
        level: Explicit level, overrides the LOG_LEVEL environment variable

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = level if level else os.getenv("LOG_LEVEL", "INFO")
    logger.setLevel(log_level.upper())

    return logger
