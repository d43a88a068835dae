"""Loguru setup for command-line use."""

import sys

from loguru import logger

LOG_FORMAT = "<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> - {message}"


def configure_logging(level: str = "INFO") -> None:
    """Send log records at ``level`` and above to stderr, replacing loguru's default sink."""
    logger.remove()
    logger.add(sys.stderr, level=(level or "INFO").upper(), format=LOG_FORMAT)
