"""Logging setup for the ``margin_desk`` logger hierarchy."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "margin_desk"

_logger: logging.Logger | None = None


def setup_logging(level: str | int = "INFO", *, quiet: bool = False) -> logging.Logger:
    """Attach a single rich handler to the package logger (idempotent).

    *quiet* raises the threshold to WARNING regardless of *level*.
    """
    global _logger

    logger = logging.getLogger(LOGGER_NAME)
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    logger.setLevel(logging.WARNING if quiet else level)

    if _logger is not None:
        return _logger

    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        show_time=False,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(handler)
    logger.propagate = False

    _logger = logger
    return logger


def reset_logging() -> None:
    """Drop handlers and forget the configured logger. Mainly for tests."""
    global _logger
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)
    _logger = None
