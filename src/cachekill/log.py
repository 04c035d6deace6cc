"""Logging setup for cachekill."""

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "cachekill"


def setup_logging(verbose: bool = False) -> logging.Logger:
    """
    Route cachekill's log records to stderr through Rich.

    Args:
        verbose: Log DEBUG and up instead of WARNING and up

    Returns:
        The configured package logger
    """
    level = logging.DEBUG if verbose else logging.WARNING

    logger = logging.getLogger(LOGGER_NAME)

    # Replace handlers from an earlier call
    if logger.handlers:
        logger.handlers.clear()

    handler = RichHandler(
        console=Console(stderr=True),
        show_time=verbose,
        show_level=True,
        show_path=verbose,
        markup=False,
        rich_tracebacks=True,
    )
    handler.setLevel(level)

    logger.addHandler(handler)
    logger.setLevel(level)
    logger.propagate = False

    return logger
