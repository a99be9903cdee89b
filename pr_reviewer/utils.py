"""Utility functions for pr-reviewer."""

import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

console = Console()
LOG_FORMAT = "[%(asctime)s] [prr] [%(levelname)s] %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOGGER_NAME = "pr_reviewer"


def get_logger() -> logging.Logger:
    """Return the project logger (configured or not)."""
    return logging.getLogger(LOGGER_NAME)


def configure_logger(
    log_file: Path | None = None,
    *,
    verbose: bool = True,
    debug: bool = False,
) -> logging.Logger:
    """Configure and return the project logger.

    Console output is limited to warnings unless ``verbose`` is set; the log
    file always receives INFO and above.

    Args:
        log_file: Path to the persistent log file
        verbose: Echo progress messages on the console
        debug: Enable debug level on every handler

    Returns:
        Configured logger instance

    """
    logger = get_logger()
    logger.setLevel(logging.DEBUG if debug else logging.INFO)
    logger.propagate = False

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    if debug:
        console_level = logging.DEBUG
    elif verbose:
        console_level = logging.INFO
    else:
        console_level = logging.WARNING

    rich_handler = RichHandler(
        console=console,
        show_time=False,
        show_level=False,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setLevel(console_level)
    rich_handler.setFormatter(formatter)
    logger.addHandler(rich_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG if debug else logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def format_duration(total_seconds: int) -> str:
    """Format duration in seconds to human-readable string.

    Args:
        total_seconds: Duration in seconds

    Returns:
        Formatted duration string

    """
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60
    seconds = total_seconds % 60

    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def report_timestamp(moment: str) -> str:
    """Make an ISO-8601 timestamp safe for use in a file name.

    Args:
        moment: ISO-8601 timestamp

    Returns:
        Timestamp with ``:`` replaced by ``-``

    """
    return moment.replace(":", "-")
