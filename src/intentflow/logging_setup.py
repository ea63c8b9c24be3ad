"""Logging configuration for intentflow."""

from __future__ import annotations

import logging
from pathlib import Path

from rich.logging import RichHandler

from intentflow.console import error_console


def setup_logging(
    verbose: bool = False,
    log_file: Path | None = None,
    logger_name: str = "intentflow",
) -> logging.Logger:
    """
    Configure dual-handler logging (rich console + file).

    Args:
        verbose: Enable DEBUG level on console (default INFO)
        log_file: Path to a detailed log file (None for no file logging)
        logger_name: Root of the logger hierarchy to configure

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(logging.DEBUG)
    # Re-running setup (e.g. across CLI invocations in tests) must not stack handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    console_handler = RichHandler(
        console=error_console,
        show_path=False,
        rich_tracebacks=True,
        markup=False,
    )
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(name)s | %(message)s"))
    logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        logger.addHandler(file_handler)

    # Suppress noisy 3rd party loggers
    for noisy in ["urllib3", "asyncio"]:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
