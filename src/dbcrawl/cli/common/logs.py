"""Logging setup for the CLI."""

from __future__ import annotations

import logging

from rich.logging import RichHandler

from dbcrawl.cli.common.output import err_console

_NOISY_LOGGERS = ("databricks.sdk", "urllib3")


def setup_logging(verbose: bool = False) -> None:
    """
    Route ``dbcrawl`` log records to the rich stderr console.

    Args:
        verbose: DEBUG level when True, WARNING otherwise.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    logger = logging.getLogger("dbcrawl")
    logger.handlers.clear()
    logger.addHandler(
        RichHandler(console=err_console, show_path=False, markup=False, rich_tracebacks=verbose)
    )
    logger.setLevel(level)
    logger.propagate = False

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
