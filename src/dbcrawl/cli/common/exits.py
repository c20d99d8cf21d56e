"""Exit handling utilities for the CLI."""

from typing import NoReturn

import typer

from dbcrawl.cli.common.output import out
from dbcrawl.core.errors import ConfigurationError, CrawlError


def die(msg: str, code: int = 1) -> NoReturn:
    """Exit with an error message and optional exit code."""
    out.error(msg)
    raise typer.Exit(code)


def exit_from_exc(exc: Exception, *, message: str, code: int = 1) -> NoReturn:
    """Print an error message and exit, keeping the exception as the cause."""
    out.error(message)
    raise typer.Exit(code) from exc


def exit_from_crawl_error(exc: CrawlError) -> NoReturn:
    """
    Exit for a failed crawl: 2 for configuration errors, 1 otherwise.

    The message names the failing category (``✗ tables: <cause>``).
    """
    cause = exc.__cause__
    message = str(exc)
    if cause is not None and str(cause) not in message:
        message = f"{message} ({cause})"
    exit_from_exc(exc, message=message, code=2 if isinstance(exc, ConfigurationError) else 1)
