"""Error taxonomy for catalog crawls.

Configuration and connectivity errors are fatal and abort a crawl before a
catalog is handed out. Unsupported capabilities are recovered per metadata
category by the retrievers. Filter ambiguity is only ever logged.
"""

from __future__ import annotations


class CrawlError(RuntimeError):
    """Base class for all crawl failures."""

    def __init__(self, message: str, *, category: object = None) -> None:
        super().__init__(message)
        # accepts a Category member or its plain string value
        self.category: str | None = getattr(category, "value", category)

    def __str__(self) -> str:
        message = super().__str__()
        if self.category:
            return f"{self.category}: {message}"
        return message


class ConfigurationError(CrawlError):
    """Raised when crawl options cannot be satisfied, before any retrieval."""


class UnsupportedCapabilityError(CrawlError):
    """Raised by a metadata source that cannot serve a category at all."""


class SourceConnectivityError(CrawlError):
    """Raised when the metadata source fails (bad query, lost connection, auth)."""


class FilterAmbiguityWarning(UserWarning):
    """A filter pattern compiled, but matched none of the names it was tested on."""
