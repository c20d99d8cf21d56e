"""Crawl orchestration: validate, retrieve, reduce, grep.

A crawl either returns a complete ``CrawlResult`` or raises; a catalog that
failed halfway is never handed out. Each crawl owns its catalog and logs
through its own adapter, so independent crawls can run side by side.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Mapping

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.grep import GrepFilter, GrepReport
from dbcrawl.core.metadata import MetadataSource, RowCounter
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.queries import NamedQueryRegistry
from dbcrawl.core.reducer import Reducer, ReductionReport
from dbcrawl.core.retrievers import OK, CatalogBuilder, CategoryResult
from dbcrawl.core.strategies import Category

logger = logging.getLogger(__name__)


class CrawlLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the crawl id and passes it on as ``extra``."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs.setdefault("extra", {}).update(self.extra)
        return f"[{self.extra['crawl_id']}] {msg}", kwargs


@dataclass
class CrawlSummary:
    """Per-category retrieval outcome plus what the reducer and grep removed."""

    crawl_id: str
    categories: dict[Category, CategoryResult] = field(default_factory=dict)
    reduction: ReductionReport | None = None
    grep: GrepReport | None = None
    counts: dict[str, int] = field(default_factory=dict)

    def describe(self, category: Category) -> str:
        """Human readable outcome, e.g. ``"0 retrieved (unsupported)"``."""
        result = self.categories.get(category)
        if result is None:
            return "0 retrieved (skipped)"
        if result.status == OK:
            return f"{result.created} retrieved"
        return f"0 retrieved ({result.status})"


@dataclass
class CrawlResult:
    catalog: MutableCatalog
    options: CrawlOptions
    summary: CrawlSummary


class Crawler:
    """Runs one crawl of a metadata source."""

    def __init__(
        self,
        source: MetadataSource,
        options: CrawlOptions | None = None,
        *,
        registry: NamedQueryRegistry | None = None,
        row_counter: RowCounter | None = None,
        catalog_name: str | None = None,
        context: Mapping[str, Any] | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
        crawl_id: str | None = None,
    ) -> None:
        """
        Create a crawler.

        Args:
            source: Metadata source to read from.
            options: Crawl options; defaults to ``CrawlOptions()``.
            registry: Named queries for the data dictionary strategy.
            row_counter: Row counter; defaults to the source when it can count.
            catalog_name: Name given to the resulting catalog.
            context: Extra values for query template parameters.
            log: Logger to use instead of the per-crawl adapter.
            crawl_id: Identifier used in log lines; random when omitted.
        """
        self.source = source
        self.options = options or CrawlOptions()
        self.registry = registry
        self.row_counter = row_counter
        if self.row_counter is None and callable(getattr(source, "count_rows", None)):
            self.row_counter = source  # type: ignore[assignment]
        self.catalog_name = catalog_name
        self.crawl_id = crawl_id or uuid.uuid4().hex[:8]
        self.log = log or CrawlLoggerAdapter(logger, {"crawl_id": self.crawl_id})
        self.context: dict[str, Any] = {
            "catalog": catalog_name,
            "schema_pattern": "%",
            "table_name_pattern": self.options.table_name_pattern or "%",
        }
        self.context.update(context or {})

    def validate(self) -> None:
        """
        Check the configuration before any source call.

        Raises:
            ConfigurationError: A data dictionary strategy lacks its query, or
                the query needs a parameter the crawl context does not provide.
        """
        self.options.strategies.validate(
            self.registry, self.options.active_categories(), context=self.context
        )

    def crawl(self) -> CrawlResult:
        self.validate()
        catalog = MutableCatalog(self.catalog_name)
        self.log.info("Starting crawl (info level %s)", self.options.info_level.value)

        builder = CatalogBuilder(
            self.source,
            catalog,
            self.options,
            registry=self.registry,
            context=self.context,
            log=self.log,
        )
        categories = builder.build()

        row_counter = self.row_counter if self.options.wants_row_counts else None
        if self.options.wants_row_counts and row_counter is None:
            self.log.warning("Row counts requested, but no row counter is available")
        reduction = Reducer(catalog, self.options, row_counter=row_counter, log=self.log).reduce()

        grep = None
        if self.options.has_grep:
            grep = GrepFilter(catalog, self.options, log=self.log).apply()

        summary = CrawlSummary(
            crawl_id=self.crawl_id,
            categories=categories,
            reduction=reduction,
            grep=grep,
            counts=catalog.counts(),
        )
        self.log.info("Crawl finished: %s", summary.counts)
        return CrawlResult(catalog=catalog, options=self.options, summary=summary)


def crawl(source: MetadataSource, options: CrawlOptions | None = None, **kwargs: Any) -> CrawlResult:
    """Convenience wrapper: ``Crawler(source, options, **kwargs).crawl()``."""
    return Crawler(source, options, **kwargs).crawl()
