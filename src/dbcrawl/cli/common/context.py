"""Application context management for the CLI."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass
from pathlib import Path

from dbcrawl.cli.common.exits import die
from dbcrawl.core.adapters.sqlite import SqliteMetadataSource
from dbcrawl.core.adapters.unitycatalog import UnityCatalogMetadataSource
from dbcrawl.core.auth import AuthError, get_client
from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.metadata import MetadataSource
from dbcrawl.core.queries import NamedQueryRegistry, load_queries


@dataclass
class CrawlAppContext:
    """Metadata source plus the settings a crawl command needs."""

    source: MetadataSource
    catalog_name: str | None = None
    registry: NamedQueryRegistry | None = None
    connection: sqlite3.Connection | None = None

    def close(self) -> None:
        if self.connection is not None:
            self.connection.close()
            self.connection = None


def _load_registry(queries: Path | None) -> NamedQueryRegistry | None:
    if queries is None:
        return None
    try:
        return load_queries(queries)
    except ConfigurationError as exc:
        die(str(exc), code=2)


def build_sqlite_context(path: Path, *, queries: Path | None = None) -> CrawlAppContext:
    """Open a SQLite database read-only and wrap it in a metadata source."""
    if not path.exists():
        die(f"Database file '{path}' does not exist.", code=2)
    registry = _load_registry(queries)
    # as_uri() percent-encodes "?" and "#" in the file name
    uri = f"{path.resolve().as_uri()}?mode=ro"
    try:
        connection = sqlite3.connect(uri, uri=True)
    except sqlite3.Error as exc:
        die(f"Cannot open '{path}': {exc}", code=1)
    return CrawlAppContext(
        source=SqliteMetadataSource(connection),
        catalog_name=path.stem,
        registry=registry,
        connection=connection,
    )


def build_databricks_context(
    profile: str | None,
    *,
    catalog: str | None = None,
    warehouse_id: str | None = None,
    queries: Path | None = None,
) -> CrawlAppContext:
    """Build a Unity Catalog metadata source from a Databricks profile."""
    try:
        client = get_client(profile)
    except AuthError as exc:
        die(str(exc), code=1)
    source = UnityCatalogMetadataSource(client, catalog, warehouse_id=warehouse_id)
    return CrawlAppContext(source=source, catalog_name=catalog, registry=_load_registry(queries))
