"""Retrieval strategies and their per-category selection.

Each metadata category is fetched with one of three strategies, chosen
statically before the crawl starts:

* ``data_dictionary_all``: one registered SQL query against vendor views.
* ``metadata_all``: one generic metadata call with catalog/schema wildcards.
* ``metadata``: one generic metadata call per known schema.

All three produce the same typed rows, so the row-to-entity mapping that
follows is shared.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping

from dbcrawl.core.errors import ConfigurationError, SourceConnectivityError
from dbcrawl.core.metadata import (
    ColumnRow,
    ForeignKeyRow,
    IndexRow,
    MetadataRow,
    MetadataSource,
    RoutineColumnRow,
    RoutineRow,
    SchemaRow,
    SequenceRow,
    SynonymRow,
    TableRow,
    TriggerRow,
)
from dbcrawl.core.queries import NamedQueryRegistry

logger = logging.getLogger(__name__)

ENV_PREFIX = "DBCRAWL_STRATEGY_"


class RetrievalStrategy(str, Enum):
    DATA_DICTIONARY_ALL = "data_dictionary_all"
    METADATA_ALL = "metadata_all"
    METADATA = "metadata"

    @classmethod
    def parse(cls, text: str) -> "RetrievalStrategy":
        key = text.strip().lower().replace("-", "_")
        for strategy in cls:
            if strategy.value == key:
                return strategy
        choices = ", ".join(s.value for s in cls)
        raise ConfigurationError(f"Unknown retrieval strategy {text!r} (expected one of: {choices})")


class Category(str, Enum):
    """Metadata categories, retrieved in declaration order."""

    SCHEMAS = "schemas"
    TABLES = "tables"
    TABLE_COLUMNS = "table_columns"
    FOREIGN_KEYS = "foreign_keys"
    INDEXES = "indexes"
    TRIGGERS = "triggers"
    ROUTINES = "routines"
    ROUTINE_COLUMNS = "routine_columns"
    SEQUENCES = "sequences"
    SYNONYMS = "synonyms"

    @classmethod
    def parse(cls, text: str) -> "Category":
        key = text.strip().lower().replace("-", "_")
        for category in cls:
            if category.value == key:
                return category
        choices = ", ".join(c.value for c in cls)
        raise ConfigurationError(f"Unknown metadata category {text!r} (expected one of: {choices})")


ROW_TYPES: dict[Category, type[MetadataRow]] = {
    Category.SCHEMAS: SchemaRow,
    Category.TABLES: TableRow,
    Category.TABLE_COLUMNS: ColumnRow,
    Category.FOREIGN_KEYS: ForeignKeyRow,
    Category.INDEXES: IndexRow,
    Category.TRIGGERS: TriggerRow,
    Category.ROUTINES: RoutineRow,
    Category.ROUTINE_COLUMNS: RoutineColumnRow,
    Category.SEQUENCES: SequenceRow,
    Category.SYNONYMS: SynonymRow,
}


@dataclass(frozen=True)
class StrategySelection:
    """
    Static category -> strategy map.

    Attributes:
        overrides: Explicit choices per category.
        default: Strategy for every category without an override.
    """

    overrides: Mapping[Category, RetrievalStrategy] = field(default_factory=dict)
    default: RetrievalStrategy = RetrievalStrategy.METADATA

    def for_category(self, category: Category) -> RetrievalStrategy:
        return self.overrides.get(category, self.default)

    def with_overrides(self, overrides: Mapping[Category, RetrievalStrategy]) -> "StrategySelection":
        """Return a selection where ``overrides`` win over the current ones."""
        return StrategySelection(overrides={**self.overrides, **overrides}, default=self.default)

    def validate(
        self,
        registry: NamedQueryRegistry | None,
        categories: Iterable[Category],
        context: Mapping[str, Any] | None = None,
    ) -> None:
        """
        Check that every data dictionary selection has a usable query.

        With a ``context``, each selected query is also bound against it, so
        a template parameter without a value fails here and not mid-crawl.

        Raises:
            ConfigurationError: A requested category selects
                ``data_dictionary_all`` but no query is registered for it, or
                its query needs a parameter the context does not provide.
        """
        for category in categories:
            if self.for_category(category) is not RetrievalStrategy.DATA_DICTIONARY_ALL:
                continue
            if registry is None or not registry.has_query(category):
                raise ConfigurationError(
                    "data_dictionary_all selected but no named query is registered",
                    category=category,
                )
            if context is not None:
                registry.get_query(category).bind(context)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StrategySelection":
        """
        Read ``DBCRAWL_STRATEGY_<CATEGORY>`` variables.

        ``DBCRAWL_STRATEGY_DEFAULT`` sets the default strategy.
        """
        env = os.environ if environ is None else environ
        default = RetrievalStrategy.METADATA
        overrides: dict[Category, RetrievalStrategy] = {}
        for key, value in env.items():
            if not key.startswith(ENV_PREFIX) or not value:
                continue
            name = key[len(ENV_PREFIX):]
            if name.upper() == "DEFAULT":
                default = RetrievalStrategy.parse(value)
            else:
                overrides[Category.parse(name)] = RetrievalStrategy.parse(value)
        return cls(overrides=overrides, default=default)


def parse_strategy_assignments(values: Iterable[str]) -> dict[Category, RetrievalStrategy]:
    """
    Parse ``category=strategy`` assignments.

    Raises:
        ConfigurationError: Malformed assignment, category or strategy.
    """
    parsed: dict[Category, RetrievalStrategy] = {}
    for raw in values:
        if "=" not in raw:
            raise ConfigurationError(f"Invalid strategy assignment {raw!r} (expected category=strategy)")
        name, value = raw.split("=", 1)
        parsed[Category.parse(name)] = RetrievalStrategy.parse(value)
    return parsed


SchemaRef = tuple[str | None, str | None]
Lister = Callable[[str | None, str | None], list[Any]]


def fetch_rows(
    category: Category,
    strategy: RetrievalStrategy,
    source: MetadataSource,
    lister: Lister,
    *,
    schemas: Iterable[SchemaRef] = (),
    registry: NamedQueryRegistry | None = None,
    context: Mapping[str, Any] | None = None,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> list[Any]:
    """
    Fetch the raw typed rows of one category with the selected strategy.

    Args:
        category: Category being retrieved.
        strategy: Strategy selected for it.
        source: Metadata source (only used directly for data dictionary queries).
        lister: ``(catalog, schema) -> rows`` generic metadata call for the category.
        schemas: Known schemas, used by the per-schema strategy.
        registry: Named queries for the data dictionary strategy.
        context: Values bound to query template parameters.

    Returns:
        The rows in source order. Nothing has been filtered yet.
    """
    log = log or logger
    if strategy is RetrievalStrategy.DATA_DICTIONARY_ALL:
        log.info("Retrieving %s, using fast data dictionary retrieval", category.value)
        if registry is None:
            raise ConfigurationError("No named query registry configured", category=category)
        query = registry.get_query(category)
        results = source.execute_query(query.sql, query.bind(context or {}))
        row_type = ROW_TYPES[category]
        rows = []
        for result in results:
            try:
                rows.append(row_type.from_mapping(result))
            except ValueError as exc:
                raise SourceConnectivityError(
                    f"Query {query.name!r} returned an unusable row: {exc}", category=category
                ) from exc
        return rows

    if strategy is RetrievalStrategy.METADATA_ALL:
        log.info("Retrieving %s, using fast metadata retrieval", category.value)
        return list(lister(None, None))

    if strategy is RetrievalStrategy.METADATA:
        schema_refs = list(schemas)
        log.info("Retrieving %s for %d schema(s)", category.value, len(schema_refs))
        rows = []
        for catalog_name, schema_name in schema_refs:
            log.debug("Retrieving %s for schema %s.%s", category.value, catalog_name, schema_name)
            rows.extend(lister(catalog_name, schema_name))
        return rows

    raise ConfigurationError(f"Unknown retrieval strategy {strategy!r}", category=category)
