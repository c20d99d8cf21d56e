"""Crawl options: what to retrieve, how, and how to narrow it afterwards."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Collection

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.filters import EntityFilter, EntityKind
from dbcrawl.core.inclusion import InclusionRule
from dbcrawl.core.strategies import Category, StrategySelection


class InfoLevel(str, Enum):
    """How much metadata a crawl retrieves."""

    MINIMUM = "minimum"
    STANDARD = "standard"
    MAXIMUM = "maximum"

    def includes(self, category: Category) -> bool:
        return category in _INFO_LEVEL_CATEGORIES[self]


_MINIMUM = frozenset({Category.SCHEMAS, Category.TABLES, Category.TABLE_COLUMNS, Category.ROUTINES})
_STANDARD = _MINIMUM | {Category.FOREIGN_KEYS, Category.INDEXES, Category.ROUTINE_COLUMNS}
_INFO_LEVEL_CATEGORIES = {
    InfoLevel.MINIMUM: _MINIMUM,
    InfoLevel.STANDARD: _STANDARD,
    InfoLevel.MAXIMUM: _STANDARD | {Category.TRIGGERS, Category.SEQUENCES, Category.SYNONYMS},
}

# Categories that are empty whenever one of these entity kinds is exclude-all.
_CATEGORY_KINDS: dict[Category, tuple[EntityKind, ...]] = {
    Category.SCHEMAS: (EntityKind.SCHEMA,),
    Category.TABLES: (EntityKind.SCHEMA, EntityKind.TABLE),
    Category.TABLE_COLUMNS: (EntityKind.SCHEMA, EntityKind.TABLE, EntityKind.COLUMN),
    Category.FOREIGN_KEYS: (EntityKind.SCHEMA, EntityKind.TABLE),
    Category.INDEXES: (EntityKind.SCHEMA, EntityKind.TABLE),
    Category.TRIGGERS: (EntityKind.SCHEMA, EntityKind.TABLE),
    Category.ROUTINES: (EntityKind.SCHEMA, EntityKind.ROUTINE),
    Category.ROUTINE_COLUMNS: (EntityKind.SCHEMA, EntityKind.ROUTINE, EntityKind.ROUTINE_COLUMN),
    Category.SEQUENCES: (EntityKind.SCHEMA, EntityKind.SEQUENCE),
    Category.SYNONYMS: (EntityKind.SCHEMA, EntityKind.SYNONYM),
}

SKIPPED = "skipped"
EXCLUDED = "excluded"


@dataclass(frozen=True)
class CrawlOptions:
    """
    Immutable configuration of one crawl.

    Rules left as None fall back to the per-kind default of ``EntityFilter``:
    schemas, tables, columns and routine columns are included, routines,
    sequences and synonyms are not retrieved unless a rule is given.

    Attributes:
        table_types: Table kind names to retrieve, None for all.
        table_name_pattern: SQL LIKE pattern forwarded to the source.
        routine_types: Routine kind names to retrieve, None for all.
        child_table_filter_depth: Foreign key hops followed from a selected
            table to the tables it references.
        parent_table_filter_depth: Foreign key hops followed from a selected
            table to the tables referencing it.
        load_row_counts: Count rows of retained tables.
        no_empty_tables: Drop tables whose row count is zero (implies counting).
    """

    info_level: InfoLevel = InfoLevel.STANDARD
    title: str | None = None

    schema_rule: InclusionRule | None = None
    table_rule: InclusionRule | None = None
    column_rule: InclusionRule | None = None
    routine_rule: InclusionRule | None = None
    routine_column_rule: InclusionRule | None = None
    sequence_rule: InclusionRule | None = None
    synonym_rule: InclusionRule | None = None

    table_types: tuple[str, ...] | None = None
    table_name_pattern: str | None = None
    routine_types: tuple[str, ...] | None = None

    grep_column_rule: InclusionRule | None = None
    grep_routine_column_rule: InclusionRule | None = None
    grep_definition_rule: InclusionRule | None = None
    grep_invert_match: bool = False
    grep_only_matching: bool = False

    no_empty_tables: bool = False
    load_row_counts: bool = False
    child_table_filter_depth: int = 0
    parent_table_filter_depth: int = 0

    strategies: StrategySelection = field(default_factory=StrategySelection)

    def __post_init__(self) -> None:
        for name in ("child_table_filter_depth", "parent_table_filter_depth"):
            value = getattr(self, name)
            if not isinstance(value, int) or value < 0:
                raise ConfigurationError(f"{name} must be a non-negative integer, got {value!r}")
        for name in ("table_types", "routine_types"):
            value = getattr(self, name)
            if value is not None:
                object.__setattr__(self, name, _normalize_types(value))

    def entity_filter(self, kind: EntityKind) -> EntityFilter:
        rule = {
            EntityKind.SCHEMA: self.schema_rule,
            EntityKind.TABLE: self.table_rule,
            EntityKind.COLUMN: self.column_rule,
            EntityKind.ROUTINE: self.routine_rule,
            EntityKind.ROUTINE_COLUMN: self.routine_column_rule,
            EntityKind.SEQUENCE: self.sequence_rule,
            EntityKind.SYNONYM: self.synonym_rule,
        }[kind]
        return EntityFilter(kind, rule)

    @property
    def expands_tables(self) -> bool:
        return self.child_table_filter_depth > 0 or self.parent_table_filter_depth > 0

    @property
    def wants_row_counts(self) -> bool:
        return self.load_row_counts or self.no_empty_tables

    @property
    def has_grep(self) -> bool:
        return any(
            r is not None
            for r in (self.grep_column_rule, self.grep_routine_column_rule, self.grep_definition_rule)
        )

    def retrieval_table_filter(self) -> Callable[[str], bool]:
        """
        Predicate applied to table names while retrieving.

        With foreign key expansion enabled, tables that are merely not
        selected must still be retrieved so the reducer can pull them back
        in; only explicitly excluded tables are rejected early.
        """
        tables = self.entity_filter(EntityKind.TABLE)
        if self.expands_tables:
            return lambda name: not tables.rule.excludes(name)
        return tables.test_name

    def skip_reason(self, category: Category) -> str | None:
        """Return why a category is not retrieved, or None if it is."""
        if not self.info_level.includes(category):
            return SKIPPED
        if any(self.entity_filter(k).is_exclude_all() for k in _CATEGORY_KINDS[category]):
            return EXCLUDED
        return None

    def active_categories(self) -> list[Category]:
        return [c for c in Category if self.skip_reason(c) is None]


def _normalize_types(values: Collection[str]) -> tuple[str, ...]:
    if isinstance(values, str):
        values = values.split(",")
    return tuple(dict.fromkeys(type_key(v) for v in values if v and v.strip()))


def type_key(text: str) -> str:
    """Normalize a table or routine type name for comparison ("base_table" -> "BASE TABLE")."""
    return " ".join(text.replace("_", " ").upper().split())
