"""Entity filters: an inclusion rule plus a per-kind default policy.

When no rule is configured for a kind, the kind's default applies. Schemas,
tables, columns and routine columns are included by default; routines,
sequences and synonyms are excluded by default and only crawled on request.
The asymmetry keeps the common crawl cheap: routine and sequence metadata is
expensive on many servers and rarely wanted.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Protocol

from dbcrawl.core.errors import FilterAmbiguityWarning
from dbcrawl.core.inclusion import ExcludeAll, IncludeAll, InclusionRule

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    """Kinds of catalog entities that can be filtered by name."""

    SCHEMA = "schema"
    TABLE = "table"
    COLUMN = "column"
    ROUTINE = "routine"
    ROUTINE_COLUMN = "routine_column"
    SEQUENCE = "sequence"
    SYNONYM = "synonym"


DEFAULT_INCLUDE: dict[EntityKind, bool] = {
    EntityKind.SCHEMA: True,
    EntityKind.TABLE: True,
    EntityKind.COLUMN: True,
    EntityKind.ROUTINE: False,
    EntityKind.ROUTINE_COLUMN: True,
    EntityKind.SEQUENCE: False,
    EntityKind.SYNONYM: False,
}


class Named(Protocol):
    """Anything with a fully qualified name: catalog entities and metadata rows."""

    @property
    def full_name(self) -> str: ...


class EntityFilter:
    """Single test predicate over typed entities of one kind."""

    def __init__(self, kind: EntityKind, rule: InclusionRule | None = None):
        """
        Create a filter for one entity kind.

        Args:
            kind: Entity kind the filter applies to.
            rule: Configured inclusion rule, or None to use the kind's default.
        """
        self.kind = kind
        self.configured = rule is not None
        if rule is None:
            rule = IncludeAll() if DEFAULT_INCLUDE[kind] else ExcludeAll()
        self.rule = rule

    def test(self, entity: Named) -> bool:
        """Check whether the entity's fully qualified name is included."""
        return self.rule.test(entity.full_name)

    def test_name(self, full_name: str) -> bool:
        return self.rule.test(full_name)

    def excludes(self, entity: Named) -> bool:
        """Check whether the entity is explicitly excluded."""
        return self.rule.excludes(entity.full_name)

    def is_exclude_all(self) -> bool:
        return self.rule.is_exclude_all()

    def __repr__(self) -> str:
        return f"EntityFilter({self.kind.value}, {self.rule!r})"


def warn_if_ambiguous(
    entity_filter: EntityFilter,
    *,
    seen: int,
    kept: int,
    log: logging.Logger | logging.LoggerAdapter | None = None,
) -> bool:
    """
    Log a FilterAmbiguityWarning when a configured rule rejected every name.

    Returns:
        True if a warning was logged.
    """
    if not entity_filter.configured or entity_filter.is_exclude_all():
        return False
    if seen == 0 or kept > 0:
        return False
    warning = FilterAmbiguityWarning(
        f"{entity_filter.kind.value} rule {entity_filter.rule!r} "
        f"matched none of {seen} candidate(s)"
    )
    (log or logger).warning("%s: %s", type(warning).__name__, warning)
    return True
