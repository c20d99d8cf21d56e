"""Reducer: graph-aware pruning of a populated catalog.

The table set is narrowed to the tables selected by the table rule, then
grown again along foreign keys up to the configured depths:

* ``child_table_filter_depth`` follows a table's own foreign keys to the
  tables it references (child -> parent);
* ``parent_table_filter_depth`` follows the foreign keys that reference a
  table to the tables holding them (parent -> child).

Explicitly excluded tables are never added back and never walked through.
Foreign keys left pointing outside the final set are removed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterable

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.errors import CrawlError, SourceConnectivityError
from dbcrawl.core.filters import EntityFilter, EntityKind
from dbcrawl.core.metadata import RowCounter
from dbcrawl.core.models import Handle, Table
from dbcrawl.core.options import CrawlOptions

logger = logging.getLogger(__name__)


@dataclass
class ReductionReport:
    """Counts of entities removed by the reducer, per kind."""

    removed: dict[str, int] = field(default_factory=dict)
    expanded_tables: int = 0

    def add(self, kind: str, count: int = 1) -> None:
        if count:
            self.removed[kind] = self.removed.get(kind, 0) + count


def expand_tables(
    base: Iterable[Handle],
    parents_of: Callable[[Handle], Iterable[Handle]],
    children_of: Callable[[Handle], Iterable[Handle]],
    *,
    child_depth: int,
    parent_depth: int,
    blocked: Callable[[Handle], bool] = lambda h: False,
) -> set[Handle]:
    """
    Breadth-first expansion of a table set along foreign key edges.

    Args:
        base: Starting table handles; always part of the result.
        parents_of: Tables referenced by a table (child -> parent edges).
        children_of: Tables referencing a table (parent -> child edges).
        child_depth: Hops followed along ``parents_of``.
        parent_depth: Hops followed along ``children_of``.
        blocked: Tables that may never be added or traversed.

    Returns:
        The union of the base set and both expansions.
    """
    selected = set(base)
    result = set(selected)
    for depth, neighbours in ((child_depth, parents_of), (parent_depth, children_of)):
        visited = set(selected)
        frontier = set(selected)
        for _ in range(depth):
            reached = {
                n for h in frontier for n in neighbours(h) if n not in visited and not blocked(n)
            }
            if not reached:
                break
            visited |= reached
            frontier = reached
        result |= visited
    return result


class Reducer:
    """Applies inclusion rules and foreign key expansion to a built catalog."""

    def __init__(
        self,
        catalog: MutableCatalog,
        options: CrawlOptions,
        *,
        row_counter: RowCounter | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        """
        Args:
            catalog: Populated catalog, reduced in place.
            options: Rules and depths to apply.
            row_counter: Consulted for the tables that survive selection
                when row counts or empty-table hiding are requested.
        """
        self.catalog = catalog
        self.options = options
        self.row_counter = row_counter
        self.log = log or logger

    def _filter(self, kind: EntityKind) -> EntityFilter:
        return self.options.entity_filter(kind)

    def reduce(self) -> ReductionReport:
        report = ReductionReport()
        self.reduce_schemas(report)
        self.reduce_tables(report)
        self.reduce_routines(report)
        self.reduce_sequences(report)
        self.reduce_synonyms(report)
        self.log.info("Reducer removed %s", report.removed or "nothing")
        return report

    def reduce_schemas(self, report: ReductionReport) -> None:
        """Remove schemas failing the schema rule; empty schemas are kept."""
        schemas = self._filter(EntityKind.SCHEMA)
        for schema in self.catalog.schemas():
            if not schemas.test(schema):
                self.catalog.remove_schema(schema)
                report.add("schemas")

    def table_selection(self) -> set[Handle]:
        """Compute the final table set: selected tables plus their expansion."""
        tables = self._filter(EntityKind.TABLE)
        all_tables = self.catalog.tables()
        base = {t.handle for t in all_tables if tables.test(t)}
        if not self.options.expands_tables:
            return base

        catalog = self.catalog
        selection = expand_tables(
            base,
            lambda h: [t.handle for t in catalog.parent_tables(catalog.table(h))],
            lambda h: [t.handle for t in catalog.child_tables(catalog.table(h))],
            child_depth=self.options.child_table_filter_depth,
            parent_depth=self.options.parent_table_filter_depth,
            blocked=lambda h: tables.excludes(catalog.table(h)),
        )
        self.log.debug("Expanded %d selected table(s) to %d", len(base), len(selection))
        return selection

    def reduce_tables(self, report: ReductionReport) -> None:
        keep = self.table_selection()
        report.expanded_tables = len(keep)
        for table in self.catalog.tables():
            if table.handle not in keep:
                self._remove_table(table, report)

        if self.row_counter is not None and self.options.wants_row_counts:
            self.load_row_counts()

        if self.options.no_empty_tables:
            for table in self.catalog.tables():
                if table.row_count == 0:
                    self.log.debug("Dropping empty table %s", table.full_name)
                    self._remove_table(table, report)

        drop_dangling_foreign_keys(self.catalog, report)

    def load_row_counts(self) -> None:
        """Cache row counts on the remaining tables; None stays "unknown"."""
        if self.row_counter is None:
            return
        for table in self.catalog.tables():
            try:
                table.row_count = self.row_counter.count_rows(table)
            except CrawlError:
                raise
            except Exception as exc:
                raise SourceConnectivityError(
                    f"Cannot count rows of {table.full_name}: {exc}", category="row_counts"
                ) from exc
        self.log.info("Loaded row counts for %d table(s)", len(self.catalog.tables()))

    def _remove_table(self, table: Table, report: ReductionReport) -> None:
        report.add("foreign_keys", len(self.catalog.foreign_keys(table)))
        self.catalog.remove_table(table)
        report.add("tables")

    def reduce_routines(self, report: ReductionReport) -> None:
        routines = self._filter(EntityKind.ROUTINE)
        for routine in self.catalog.routines():
            if not routines.test(routine):
                self.catalog.remove_routine(routine)
                report.add("routines")

    def reduce_sequences(self, report: ReductionReport) -> None:
        sequences = self._filter(EntityKind.SEQUENCE)
        for sequence in self.catalog.sequences():
            if not sequences.test(sequence):
                self.catalog.remove_sequence(sequence)
                report.add("sequences")

    def reduce_synonyms(self, report: ReductionReport) -> None:
        synonyms = self._filter(EntityKind.SYNONYM)
        for synonym in self.catalog.synonyms():
            if not synonyms.test(synonym):
                self.catalog.remove_synonym(synonym)
                report.add("synonyms")


def drop_dangling_foreign_keys(catalog: MutableCatalog, report: ReductionReport | None = None) -> int:
    """Remove foreign keys whose child or parent table is gone. Returns the count."""
    dropped = 0
    for fk in catalog.foreign_keys():
        if fk.child_table not in catalog or fk.parent_table not in catalog:
            catalog.remove_foreign_key(fk)
            dropped += 1
    if report is not None:
        report.add("foreign_keys", dropped)
    return dropped
