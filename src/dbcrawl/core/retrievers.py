"""Catalog builder: runs the selected strategy per category and maps rows.

For every category the builder fetches all rows first and only then
materializes entities, so a category that fails halfway contributes nothing
to the catalog. Rows are checked against the entity filters before anything
is created; rows that cannot be linked to a known schema, table or routine
are dropped with a debug log line, as they refer to objects outside the
crawl.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Mapping

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.errors import CrawlError, SourceConnectivityError, UnsupportedCapabilityError
from dbcrawl.core.filters import EntityKind, warn_if_ambiguous
from dbcrawl.core.metadata import (
    ColumnRow,
    ForeignKeyRow,
    IndexRow,
    MetadataSource,
    RoutineColumnRow,
    RoutineRow,
    SequenceRow,
    SynonymRow,
    TableRow,
    TriggerRow,
)
from dbcrawl.core.models import (
    Column,
    Handle,
    Routine,
    RoutineColumnKind,
    RoutineKind,
    Schema,
    Table,
    TableKind,
    qualified_name,
)
from dbcrawl.core.options import CrawlOptions, type_key
from dbcrawl.core.queries import NamedQueryRegistry
from dbcrawl.core.strategies import Category, RetrievalStrategy, fetch_rows

logger = logging.getLogger(__name__)

OK = "ok"
UNSUPPORTED = "unsupported"


@dataclass
class CategoryResult:
    """
    Outcome of retrieving one category.

    Attributes:
        status: ``ok``, ``unsupported``, ``skipped`` or ``excluded``.
        rows_seen: Raw rows returned by the source.
        created: Entities added to the catalog.
    """

    category: Category
    strategy: RetrievalStrategy
    status: str = OK
    rows_seen: int = 0
    created: int = 0
    message: str | None = None


def _in_source_order(rows: list[Any], position: Callable[[Any], int | None]) -> list[Any]:
    # stable: rows without a source position keep their arrival order
    return sorted(rows, key=lambda r: (position(r) is None, position(r) or 0))


class CatalogBuilder:
    """Populates a MutableCatalog from a MetadataSource."""

    def __init__(
        self,
        source: MetadataSource,
        catalog: MutableCatalog,
        options: CrawlOptions,
        *,
        registry: NamedQueryRegistry | None = None,
        context: Mapping[str, Any] | None = None,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.source = source
        self.catalog = catalog
        self.options = options
        self.registry = registry
        self.context = dict(context or {})
        self.log = log or logger
        self.filters = {kind: options.entity_filter(kind) for kind in EntityKind}
        self.table_filter = options.retrieval_table_filter()

    # ------------------------------------------------------------------ driver --
    def build(self) -> dict[Category, CategoryResult]:
        """Retrieve every category in order and return the per-category results."""
        return {category: self.retrieve(category) for category in Category}

    def retrieve(self, category: Category) -> CategoryResult:
        strategy = self.options.strategies.for_category(category)
        reason = self.options.skip_reason(category)
        if reason is not None:
            self.log.info("Not retrieving %s, since this was not requested (%s)", category.value, reason)
            return CategoryResult(category, strategy, status=reason)

        retriever: Callable[[CategoryResult], None] = getattr(self, f"retrieve_{category.value}")
        result = CategoryResult(category, strategy)
        try:
            retriever(result)
        except UnsupportedCapabilityError as exc:
            self.log.warning("Metadata source does not support %s: %s", category.value, exc)
            return CategoryResult(category, strategy, status=UNSUPPORTED, message=str(exc))
        except CrawlError as exc:
            if exc.category is None:
                exc.category = category.value
            raise
        self.log.info(
            "Retrieved %d %s (%d rows seen)", result.created, category.value, result.rows_seen
        )
        return result

    def _fetch(
        self,
        result: CategoryResult,
        lister: Callable[[str | None, str | None], list[Any]],
        schemas: Iterable[Schema] | None = None,
    ) -> list[Any]:
        """Fetch raw rows; any non-taxonomy failure of the source is fatal."""
        refs = [(s.catalog_name, s.name) for s in (self.catalog.schemas() if schemas is None else schemas)]
        try:
            rows = fetch_rows(
                result.category,
                result.strategy,
                self.source,
                lister,
                schemas=refs,
                registry=self.registry,
                context=self.context,
                log=self.log,
            )
        except CrawlError:
            raise
        except Exception as exc:
            raise SourceConnectivityError(
                f"{type(exc).__name__}: {exc}", category=result.category
            ) from exc
        result.rows_seen = len(rows)
        return rows

    def _schema_of(self, row: Any) -> Schema | None:
        schema = self.catalog.lookup_schema(row.catalog_name, row.schema_name)
        if schema is None:
            self.log.debug("Dropping %s: schema is not part of the crawl", row.full_name)
        return schema

    def _table_of(self, row: Any, table_name: str | None) -> Table | None:
        table = self.catalog.lookup_table(row.catalog_name, row.schema_name, table_name)
        if table is None:
            self.log.debug("Dropping %s: table %s was not retrieved", row.full_name, table_name)
        return table

    def _owners(self, parents: Iterable[Any]) -> list[Schema]:
        handles = dict.fromkeys(p.schema for p in parents)
        return [self.catalog.schema(h) for h in handles]

    # ----------------------------------------------------------------- schemas --
    def retrieve_schemas(self, result: CategoryResult) -> None:
        if result.strategy is RetrievalStrategy.DATA_DICTIONARY_ALL:
            rows = self._fetch(result, lambda c, s: [], schemas=[])
        else:
            self.log.info("Retrieving schemas")
            try:
                rows = self.source.list_schemas()
            except CrawlError:
                raise
            except Exception as exc:
                raise SourceConnectivityError(f"{type(exc).__name__}: {exc}", category=result.category) from exc
            result.rows_seen = len(rows)

        schema_filter = self.filters[EntityKind.SCHEMA]
        for row in rows:
            if not schema_filter.test_name(qualified_name(row.catalog_name, row.schema_name)):
                self.log.debug("Excluding schema %s", row.full_name)
                continue
            if self.catalog.lookup_schema(row.catalog_name, row.schema_name) is None:
                result.created += 1
            self.catalog.add_schema(row.catalog_name, row.schema_name, row.remarks)
        warn_if_ambiguous(schema_filter, seen=len(rows), kept=result.created, log=self.log)

    # ------------------------------------------------------------------ tables --
    def retrieve_tables(self, result: CategoryResult) -> None:
        options = self.options
        rows: list[TableRow] = self._fetch(
            result,
            lambda c, s: self.source.list_tables(c, s, options.table_name_pattern, options.table_types),
        )
        seen = 0
        for row in rows:
            schema = self._schema_of(row)
            if schema is None or not row.table_name:
                continue
            kind = TableKind.from_text(row.table_type)
            if options.table_types is not None and not (
                kind.value in options.table_types or type_key(row.table_type or "") in options.table_types
            ):
                self.log.debug("Dropping %s: table type %s not requested", row.full_name, row.table_type)
                continue
            seen += 1
            if not self.table_filter(row.full_name):
                self.log.debug("Excluding table %s", row.full_name)
                continue
            if self.catalog.lookup_table(schema.catalog_name, schema.name, row.table_name) is None:
                result.created += 1
            self.catalog.add_table(
                schema,
                row.table_name,
                kind=kind,
                table_type_name=row.table_type,
                remarks=row.remarks,
                definition=row.definition,
            )
        warn_if_ambiguous(self.filters[EntityKind.TABLE], seen=seen, kept=result.created, log=self.log)

    def _has_tables(self, result: CategoryResult) -> bool:
        if self.catalog.tables():
            return True
        self.log.info("No tables retrieved, not retrieving %s", result.category.value)
        return False

    def retrieve_table_columns(self, result: CategoryResult) -> None:
        if not self._has_tables(result):
            return
        rows: list[ColumnRow] = self._fetch(
            result,
            lambda c, s: self.source.list_columns(c, s, None),
            schemas=self._owners(self.catalog.tables()),
        )

        by_table: dict[Handle, tuple[Table, list[ColumnRow]]] = {}
        for row in rows:
            table = self._table_of(row, row.table_name)
            if table is not None and row.column_name:
                by_table.setdefault(table.handle, (table, []))[1].append(row)

        column_filter = self.filters[EntityKind.COLUMN]
        seen = 0
        for table, table_rows in by_table.values():
            primary_key: list[tuple[int, Column]] = []
            # rank before filtering so excluded columns leave gaps
            for rank, row in enumerate(_in_source_order(table_rows, lambda r: r.ordinal_position)):
                seen += 1
                if not column_filter.test_name(qualified_name(table.full_name, row.column_name)):
                    continue
                if self.catalog.lookup_column(table, row.column_name) is not None:
                    continue
                column = self.catalog.add_column(
                    table,
                    row.column_name,
                    ordinal_position=rank,
                    data_type=row.data_type,
                    nullable=row.nullable,
                    size=row.column_size,
                    decimal_digits=row.decimal_digits,
                    default_value=row.column_default,
                    remarks=row.remarks,
                )
                result.created += 1
                if row.primary_key_sequence:
                    primary_key.append((row.primary_key_sequence, column))
            if primary_key:
                self.catalog.set_primary_key(table, [c for _, c in sorted(primary_key, key=lambda p: p[0])])
        warn_if_ambiguous(column_filter, seen=seen, kept=result.created, log=self.log)

    def retrieve_foreign_keys(self, result: CategoryResult) -> None:
        """
        Link foreign keys between retrieved tables.

        Rows are grouped into keys by child table and key name. A key whose
        child or parent table was not retrieved is dropped. Column pairs whose
        columns were filtered out are left out of the key, but the key itself
        stays, as the table relationship still holds.
        """
        if not self._has_tables(result):
            return
        rows: list[ForeignKeyRow] = self._fetch(
            result,
            lambda c, s: self.source.list_foreign_keys(c, s, None),
            schemas=self._owners(self.catalog.tables()),
        )

        groups: dict[tuple[Any, str], tuple[Table, Table, list[ForeignKeyRow]]] = {}
        for row in rows:
            child = self._table_of(row, row.child_table)
            if child is None:
                continue
            if row.parent_catalog is None and row.parent_schema is None:
                parent = self.catalog.lookup_table(child.catalog_name, child.schema_name, row.parent_table)
            else:
                parent = self.catalog.lookup_table(row.parent_catalog, row.parent_schema, row.parent_table)
            if parent is None:
                self.log.debug("Dropping %s: parent table %s was not retrieved", row.full_name, row.parent_table)
                continue
            name = row.fk_name or f"fk_{child.name}_{parent.name}"
            groups.setdefault((child.handle, name), (child, parent, []))[2].append(row)

        for (_, name), (child, parent, fk_rows) in groups.items():
            references: dict[tuple[int, int, int], tuple[int, Column, Column]] = {}
            for position, row in enumerate(fk_rows):
                child_column = self.catalog.lookup_column(child, row.child_column)
                parent_column = self.catalog.lookup_column(parent, row.parent_column)
                if child_column is None or parent_column is None:
                    self.log.debug("Foreign key %s: column %s -> %s not retrieved", name, row.child_column, row.parent_column)
                    continue
                sequence = row.key_sequence if row.key_sequence is not None else position + 1
                references[(sequence, child_column.handle, parent_column.handle)] = (
                    sequence,
                    child_column,
                    parent_column,
                )
            self.catalog.add_foreign_key(
                name,
                child,
                parent,
                references.values(),
                update_rule=fk_rows[0].update_rule,
                delete_rule=fk_rows[0].delete_rule,
            )
            result.created += 1

    def retrieve_indexes(self, result: CategoryResult) -> None:
        if not self._has_tables(result):
            return
        rows: list[IndexRow] = self._fetch(
            result,
            lambda c, s: self.source.list_indexes(c, s, None),
            schemas=self._owners(self.catalog.tables()),
        )

        groups: dict[tuple[Any, str], tuple[Table, list[IndexRow]]] = {}
        for row in rows:
            table = self._table_of(row, row.table_name)
            if table is None or not row.index_name:
                continue
            groups.setdefault((table.handle, row.index_name), (table, []))[1].append(row)

        for (_, name), (table, index_rows) in groups.items():
            columns = []
            for row in _in_source_order(index_rows, lambda r: r.ordinal_position):
                column = self.catalog.lookup_column(table, row.column_name)
                if column is not None and column not in columns:
                    columns.append(column)
            self.catalog.add_index(
                table, name, unique=any(r.unique for r in index_rows), columns=columns
            )
            result.created += 1

    def retrieve_triggers(self, result: CategoryResult) -> None:
        if not self._has_tables(result):
            return
        rows: list[TriggerRow] = self._fetch(
            result,
            lambda c, s: self.source.list_triggers(c, s, None),
            schemas=self._owners(self.catalog.tables()),
        )

        # one trigger may be reported once per event
        groups: dict[tuple[Any, str], tuple[Table, list[TriggerRow]]] = {}
        for row in rows:
            table = self._table_of(row, row.table_name)
            if table is None or not row.trigger_name:
                continue
            groups.setdefault((table.handle, row.trigger_name), (table, []))[1].append(row)

        for (_, name), (table, trigger_rows) in groups.items():
            events = dict.fromkeys(r.event_manipulation for r in trigger_rows if r.event_manipulation)
            first = trigger_rows[0]
            self.catalog.add_trigger(
                table,
                name,
                action_timing=first.action_timing,
                event_manipulation=", ".join(events) or None,
                action_statement=first.action_statement,
            )
            result.created += 1

    # ---------------------------------------------------------------- routines --
    def retrieve_routines(self, result: CategoryResult) -> None:
        options = self.options
        rows: list[RoutineRow] = self._fetch(
            result, lambda c, s: self.source.list_routines(c, s, options.routine_types)
        )
        routine_filter = self.filters[EntityKind.ROUTINE]
        seen = 0
        for row in rows:
            schema = self._schema_of(row)
            if schema is None or not row.routine_name:
                continue
            kind = RoutineKind.from_text(row.routine_type)
            if options.routine_types is not None and kind.value not in options.routine_types:
                continue
            seen += 1
            if not routine_filter.test_name(row.full_name):
                self.log.debug("Excluding routine %s", row.full_name)
                continue
            if self.catalog.lookup_routine(schema, row.routine_name, row.specific_name) is not None:
                continue
            self.catalog.add_routine(
                schema,
                row.routine_name,
                row.specific_name,
                kind=kind,
                return_type=row.return_type,
                remarks=row.remarks,
                definition=row.definition,
            )
            result.created += 1
        warn_if_ambiguous(routine_filter, seen=seen, kept=result.created, log=self.log)

    def _routine_of(self, row: RoutineColumnRow) -> Routine | None:
        schema = self._schema_of(row)
        if schema is None:
            return None
        if row.specific_name:
            routine = self.catalog.lookup_routine(schema, row.routine_name, row.specific_name)
        else:
            candidates = self.catalog.lookup_routines_by_name(schema, row.routine_name)
            if len(candidates) > 1:
                self.log.debug(
                    "Dropping %s: %d overloads and no specific name", row.full_name, len(candidates)
                )
                return None
            routine = candidates[0] if candidates else None
        if routine is None:
            self.log.debug("Dropping %s: routine was not retrieved", row.full_name)
        return routine

    def retrieve_routine_columns(self, result: CategoryResult) -> None:
        routines = self.catalog.routines()
        if not routines:
            self.log.info("No routines retrieved, not retrieving routine columns")
            return
        rows: list[RoutineColumnRow] = self._fetch(
            result,
            lambda c, s: self.source.list_routine_columns(c, s, None),
            schemas=self._owners(routines),
        )

        by_routine: dict[Handle, tuple[Routine, list[RoutineColumnRow]]] = {}
        for row in rows:
            routine = self._routine_of(row)
            if routine is not None and row.column_name:
                by_routine.setdefault(routine.handle, (routine, []))[1].append(row)

        column_filter = self.filters[EntityKind.ROUTINE_COLUMN]
        seen = 0
        for routine, routine_rows in by_routine.values():
            for rank, row in enumerate(_in_source_order(routine_rows, lambda r: r.ordinal_position)):
                seen += 1
                if not column_filter.test_name(qualified_name(routine.full_name, row.column_name)):
                    continue
                self.catalog.add_routine_column(
                    routine,
                    row.column_name,
                    kind=RoutineColumnKind.from_text(row.column_type),
                    ordinal_position=rank,
                    data_type=row.data_type,
                    nullable=row.nullable,
                    size=row.length,
                    precision=row.precision,
                    remarks=row.remarks,
                )
                result.created += 1
        warn_if_ambiguous(column_filter, seen=seen, kept=result.created, log=self.log)

    # -------------------------------------------------------- schema objects --
    def retrieve_sequences(self, result: CategoryResult) -> None:
        rows: list[SequenceRow] = self._fetch(result, lambda c, s: self.source.list_sequences(c, s))
        sequence_filter = self.filters[EntityKind.SEQUENCE]
        for row in rows:
            schema = self._schema_of(row)
            if schema is None or not row.sequence_name or not sequence_filter.test_name(row.full_name):
                continue
            self.catalog.add_sequence(
                schema,
                row.sequence_name,
                increment=row.increment,
                minimum_value=row.minimum_value,
                maximum_value=row.maximum_value,
                cycle=row.cycle,
            )
            result.created += 1
        warn_if_ambiguous(sequence_filter, seen=len(rows), kept=result.created, log=self.log)

    def retrieve_synonyms(self, result: CategoryResult) -> None:
        rows: list[SynonymRow] = self._fetch(result, lambda c, s: self.source.list_synonyms(c, s))
        synonym_filter = self.filters[EntityKind.SYNONYM]
        for row in rows:
            schema = self._schema_of(row)
            if schema is None or not row.synonym_name or not synonym_filter.test_name(row.full_name):
                continue
            self.catalog.add_synonym(schema, row.synonym_name, row.referenced_object)
            result.created += 1
        warn_if_ambiguous(synonym_filter, seen=len(rows), kept=result.created, log=self.log)
