"""The mutable catalog: an arena of entities addressed by stable handles.

Ownership is strictly tree-shaped (schema owns table owns column, and so on)
and foreign keys are cross-references by handle. Entities are created during
retrieval only; afterwards the catalog only ever shrinks. Removing an entity
removes everything it owns and every foreign key, index or primary key entry
that would otherwise point at it, so no dangling handle survives.

A catalog is owned by a single crawl and is not thread-safe.
"""

from __future__ import annotations

import itertools
from typing import Any, Iterable, TypeVar

from dbcrawl.core.models import (
    Column,
    ColumnReference,
    ForeignKey,
    Handle,
    Index,
    Routine,
    RoutineColumn,
    RoutineColumnKind,
    RoutineKind,
    Schema,
    Sequence,
    Synonym,
    Table,
    TableKind,
    Trigger,
    normalize_name,
    qualified_name,
)

E = TypeVar("E")


class MutableCatalog:
    """In-memory model of one database's structure for one crawl."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name
        self._next_handle = itertools.count(1)
        self._entities: dict[Handle, Any] = {}
        self._schemas: dict[tuple[str | None, str | None], Handle] = {}
        self._tables: dict[tuple[Handle, str], Handle] = {}
        self._routines: dict[tuple[Handle, str, str], Handle] = {}
        self._sequences: dict[tuple[Handle, str], Handle] = {}
        self._synonyms: dict[tuple[Handle, str], Handle] = {}
        self._foreign_keys: dict[Handle, None] = {}
        self._next_ordinal: dict[Handle, int] = {}

    # ------------------------------------------------------------------ access --
    def _new_handle(self) -> Handle:
        return Handle(next(self._next_handle))

    def get(self, handle: Handle) -> Any:
        """Return the entity for a handle (KeyError if it was removed)."""
        return self._entities[handle]

    def _typed(self, handle: Handle, cls: type[E]) -> E:
        entity = self._entities[handle]
        if not isinstance(entity, cls):
            raise TypeError(f"Handle {handle} is a {type(entity).__name__}, not {cls.__name__}")
        return entity

    def table(self, handle: Handle) -> Table:
        return self._typed(handle, Table)

    def column(self, handle: Handle) -> Column:
        return self._typed(handle, Column)

    def routine(self, handle: Handle) -> Routine:
        return self._typed(handle, Routine)

    def schema(self, handle: Handle) -> Schema:
        return self._typed(handle, Schema)

    def foreign_key(self, handle: Handle) -> ForeignKey:
        return self._typed(handle, ForeignKey)

    def __contains__(self, handle: object) -> bool:
        return handle in self._entities

    # ---------------------------------------------------------------- creation --
    def add_schema(
        self,
        catalog_name: str | None,
        schema_name: str | None,
        remarks: str | None = None,
    ) -> Schema:
        """Add a schema, or return the existing one with the same normalized key."""
        key = (normalize_name(catalog_name), normalize_name(schema_name))
        existing = self._schemas.get(key)
        if existing is not None:
            return self.schema(existing)
        schema = Schema(self._new_handle(), key[0], key[1], remarks)
        self._entities[schema.handle] = schema
        self._schemas[key] = schema.handle
        return schema

    def add_table(
        self,
        schema: Schema,
        name: str,
        *,
        kind: TableKind = TableKind.TABLE,
        table_type_name: str | None = None,
        remarks: str | None = None,
        definition: str | None = None,
    ) -> Table:
        key = (schema.handle, name)
        existing = self._tables.get(key)
        if existing is not None:
            return self.table(existing)
        table = Table(
            handle=self._new_handle(),
            schema=schema.handle,
            catalog_name=schema.catalog_name,
            schema_name=schema.name,
            name=name,
            kind=kind,
            table_type_name=table_type_name,
            remarks=remarks,
            definition=definition,
        )
        self._entities[table.handle] = table
        self._tables[key] = table.handle
        return table

    def _take_ordinal(self, parent: Handle, requested: int | None = None) -> int:
        ordinal = self._next_ordinal.get(parent, 0) if requested is None else requested
        self._next_ordinal[parent] = max(self._next_ordinal.get(parent, 0), ordinal + 1)
        return ordinal

    def add_column(
        self, table: Table, name: str, *, ordinal_position: int | None = None, **attributes: Any
    ) -> Column:
        """
        Add a column to a table.

        ``ordinal_position`` is the column's rank among all source columns of
        the table; columns filtered out before this call leave gaps. Without
        it the next ordinal after the highest one handed out is used.
        Ordinals are never reused or renumbered.
        """
        existing = self.lookup_column(table, name)
        if existing is not None:
            return existing
        column = Column(
            handle=self._new_handle(),
            table=table.handle,
            name=name,
            full_name=qualified_name(table.full_name, name),
            ordinal_position=self._take_ordinal(table.handle, ordinal_position),
            **attributes,
        )
        self._entities[column.handle] = column
        table.columns.append(column.handle)
        return column

    def set_primary_key(self, table: Table, columns: Iterable[Column]) -> None:
        table.primary_key = [c.handle for c in columns if c.table == table.handle]

    def add_index(
        self, table: Table, name: str, *, unique: bool = False, columns: Iterable[Column] = ()
    ) -> Index:
        index = Index(
            handle=self._new_handle(),
            table=table.handle,
            name=name,
            full_name=qualified_name(table.full_name, name),
            unique=unique,
            columns=[c.handle for c in columns],
        )
        self._entities[index.handle] = index
        table.indexes.append(index.handle)
        return index

    def add_foreign_key(
        self,
        name: str,
        child_table: Table,
        parent_table: Table,
        references: Iterable[tuple[int, Column, Column]],
        *,
        update_rule: str | None = None,
        delete_rule: str | None = None,
    ) -> ForeignKey:
        """
        Add a foreign key from ``child_table`` to ``parent_table``.

        Args:
            references: (key sequence, child column, parent column) triples.
        """
        fk = ForeignKey(
            handle=self._new_handle(),
            name=name,
            child_table=child_table.handle,
            parent_table=parent_table.handle,
            column_references=[
                ColumnReference(seq, child.handle, parent.handle)
                for seq, child, parent in sorted(references, key=lambda r: r[0])
            ],
            update_rule=update_rule,
            delete_rule=delete_rule,
        )
        self._entities[fk.handle] = fk
        self._foreign_keys[fk.handle] = None
        child_table.imported_keys.append(fk.handle)
        parent_table.exported_keys.append(fk.handle)
        return fk

    def add_trigger(self, table: Table, name: str, **attributes: Any) -> Trigger:
        trigger = Trigger(
            handle=self._new_handle(),
            table=table.handle,
            name=name,
            full_name=qualified_name(table.full_name, name),
            **attributes,
        )
        self._entities[trigger.handle] = trigger
        table.triggers.append(trigger.handle)
        return trigger

    def add_routine(
        self,
        schema: Schema,
        name: str,
        specific_name: str | None = None,
        *,
        kind: RoutineKind = RoutineKind.FUNCTION,
        return_type: str | None = None,
        remarks: str | None = None,
        definition: str | None = None,
    ) -> Routine:
        specific = specific_name or name
        key = (schema.handle, name, specific)
        existing = self._routines.get(key)
        if existing is not None:
            return self.routine(existing)
        routine = Routine(
            handle=self._new_handle(),
            schema=schema.handle,
            name=name,
            specific_name=specific,
            full_name=qualified_name(schema.catalog_name, schema.name, name),
            kind=kind,
            return_type=return_type,
            remarks=remarks,
            definition=definition,
        )
        self._entities[routine.handle] = routine
        self._routines[key] = routine.handle
        return routine

    def add_routine_column(
        self,
        routine: Routine,
        name: str,
        *,
        kind: RoutineColumnKind = RoutineColumnKind.UNKNOWN,
        ordinal_position: int | None = None,
        **attributes: Any,
    ) -> RoutineColumn:
        column = RoutineColumn(
            handle=self._new_handle(),
            routine=routine.handle,
            name=name,
            full_name=qualified_name(routine.full_name, name),
            ordinal_position=self._take_ordinal(routine.handle, ordinal_position),
            kind=kind,
            **attributes,
        )
        self._entities[column.handle] = column
        routine.columns.append(column.handle)
        return column

    def add_sequence(self, schema: Schema, name: str, **attributes: Any) -> Sequence:
        key = (schema.handle, name)
        existing = self._sequences.get(key)
        if existing is not None:
            return self._typed(existing, Sequence)
        sequence = Sequence(
            handle=self._new_handle(),
            schema=schema.handle,
            name=name,
            full_name=qualified_name(schema.catalog_name, schema.name, name),
            **attributes,
        )
        self._entities[sequence.handle] = sequence
        self._sequences[key] = sequence.handle
        return sequence

    def add_synonym(
        self, schema: Schema, name: str, referenced_object: str | None = None
    ) -> Synonym:
        key = (schema.handle, name)
        existing = self._synonyms.get(key)
        if existing is not None:
            return self._typed(existing, Synonym)
        synonym = Synonym(
            handle=self._new_handle(),
            schema=schema.handle,
            name=name,
            full_name=qualified_name(schema.catalog_name, schema.name, name),
            referenced_object=referenced_object,
        )
        self._entities[synonym.handle] = synonym
        self._synonyms[key] = synonym.handle
        return synonym

    # ----------------------------------------------------------------- lookups --
    def lookup_schema(self, catalog_name: str | None, schema_name: str | None) -> Schema | None:
        """Look up a schema by its normalized (catalog, schema) pair."""
        handle = self._schemas.get((normalize_name(catalog_name), normalize_name(schema_name)))
        return None if handle is None else self.schema(handle)

    def lookup_table(
        self, catalog_name: str | None, schema_name: str | None, table_name: str | None
    ) -> Table | None:
        schema = self.lookup_schema(catalog_name, schema_name)
        if schema is None or not table_name:
            return None
        handle = self._tables.get((schema.handle, table_name))
        return None if handle is None else self.table(handle)

    def lookup_column(self, table: Table, column_name: str | None) -> Column | None:
        for handle in table.columns:
            column = self.column(handle)
            if column.name == column_name:
                return column
        return None

    def lookup_routine(
        self, schema: Schema, name: str, specific_name: str | None = None
    ) -> Routine | None:
        handle = self._routines.get((schema.handle, name, specific_name or name))
        return None if handle is None else self.routine(handle)

    def lookup_routines_by_name(self, schema: Schema, name: str) -> list[Routine]:
        return [
            self.routine(h)
            for (s, n, _), h in self._routines.items()
            if s == schema.handle and n == name
        ]

    # --------------------------------------------------------------- traversal --
    def schemas(self) -> list[Schema]:
        return [self.schema(h) for h in self._schemas.values()]

    def tables(self, schema: Schema | None = None) -> list[Table]:
        return [
            self.table(h)
            for (s, _), h in self._tables.items()
            if schema is None or s == schema.handle
        ]

    def columns(self, table: Table) -> list[Column]:
        return [self.column(h) for h in table.columns]

    def indexes(self, table: Table) -> list[Index]:
        return [self._typed(h, Index) for h in table.indexes]

    def triggers(self, table: Table) -> list[Trigger]:
        return [self._typed(h, Trigger) for h in table.triggers]

    def foreign_keys(self, table: Table | None = None) -> list[ForeignKey]:
        """All foreign keys, or those touching one table (child or parent side)."""
        if table is None:
            return [self.foreign_key(h) for h in self._foreign_keys]
        handles = dict.fromkeys([*table.imported_keys, *table.exported_keys])
        return [self.foreign_key(h) for h in handles]

    def parent_tables(self, table: Table) -> list[Table]:
        """Tables referenced by this table's foreign keys."""
        handles = dict.fromkeys(self.foreign_key(h).parent_table for h in table.imported_keys)
        return [self.table(h) for h in handles]

    def child_tables(self, table: Table) -> list[Table]:
        """Tables whose foreign keys reference this table."""
        handles = dict.fromkeys(self.foreign_key(h).child_table for h in table.exported_keys)
        return [self.table(h) for h in handles]

    def routines(self, schema: Schema | None = None) -> list[Routine]:
        return [
            self.routine(h)
            for (s, _, _), h in self._routines.items()
            if schema is None or s == schema.handle
        ]

    def routine_columns(self, routine: Routine) -> list[RoutineColumn]:
        return [self._typed(h, RoutineColumn) for h in routine.columns]

    def sequences(self, schema: Schema | None = None) -> list[Sequence]:
        return [
            self._typed(h, Sequence)
            for (s, _), h in self._sequences.items()
            if schema is None or s == schema.handle
        ]

    def synonyms(self, schema: Schema | None = None) -> list[Synonym]:
        return [
            self._typed(h, Synonym)
            for (s, _), h in self._synonyms.items()
            if schema is None or s == schema.handle
        ]

    def counts(self) -> dict[str, int]:
        """Entity counts per kind, for summaries and logging."""
        tables = self.tables()
        routines = self.routines()
        return {
            "schemas": len(self._schemas),
            "tables": len(tables),
            "columns": sum(len(t.columns) for t in tables),
            "foreign_keys": len(self._foreign_keys),
            "indexes": sum(len(t.indexes) for t in tables),
            "triggers": sum(len(t.triggers) for t in tables),
            "routines": len(routines),
            "routine_columns": sum(len(r.columns) for r in routines),
            "sequences": len(self._sequences),
            "synonyms": len(self._synonyms),
        }

    # ----------------------------------------------------------------- removal --
    def remove_foreign_key(self, fk: ForeignKey) -> None:
        if fk.handle not in self._foreign_keys:
            return
        del self._foreign_keys[fk.handle]
        del self._entities[fk.handle]
        for table_handle in {fk.child_table, fk.parent_table}:
            table = self._entities.get(table_handle)
            if table is None:
                continue
            table.imported_keys = [h for h in table.imported_keys if h != fk.handle]
            table.exported_keys = [h for h in table.exported_keys if h != fk.handle]

    def remove_index(self, index: Index) -> None:
        table = self.table(index.table)
        table.indexes = [h for h in table.indexes if h != index.handle]
        del self._entities[index.handle]

    def remove_column(self, column: Column) -> None:
        """
        Remove a column plus every index that uses it.

        Foreign keys over the column lose only the column pairs naming it and
        stay linked to both tables, the same as keys whose columns were
        filtered out at retrieval.
        """
        table = self.table(column.table)
        for fk in self.foreign_keys(table):
            fk.column_references = [
                r for r in fk.column_references if column.handle not in (r.child_column, r.parent_column)
            ]
        for index in self.indexes(table):
            if column.handle in index.columns:
                self.remove_index(index)
        table.columns = [h for h in table.columns if h != column.handle]
        table.primary_key = [h for h in table.primary_key if h != column.handle]
        del self._entities[column.handle]

    def remove_table(self, table: Table) -> None:
        """Remove a table with its columns, indexes, triggers and foreign keys."""
        for fk in self.foreign_keys(table):
            self.remove_foreign_key(fk)
        for handle in [*table.indexes, *table.triggers, *table.columns]:
            del self._entities[handle]
        table.indexes, table.triggers, table.columns, table.primary_key = [], [], [], []
        del self._tables[(table.schema, table.name)]
        del self._entities[table.handle]

    def remove_routine_column(self, column: RoutineColumn) -> None:
        routine = self.routine(column.routine)
        routine.columns = [h for h in routine.columns if h != column.handle]
        del self._entities[column.handle]

    def remove_routine(self, routine: Routine) -> None:
        for handle in routine.columns:
            del self._entities[handle]
        routine.columns = []
        del self._routines[(routine.schema, routine.name, routine.specific_name)]
        del self._entities[routine.handle]

    def remove_sequence(self, sequence: Sequence) -> None:
        del self._sequences[(sequence.schema, sequence.name)]
        del self._entities[sequence.handle]

    def remove_synonym(self, synonym: Synonym) -> None:
        del self._synonyms[(synonym.schema, synonym.name)]
        del self._entities[synonym.handle]

    def remove_schema(self, schema: Schema) -> None:
        """Remove a schema and everything it owns."""
        for table in self.tables(schema):
            self.remove_table(table)
        for routine in self.routines(schema):
            self.remove_routine(routine)
        for sequence in self.sequences(schema):
            self.remove_sequence(sequence)
        for synonym in self.synonyms(schema):
            self.remove_synonym(synonym)
        del self._schemas[schema.key]
        del self._entities[schema.handle]

    # ----------------------------------------------------------------- export --
    def to_dict(self) -> dict[str, Any]:
        """Plain-data view of the catalog for renderers (JSON friendly)."""
        return {
            "name": self.name,
            "schemas": [self._schema_dict(s) for s in self.schemas()],
        }

    def _schema_dict(self, schema: Schema) -> dict[str, Any]:
        return {
            "catalog": schema.catalog_name,
            "name": schema.name,
            "full_name": schema.full_name,
            "remarks": schema.remarks,
            "tables": [self._table_dict(t) for t in self.tables(schema)],
            "routines": [self._routine_dict(r) for r in self.routines(schema)],
            "sequences": [
                {
                    "name": s.name,
                    "increment": s.increment,
                    "minimum_value": s.minimum_value,
                    "maximum_value": s.maximum_value,
                    "cycle": s.cycle,
                }
                for s in self.sequences(schema)
            ],
            "synonyms": [
                {"name": s.name, "referenced_object": s.referenced_object}
                for s in self.synonyms(schema)
            ],
        }

    def _table_dict(self, table: Table) -> dict[str, Any]:
        return {
            "name": table.name,
            "full_name": table.full_name,
            "type": table.kind.value,
            "remarks": table.remarks,
            "definition": table.definition,
            "row_count": table.row_count,
            "columns": [
                {
                    "name": c.name,
                    "ordinal_position": c.ordinal_position,
                    "data_type": c.data_type,
                    "nullable": c.nullable,
                    "size": c.size,
                    "decimal_digits": c.decimal_digits,
                    "default": c.default_value,
                    "remarks": c.remarks,
                }
                for c in self.columns(table)
            ],
            "primary_key": [self.column(h).name for h in table.primary_key],
            "indexes": [
                {
                    "name": i.name,
                    "unique": i.unique,
                    "columns": [self.column(h).name for h in i.columns],
                }
                for i in self.indexes(table)
            ],
            "foreign_keys": [self._foreign_key_dict(self.foreign_key(h)) for h in table.imported_keys],
            "triggers": [
                {
                    "name": t.name,
                    "action_timing": t.action_timing,
                    "event_manipulation": t.event_manipulation,
                    "action_statement": t.action_statement,
                }
                for t in self.triggers(table)
            ],
        }

    def _foreign_key_dict(self, fk: ForeignKey) -> dict[str, Any]:
        return {
            "name": fk.name,
            "child_table": self.table(fk.child_table).full_name,
            "parent_table": self.table(fk.parent_table).full_name,
            "columns": [
                [self.column(r.child_column).name, self.column(r.parent_column).name]
                for r in fk.column_references
            ],
            "update_rule": fk.update_rule,
            "delete_rule": fk.delete_rule,
        }

    def _routine_dict(self, routine: Routine) -> dict[str, Any]:
        return {
            "name": routine.name,
            "specific_name": routine.specific_name,
            "type": routine.kind.value,
            "return_type": routine.return_type,
            "remarks": routine.remarks,
            "columns": [
                {
                    "name": c.name,
                    "ordinal_position": c.ordinal_position,
                    "kind": c.kind.value,
                    "data_type": c.data_type,
                    "nullable": c.nullable,
                    "remarks": c.remarks,
                }
                for c in self.routine_columns(routine)
            ],
        }
