from __future__ import annotations

import re
from contextlib import contextmanager
from typing import Any, Collection, Iterator, Mapping

from databricks.sdk import WorkspaceClient
from databricks.sdk.errors import DatabricksError
from databricks.sdk.service.sql import StatementParameterListItem, StatementState

from dbcrawl.core.errors import SourceConnectivityError, UnsupportedCapabilityError
from dbcrawl.core.metadata import (
    ColumnRow,
    ForeignKeyRow,
    IndexRow,
    RoutineColumnRow,
    RoutineRow,
    SchemaRow,
    SequenceRow,
    SynonymRow,
    TableRow,
    TriggerRow,
)
from dbcrawl.core.models import Table

# Unity Catalog table types -> catalog table kinds
_TABLE_TYPES = {
    "MANAGED": "TABLE",
    "STREAMING_TABLE": "TABLE",
    "EXTERNAL": "EXTERNAL",
    "EXTERNAL_SHALLOW_CLONE": "EXTERNAL",
    "FOREIGN": "EXTERNAL",
    "VIEW": "VIEW",
    "MATERIALIZED_VIEW": "MATERIALIZED VIEW",
}


def _enum_text(value: Any) -> str | None:
    """SDK enums and plain strings alike -> their text value."""
    if value is None:
        return None
    return str(getattr(value, "value", value))


def _like_regex(pattern: str | None) -> re.Pattern[str] | None:
    """Translate a SQL LIKE pattern; the tables API has no server side name filter."""
    if not pattern or pattern == "%":
        return None
    parts = [".*" if ch == "%" else "." if ch == "_" else re.escape(ch) for ch in pattern]
    return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)


def _quote(name: str) -> str:
    return "`" + name.replace("`", "``") + "`"


class UnityCatalogMetadataSource:
    """
    Metadata source backed by the Databricks SDK Unity Catalog APIs.

    Tables, columns and foreign keys all come from ``tables.list`` (columns
    and table constraints are part of TableInfo), so listings are cached per
    schema for the lifetime of the source. Data dictionary queries and row
    counts run on a SQL warehouse and need ``warehouse_id``.
    """

    def __init__(
        self,
        client: WorkspaceClient,
        catalog: str | None = None,
        *,
        warehouse_id: str | None = None,
        wait_timeout: str = "30s",
    ) -> None:
        self.client = client
        self.catalog = catalog
        self.warehouse_id = warehouse_id
        self.wait_timeout = wait_timeout
        self._tables: dict[tuple[str, str], list[Any]] = {}
        self._functions: dict[tuple[str, str], list[Any]] = {}

    @contextmanager
    def _errors(self, category: str) -> Iterator[None]:
        try:
            yield
        except DatabricksError as exc:
            raise SourceConnectivityError(f"Databricks API error: {exc}", category=category) from exc

    # ----------------------------------------------------------------- listing --
    def _catalog_names(self, catalog: str | None) -> list[str]:
        if catalog:
            return [catalog]
        if self.catalog:
            return [self.catalog]
        return [c.name for c in self.client.catalogs.list() if getattr(c, "name", None)]

    def _schema_refs(self, catalog: str | None, schema: str | None) -> list[tuple[str, str]]:
        if schema:
            return [(c, schema) for c in self._catalog_names(catalog)]
        refs = []
        for catalog_name in self._catalog_names(catalog):
            for s in self.client.schemas.list(catalog_name=catalog_name):
                name = getattr(s, "name", None)
                if not name and getattr(s, "full_name", None):
                    name = s.full_name.split(".")[-1]
                if name:
                    refs.append((getattr(s, "catalog_name", None) or catalog_name, name))
        return refs

    def _table_infos(self, catalog: str | None, schema: str | None) -> Iterator[tuple[str, str, Any]]:
        for catalog_name, schema_name in self._schema_refs(catalog, schema):
            key = (catalog_name, schema_name)
            if key not in self._tables:
                self._tables[key] = list(
                    self.client.tables.list(catalog_name=catalog_name, schema_name=schema_name)
                )
            for info in self._tables[key]:
                if getattr(info, "name", None):
                    yield catalog_name, schema_name, info

    def _function_infos(self, catalog: str | None, schema: str | None) -> Iterator[tuple[str, str, Any]]:
        for catalog_name, schema_name in self._schema_refs(catalog, schema):
            key = (catalog_name, schema_name)
            if key not in self._functions:
                self._functions[key] = list(
                    self.client.functions.list(catalog_name=catalog_name, schema_name=schema_name)
                )
            for info in self._functions[key]:
                if getattr(info, "name", None):
                    yield catalog_name, schema_name, info

    def list_schemas(self) -> list[SchemaRow]:
        out: list[SchemaRow] = []
        with self._errors("schemas"):
            for catalog_name in self._catalog_names(None):
                for s in self.client.schemas.list(catalog_name=catalog_name):
                    name = getattr(s, "name", None)
                    if not name:
                        continue
                    out.append(
                        SchemaRow(
                            catalog_name=getattr(s, "catalog_name", None) or catalog_name,
                            schema_name=name,
                            remarks=getattr(s, "comment", None),
                        )
                    )
        return out

    def list_tables(
        self,
        catalog: str | None,
        schema: str | None,
        table_name_pattern: str | None = None,
        table_types: Collection[str] | None = None,
    ) -> list[TableRow]:
        out: list[TableRow] = []
        name_rx = _like_regex(table_name_pattern)
        with self._errors("tables"):
            for catalog_name, schema_name, t in self._table_infos(catalog, schema):
                if name_rx is not None and not name_rx.fullmatch(t.name):
                    continue
                raw_type = _enum_text(getattr(t, "table_type", None))
                table_type = _TABLE_TYPES.get(raw_type or "", raw_type)
                if table_types is not None and table_type not in table_types:
                    continue
                out.append(
                    TableRow(
                        catalog_name=catalog_name,
                        schema_name=schema_name,
                        table_name=t.name,
                        table_type=table_type,
                        remarks=getattr(t, "comment", None),
                        definition=getattr(t, "view_definition", None),
                    )
                )
        return out

    def list_columns(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ColumnRow]:
        out: list[ColumnRow] = []
        with self._errors("table_columns"):
            for catalog_name, schema_name, t in self._table_infos(catalog, schema):
                if table and t.name != table:
                    continue
                pk_columns = self._primary_key(t)
                for c in getattr(t, "columns", None) or []:
                    name = getattr(c, "name", None)
                    if not name:
                        continue
                    out.append(
                        ColumnRow(
                            catalog_name=catalog_name,
                            schema_name=schema_name,
                            table_name=t.name,
                            column_name=name,
                            data_type=getattr(c, "type_text", None) or _enum_text(getattr(c, "type_name", None)),
                            nullable=bool(getattr(c, "nullable", True)),
                            column_size=getattr(c, "type_precision", None),
                            decimal_digits=getattr(c, "type_scale", None),
                            remarks=getattr(c, "comment", None),
                            ordinal_position=getattr(c, "position", None),
                            primary_key_sequence=(pk_columns.index(name) + 1) if name in pk_columns else None,
                        )
                    )
        return out

    @staticmethod
    def _primary_key(table_info: Any) -> list[str]:
        for constraint in getattr(table_info, "table_constraints", None) or []:
            pk = getattr(constraint, "primary_key_constraint", None)
            if pk is not None:
                return list(getattr(pk, "child_columns", None) or [])
        return []

    def list_foreign_keys(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ForeignKeyRow]:
        out: list[ForeignKeyRow] = []
        with self._errors("foreign_keys"):
            for catalog_name, schema_name, t in self._table_infos(catalog, schema):
                if table and t.name != table:
                    continue
                for constraint in getattr(t, "table_constraints", None) or []:
                    fk = getattr(constraint, "foreign_key_constraint", None)
                    if fk is None:
                        continue
                    parent_parts = (getattr(fk, "parent_table", None) or "").split(".")
                    if len(parent_parts) != 3:
                        continue
                    parent_catalog, parent_schema, parent_table = parent_parts
                    pairs = zip(fk.child_columns or [], fk.parent_columns or [])
                    for sequence, (child_column, parent_column) in enumerate(pairs, start=1):
                        out.append(
                            ForeignKeyRow(
                                catalog_name=catalog_name,
                                schema_name=schema_name,
                                fk_name=getattr(fk, "name", None),
                                child_table=t.name,
                                child_column=child_column,
                                parent_catalog=parent_catalog,
                                parent_schema=parent_schema,
                                parent_table=parent_table,
                                parent_column=parent_column,
                                key_sequence=sequence,
                            )
                        )
        return out

    def list_indexes(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[IndexRow]:
        raise UnsupportedCapabilityError("Unity Catalog has no indexes", category="indexes")

    def list_triggers(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[TriggerRow]:
        raise UnsupportedCapabilityError("Unity Catalog has no triggers", category="triggers")

    # ---------------------------------------------------------------- routines --
    def list_routines(
        self,
        catalog: str | None,
        schema: str | None,
        routine_types: Collection[str] | None = None,
    ) -> list[RoutineRow]:
        out: list[RoutineRow] = []
        with self._errors("routines"):
            for catalog_name, schema_name, f in self._function_infos(catalog, schema):
                out.append(
                    RoutineRow(
                        catalog_name=catalog_name,
                        schema_name=schema_name,
                        routine_name=f.name,
                        specific_name=getattr(f, "specific_name", None),
                        routine_type="FUNCTION",
                        return_type=getattr(f, "full_data_type", None) or _enum_text(getattr(f, "data_type", None)),
                        remarks=getattr(f, "comment", None),
                        definition=getattr(f, "routine_definition", None),
                    )
                )
        return out

    def list_routine_columns(
        self, catalog: str | None, schema: str | None, routine: str | None = None
    ) -> list[RoutineColumnRow]:
        out: list[RoutineColumnRow] = []
        with self._errors("routine_columns"):
            for catalog_name, schema_name, f in self._function_infos(catalog, schema):
                if routine and f.name != routine:
                    continue
                for kind, holder in (("IN", "input_params"), ("RESULT", "return_params")):
                    params = getattr(getattr(f, holder, None), "parameters", None) or []
                    for p in params:
                        mode = _enum_text(getattr(p, "parameter_mode", None))
                        out.append(
                            RoutineColumnRow(
                                catalog_name=catalog_name,
                                schema_name=schema_name,
                                routine_name=f.name,
                                specific_name=getattr(f, "specific_name", None),
                                column_name=p.name,
                                column_type=mode if kind == "IN" and mode else kind,
                                data_type=getattr(p, "type_text", None) or _enum_text(getattr(p, "type_name", None)),
                                precision=getattr(p, "type_precision", None),
                                remarks=getattr(p, "comment", None),
                                ordinal_position=getattr(p, "position", None),
                            )
                        )
        return out

    def list_sequences(self, catalog: str | None, schema: str | None) -> list[SequenceRow]:
        raise UnsupportedCapabilityError("Unity Catalog has no sequences", category="sequences")

    def list_synonyms(self, catalog: str | None, schema: str | None) -> list[SynonymRow]:
        raise UnsupportedCapabilityError("Unity Catalog has no synonyms", category="synonyms")

    # ---------------------------------------------------------------- queries --
    def execute_query(self, sql: str, params: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        """
        Run a query on the configured SQL warehouse and return row mappings.

        All result chunks are fetched; column names come from the manifest.
        """
        if not self.warehouse_id:
            raise UnsupportedCapabilityError(
                "SQL queries need a SQL warehouse (warehouse_id)", category="query"
            )
        with self._errors("query"):
            response = self.client.statement_execution.execute_statement(
                statement=sql,
                warehouse_id=self.warehouse_id,
                catalog=self.catalog,
                parameters=[
                    StatementParameterListItem(name=k, value=None if v is None else str(v))
                    for k, v in params.items()
                ],
                wait_timeout=self.wait_timeout,
            )
            state = getattr(response.status, "state", None)
            if state != StatementState.SUCCEEDED:
                error = getattr(response.status, "error", None)
                message = getattr(error, "message", None) or f"statement ended in state {_enum_text(state)}"
                raise SourceConnectivityError(message, category="query")

            columns = [c.name for c in response.manifest.schema.columns]
            result = response.result
            rows = list(getattr(result, "data_array", None) or [])
            next_chunk = getattr(result, "next_chunk_index", None)
            while next_chunk is not None:
                chunk = self.client.statement_execution.get_statement_result_chunk_n(
                    response.statement_id, next_chunk
                )
                rows.extend(chunk.data_array or [])
                next_chunk = chunk.next_chunk_index
        return [dict(zip(columns, row)) for row in rows]

    def count_rows(self, table: Table) -> int | None:
        """Row count via the SQL warehouse; None when no warehouse is configured."""
        if not self.warehouse_id:
            return None
        name = ".".join(_quote(p) for p in (table.catalog_name, table.schema_name, table.name) if p)
        rows = self.execute_query(f"SELECT COUNT(*) AS n FROM {name}", {})
        return int(rows[0]["n"]) if rows else None
