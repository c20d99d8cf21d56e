from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from typing import Any, Collection, Iterator, Mapping

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

_TABLE_TYPES = {"table": "TABLE", "view": "VIEW"}
_TYPE_SIZE_RE = re.compile(r"\(\s*(\d+)\s*(?:,\s*(\d+)\s*)?\)")
_TRIGGER_RE = re.compile(
    r"CREATE\s+(?:TEMP(?:ORARY)?\s+)?TRIGGER\s+(?:IF\s+NOT\s+EXISTS\s+)?\S+\s+"
    r"(?:(BEFORE|AFTER|INSTEAD\s+OF)\s+)?(DELETE|INSERT|UPDATE)",
    re.IGNORECASE,
)
_TRIGGER_BODY_RE = re.compile(r"\bBEGIN\b(.*)\bEND\b", re.IGNORECASE | re.DOTALL)


def _quote(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def _size(data_type: str | None) -> tuple[int | None, int | None]:
    match = _TYPE_SIZE_RE.search(data_type or "")
    if not match:
        return None, None
    return int(match.group(1)), int(match.group(2)) if match.group(2) else None


class SqliteMetadataSource:
    """
    Metadata source over a SQLite connection.

    Every attached database is a schema (``main``, ``temp`` and whatever was
    attached); SQLite has no catalogs, so catalog names are always None.
    Routines, sequences and synonyms do not exist in SQLite and are reported
    as unsupported.
    """

    def __init__(self, connection: sqlite3.Connection, *, include_temp: bool = False) -> None:
        self.connection = connection
        self.include_temp = include_temp

    @contextmanager
    def _errors(self, category: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as exc:
            raise SourceConnectivityError(f"SQLite error: {exc}", category=category) from exc

    def _query(self, sql: str, params: Any = ()) -> list[dict[str, Any]]:
        cursor = self.connection.execute(sql, params)
        try:
            columns = [d[0] for d in cursor.description or ()]
            return [dict(zip(columns, row)) for row in cursor.fetchall()]
        finally:
            cursor.close()

    def _schema_names(self, schema: str | None) -> list[str]:
        if schema:
            return [schema]
        return [
            r["name"]
            for r in self._query("PRAGMA database_list")
            if self.include_temp or r["name"] != "temp"
        ]

    def _table_names(self, schema: str, table: str | None) -> list[str]:
        if table:
            return [table]
        return [
            r["name"]
            for r in self._query(
                f"SELECT name FROM {_quote(schema)}.sqlite_master "
                "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
                "ORDER BY name"
            )
        ]

    # ------------------------------------------------------------------ schemas --
    def list_schemas(self) -> list[SchemaRow]:
        with self._errors("schemas"):
            return [SchemaRow(catalog_name=None, schema_name=name) for name in self._schema_names(None)]

    def list_tables(
        self,
        catalog: str | None,
        schema: str | None,
        table_name_pattern: str | None = None,
        table_types: Collection[str] | None = None,
    ) -> list[TableRow]:
        out: list[TableRow] = []
        with self._errors("tables"):
            for schema_name in self._schema_names(schema):
                rows = self._query(
                    f"SELECT name, type, sql FROM {_quote(schema_name)}.sqlite_master "
                    "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
                    "AND name LIKE ? ORDER BY name",
                    (table_name_pattern or "%",),
                )
                for r in rows:
                    table_type = _TABLE_TYPES[r["type"]]
                    if table_types is not None and table_type not in table_types:
                        continue
                    out.append(
                        TableRow(
                            catalog_name=None,
                            schema_name=schema_name,
                            table_name=r["name"],
                            table_type=table_type,
                            definition=r["sql"] if r["type"] == "view" else None,
                        )
                    )
        return out

    # ------------------------------------------------------------ table parts --
    def list_columns(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ColumnRow]:
        out: list[ColumnRow] = []
        with self._errors("table_columns"):
            for schema_name in self._schema_names(schema):
                for table_name in self._table_names(schema_name, table):
                    info = self._query(f"PRAGMA {_quote(schema_name)}.table_info({_quote(table_name)})")
                    for r in info:
                        size, digits = _size(r["type"])
                        out.append(
                            ColumnRow(
                                catalog_name=None,
                                schema_name=schema_name,
                                table_name=table_name,
                                column_name=r["name"],
                                data_type=r["type"] or None,
                                nullable=not r["notnull"],
                                column_size=size,
                                decimal_digits=digits,
                                column_default=r["dflt_value"],
                                ordinal_position=r["cid"],
                                primary_key_sequence=r["pk"] or None,
                            )
                        )
        return out

    def _primary_key(self, schema: str, table: str) -> list[str]:
        info = self._query(f"PRAGMA {_quote(schema)}.table_info({_quote(table)})")
        return [r["name"] for r in sorted((r for r in info if r["pk"]), key=lambda r: r["pk"])]

    def list_foreign_keys(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ForeignKeyRow]:
        """Foreign keys are unnamed in SQLite; names are made up from table and key id."""
        out: list[ForeignKeyRow] = []
        with self._errors("foreign_keys"):
            for schema_name in self._schema_names(schema):
                for table_name in self._table_names(schema_name, table):
                    keys = self._query(
                        f"PRAGMA {_quote(schema_name)}.foreign_key_list({_quote(table_name)})"
                    )
                    parent_keys: dict[str, list[str]] = {}
                    for r in keys:
                        parent_column = r["to"]
                        if parent_column is None:
                            # REFERENCES parent without columns means the parent's primary key
                            if r["table"] not in parent_keys:
                                parent_keys[r["table"]] = self._primary_key(schema_name, r["table"])
                            pk = parent_keys[r["table"]]
                            parent_column = pk[r["seq"]] if r["seq"] < len(pk) else ""
                        out.append(
                            ForeignKeyRow(
                                catalog_name=None,
                                schema_name=schema_name,
                                fk_name=f"fk_{table_name}_{r['id']}",
                                child_table=table_name,
                                child_column=r["from"],
                                parent_catalog=None,
                                parent_schema=schema_name,
                                parent_table=r["table"],
                                parent_column=parent_column,
                                key_sequence=r["seq"] + 1,
                                update_rule=r["on_update"],
                                delete_rule=r["on_delete"],
                            )
                        )
        return out

    def list_indexes(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[IndexRow]:
        out: list[IndexRow] = []
        with self._errors("indexes"):
            for schema_name in self._schema_names(schema):
                for table_name in self._table_names(schema_name, table):
                    indexes = self._query(
                        f"PRAGMA {_quote(schema_name)}.index_list({_quote(table_name)})"
                    )
                    for index in indexes:
                        info = self._query(
                            f"PRAGMA {_quote(schema_name)}.index_info({_quote(index['name'])})"
                        )
                        for r in info:
                            out.append(
                                IndexRow(
                                    catalog_name=None,
                                    schema_name=schema_name,
                                    table_name=table_name,
                                    index_name=index["name"],
                                    column_name=r["name"],
                                    ordinal_position=r["seqno"],
                                    unique=bool(index["unique"]),
                                )
                            )
        return out

    def list_triggers(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[TriggerRow]:
        out: list[TriggerRow] = []
        with self._errors("triggers"):
            for schema_name in self._schema_names(schema):
                sql = (
                    f"SELECT name, tbl_name, sql FROM {_quote(schema_name)}.sqlite_master "
                    "WHERE type = 'trigger'"
                )
                params: tuple[str, ...] = ()
                if table:
                    sql += " AND tbl_name = ?"
                    params = (table,)
                for r in self._query(sql + " ORDER BY name", params):
                    text = r["sql"] or ""
                    header = _TRIGGER_RE.search(text)
                    body = _TRIGGER_BODY_RE.search(text)
                    timing = " ".join(header.group(1).upper().split()) if header and header.group(1) else "BEFORE"
                    out.append(
                        TriggerRow(
                            catalog_name=None,
                            schema_name=schema_name,
                            table_name=r["tbl_name"],
                            trigger_name=r["name"],
                            action_timing=timing if header else None,
                            event_manipulation=header.group(2).upper() if header else None,
                            action_statement=body.group(1).strip() if body else text or None,
                        )
                    )
        return out

    # ------------------------------------------------------------- unsupported --
    def list_routines(
        self,
        catalog: str | None,
        schema: str | None,
        routine_types: Collection[str] | None = None,
    ) -> list[RoutineRow]:
        raise UnsupportedCapabilityError("SQLite has no stored routines", category="routines")

    def list_routine_columns(
        self, catalog: str | None, schema: str | None, routine: str | None = None
    ) -> list[RoutineColumnRow]:
        raise UnsupportedCapabilityError("SQLite has no stored routines", category="routine_columns")

    def list_sequences(self, catalog: str | None, schema: str | None) -> list[SequenceRow]:
        raise UnsupportedCapabilityError("SQLite has no sequences", category="sequences")

    def list_synonyms(self, catalog: str | None, schema: str | None) -> list[SynonymRow]:
        raise UnsupportedCapabilityError("SQLite has no synonyms", category="synonyms")

    # ------------------------------------------------------------------ queries --
    def execute_query(self, sql: str, params: Mapping[str, Any]) -> list[Mapping[str, Any]]:
        with self._errors("query"):
            return self._query(sql, dict(params))

    def count_rows(self, table: Table) -> int | None:
        with self._errors("row_counts"):
            rows = self._query(
                f"SELECT COUNT(*) AS n FROM {_quote(table.schema_name or 'main')}.{_quote(table.name)}"
            )
        return int(rows[0]["n"]) if rows else None
