"""Metadata source protocol and the typed rows it returns.

Every retrieval strategy ends up producing the same typed rows: generic
``list_*`` calls return them directly, and data dictionary query results are
converted with ``<RowType>.from_mapping``. Each row carries the catalog and
schema name of its owning schema so the builder can resolve it against the
known-schema index.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar, Collection, Mapping, Protocol, TypeVar

from dbcrawl.core.models import Table, qualified_name

R = TypeVar("R", bound="MetadataRow")

_TRUE_TEXT = frozenset({"1", "true", "t", "yes", "y"})
_FALSE_TEXT = frozenset({"0", "false", "f", "no", "n"})


def as_int(value: Any) -> int | None:
    """Coerce a driver value to int, mapping blanks and garbage to None."""
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def as_bool(value: Any, default: bool = False) -> bool:
    """Coerce "YES"/"NO", 0/1 and similar driver values to bool."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    text = str(value).strip().lower()
    if text in _TRUE_TEXT:
        return True
    if text in _FALSE_TEXT:
        return False
    return default


def as_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value)
    return text if text.strip() else None


@dataclass(frozen=True)
class MetadataRow:
    """Base for all rows; ``catalog_name``/``schema_name`` name the owning schema."""

    catalog_name: str | None
    schema_name: str | None

    _ints: ClassVar[tuple[str, ...]] = ()
    _bools: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def from_mapping(cls: type[R], row: Mapping[str, Any]) -> R:
        """
        Build a typed row from a result mapping.

        Keys are matched case-insensitively against field names; unknown keys
        are ignored and missing optional fields keep their defaults.

        Raises:
            ValueError: A required field is missing.
        """
        lowered = {str(k).lower(): v for k, v in row.items()}
        values: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in lowered:
                continue
            raw = lowered[f.name]
            if f.name in cls._ints:
                values[f.name] = as_int(raw)
            elif f.name in cls._bools:
                values[f.name] = as_bool(raw, default=f.default if isinstance(f.default, bool) else False)
            else:
                values[f.name] = as_text(raw)
        values.setdefault("catalog_name", None)
        values.setdefault("schema_name", None)
        try:
            return cls(**values)
        except TypeError as exc:
            raise ValueError(f"Cannot build {cls.__name__} from columns {sorted(lowered)}") from exc


@dataclass(frozen=True)
class SchemaRow(MetadataRow):
    remarks: str | None = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name)


@dataclass(frozen=True)
class TableRow(MetadataRow):
    table_name: str = ""
    table_type: str | None = None
    remarks: str | None = None
    definition: str | None = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.table_name)


@dataclass(frozen=True)
class ColumnRow(MetadataRow):
    """One column; ``primary_key_sequence`` is 1-based, None/0 if not in the key."""

    table_name: str = ""
    column_name: str = ""
    data_type: str | None = None
    nullable: bool = True
    column_size: int | None = None
    decimal_digits: int | None = None
    column_default: str | None = None
    remarks: str | None = None
    ordinal_position: int | None = None
    primary_key_sequence: int | None = None

    _ints = ("column_size", "decimal_digits", "ordinal_position", "primary_key_sequence")
    _bools = ("nullable",)

    @property
    def table_full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.table_name)

    @property
    def full_name(self) -> str:
        return qualified_name(self.table_full_name, self.column_name)


@dataclass(frozen=True)
class ForeignKeyRow(MetadataRow):
    """
    One column pair of a foreign key, seen from the child (referencing) side.

    Rows sharing ``fk_name`` (and child table) make up one key; the parent
    table may live in another schema.
    """

    fk_name: str | None = None
    child_table: str = ""
    child_column: str = ""
    parent_catalog: str | None = None
    parent_schema: str | None = None
    parent_table: str = ""
    parent_column: str = ""
    key_sequence: int | None = None
    update_rule: str | None = None
    delete_rule: str | None = None

    _ints = ("key_sequence",)

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.child_table, self.fk_name)


@dataclass(frozen=True)
class IndexRow(MetadataRow):
    table_name: str = ""
    index_name: str = ""
    column_name: str | None = None
    ordinal_position: int | None = None
    unique: bool = False

    _ints = ("ordinal_position",)
    _bools = ("unique",)

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.table_name, self.index_name)


@dataclass(frozen=True)
class TriggerRow(MetadataRow):
    table_name: str = ""
    trigger_name: str = ""
    action_timing: str | None = None
    event_manipulation: str | None = None
    action_statement: str | None = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.table_name, self.trigger_name)


@dataclass(frozen=True)
class RoutineRow(MetadataRow):
    routine_name: str = ""
    specific_name: str | None = None
    routine_type: str | None = None
    return_type: str | None = None
    remarks: str | None = None
    definition: str | None = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.routine_name)


@dataclass(frozen=True)
class RoutineColumnRow(MetadataRow):
    routine_name: str = ""
    specific_name: str | None = None
    column_name: str = ""
    column_type: str | None = None
    data_type: str | None = None
    nullable: bool = True
    length: int | None = None
    precision: int | None = None
    remarks: str | None = None
    ordinal_position: int | None = None

    _ints = ("length", "precision", "ordinal_position")
    _bools = ("nullable",)

    @property
    def routine_full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.routine_name)

    @property
    def full_name(self) -> str:
        return qualified_name(self.routine_full_name, self.column_name)


@dataclass(frozen=True)
class SequenceRow(MetadataRow):
    sequence_name: str = ""
    increment: int | None = None
    minimum_value: int | None = None
    maximum_value: int | None = None
    cycle: bool = False

    _ints = ("increment", "minimum_value", "maximum_value")
    _bools = ("cycle",)

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.sequence_name)


@dataclass(frozen=True)
class SynonymRow(MetadataRow):
    synonym_name: str = ""
    referenced_object: str | None = None

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.synonym_name)


class MetadataSource(Protocol):
    """
    Generic metadata interface a crawl reads from.

    ``None`` for catalog, schema or table means "any". Implementations raise
    ``UnsupportedCapabilityError`` for categories they cannot serve at all and
    ``SourceConnectivityError`` for hard failures.
    """

    def list_schemas(self) -> list[SchemaRow]: ...

    def list_tables(
        self,
        catalog: str | None,
        schema: str | None,
        table_name_pattern: str | None = None,
        table_types: Collection[str] | None = None,
    ) -> list[TableRow]: ...

    def list_columns(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ColumnRow]: ...

    def list_foreign_keys(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[ForeignKeyRow]: ...

    def list_indexes(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[IndexRow]: ...

    def list_triggers(
        self, catalog: str | None, schema: str | None, table: str | None = None
    ) -> list[TriggerRow]: ...

    def list_routines(
        self,
        catalog: str | None,
        schema: str | None,
        routine_types: Collection[str] | None = None,
    ) -> list[RoutineRow]: ...

    def list_routine_columns(
        self, catalog: str | None, schema: str | None, routine: str | None = None
    ) -> list[RoutineColumnRow]: ...

    def list_sequences(self, catalog: str | None, schema: str | None) -> list[SequenceRow]: ...

    def list_synonyms(self, catalog: str | None, schema: str | None) -> list[SynonymRow]: ...

    def execute_query(self, sql: str, params: Mapping[str, Any]) -> list[Mapping[str, Any]]: ...


class RowCounter(Protocol):
    """Counts rows of a catalog table; None when the count is not available."""

    def count_rows(self, table: Table) -> int | None: ...
