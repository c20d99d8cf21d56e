"""Core catalog entity models.

Entities are plain records owned by a ``MutableCatalog``. Each one carries a
stable integer handle; parents are referenced by handle and foreign keys
reference tables and columns by handle, so the object graph never holds
live back-pointers. Names are fixed at creation time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import NewType

Handle = NewType("Handle", int)


def normalize_name(name: str | None) -> str | None:
    """Strip a catalog or schema name, mapping blank values to None."""
    if name is None:
        return None
    name = str(name).strip()
    return name or None


def qualified_name(*parts: str | None) -> str:
    """Join name parts with dots, skipping missing parts."""
    return ".".join(p for p in parts if p)


class TableKind(str, Enum):
    """Table type tags."""

    TABLE = "TABLE"
    VIEW = "VIEW"
    MATERIALIZED_VIEW = "MATERIALIZED VIEW"
    SYSTEM_TABLE = "SYSTEM TABLE"
    GLOBAL_TEMPORARY = "GLOBAL TEMPORARY"
    LOCAL_TEMPORARY = "LOCAL TEMPORARY"
    EXTERNAL = "EXTERNAL"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_text(cls, text: str | None) -> "TableKind":
        """Map free text from a metadata source to a table kind."""
        if not text:
            return cls.TABLE
        key = " ".join(str(text).replace("_", " ").upper().split())
        if key == "BASE TABLE":
            return cls.TABLE
        for kind in cls:
            if kind.value == key:
                return kind
        return cls.UNKNOWN


class RoutineKind(str, Enum):
    PROCEDURE = "PROCEDURE"
    FUNCTION = "FUNCTION"

    @classmethod
    def from_text(cls, text: str | None) -> "RoutineKind":
        if text and str(text).strip().upper() == cls.PROCEDURE.value:
            return cls.PROCEDURE
        return cls.FUNCTION


class RoutineColumnKind(str, Enum):
    IN = "IN"
    OUT = "OUT"
    INOUT = "INOUT"
    RETURN = "RETURN"
    RESULT = "RESULT"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_text(cls, text: str | None) -> "RoutineColumnKind":
        key = (str(text).strip().upper().replace(" ", "") if text else "")
        for kind in cls:
            if kind.value == key:
                return kind
        return cls.UNKNOWN


@dataclass
class Schema:
    """A (catalog, schema) pair; owns tables, routines, sequences and synonyms."""

    handle: Handle
    catalog_name: str | None
    name: str | None
    remarks: str | None = None

    @property
    def key(self) -> tuple[str | None, str | None]:
        return (self.catalog_name, self.name)

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.name)


@dataclass
class Table:
    """
    A table, view or similar relation.

    Attributes:
        columns: Column handles in ordinal order.
        imported_keys: Foreign keys where this table is the child.
        exported_keys: Foreign keys where this table is the parent.
        row_count: None until a row counter has been consulted.
    """

    handle: Handle
    schema: Handle
    catalog_name: str | None
    schema_name: str | None
    name: str
    kind: TableKind = TableKind.TABLE
    table_type_name: str | None = None
    remarks: str | None = None
    definition: str | None = None
    row_count: int | None = None
    columns: list[Handle] = field(default_factory=list)
    primary_key: list[Handle] = field(default_factory=list)
    indexes: list[Handle] = field(default_factory=list)
    triggers: list[Handle] = field(default_factory=list)
    imported_keys: list[Handle] = field(default_factory=list)
    exported_keys: list[Handle] = field(default_factory=list)

    @property
    def full_name(self) -> str:
        return qualified_name(self.catalog_name, self.schema_name, self.name)


@dataclass
class Column:
    handle: Handle
    table: Handle
    name: str
    full_name: str
    ordinal_position: int
    data_type: str | None = None
    nullable: bool = True
    size: int | None = None
    decimal_digits: int | None = None
    default_value: str | None = None
    remarks: str | None = None


@dataclass
class Index:
    handle: Handle
    table: Handle
    name: str
    full_name: str
    unique: bool = False
    columns: list[Handle] = field(default_factory=list)


@dataclass(frozen=True)
class ColumnReference:
    """One (child column, parent column) pair of a foreign key."""

    key_sequence: int
    child_column: Handle
    parent_column: Handle


@dataclass
class ForeignKey:
    """Directed relationship from a child table to a parent table."""

    handle: Handle
    name: str
    child_table: Handle
    parent_table: Handle
    column_references: list[ColumnReference] = field(default_factory=list)
    update_rule: str | None = None
    delete_rule: str | None = None

    @property
    def is_self_referencing(self) -> bool:
        return self.child_table == self.parent_table


@dataclass
class Trigger:
    handle: Handle
    table: Handle
    name: str
    full_name: str
    action_timing: str | None = None
    event_manipulation: str | None = None
    action_statement: str | None = None


@dataclass
class Routine:
    """
    A procedure or function. ``specific_name`` disambiguates overloads and
    defaults to the routine name when the source does not provide one.
    """

    handle: Handle
    schema: Handle
    name: str
    specific_name: str
    full_name: str
    kind: RoutineKind = RoutineKind.FUNCTION
    return_type: str | None = None
    remarks: str | None = None
    definition: str | None = None
    columns: list[Handle] = field(default_factory=list)


@dataclass
class RoutineColumn:
    handle: Handle
    routine: Handle
    name: str
    full_name: str
    ordinal_position: int
    kind: RoutineColumnKind = RoutineColumnKind.UNKNOWN
    data_type: str | None = None
    nullable: bool = True
    size: int | None = None
    precision: int | None = None
    remarks: str | None = None


@dataclass
class Sequence:
    handle: Handle
    schema: Handle
    name: str
    full_name: str
    increment: int | None = None
    minimum_value: int | None = None
    maximum_value: int | None = None
    cycle: bool = False


@dataclass
class Synonym:
    handle: Handle
    schema: Handle
    name: str
    full_name: str
    referenced_object: str | None = None
