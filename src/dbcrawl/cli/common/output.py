"""Output formatting utilities for the CLI."""

from __future__ import annotations

import json
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Mapping

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.theme import Theme

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.crawler import CrawlSummary
from dbcrawl.core.strategies import Category

_THEME = Theme(
    {
        "ok": "bold green",
        "warn": "yellow",
        "err": "bold red",
        "title": "bold cyan",
        "meta": "dim",
    }
)

console = Console(theme=_THEME)
# log records only; stdout carries command output
err_console = Console(theme=_THEME, stderr=True)

_STATUS_STYLE = {"ok": "ok", "unsupported": "warn", "skipped": "meta", "excluded": "meta"}


@dataclass(frozen=True)
class Out:
    """Output formatter for CLI messages and catalog tables."""

    def info(self, msg: str) -> None:
        """Print an info message."""
        console.print(f"[title]›[/] {msg}")

    @contextmanager
    def status(self, msg: str):
        """Show a transient status spinner while work is in progress."""
        with console.status(msg, spinner="dots"):
            yield

    def success(self, msg: str) -> None:
        console.print(f"[ok]✓[/] {msg}")

    def warn(self, msg: str) -> None:
        console.print(f"[warn]⚠[/] {msg}")

    def error(self, msg: str) -> None:
        console.print(f"[err]✗[/] {escape(msg)}", highlight=False, soft_wrap=True)

    def header(self, title: str) -> None:
        console.print(f"[title]{title}[/]")

    def kv(self, items: Mapping[str, Any]) -> None:
        """Print key-value pairs."""
        for k, v in items.items():
            console.print(f"[meta]{k}[/]: {v}")

    def json(self, data: Any) -> None:
        """Print plain JSON (no markup, so it can be piped)."""
        typer.echo(json.dumps(data, indent=2, default=str))

    def summary_table(self, summary: CrawlSummary, title: str = "Crawl summary") -> None:
        """
        Render per-category retrieval results.

        Skipped and unsupported categories show "0 retrieved" instead of
        being left out.
        """
        t = Table(title=title, show_lines=False)
        t.add_column("Category", style="title", no_wrap=True)
        t.add_column("Strategy", style="meta")
        t.add_column("Rows seen", justify="right")
        t.add_column("Result")

        for category in Category:
            result = summary.categories.get(category)
            status = result.status if result else "skipped"
            style = _STATUS_STYLE.get(status, "meta")
            t.add_row(
                category.value,
                result.strategy.value if result else "",
                str(result.rows_seen) if result else "0",
                f"[{style}]{summary.describe(category)}[/{style}]",
            )

        console.print(t)

    def schemas_table(self, catalog: MutableCatalog, title: str = "Schemas") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("Schema", style="ok")
        t.add_column("Tables", justify="right")
        t.add_column("Routines", justify="right")
        t.add_column("Remarks", style="meta")

        for s in catalog.schemas():
            t.add_row(
                s.full_name or "(default)",
                str(len(catalog.tables(s))),
                str(len(catalog.routines(s))),
                s.remarks or "",
            )

        console.print(t)

    def tables_table(self, catalog: MutableCatalog, title: str = "Tables") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("Table", style="ok")
        t.add_column("Type", style="meta")
        t.add_column("Columns", justify="right")
        t.add_column("Rows", justify="right")
        t.add_column("Remarks", style="meta")

        for table in catalog.tables():
            t.add_row(
                table.full_name,
                table.table_type_name or table.kind.value,
                str(len(table.columns)),
                "" if table.row_count is None else str(table.row_count),
                table.remarks or "",
            )

        console.print(t)

    def columns_table(self, catalog: MutableCatalog, title: str = "Columns") -> None:
        t = Table(title=title, show_lines=False)
        t.add_column("Table", style="meta")
        t.add_column("#", justify="right", style="meta")
        t.add_column("Column", style="ok")
        t.add_column("Type")
        t.add_column("Null")
        t.add_column("Key")

        for table in catalog.tables():
            primary_key = set(table.primary_key)
            for c in catalog.columns(table):
                t.add_row(
                    table.full_name,
                    str(c.ordinal_position),
                    c.name,
                    c.data_type or "",
                    "yes" if c.nullable else "no",
                    "PK" if c.handle in primary_key else "",
                )

        console.print(t)

    def foreign_keys_table(self, catalog: MutableCatalog, title: str = "Foreign keys") -> None:
        fks = catalog.foreign_keys()
        if not fks:
            return
        t = Table(title=title, show_lines=False)
        t.add_column("Name", style="ok")
        t.add_column("Child")
        t.add_column("Parent")
        t.add_column("Columns", style="meta")

        for fk in fks:
            pairs = ", ".join(
                f"{catalog.column(r.child_column).name} → {catalog.column(r.parent_column).name}"
                for r in fk.column_references
            )
            t.add_row(
                fk.name,
                catalog.table(fk.child_table).full_name,
                catalog.table(fk.parent_table).full_name,
                pairs,
            )

        console.print(t)

    def routines_table(self, catalog: MutableCatalog, title: str = "Routines") -> None:
        routines = catalog.routines()
        if not routines:
            return
        t = Table(title=title, show_lines=False)
        t.add_column("Routine", style="ok")
        t.add_column("Kind", style="meta")
        t.add_column("Parameters")
        t.add_column("Returns", style="meta")

        for r in routines:
            params = ", ".join(
                f"{c.name} {c.data_type or ''}".strip() for c in catalog.routine_columns(r)
            )
            t.add_row(r.full_name, r.kind.value, params, r.return_type or "")

        console.print(t)

    def catalog(self, catalog: MutableCatalog) -> None:
        """Render every section of a finished catalog."""
        self.schemas_table(catalog)
        self.tables_table(catalog)
        self.columns_table(catalog)
        self.foreign_keys_table(catalog)
        self.routines_table(catalog)


out = Out()
