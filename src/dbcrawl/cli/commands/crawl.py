from __future__ import annotations

from contextlib import closing
from pathlib import Path
from typing import Any

import typer

from dbcrawl.cli.common.context import (
    CrawlAppContext,
    build_databricks_context,
    build_sqlite_context,
)
from dbcrawl.cli.common.exits import exit_from_crawl_error
from dbcrawl.cli.common.logs import setup_logging
from dbcrawl.cli.common.options import (
    CatalogOpt,
    ChildDepthOpt,
    ColumnsOpt,
    ExcludeColumnsOpt,
    ExcludeRoutinesOpt,
    ExcludeSchemasOpt,
    ExcludeTablesOpt,
    GrepColumnsOpt,
    GrepDefinitionOpt,
    GrepRoutineColumnsOpt,
    InfoLevelOpt,
    InvertMatchOpt,
    JsonOpt,
    NoEmptyTablesOpt,
    OnlyMatchingOpt,
    ParentDepthOpt,
    PickOpt,
    ProfileOpt,
    QueriesOpt,
    RoutineColumnsOpt,
    RoutinesOpt,
    RowCountsOpt,
    SchemasOpt,
    SequencesOpt,
    StrategyOpt,
    SynonymsOpt,
    TablesOpt,
    TableTypesOpt,
    VerboseOpt,
    WarehouseOpt,
)
from dbcrawl.cli.common.options_builder import build_crawl_options
from dbcrawl.cli.common.output import out
from dbcrawl.cli.tui import select_schemas
from dbcrawl.core.crawler import CrawlResult, Crawler
from dbcrawl.core.errors import CrawlError
from dbcrawl.core.strategies import Category

crawl_app = typer.Typer(
    help="Crawl database metadata into a catalog.",
    no_args_is_help=True,
)


def _pick_schemas(appctx: CrawlAppContext) -> list[str]:
    """Ask the user which schemas to crawl; exits when nothing is picked."""
    try:
        with out.status("Loading schemas..."):
            rows = list(appctx.source.list_schemas())
    except CrawlError as exc:
        exit_from_crawl_error(exc)

    if not rows:
        out.warn("No schemas found.")
        raise typer.Exit(0)

    picked = select_schemas(rows)
    if not picked:
        out.warn("No schemas selected.")
        raise typer.Exit(0)
    return picked


def _summary_dict(result: CrawlResult) -> dict[str, Any]:
    summary = result.summary
    return {
        "crawl_id": summary.crawl_id,
        "categories": {c.value: summary.describe(c) for c in Category},
        "counts": summary.counts,
        "removed": dict(summary.reduction.removed) if summary.reduction else {},
    }


def _run(
    appctx: CrawlAppContext,
    *,
    pick: bool,
    json_: bool,
    criteria: dict[str, Any],
) -> None:
    """Build options, crawl and render the result."""
    picked = _pick_schemas(appctx) if pick else None

    try:
        options = build_crawl_options(**criteria, picked_schemas=picked)
    except ValueError as exc:
        out.error(str(exc))
        raise typer.Exit(2) from exc

    crawler = Crawler(
        appctx.source,
        options,
        registry=appctx.registry,
        catalog_name=appctx.catalog_name,
    )
    try:
        if json_:
            result = crawler.crawl()
        else:
            with out.status("Crawling metadata..."):
                result = crawler.crawl()
    except CrawlError as exc:
        exit_from_crawl_error(exc)

    if json_:
        out.json({"summary": _summary_dict(result), "catalog": result.catalog.to_dict()})
        return

    out.header(f"Catalog {result.catalog.name or ''}".rstrip())
    out.kv({"crawl": result.summary.crawl_id, **result.summary.counts})
    out.summary_table(result.summary)
    out.catalog(result.catalog)


@crawl_app.command("sqlite")
def crawl_sqlite(
    path: Path = typer.Argument(..., help="SQLite database file"),
    schemas: str | None = SchemasOpt,
    exclude_schemas: str | None = ExcludeSchemasOpt,
    tables: str | None = TablesOpt,
    exclude_tables: str | None = ExcludeTablesOpt,
    columns: str | None = ColumnsOpt,
    exclude_columns: str | None = ExcludeColumnsOpt,
    table_types: str | None = TableTypesOpt,
    grep_columns: str | None = GrepColumnsOpt,
    grep_definition: str | None = GrepDefinitionOpt,
    invert_match: bool = InvertMatchOpt,
    only_matching: bool = OnlyMatchingOpt,
    no_empty_tables: bool = NoEmptyTablesOpt,
    row_counts: bool = RowCountsOpt,
    child_depth: int = ChildDepthOpt,
    parent_depth: int = ParentDepthOpt,
    info_level: str = InfoLevelOpt,
    strategy: list[str] = StrategyOpt,
    queries: Path | None = QueriesOpt,
    pick: bool = PickOpt,
    json_: bool = JsonOpt,
    verbose: bool = VerboseOpt,
):
    """Crawl a SQLite database file (attached databases become schemas)."""
    setup_logging(verbose)
    appctx = build_sqlite_context(path, queries=queries)
    with closing(appctx):
        _run(
            appctx,
            pick=pick,
            json_=json_,
            criteria=dict(
                schemas=schemas,
                exclude_schemas=exclude_schemas,
                tables=tables,
                exclude_tables=exclude_tables,
                columns=columns,
                exclude_columns=exclude_columns,
                table_types=table_types,
                grep_columns=grep_columns,
                grep_definition=grep_definition,
                invert_match=invert_match,
                only_matching=only_matching,
                no_empty_tables=no_empty_tables,
                row_counts=row_counts,
                child_depth=child_depth,
                parent_depth=parent_depth,
                info_level=info_level,
                strategies=strategy,
            ),
        )


@crawl_app.command("databricks")
def crawl_databricks(
    profile: str | None = ProfileOpt,
    catalog: str | None = CatalogOpt,
    warehouse_id: str | None = WarehouseOpt,
    schemas: str | None = SchemasOpt,
    exclude_schemas: str | None = ExcludeSchemasOpt,
    tables: str | None = TablesOpt,
    exclude_tables: str | None = ExcludeTablesOpt,
    columns: str | None = ColumnsOpt,
    exclude_columns: str | None = ExcludeColumnsOpt,
    routines: str | None = RoutinesOpt,
    exclude_routines: str | None = ExcludeRoutinesOpt,
    routine_columns: str | None = RoutineColumnsOpt,
    sequences: str | None = SequencesOpt,
    synonyms: str | None = SynonymsOpt,
    table_types: str | None = TableTypesOpt,
    grep_columns: str | None = GrepColumnsOpt,
    grep_routine_columns: str | None = GrepRoutineColumnsOpt,
    grep_definition: str | None = GrepDefinitionOpt,
    invert_match: bool = InvertMatchOpt,
    only_matching: bool = OnlyMatchingOpt,
    no_empty_tables: bool = NoEmptyTablesOpt,
    row_counts: bool = RowCountsOpt,
    child_depth: int = ChildDepthOpt,
    parent_depth: int = ParentDepthOpt,
    info_level: str = InfoLevelOpt,
    strategy: list[str] = StrategyOpt,
    queries: Path | None = QueriesOpt,
    pick: bool = PickOpt,
    json_: bool = JsonOpt,
    verbose: bool = VerboseOpt,
):
    """Crawl Unity Catalog metadata through a Databricks workspace."""
    setup_logging(verbose)
    appctx = build_databricks_context(
        profile, catalog=catalog, warehouse_id=warehouse_id, queries=queries
    )
    _run(
        appctx,
        pick=pick,
        json_=json_,
        criteria=dict(
            schemas=schemas,
            exclude_schemas=exclude_schemas,
            tables=tables,
            exclude_tables=exclude_tables,
            columns=columns,
            exclude_columns=exclude_columns,
            routines=routines,
            exclude_routines=exclude_routines,
            routine_columns=routine_columns,
            sequences=sequences,
            synonyms=synonyms,
            table_types=table_types,
            grep_columns=grep_columns,
            grep_routine_columns=grep_routine_columns,
            grep_definition=grep_definition,
            invert_match=invert_match,
            only_matching=only_matching,
            no_empty_tables=no_empty_tables,
            row_counts=row_counts,
            child_depth=child_depth,
            parent_depth=parent_depth,
            info_level=info_level,
            strategies=strategy,
        ),
    )
