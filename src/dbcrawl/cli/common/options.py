"""Common CLI options for the CLI."""

import typer

ProfileOpt = typer.Option(
    None,
    "--profile",
    "-p",
    help="Databricks CLI profile (from ~/.databrickscfg)",
)

CatalogOpt = typer.Option(
    None,
    "--catalog",
    help="Unity Catalog catalog to crawl (default: all visible catalogs)",
)

WarehouseOpt = typer.Option(
    None,
    "--warehouse-id",
    help="SQL warehouse for data dictionary queries and row counts",
)

SchemasOpt = typer.Option(None, "--schemas", help="Regex on schema full names to include")
ExcludeSchemasOpt = typer.Option(None, "--exclude-schemas", help="Regex on schema full names to exclude")
TablesOpt = typer.Option(None, "--tables", help="Regex on table full names to include")
ExcludeTablesOpt = typer.Option(None, "--exclude-tables", help="Regex on table full names to exclude")
ColumnsOpt = typer.Option(None, "--columns", help="Regex on column full names to include")
ExcludeColumnsOpt = typer.Option(None, "--exclude-columns", help="Regex on column full names to exclude")
RoutinesOpt = typer.Option(
    None, "--routines", help="Regex on routine full names to include (routines are off by default)"
)
ExcludeRoutinesOpt = typer.Option(None, "--exclude-routines", help="Regex on routine full names to exclude")
RoutineColumnsOpt = typer.Option(None, "--routine-columns", help="Regex on routine parameter full names")
SequencesOpt = typer.Option(None, "--sequences", help="Regex on sequence full names (off by default)")
SynonymsOpt = typer.Option(None, "--synonyms", help="Regex on synonym full names (off by default)")

TableTypesOpt = typer.Option(
    None,
    "--table-types",
    help="Comma separated table types, e.g. TABLE,VIEW",
)

GrepColumnsOpt = typer.Option(None, "--grep-columns", help="Keep tables with a column matching this regex")
GrepRoutineColumnsOpt = typer.Option(
    None, "--grep-routine-columns", help="Keep routines with a parameter matching this regex"
)
GrepDefinitionOpt = typer.Option(
    None, "--grep-def", help="Keep tables/routines whose remarks or definition match this regex"
)
InvertMatchOpt = typer.Option(False, "--invert-match", help="Invert grep matches")
OnlyMatchingOpt = typer.Option(False, "--only-matching", help="Show only the matching columns")

NoEmptyTablesOpt = typer.Option(False, "--no-empty-tables", help="Hide tables without rows")
RowCountsOpt = typer.Option(False, "--row-counts", help="Load row counts")
ChildDepthOpt = typer.Option(
    0, "--child-depth", help="Foreign key hops to follow to referenced tables"
)
ParentDepthOpt = typer.Option(
    0, "--parent-depth", help="Foreign key hops to follow to referencing tables"
)
InfoLevelOpt = typer.Option(
    "standard", "--info-level", help="minimum | standard | maximum"
)

StrategyOpt = typer.Option(
    [],
    "--strategy",
    help="Retrieval strategy per category (category=strategy). This is reusable.",
    show_default=False,
)

QueriesOpt = typer.Option(
    None,
    "--queries",
    help="YAML file with named data dictionary queries",
)

PickOpt = typer.Option(False, "--pick", help="Pick schemas interactively")
JsonOpt = typer.Option(False, "--json", help="Print the catalog as JSON")
VerboseOpt = typer.Option(False, "--verbose", "-v", help="Debug logging")
