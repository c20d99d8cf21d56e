import pytest

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.metadata import TableRow
from dbcrawl.core.queries import NamedQueryRegistry
from dbcrawl.core.strategies import (
    Category,
    RetrievalStrategy,
    StrategySelection,
    fetch_rows,
    parse_strategy_assignments,
)
from stubs import StubSource, table_rows


def test_parse_accepts_dashes_and_case():
    assert RetrievalStrategy.parse("Metadata-All") is RetrievalStrategy.METADATA_ALL
    assert Category.parse("TABLE-COLUMNS") is Category.TABLE_COLUMNS
    with pytest.raises(ConfigurationError, match="Unknown retrieval strategy"):
        RetrievalStrategy.parse("fastest")


def test_selection_from_env():
    selection = StrategySelection.from_env(
        {
            "DBCRAWL_STRATEGY_DEFAULT": "metadata_all",
            "DBCRAWL_STRATEGY_TABLES": "data_dictionary_all",
            "UNRELATED": "x",
        }
    )

    assert selection.for_category(Category.TABLES) is RetrievalStrategy.DATA_DICTIONARY_ALL
    assert selection.for_category(Category.INDEXES) is RetrievalStrategy.METADATA_ALL


def test_assignments_override_env_selection():
    selection = StrategySelection.from_env({"DBCRAWL_STRATEGY_TABLES": "metadata_all"})

    selection = selection.with_overrides(parse_strategy_assignments(["tables=metadata"]))

    assert selection.for_category(Category.TABLES) is RetrievalStrategy.METADATA


def test_assignment_without_equals_is_rejected():
    with pytest.raises(ConfigurationError, match="category=strategy"):
        parse_strategy_assignments(["tables"])


def test_validate_requires_query_for_data_dictionary():
    selection = StrategySelection({Category.TABLES: RetrievalStrategy.DATA_DICTIONARY_ALL})
    registry = NamedQueryRegistry()

    with pytest.raises(ConfigurationError) as excinfo:
        selection.validate(registry, [Category.SCHEMAS, Category.TABLES])
    assert excinfo.value.category == "tables"

    registry.register(Category.TABLES, "SELECT 1")
    selection.validate(registry, [Category.TABLES])
    selection.validate(None, [Category.SCHEMAS])


def test_fetch_rows_per_schema_calls_lister_once_per_schema():
    source = StubSource(tables=table_rows("a", "t1") + table_rows("b", "t2"))

    rows = fetch_rows(
        Category.TABLES,
        RetrievalStrategy.METADATA,
        source,
        lambda c, s: source.list_tables(c, s),
        schemas=[("db", "a"), ("db", "b")],
    )

    assert [r.table_name for r in rows] == ["t1", "t2"]
    assert source.calls_for("tables") == [("tables", "db", "a"), ("tables", "db", "b")]


def test_fetch_rows_metadata_all_uses_wildcards():
    source = StubSource(tables=table_rows("a", "t1") + table_rows("b", "t2"))

    rows = fetch_rows(
        Category.TABLES,
        RetrievalStrategy.METADATA_ALL,
        source,
        lambda c, s: source.list_tables(c, s),
        schemas=[("db", "a"), ("db", "b")],
    )

    assert len(rows) == 2
    assert source.calls_for("tables") == [("tables", None, None)]


def test_fetch_rows_data_dictionary_maps_result_rows():
    sql = "SELECT * FROM tables WHERE catalog_name = :catalog"
    source = StubSource(
        query_results={sql: [{"CATALOG_NAME": "db", "SCHEMA_NAME": "a", "TABLE_NAME": "t1"}]}
    )
    registry = NamedQueryRegistry()
    registry.register(Category.TABLES, sql)

    rows = fetch_rows(
        Category.TABLES,
        RetrievalStrategy.DATA_DICTIONARY_ALL,
        source,
        lambda c, s: [],
        registry=registry,
        context={"catalog": "db"},
    )

    assert rows == [TableRow("db", "a", table_name="t1")]


def test_fetch_rows_data_dictionary_without_registry():
    with pytest.raises(ConfigurationError, match="registry"):
        fetch_rows(
            Category.TABLES,
            RetrievalStrategy.DATA_DICTIONARY_ALL,
            StubSource(),
            lambda c, s: [],
        )
