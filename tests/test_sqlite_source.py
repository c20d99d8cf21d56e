import sqlite3

import pytest

from dbcrawl.core.adapters.sqlite import SqliteMetadataSource
from dbcrawl.core.crawler import crawl
from dbcrawl.core.errors import SourceConnectivityError, UnsupportedCapabilityError
from dbcrawl.core.inclusion import IncludeAll, RegularExpressionRule
from dbcrawl.core.options import CrawlOptions, InfoLevel
from dbcrawl.core.queries import NamedQueryRegistry
from dbcrawl.core.strategies import Category, RetrievalStrategy, StrategySelection

_DDL = """
CREATE TABLE customers (id INTEGER PRIMARY KEY, name TEXT NOT NULL);
CREATE TABLE orders (
    id INTEGER PRIMARY KEY,
    customer_id INTEGER REFERENCES customers(id) ON DELETE CASCADE,
    amount DECIMAL(10,2)
);
CREATE TABLE notes (id INTEGER PRIMARY KEY, customer_id INTEGER REFERENCES customers);
CREATE INDEX idx_orders_customer ON orders (customer_id);
CREATE VIEW v_orders AS SELECT id, amount FROM orders;
CREATE TRIGGER trg_orders_ins AFTER INSERT ON orders BEGIN UPDATE customers SET name = name; END;
INSERT INTO customers (id, name) VALUES (1, 'Ada'), (2, 'Grace');
CREATE TABLE other.audit (id INTEGER, note VARCHAR(200));
"""


@pytest.fixture
def connection():
    conn = sqlite3.connect(":memory:")
    conn.execute("ATTACH DATABASE ':memory:' AS other")
    conn.executescript(_DDL)
    yield conn
    conn.close()


@pytest.fixture
def source(connection):
    return SqliteMetadataSource(connection)


def test_attached_databases_are_schemas(source):
    assert [s.schema_name for s in source.list_schemas()] == ["main", "other"]


def test_list_tables_reports_types_and_view_text(source):
    rows = {r.table_name: r for r in source.list_tables(None, "main")}

    assert sorted(rows) == ["customers", "notes", "orders", "v_orders"]
    assert rows["orders"].table_type == "TABLE"
    assert rows["v_orders"].table_type == "VIEW"
    assert "SELECT id, amount FROM orders" in rows["v_orders"].definition
    assert [r.table_name for r in source.list_tables(None, None, "v%", ("VIEW",))] == ["v_orders"]


def test_list_columns_parses_sizes_and_keys(source):
    rows = {r.column_name: r for r in source.list_columns(None, "main", "orders")}

    assert rows["amount"].column_size == 10
    assert rows["amount"].decimal_digits == 2
    assert rows["id"].primary_key_sequence == 1
    assert rows["customer_id"].primary_key_sequence is None
    assert [r.ordinal_position for r in source.list_columns(None, "main", "orders")] == [0, 1, 2]

    customers = {r.column_name: r for r in source.list_columns(None, "main", "customers")}
    assert customers["name"].nullable is False


def test_list_foreign_keys_names_keys_and_resolves_implicit_parent_columns(source):
    rows = {r.child_table: r for r in source.list_foreign_keys(None, "main", None)}

    assert rows["orders"].fk_name == "fk_orders_0"
    assert rows["orders"].parent_table == "customers"
    assert rows["orders"].parent_column == "id"
    assert rows["orders"].delete_rule == "CASCADE"
    assert rows["notes"].parent_column == "id"


def test_list_indexes_and_triggers(source):
    (index,) = source.list_indexes(None, "main", "orders")
    (trigger,) = source.list_triggers(None, "main", None)

    assert index.index_name == "idx_orders_customer"
    assert index.column_name == "customer_id"
    assert index.unique is False
    assert trigger.trigger_name == "trg_orders_ins"
    assert trigger.table_name == "orders"
    assert trigger.action_timing == "AFTER"
    assert trigger.event_manipulation == "INSERT"
    assert trigger.action_statement == "UPDATE customers SET name = name;"


def test_routines_are_unsupported(source):
    with pytest.raises(UnsupportedCapabilityError):
        source.list_routines(None, "main")


def test_sqlite_errors_become_connectivity_errors(source, connection):
    connection.close()

    with pytest.raises(SourceConnectivityError, match="schemas"):
        source.list_schemas()


def test_crawl_is_strategy_independent(connection):
    catalogs = []
    for strategy in (RetrievalStrategy.METADATA, RetrievalStrategy.METADATA_ALL):
        options = CrawlOptions(
            info_level=InfoLevel.MAXIMUM, strategies=StrategySelection(default=strategy)
        )
        catalogs.append(crawl(SqliteMetadataSource(connection), options).catalog.to_dict())

    assert catalogs[0] == catalogs[1]
    main = {t["name"]: t for t in catalogs[0]["schemas"][0]["tables"]}
    assert main["orders"]["foreign_keys"][0]["columns"] == [["customer_id", "id"]]
    assert main["orders"]["indexes"][0]["columns"] == ["customer_id"]
    assert main["orders"]["triggers"][0]["event_manipulation"] == "INSERT"


def test_crawl_reports_unsupported_routines(connection):
    options = CrawlOptions(routine_rule=IncludeAll())

    result = crawl(SqliteMetadataSource(connection), options)

    assert result.summary.describe(Category.ROUTINES) == "0 retrieved (unsupported)"
    assert result.summary.describe(Category.ROUTINE_COLUMNS) == "0 retrieved"


def test_crawl_with_depth_row_counts_and_data_dictionary_tables(connection):
    sql = (
        "SELECT 'main' AS schema_name, name AS table_name, upper(type) AS table_type "
        "FROM main.sqlite_master WHERE type IN ('table', 'view') AND name LIKE :table_name_pattern"
    )
    registry = NamedQueryRegistry()
    registry.register(Category.TABLES, sql)
    options = CrawlOptions(
        table_rule=RegularExpressionRule(include=r"main\.orders"),
        child_table_filter_depth=1,
        load_row_counts=True,
        strategies=StrategySelection({Category.TABLES: RetrievalStrategy.DATA_DICTIONARY_ALL}),
    )

    result = crawl(SqliteMetadataSource(connection), options, registry=registry)

    tables = {t.name: t for t in result.catalog.tables()}
    assert sorted(tables) == ["customers", "orders"]
    assert tables["customers"].row_count == 2
    assert tables["orders"].row_count == 0
