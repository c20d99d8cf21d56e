from types import SimpleNamespace

import pytest
from databricks.sdk.errors import DatabricksError
from databricks.sdk.service.sql import StatementState

from dbcrawl.core.adapters.unitycatalog import UnityCatalogMetadataSource
from dbcrawl.core.crawler import crawl
from dbcrawl.core.errors import SourceConnectivityError, UnsupportedCapabilityError
from dbcrawl.core.inclusion import IncludeAll
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.strategies import Category


def _column(name, position, type_text="bigint", nullable=True):
    return SimpleNamespace(name=name, position=position, type_text=type_text, nullable=nullable)


_CUSTOMERS = SimpleNamespace(
    name="customers",
    table_type="MANAGED",
    comment="All customers",
    columns=[_column("id", 0, nullable=False), _column("name", 1, "string")],
    table_constraints=[
        SimpleNamespace(primary_key_constraint=SimpleNamespace(child_columns=["id"]))
    ],
)
_ORDERS = SimpleNamespace(
    name="orders",
    table_type="MANAGED",
    columns=[_column("id", 0, nullable=False), _column("customer_id", 1)],
    table_constraints=[
        SimpleNamespace(
            foreign_key_constraint=SimpleNamespace(
                name="fk_orders_customers",
                child_columns=["customer_id"],
                parent_table="main.sales.customers",
                parent_columns=["id"],
            )
        )
    ],
)
_V_ORDERS = SimpleNamespace(
    name="v_orders",
    table_type="VIEW",
    view_definition="SELECT * FROM orders",
    columns=[_column("id", 0)],
)
_CALC_TAX = SimpleNamespace(
    name="calc_tax",
    specific_name="calc_tax",
    full_data_type="DOUBLE",
    routine_definition="amount * 0.2",
    input_params=SimpleNamespace(parameters=[_column("amount", 0, "double")]),
)


class _Tables:
    def __init__(self, infos, fail=False):
        self.infos = infos
        self.fail = fail
        self.calls = 0

    def list(self, catalog_name, schema_name):
        self.calls += 1
        if self.fail:
            raise DatabricksError("PERMISSION_DENIED: no USE SCHEMA")
        return list(self.infos)


def _client(*, fail=False, statement_execution=None):
    return SimpleNamespace(
        catalogs=SimpleNamespace(list=lambda: [SimpleNamespace(name="main")]),
        schemas=SimpleNamespace(
            list=lambda catalog_name: [
                SimpleNamespace(name="sales", catalog_name=catalog_name, comment="Sales")
            ]
        ),
        tables=_Tables([_CUSTOMERS, _ORDERS, _V_ORDERS], fail=fail),
        functions=SimpleNamespace(list=lambda catalog_name, schema_name: [_CALC_TAX]),
        statement_execution=statement_execution,
    )


def test_list_schemas_and_tables():
    source = UnityCatalogMetadataSource(_client(), "main")

    (schema,) = source.list_schemas()
    tables = source.list_tables("main", "sales")

    assert schema.full_name == "main.sales"
    assert schema.remarks == "Sales"
    assert [(t.table_name, t.table_type) for t in tables] == [
        ("customers", "TABLE"),
        ("orders", "TABLE"),
        ("v_orders", "VIEW"),
    ]
    assert tables[2].definition == "SELECT * FROM orders"


def test_table_name_pattern_and_types_are_applied_locally():
    source = UnityCatalogMetadataSource(_client(), "main")

    assert [t.table_name for t in source.list_tables(None, None, "%ORDERS")] == ["orders", "v_orders"]
    assert [t.table_name for t in source.list_tables(None, None, None, ("VIEW",))] == ["v_orders"]


def test_table_listings_are_cached_per_schema():
    client = _client()
    source = UnityCatalogMetadataSource(client, "main")

    source.list_tables("main", "sales")
    source.list_columns("main", "sales")
    source.list_foreign_keys("main", "sales")

    assert client.tables.calls == 1


def test_columns_carry_primary_key_and_foreign_keys_are_split_per_column():
    source = UnityCatalogMetadataSource(_client(), "main")

    columns = {c.full_name: c for c in source.list_columns("main", "sales")}
    (fk,) = source.list_foreign_keys("main", "sales")

    assert columns["main.sales.customers.id"].primary_key_sequence == 1
    assert columns["main.sales.customers.id"].nullable is False
    assert columns["main.sales.orders.customer_id"].primary_key_sequence is None
    assert (fk.child_table, fk.child_column) == ("orders", "customer_id")
    assert (fk.parent_schema, fk.parent_table, fk.parent_column) == ("sales", "customers", "id")


def test_functions_become_routines_with_parameters():
    source = UnityCatalogMetadataSource(_client(), "main")

    (routine,) = source.list_routines("main", "sales")
    (param,) = source.list_routine_columns("main", "sales")

    assert routine.routine_name == "calc_tax"
    assert routine.return_type == "DOUBLE"
    assert (param.column_name, param.column_type, param.data_type) == ("amount", "IN", "double")


def test_api_errors_become_connectivity_errors():
    source = UnityCatalogMetadataSource(_client(fail=True), "main")

    with pytest.raises(SourceConnectivityError, match="PERMISSION_DENIED"):
        source.list_tables("main", "sales")


def test_indexes_are_unsupported():
    source = UnityCatalogMetadataSource(_client(), "main")

    with pytest.raises(UnsupportedCapabilityError):
        source.list_indexes("main", "sales")


def test_execute_query_needs_a_warehouse():
    source = UnityCatalogMetadataSource(_client(), "main")

    with pytest.raises(UnsupportedCapabilityError, match="warehouse"):
        source.execute_query("SELECT 1", {})
    assert source.count_rows(SimpleNamespace(catalog_name="main", schema_name="s", name="t")) is None


class _StatementExecution:
    def __init__(self, state=StatementState.SUCCEEDED):
        self.state = state
        self.kwargs = {}

    def execute_statement(self, **kwargs):
        self.kwargs = kwargs
        return SimpleNamespace(
            statement_id="st-1",
            status=SimpleNamespace(state=self.state, error=SimpleNamespace(message="syntax error")),
            manifest=SimpleNamespace(schema=SimpleNamespace(columns=[SimpleNamespace(name="n")])),
            result=SimpleNamespace(data_array=[["1"]], next_chunk_index=1),
        )

    def get_statement_result_chunk_n(self, statement_id, chunk_index):
        return SimpleNamespace(data_array=[["2"]], next_chunk_index=None)


def test_execute_query_fetches_all_chunks_and_binds_parameters():
    statements = _StatementExecution()
    source = UnityCatalogMetadataSource(
        _client(statement_execution=statements), "main", warehouse_id="wh-1"
    )

    rows = source.execute_query("SELECT n FROM t WHERE c = :catalog", {"catalog": "main"})

    assert rows == [{"n": "1"}, {"n": "2"}]
    assert statements.kwargs["warehouse_id"] == "wh-1"
    (param,) = statements.kwargs["parameters"]
    assert (param.name, param.value) == ("catalog", "main")


def test_failed_statement_raises_connectivity_error():
    source = UnityCatalogMetadataSource(
        _client(statement_execution=_StatementExecution(StatementState.FAILED)),
        "main",
        warehouse_id="wh-1",
    )

    with pytest.raises(SourceConnectivityError, match="syntax error"):
        source.execute_query("SELEC 1", {})


def test_crawl_unity_catalog():
    options = CrawlOptions(routine_rule=IncludeAll())

    result = crawl(UnityCatalogMetadataSource(_client(), "main"), options, catalog_name="main")

    catalog = result.catalog
    orders = catalog.lookup_table("main", "sales", "orders")
    assert [t.name for t in catalog.parent_tables(orders)] == ["customers"]
    assert [r.full_name for r in catalog.routines()] == ["main.sales.calc_tax"]
    assert result.summary.describe(Category.INDEXES) == "0 retrieved (unsupported)"
    assert result.summary.describe(Category.ROUTINE_COLUMNS) == "1 retrieved"
