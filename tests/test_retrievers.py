import pytest

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.errors import SourceConnectivityError
from dbcrawl.core.inclusion import IncludeAll, RegularExpressionRule, rule_from_patterns
from dbcrawl.core.metadata import ColumnRow, RoutineColumnRow, RoutineRow, SchemaRow
from dbcrawl.core.options import CrawlOptions, InfoLevel
from dbcrawl.core.retrievers import CatalogBuilder
from dbcrawl.core.strategies import Category
from stubs import CATALOG, StubSource, chain_source, column_rows, table_rows


def _build(source, options=None):
    catalog = MutableCatalog(CATALOG)
    results = CatalogBuilder(source, catalog, options or CrawlOptions()).build()
    return catalog, results


def test_build_populates_tables_columns_and_foreign_keys():
    catalog, results = _build(chain_source())

    assert [t.name for t in catalog.tables()] == ["A", "B", "C", "D", "E"]
    assert results[Category.FOREIGN_KEYS].created == 4
    c = catalog.lookup_table(CATALOG, "s", "C")
    assert [t.name for t in catalog.parent_tables(c)] == ["B"]
    assert [t.name for t in catalog.child_tables(c)] == ["D"]
    assert [catalog.column(h).name for h in c.primary_key] == ["id"]


def test_categories_outside_info_level_or_excluded_are_not_requested():
    source = chain_source()

    _, results = _build(source, CrawlOptions(info_level=InfoLevel.MINIMUM))

    assert results[Category.FOREIGN_KEYS].status == "skipped"
    assert results[Category.ROUTINES].status == "excluded"
    assert source.calls_for("foreign_keys") == []
    assert source.calls_for("routines") == []


def test_filtered_columns_leave_gaps_in_source_ordinals():
    rows = [
        ColumnRow(CATALOG, "s", table_name="t", column_name="c", ordinal_position=2),
        ColumnRow(CATALOG, "s", table_name="t", column_name="a", ordinal_position=0),
        ColumnRow(CATALOG, "s", table_name="t", column_name="b", ordinal_position=1),
    ]
    source = StubSource(schemas=[SchemaRow(CATALOG, "s")], tables=table_rows("s", "t"), columns=rows)

    catalog, _ = _build(source, CrawlOptions(column_rule=rule_from_patterns(exclude=r".*\.b")))

    table = catalog.lookup_table(CATALOG, "s", "t")
    assert [(c.name, c.ordinal_position) for c in catalog.columns(table)] == [("a", 0), ("c", 2)]


def test_filtered_routine_columns_leave_gaps_in_source_ordinals():
    source = StubSource(
        schemas=[SchemaRow(CATALOG, "s")],
        routines=[RoutineRow(CATALOG, "s", routine_name="calc")],
        routine_columns=[
            RoutineColumnRow(CATALOG, "s", routine_name="calc", column_name=n, ordinal_position=i)
            for i, n in enumerate(("a", "b", "c", "d"))
        ],
    )
    options = CrawlOptions(routine_rule=IncludeAll(), routine_column_rule=rule_from_patterns(exclude=r".*\.b"))

    catalog, _ = _build(source, options)

    calc = catalog.lookup_routine(catalog.lookup_schema(CATALOG, "s"), "calc")
    assert [c.ordinal_position for c in catalog.routine_columns(calc)] == [0, 2, 3]


def test_foreign_key_survives_filtered_column_without_its_column_pair():
    options = CrawlOptions(column_rule=rule_from_patterns(exclude=r".*\.b_id"))

    catalog, _ = _build(chain_source(), options)

    c = catalog.lookup_table(CATALOG, "s", "C")
    (fk,) = [catalog.foreign_key(h) for h in c.imported_keys]
    assert fk.name == "fk_C_B"
    assert fk.column_references == []


def test_foreign_key_to_unretrieved_table_is_dropped():
    options = CrawlOptions(table_rule=rule_from_patterns(exclude=r".*\.A"))

    catalog, _ = _build(chain_source(), options)

    b = catalog.lookup_table(CATALOG, "s", "B")
    assert b.imported_keys == []
    assert len(catalog.foreign_keys()) == 3


def test_depth_keeps_unselected_tables_for_the_reducer():
    options = CrawlOptions(
        table_rule=RegularExpressionRule(include=r".*\.C", exclude=r".*\.E"),
        child_table_filter_depth=1,
    )

    catalog, _ = _build(chain_source(), options)

    assert [t.name for t in catalog.tables()] == ["A", "B", "C", "D"]


def test_per_schema_strategy_only_visits_schemas_with_tables():
    source = StubSource(
        schemas=[SchemaRow(CATALOG, "a"), SchemaRow(CATALOG, "b")],
        tables=table_rows("a", "t"),
        columns=column_rows("a", "t", "id"),
    )

    _build(source)

    assert source.calls_for("tables") == [("tables", CATALOG, "a"), ("tables", CATALOG, "b")]
    assert source.calls_for("table_columns") == [("table_columns", CATALOG, "a")]


def test_unsupported_category_is_recorded_and_crawl_continues():
    source = chain_source(unsupported={"indexes"})

    catalog, results = _build(source)

    assert results[Category.INDEXES].status == "unsupported"
    assert results[Category.INDEXES].created == 0
    assert results[Category.FOREIGN_KEYS].status == "ok"
    assert len(catalog.tables()) == 5


def test_source_failure_is_fatal_and_names_the_category():
    source = chain_source(failing={"foreign_keys"})

    with pytest.raises(SourceConnectivityError) as excinfo:
        _build(source)

    assert excinfo.value.category == "foreign_keys"
    assert "connection reset" in str(excinfo.value)


def test_routine_columns_without_specific_name_skip_overloads():
    source = StubSource(
        schemas=[SchemaRow(CATALOG, "s")],
        routines=[
            RoutineRow(CATALOG, "s", routine_name="calc", specific_name="calc_1"),
            RoutineRow(CATALOG, "s", routine_name="calc", specific_name="calc_2"),
            RoutineRow(CATALOG, "s", routine_name="single"),
        ],
        routine_columns=[
            RoutineColumnRow(CATALOG, "s", routine_name="calc", column_name="x"),
            RoutineColumnRow(CATALOG, "s", routine_name="calc", specific_name="calc_2", column_name="y"),
            RoutineColumnRow(CATALOG, "s", routine_name="single", column_name="z", column_type="IN"),
        ],
    )

    catalog, results = _build(source, CrawlOptions(routine_rule=IncludeAll()))

    schema = catalog.lookup_schema(CATALOG, "s")
    calc_1 = catalog.lookup_routine(schema, "calc", "calc_1")
    calc_2 = catalog.lookup_routine(schema, "calc", "calc_2")
    single = catalog.lookup_routine(schema, "single")
    assert catalog.routine_columns(calc_1) == []
    assert [c.name for c in catalog.routine_columns(calc_2)] == ["y"]
    assert [c.kind.value for c in catalog.routine_columns(single)] == ["IN"]
    assert results[Category.ROUTINE_COLUMNS].created == 2
