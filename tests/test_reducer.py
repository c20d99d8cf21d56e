import pytest

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.errors import SourceConnectivityError
from dbcrawl.core.inclusion import IncludeAll, RegularExpressionRule
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.reducer import Reducer, drop_dangling_foreign_keys, expand_tables
from dbcrawl.core.retrievers import CatalogBuilder
from stubs import CATALOG, chain_source

# B->A, C->B, D->C, E->D as child -> parent edges
_PARENTS = {"A": [], "B": ["A"], "C": ["B"], "D": ["C"], "E": ["D"]}
_CHILDREN = {"A": ["B"], "B": ["C"], "C": ["D"], "D": ["E"], "E": []}


def _expand(base, child_depth, parent_depth, blocked=()):
    return expand_tables(
        base,
        _PARENTS.__getitem__,
        _CHILDREN.__getitem__,
        child_depth=child_depth,
        parent_depth=parent_depth,
        blocked=lambda t: t in blocked,
    )


@pytest.mark.parametrize(
    "child_depth, parent_depth, expected",
    [
        (0, 0, {"C"}),
        (1, 0, {"B", "C"}),
        (2, 0, {"A", "B", "C"}),
        (0, 1, {"C", "D"}),
        (1, 2, {"B", "C", "D", "E"}),
        (10, 10, {"A", "B", "C", "D", "E"}),
    ],
)
def test_expand_tables_along_a_chain(child_depth, parent_depth, expected):
    assert _expand({"C"}, child_depth, parent_depth) == expected


def test_expand_tables_does_not_walk_through_blocked_tables():
    assert _expand({"C"}, 2, 2, blocked={"B", "D"}) == {"C"}
    assert _expand({"C"}, 2, 0, blocked={"A"}) == {"B", "C"}


def test_self_reference_counts_as_one_hop():
    selection = expand_tables(
        {"T"},
        lambda t: {"T": ["T", "P"], "P": []}[t],
        lambda t: [],
        child_depth=1,
        parent_depth=0,
    )

    assert selection == {"T", "P"}


def _reduce(options, **source_kwargs):
    source = chain_source(**source_kwargs)
    catalog = MutableCatalog(CATALOG)
    CatalogBuilder(source, catalog, options).build()
    report = Reducer(catalog, options, row_counter=source).reduce()
    return catalog, report, source


def _names(catalog):
    return sorted(t.name for t in catalog.tables())


def test_reducer_expands_selected_table_and_drops_dangling_keys():
    options = CrawlOptions(
        table_rule=RegularExpressionRule(include=r".*\.C"),
        child_table_filter_depth=1,
        parent_table_filter_depth=2,
    )

    catalog, report, _ = _reduce(options)

    assert _names(catalog) == ["B", "C", "D", "E"]
    assert report.removed["tables"] == 1
    for fk in catalog.foreign_keys():
        assert fk.child_table in catalog
        assert fk.parent_table in catalog
    assert catalog.lookup_table(CATALOG, "s", "B").imported_keys == []


def test_explicit_exclusion_beats_reachability():
    options = CrawlOptions(
        table_rule=RegularExpressionRule(include=r".*\.C", exclude=r".*\.B"),
        child_table_filter_depth=3,
    )

    catalog, _, _ = _reduce(options)

    assert _names(catalog) == ["C"]
    assert catalog.foreign_keys() == []


def test_without_depth_only_selected_tables_remain():
    options = CrawlOptions(table_rule=RegularExpressionRule(include=r".*\.[AB]"))

    catalog, _, _ = _reduce(options)

    assert _names(catalog) == ["A", "B"]
    assert len(catalog.foreign_keys()) == 1


def test_schema_rule_is_applied_again_after_retrieval():
    catalog, _, _ = _reduce(CrawlOptions())
    options = CrawlOptions(schema_rule=RegularExpressionRule(include="nothing"))

    report = Reducer(catalog, options).reduce()

    assert catalog.schemas() == []
    assert report.removed["schemas"] == 1


def test_no_empty_tables_counts_rows_and_drops_empty_tables():
    options = CrawlOptions(no_empty_tables=True)

    catalog, report, source = _reduce(
        options, row_counts={"db.s.A": 3, "db.s.B": 0, "db.s.C": 1, "db.s.D": 0}
    )

    # unknown counts (E) are kept
    assert _names(catalog) == ["A", "C", "E"]
    assert catalog.lookup_table(CATALOG, "s", "A").row_count == 3
    assert len(source.calls_for("count")) == 5
    assert report.removed["tables"] == 2


def test_row_counts_are_not_loaded_unless_requested():
    _, _, source = _reduce(CrawlOptions())

    assert source.calls_for("count") == []


def test_row_count_failure_is_a_connectivity_error():
    class _BrokenCounter:
        def count_rows(self, table):
            raise OSError("socket closed")

    catalog, _, _ = _reduce(CrawlOptions())

    with pytest.raises(SourceConnectivityError, match="row_counts"):
        Reducer(catalog, CrawlOptions(load_row_counts=True), row_counter=_BrokenCounter()).reduce()


def test_routines_failing_the_rule_are_removed():
    catalog = MutableCatalog()
    schema = catalog.add_schema("db", "s")
    catalog.add_routine(schema, "keep_me")
    catalog.add_routine(schema, "drop_me")

    Reducer(catalog, CrawlOptions(routine_rule=RegularExpressionRule(include=r".*keep.*"))).reduce()
    assert [r.name for r in catalog.routines()] == ["keep_me"]

    Reducer(catalog, CrawlOptions(routine_rule=IncludeAll())).reduce()
    assert [r.name for r in catalog.routines()] == ["keep_me"]


def test_drop_dangling_foreign_keys_is_a_no_op_on_consistent_catalog():
    catalog, _, _ = _reduce(CrawlOptions())

    assert drop_dangling_foreign_keys(catalog) == 0
    assert len(catalog.foreign_keys()) == 4
