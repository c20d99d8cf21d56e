import logging

import pytest

from dbcrawl.core.crawler import CrawlLoggerAdapter, Crawler, crawl
from dbcrawl.core.errors import ConfigurationError, SourceConnectivityError
from dbcrawl.core.inclusion import RegularExpressionRule, rule_from_patterns
from dbcrawl.core.options import CrawlOptions, InfoLevel
from dbcrawl.core.queries import NamedQueryRegistry
from dbcrawl.core.strategies import Category, RetrievalStrategy, StrategySelection
from stubs import CATALOG, chain_source


def test_exclude_all_routines_never_reach_the_source():
    source = chain_source()
    options = CrawlOptions(info_level=InfoLevel.MAXIMUM, routine_rule=rule_from_patterns(exclude=".*"))

    result = crawl(source, options, catalog_name=CATALOG)

    assert source.calls_for("routines") == []
    assert source.calls_for("routine_columns") == []
    assert result.summary.describe(Category.ROUTINES) == "0 retrieved (excluded)"


def test_strategies_produce_the_same_catalog():
    catalogs = []
    for strategy in (RetrievalStrategy.METADATA, RetrievalStrategy.METADATA_ALL):
        options = CrawlOptions(strategies=StrategySelection(default=strategy))
        catalogs.append(crawl(chain_source(), options, catalog_name=CATALOG).catalog.to_dict())

    assert catalogs[0] == catalogs[1]


def test_data_dictionary_strategy_matches_metadata_strategy():
    registry = NamedQueryRegistry()
    registry.register(Category.TABLES, "SELECT * FROM tables WHERE catalog_name = :catalog")
    source = chain_source(
        query_results={
            "SELECT * FROM tables WHERE catalog_name = :catalog": [
                {"catalog_name": CATALOG, "schema_name": "s", "table_name": n, "table_type": "TABLE"}
                for n in "ABCDE"
            ]
        }
    )
    options = CrawlOptions(
        strategies=StrategySelection({Category.TABLES: RetrievalStrategy.DATA_DICTIONARY_ALL})
    )

    result = crawl(source, options, registry=registry, catalog_name=CATALOG)

    assert source.calls_for("tables") == []
    assert ("query", "SELECT * FROM tables WHERE catalog_name = :catalog", None) in source.calls
    assert result.catalog.to_dict() == crawl(chain_source(), catalog_name=CATALOG).catalog.to_dict()


def test_missing_named_query_fails_before_any_source_call():
    source = chain_source()
    options = CrawlOptions(
        strategies=StrategySelection({Category.TABLES: RetrievalStrategy.DATA_DICTIONARY_ALL})
    )

    with pytest.raises(ConfigurationError, match="tables"):
        crawl(source, options)

    assert source.calls == []


def test_query_parameter_without_a_value_fails_before_any_source_call():
    registry = NamedQueryRegistry()
    registry.register(Category.TABLES, "SELECT * FROM tables WHERE owner = :owner")
    source = chain_source()
    options = CrawlOptions(
        strategies=StrategySelection({Category.TABLES: RetrievalStrategy.DATA_DICTIONARY_ALL})
    )

    with pytest.raises(ConfigurationError, match="owner"):
        crawl(source, options, registry=registry, catalog_name=CATALOG)

    assert source.calls == []


def test_unsupported_category_is_reported_in_summary():
    result = crawl(chain_source(unsupported={"indexes"}), catalog_name=CATALOG)

    assert result.summary.describe(Category.INDEXES) == "0 retrieved (unsupported)"
    assert result.summary.describe(Category.TABLES) == "5 retrieved"
    assert result.summary.describe(Category.TRIGGERS) == "0 retrieved (skipped)"
    assert result.summary.counts["tables"] == 5


def test_connectivity_failure_aborts_the_crawl():
    with pytest.raises(SourceConnectivityError, match="table_columns"):
        crawl(chain_source(failing={"table_columns"}))


def test_full_pipeline_reduces_then_greps():
    options = CrawlOptions(
        table_rule=RegularExpressionRule(include=r".*\.C"),
        child_table_filter_depth=1,
        parent_table_filter_depth=1,
        grep_column_rule=rule_from_patterns(r".*\.b_id"),
    )

    result = crawl(chain_source(), options, catalog_name=CATALOG)

    assert [t.name for t in result.catalog.tables()] == ["C"]
    assert result.catalog.foreign_keys() == []
    assert result.summary.reduction.removed["tables"] == 2
    assert result.summary.grep.tables_removed == 2


def test_source_is_used_as_row_counter():
    source = chain_source(row_counts={"db.s.A": 0})

    result = crawl(source, CrawlOptions(no_empty_tables=True), catalog_name=CATALOG)

    assert "A" not in [t.name for t in result.catalog.tables()]


def test_crawl_logger_adapter_prefixes_crawl_id():
    adapter = CrawlLoggerAdapter(logging.getLogger("dbcrawl.test"), {"crawl_id": "abc123"})

    msg, kwargs = adapter.process("Retrieving tables", {})

    assert msg == "[abc123] Retrieving tables"
    assert kwargs["extra"] == {"crawl_id": "abc123"}


def test_query_context_carries_catalog_and_patterns():
    crawler = Crawler(chain_source(), catalog_name=CATALOG, context={"owner": "me"})

    assert crawler.context == {
        "catalog": CATALOG,
        "schema_pattern": "%",
        "table_name_pattern": "%",
        "owner": "me",
    }
