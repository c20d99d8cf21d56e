from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.grep import GrepFilter
from dbcrawl.core.inclusion import rule_from_patterns
from dbcrawl.core.options import CrawlOptions


def _catalog():
    catalog = MutableCatalog("db")
    schema = catalog.add_schema("db", "hr")
    people = catalog.add_table(schema, "people", remarks="Employees")
    for name in ("id", "name", "SSN"):
        catalog.add_column(people, name)
    secrets = catalog.add_table(schema, "secrets")
    ssn = catalog.add_column(secrets, "SSN")
    catalog.add_foreign_key(
        "fk_secrets_people", secrets, people, [(1, ssn, catalog.lookup_column(people, "SSN"))]
    )
    catalog.add_table(schema, "v_people", definition="SELECT name FROM people")
    return catalog


def _tables(catalog):
    return sorted(t.name for t in catalog.tables())


def test_column_grep_keeps_tables_with_a_matching_column():
    catalog = _catalog()
    options = CrawlOptions(grep_column_rule=rule_from_patterns(r".*\.SSN"))

    report = GrepFilter(catalog, options).apply()

    assert _tables(catalog) == ["people", "secrets"]
    assert report.tables_removed == 1
    assert len(catalog.foreign_keys()) == 1


def test_invert_match_keeps_tables_with_a_non_matching_column():
    catalog = _catalog()
    options = CrawlOptions(
        grep_column_rule=rule_from_patterns(r".*\.SSN"), grep_invert_match=True
    )

    report = GrepFilter(catalog, options).apply()

    # secrets has only SSN, v_people has no columns at all
    assert _tables(catalog) == ["people"]
    assert catalog.foreign_keys() == []
    assert report.foreign_keys_removed == 1


def test_only_matching_removes_other_columns_and_keeps_ordinals():
    catalog = MutableCatalog()
    table = catalog.add_table(catalog.add_schema("db", "s"), "t")
    for name in ("a", "b", "c", "d"):
        catalog.add_column(table, name)
    options = CrawlOptions(
        grep_column_rule=rule_from_patterns(r".*\.[acd]"), grep_only_matching=True
    )

    report = GrepFilter(catalog, options).apply()

    assert [c.ordinal_position for c in catalog.columns(table)] == [0, 2, 3]
    assert report.columns_removed == 1


def test_only_matching_keeps_foreign_keys_between_matching_columns():
    catalog = _catalog()
    options = CrawlOptions(
        grep_column_rule=rule_from_patterns(r".*\.(name|SSN)"),
        grep_only_matching=True,
    )
    GrepFilter(catalog, options).apply()

    people = catalog.lookup_table("db", "hr", "people")
    assert [c.name for c in catalog.columns(people)] == ["name", "SSN"]
    assert len(catalog.foreign_keys()) == 1


def test_only_matching_keeps_foreign_key_when_its_column_is_removed():
    catalog = _catalog()
    options = CrawlOptions(
        grep_column_rule=rule_from_patterns(r".*\.people\.(id|name)|.*\.secrets\.SSN"),
        grep_only_matching=True,
    )

    report = GrepFilter(catalog, options).apply()

    (fk,) = catalog.foreign_keys()
    assert fk.column_references == []
    secrets = catalog.lookup_table("db", "hr", "secrets")
    assert [t.name for t in catalog.parent_tables(secrets)] == ["people"]
    assert report.foreign_keys_removed == 0


def test_definition_grep_matches_remarks_and_view_text():
    catalog = _catalog()
    options = CrawlOptions(grep_definition_rule=rule_from_patterns(r".*FROM people.*|Employees"))

    GrepFilter(catalog, options).apply()

    assert _tables(catalog) == ["people", "v_people"]


def test_routine_grep_uses_parameters_and_leaves_tables_alone():
    catalog = _catalog()
    schema = catalog.lookup_schema("db", "hr")
    raise_salary = catalog.add_routine(schema, "raise_salary")
    catalog.add_routine_column(raise_salary, "amount")
    catalog.add_routine_column(raise_salary, "person_id")
    catalog.add_routine(schema, "noop")
    options = CrawlOptions(
        grep_routine_column_rule=rule_from_patterns(r".*\.amount"), grep_only_matching=True
    )

    report = GrepFilter(catalog, options).apply()

    assert [r.name for r in catalog.routines()] == ["raise_salary"]
    assert [c.name for c in catalog.routine_columns(raise_salary)] == ["amount"]
    assert report.routine_columns_removed == 1
    assert len(catalog.tables()) == 3
