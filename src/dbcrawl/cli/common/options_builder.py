"""Crawl options construction.

Translates user intent (CLI arguments, environment) into a validated
CrawlOptions instance, so commands work with a single options object.
"""

from __future__ import annotations

import re
from typing import Iterable, Mapping

from dbcrawl.core.errors import ConfigurationError
from dbcrawl.core.inclusion import AllOf, InclusionRule, rule_from_patterns
from dbcrawl.core.options import CrawlOptions, InfoLevel
from dbcrawl.core.strategies import StrategySelection, parse_strategy_assignments


def _rule(include: str | None, exclude: str | None = None) -> InclusionRule | None:
    if not include and not exclude:
        return None
    return rule_from_patterns(include, exclude)


def _grep_rule(pattern: str | None) -> InclusionRule | None:
    return rule_from_patterns(pattern) if pattern else None


def schema_pick_rule(picked: Iterable[str]) -> InclusionRule:
    """Include rule matching exactly the picked schema full names."""
    names = sorted(set(picked))
    return rule_from_patterns("|".join(re.escape(n) for n in names) or "(?!)")


def build_crawl_options(
    *,
    schemas: str | None = None,
    exclude_schemas: str | None = None,
    tables: str | None = None,
    exclude_tables: str | None = None,
    columns: str | None = None,
    exclude_columns: str | None = None,
    routines: str | None = None,
    exclude_routines: str | None = None,
    routine_columns: str | None = None,
    sequences: str | None = None,
    synonyms: str | None = None,
    table_types: str | None = None,
    grep_columns: str | None = None,
    grep_routine_columns: str | None = None,
    grep_definition: str | None = None,
    invert_match: bool = False,
    only_matching: bool = False,
    no_empty_tables: bool = False,
    row_counts: bool = False,
    child_depth: int = 0,
    parent_depth: int = 0,
    info_level: str = "standard",
    strategies: Iterable[str] = (),
    picked_schemas: Iterable[str] | None = None,
    environ: Mapping[str, str] | None = None,
) -> CrawlOptions:
    """
    Build CrawlOptions from user-provided criteria.

    Include/exclude pairs become inclusion rules; a missing pair keeps the
    per-kind default (routines, sequences and synonyms stay off unless a
    pattern is given). Strategy assignments (``category=strategy``) win over
    ``DBCRAWL_STRATEGY_<CATEGORY>`` environment variables.

    Raises:
        ValueError: Invalid regex, depth, info level or strategy assignment.
    """
    try:
        level = InfoLevel(info_level.strip().lower())
    except ValueError as exc:
        choices = ", ".join(i.value for i in InfoLevel)
        raise ValueError(f"Invalid info level '{info_level}' (expected one of: {choices})") from exc

    try:
        schema_rule = _rule(schemas, exclude_schemas)
        if picked_schemas is not None:
            picked = schema_pick_rule(picked_schemas)
            schema_rule = picked if schema_rule is None else AllOf([schema_rule, picked])

        selection = StrategySelection.from_env(environ).with_overrides(
            parse_strategy_assignments(strategies)
        )

        return CrawlOptions(
            info_level=level,
            schema_rule=schema_rule,
            table_rule=_rule(tables, exclude_tables),
            column_rule=_rule(columns, exclude_columns),
            routine_rule=_rule(routines, exclude_routines),
            routine_column_rule=_rule(routine_columns),
            sequence_rule=_rule(sequences),
            synonym_rule=_rule(synonyms),
            table_types=tuple(table_types.split(",")) if table_types else None,
            grep_column_rule=_grep_rule(grep_columns),
            grep_routine_column_rule=_grep_rule(grep_routine_columns),
            grep_definition_rule=_grep_rule(grep_definition),
            grep_invert_match=invert_match,
            grep_only_matching=only_matching,
            no_empty_tables=no_empty_tables,
            load_row_counts=row_counts,
            child_table_filter_depth=child_depth,
            parent_table_filter_depth=parent_depth,
            strategies=selection,
        )
    except ConfigurationError as exc:
        raise ValueError(str(exc)) from exc
