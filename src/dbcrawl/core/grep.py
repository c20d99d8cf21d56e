"""Grep filter: content-based pruning after the reducer.

Tables are tested element by element: each column (its qualified name and
its remarks) against the column grep rule, and each piece of free text
(remarks, view definition, trigger action) against the definition grep rule.
An element is a hit when it matches, or under invert-match when it does not.
A table survives when at least one element is a hit. Routines work the same
way with routine columns and routine text.

Only-matching additionally removes the columns that are not hits; survivors
keep their ordinal positions, and foreign keys keep their remaining column
pairs.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator

from dbcrawl.core.catalog import MutableCatalog
from dbcrawl.core.inclusion import InclusionRule
from dbcrawl.core.models import Column, Routine, RoutineColumn, Table
from dbcrawl.core.options import CrawlOptions
from dbcrawl.core.reducer import drop_dangling_foreign_keys

logger = logging.getLogger(__name__)


@dataclass
class GrepReport:
    tables_removed: int = 0
    columns_removed: int = 0
    routines_removed: int = 0
    routine_columns_removed: int = 0
    foreign_keys_removed: int = 0


def _matches(rule: InclusionRule, *texts: str | None) -> bool:
    return any(text is not None and rule.test(text) for text in texts)


class GrepFilter:
    """Content grep over the tables and routines a reducer kept."""

    def __init__(
        self,
        catalog: MutableCatalog,
        options: CrawlOptions,
        *,
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        self.catalog = catalog
        self.column_rule = options.grep_column_rule
        self.routine_column_rule = options.grep_routine_column_rule
        self.definition_rule = options.grep_definition_rule
        self.invert = options.grep_invert_match
        self.only_matching = options.grep_only_matching
        self.log = log or logger

    @property
    def greps_tables(self) -> bool:
        return self.column_rule is not None or self.definition_rule is not None

    @property
    def greps_routines(self) -> bool:
        return self.routine_column_rule is not None or self.definition_rule is not None

    def _hit(self, matched: bool) -> bool:
        return matched != self.invert

    def column_hit(self, column: Column | RoutineColumn, rule: InclusionRule) -> bool:
        return self._hit(_matches(rule, column.full_name, column.remarks))

    # ------------------------------------------------------------------ tables --
    def _table_texts(self, table: Table) -> Iterator[str]:
        for text in (table.remarks, table.definition):
            if text is not None:
                yield text
        for trigger in self.catalog.triggers(table):
            if trigger.action_statement is not None:
                yield trigger.action_statement

    def table_hit(self, table: Table) -> bool:
        """Return True if at least one element of the table is a hit."""
        if self.column_rule is not None:
            if any(self.column_hit(c, self.column_rule) for c in self.catalog.columns(table)):
                return True
        if self.definition_rule is not None:
            rule = self.definition_rule
            if any(self._hit(rule.test(text)) for text in self._table_texts(table)):
                return True
        return False

    # ---------------------------------------------------------------- routines --
    def _routine_texts(self, routine: Routine) -> Iterator[str]:
        for text in (routine.remarks, routine.definition):
            if text is not None:
                yield text

    def routine_hit(self, routine: Routine) -> bool:
        if self.routine_column_rule is not None:
            rule = self.routine_column_rule
            if any(self.column_hit(c, rule) for c in self.catalog.routine_columns(routine)):
                return True
        if self.definition_rule is not None:
            rule = self.definition_rule
            if any(self._hit(rule.test(text)) for text in self._routine_texts(routine)):
                return True
        return False

    # ------------------------------------------------------------------- apply --
    def apply(self) -> GrepReport:
        report = GrepReport()
        if self.greps_tables:
            self._grep_tables(report)
        if self.greps_routines:
            self._grep_routines(report)
        report.foreign_keys_removed += drop_dangling_foreign_keys(self.catalog)
        self.log.info(
            "Grep removed %d table(s), %d column(s), %d routine(s)",
            report.tables_removed,
            report.columns_removed,
            report.routines_removed,
        )
        return report

    def _grep_tables(self, report: GrepReport) -> None:
        for table in self.catalog.tables():
            if not self.table_hit(table):
                report.foreign_keys_removed += len(self.catalog.foreign_keys(table))
                self.catalog.remove_table(table)
                report.tables_removed += 1
                continue
            if self.only_matching and self.column_rule is not None:
                for column in self.catalog.columns(table):
                    if not self.column_hit(column, self.column_rule):
                        self.catalog.remove_column(column)
                        report.columns_removed += 1

    def _grep_routines(self, report: GrepReport) -> None:
        for routine in self.catalog.routines():
            if not self.routine_hit(routine):
                self.catalog.remove_routine(routine)
                report.routines_removed += 1
                continue
            if self.only_matching and self.routine_column_rule is not None:
                for column in self.catalog.routine_columns(routine):
                    if not self.column_hit(column, self.routine_column_rule):
                        self.catalog.remove_routine_column(column)
                        report.routine_columns_removed += 1
