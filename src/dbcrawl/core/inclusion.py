"""Inclusion rule abstractions and implementations.

An inclusion rule decides whether a fully qualified object name (for example
``main.sales.orders``) takes part in a crawl. Rules are immutable, pure and
side-effect-free, so one rule instance can be shared by retrievers, the
reducer and the grep pass alike. Rules compose with ``AllOf`` and ``AnyOf``.

Matching is always a whole-string regular expression match, never a
substring search.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from dbcrawl.core.errors import ConfigurationError

# Exclude patterns recognised as "match everything".
_MATCH_EVERYTHING = frozenset({".*", "(.*)", "^.*$", "(?s).*"})


def _compile(pattern: str | None, *, option: str) -> re.Pattern[str] | None:
    """Compile a pattern, treating None and blank text as "no pattern"."""
    if pattern is None or not pattern.strip():
        return None
    try:
        return re.compile(pattern, re.DOTALL)
    except re.error as exc:
        raise ConfigurationError(f"Invalid {option} pattern {pattern!r}: {exc}") from exc


class InclusionRule(ABC):
    """
    Abstract base class for all inclusion rules.

    A rule answers two questions about a name: whether it is included
    (``test``), and whether it is explicitly excluded (``excludes``). The
    second one matters to graph expansion, which may pull in tables that
    were merely not asked for, but never tables that were excluded.
    """

    @abstractmethod
    def test(self, name: str) -> bool:
        """
        Determine whether the given name is included by this rule.

        Args:
            name: Fully qualified object name.

        Returns:
            True if the name is included, False otherwise.
        """
        ...

    @abstractmethod
    def excludes(self, name: str) -> bool:
        """Return True if the name is explicitly excluded by this rule."""
        ...

    def is_exclude_all(self) -> bool:
        """Return True if this rule can never include anything."""
        return False

    def __call__(self, name: str) -> bool:
        return self.test(name)


@dataclass(frozen=True)
class IncludeAll(InclusionRule):
    """Neutral rule that includes every name."""

    def test(self, name: str) -> bool:
        return True

    def excludes(self, name: str) -> bool:
        return False


@dataclass(frozen=True)
class ExcludeAll(InclusionRule):
    """
    Sentinel rule that excludes every name.

    Retrievers check ``is_exclude_all`` before issuing any query so that an
    excluded category costs nothing.
    """

    def test(self, name: str) -> bool:
        return False

    def excludes(self, name: str) -> bool:
        return True

    def is_exclude_all(self) -> bool:
        return True


@dataclass(frozen=True)
class RegularExpressionRule(InclusionRule):
    """
    Rule built from an optional include pattern and an optional exclude pattern.

    A name is included if (no include pattern, or the include pattern matches)
    and not (an exclude pattern is present and matches). With
    ``exclude_wins=False`` a name matched by both patterns is included instead.
    """

    include: str | None = None
    exclude: str | None = None
    exclude_wins: bool = True
    _include_rx: re.Pattern[str] | None = field(
        init=False, repr=False, compare=False, default=None
    )
    _exclude_rx: re.Pattern[str] | None = field(
        init=False, repr=False, compare=False, default=None
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "_include_rx", _compile(self.include, option="include"))
        object.__setattr__(self, "_exclude_rx", _compile(self.exclude, option="exclude"))

    def _include_matches(self, name: str) -> bool:
        return self._include_rx is not None and self._include_rx.fullmatch(name) is not None

    def _exclude_matches(self, name: str) -> bool:
        return self._exclude_rx is not None and self._exclude_rx.fullmatch(name) is not None

    def test(self, name: str) -> bool:
        included = self._include_rx is None or self._include_matches(name)
        if not self.exclude_wins and self._include_matches(name):
            return True
        return included and not self._exclude_matches(name)

    def excludes(self, name: str) -> bool:
        if not self.exclude_wins and self._include_matches(name):
            return False
        return self._exclude_matches(name)

    def is_exclude_all(self) -> bool:
        return (
            self._include_rx is None
            and self.exclude is not None
            and self.exclude.strip() in _MATCH_EVERYTHING
        )


class AllOf(InclusionRule):
    """Composite rule that includes a name only if every child rule does."""

    def __init__(self, rules: list[InclusionRule]):
        self.rules = tuple(rules)

    def test(self, name: str) -> bool:
        return all(r.test(name) for r in self.rules)

    def excludes(self, name: str) -> bool:
        return any(r.excludes(name) for r in self.rules)

    def is_exclude_all(self) -> bool:
        return any(r.is_exclude_all() for r in self.rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AllOf):
            return NotImplemented
        return set(self.rules) == set(other.rules)

    def __hash__(self) -> int:
        return hash(("all", frozenset(self.rules)))

    def __repr__(self) -> str:
        return f"AllOf({list(self.rules)!r})"


class AnyOf(InclusionRule):
    """Composite rule that includes a name if any child rule does."""

    def __init__(self, rules: list[InclusionRule]):
        self.rules = tuple(rules)

    def test(self, name: str) -> bool:
        return any(r.test(name) for r in self.rules)

    def excludes(self, name: str) -> bool:
        return bool(self.rules) and all(r.excludes(name) for r in self.rules)

    def is_exclude_all(self) -> bool:
        return all(r.is_exclude_all() for r in self.rules)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, AnyOf):
            return NotImplemented
        return set(self.rules) == set(other.rules)

    def __hash__(self) -> int:
        return hash(("any", frozenset(self.rules)))

    def __repr__(self) -> str:
        return f"AnyOf({list(self.rules)!r})"


def rule_from_patterns(
    include: str | None = None,
    exclude: str | None = None,
    *,
    exclude_wins: bool = True,
) -> InclusionRule:
    """
    Build the simplest rule for an include/exclude pattern pair.

    No patterns at all yield ``IncludeAll``; an exclude pattern that matches
    everything with no include pattern yields ``ExcludeAll``.
    """
    rule = RegularExpressionRule(include=include, exclude=exclude, exclude_wins=exclude_wins)
    if rule.is_exclude_all():
        return ExcludeAll()
    if rule._include_rx is None and rule._exclude_rx is None:
        return IncludeAll()
    return rule
