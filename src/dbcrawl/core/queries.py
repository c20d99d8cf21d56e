"""Named query registry for the data dictionary retrieval strategy.

Queries are parameterized SQL templates keyed by metadata category. Template
parameters use ``:name`` markers, which both the SQLite driver and the
Databricks statement execution API understand.

YAML layout::

    tables: |
      SELECT table_catalog AS catalog_name, table_schema AS schema_name, ...
    table_columns:
      sql: SELECT ... WHERE table_catalog = :catalog
      params: [catalog]
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

from dbcrawl.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

_PARAM_RE = re.compile(r"(?<![:\w]):([A-Za-z_][A-Za-z0-9_]*)")


@dataclass(frozen=True)
class NamedQuery:
    """A parameterized SQL template for one category."""

    name: str
    sql: str
    params: tuple[str, ...] = field(default=())

    @property
    def parameter_names(self) -> tuple[str, ...]:
        """Declared parameters, or the ``:name`` markers found in the SQL."""
        if self.params:
            return self.params
        return tuple(dict.fromkeys(_PARAM_RE.findall(self.sql)))

    def bind(self, context: Mapping[str, Any]) -> dict[str, Any]:
        """
        Select this query's parameters from a crawl context.

        Raises:
            ConfigurationError: A parameter has no value in the context.
        """
        missing = [p for p in self.parameter_names if p not in context]
        if missing:
            raise ConfigurationError(
                f"Query {self.name!r} needs unknown parameter(s): {', '.join(missing)}",
                category=self.name,
            )
        return {p: context[p] for p in self.parameter_names}


class NamedQueryRegistry:
    """Category name -> NamedQuery lookup."""

    def __init__(self, queries: Mapping[str, NamedQuery] | None = None) -> None:
        self._queries: dict[str, NamedQuery] = dict(queries or {})

    @staticmethod
    def _key(category: object) -> str:
        return str(getattr(category, "value", category))

    def register(self, category: object, sql: str, params: list[str] | tuple[str, ...] = ()) -> NamedQuery:
        key = self._key(category)
        query = NamedQuery(name=key, sql=sql, params=tuple(params))
        self._queries[key] = query
        return query

    def has_query(self, category: object) -> bool:
        return self._key(category) in self._queries

    def get_query(self, category: object) -> NamedQuery:
        key = self._key(category)
        query = self._queries.get(key)
        if query is None:
            raise ConfigurationError(f"No {key} SQL provided", category=key)
        return query

    def names(self) -> list[str]:
        return sorted(self._queries)

    def __len__(self) -> int:
        return len(self._queries)


def load_queries(path: str | Path) -> NamedQueryRegistry:
    """
    Load a named query registry from a YAML file.

    Args:
        path: YAML file mapping category names to SQL text or to
            ``{sql: ..., params: [...]}`` mappings.

    Raises:
        ConfigurationError: The file is missing, unreadable or malformed.
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigurationError(f"Cannot read queries file {path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in queries file {path}: {exc}") from exc

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Queries file {path} must contain a mapping of category: sql")

    registry = NamedQueryRegistry()
    for name, entry in data.items():
        if isinstance(entry, str):
            registry.register(name, entry)
        elif isinstance(entry, dict) and isinstance(entry.get("sql"), str):
            params = entry.get("params") or []
            if not isinstance(params, list):
                raise ConfigurationError(f"params for query {name!r} must be a list", category=name)
            registry.register(name, entry["sql"], [str(p) for p in params])
        else:
            raise ConfigurationError(f"Query {name!r} must be SQL text or a mapping with 'sql'", category=name)
    logger.debug("Loaded %d named queries from %s", len(registry), path)
    return registry
