"""Terminal UI utilities for dbcrawl."""

from __future__ import annotations

import questionary

from dbcrawl.cli.common.tui_style import QUESTIONARY_STYLE_PICK
from dbcrawl.core.metadata import SchemaRow

_MAX_REMARKS_WIDTH = 60


def _truncate(text: str, max_len: int) -> str:
    """Return text capped at max_len characters using an ASCII ellipsis."""
    if max_len <= 3 or len(text) <= max_len:
        return text[:max_len]
    return f"{text[: max_len - 3]}..."


def _schema_choice_title(schema: SchemaRow, *, name_width: int) -> str:
    """Format one schema choice as `<full name>  <remarks>` with aligned remarks."""
    name = schema.full_name or "(default)"
    if not schema.remarks:
        return name
    remarks = _truncate(" ".join(schema.remarks.split()), _MAX_REMARKS_WIDTH)
    return f"{name.ljust(name_width)}  {remarks}"


def select_schemas(schemas: list[SchemaRow]) -> list[str]:
    """Display a checkbox prompt to pick schemas to crawl.

    Args:
        schemas: Schemas reported by the metadata source.

    Returns:
        Full names of the picked schemas; empty if none were picked.
    """
    name_width = max((len(s.full_name) for s in schemas), default=0)
    choices = [
        questionary.Choice(title=_schema_choice_title(s, name_width=name_width), value=s.full_name)
        for s in schemas
    ]
    return (
        questionary.checkbox(
            "Select schemas to crawl:",
            choices=choices,
            style=QUESTIONARY_STYLE_PICK,
        ).ask()
        or []
    )
