"""
T-SQL quoting helpers.

Every name or value that reaches generated text goes through one of these.
"""

from __future__ import annotations

from typing import Iterable

from temporal_changes.errors import ValidationError
from temporal_changes.models import MAX_IDENTIFIER_LENGTH


def quote_identifier(name: str) -> str:
    """Bracket-quote an identifier the way QUOTENAME does."""
    if name is None:
        raise ValidationError("Identifier cannot be None")
    if len(name) > MAX_IDENTIFIER_LENGTH:
        raise ValidationError(
            f"Identifier exceeds {MAX_IDENTIFIER_LENGTH} characters: {name[:40]}..."
        )
    return "[" + name.replace("]", "]]") + "]"


def quote_literal(value: str) -> str:
    """Quote a value as a Unicode string literal."""
    return "N'" + str(value).replace("'", "''") + "'"


def qualify(*parts: str) -> str:
    """Join quoted identifier parts: qualify("dbo", "Person") -> [dbo].[Person]."""
    return ".".join(quote_identifier(p) for p in parts)


def literal_list(values: Iterable[str]) -> str:
    """Comma-separated literal list for an IN (...) predicate."""
    return ", ".join(quote_literal(v) for v in values)
