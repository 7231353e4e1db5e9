"""
Column name formatting.

Turns identifiers like "FirstName" into display labels like "First Name".
"""

from __future__ import annotations

from typing import Iterator, Optional, Tuple


def remove_whitespace(name: str) -> str:
    """Drop every whitespace character from an identifier."""
    return "".join(name.split())


def _is_lower(ch: Optional[str]) -> bool:
    # Case-sensitive "c != UPPER(c)": only cased lowercase letters qualify.
    # Digits, punctuation and the string boundaries count as capitals.
    return ch is not None and ch != ch.upper()


def _lookahead(text: str) -> Iterator[Tuple[Optional[str], str, Optional[str]]]:
    """Yield (previous, current, next) for each character of text."""
    previous: Optional[str] = None
    chars = iter(text)
    current = next(chars, None)
    while current is not None:
        following = next(chars, None)
        yield previous, current, following
        previous, current = current, following


def format_column_name(
    name: str,
    enabled: bool = True,
    preserve_adjacent_caps: bool = True,
) -> str:
    """
    Convert a raw column identifier into a spaced, human-readable label.

    A space goes before an uppercase letter unless it starts the label or
    follows a space. With preserve_adjacent_caps, a capital surrounded by
    capitals on both sides stays attached, so runs like "TPS" in
    "TPSReport" are kept together.

    Args:
        name: Raw column name
        enabled: When False, only whitespace is removed
        preserve_adjacent_caps: Keep runs of capitals together

    Returns:
        Formatted label

    Examples:
        >>> format_column_name("FirstName")
        'First Name'
        >>> format_column_name("TPSReport")
        'TPS Report'
        >>> format_column_name("TPSReport", preserve_adjacent_caps=False)
        'T P S Report'
    """
    raw = remove_whitespace(name)
    if not enabled:
        return raw

    out = []
    for previous, current, following in _lookahead(raw):
        if current.isupper() and previous is not None and out[-1] != " ":
            if (
                not preserve_adjacent_caps
                or _is_lower(previous)
                or _is_lower(following)
            ):
                out.append(" ")
        out.append(current)
    return "".join(out)
