"""
Text utilities for matching extracted names against canonical taxonomy.
"""

import re
from typing import Iterable, Optional, TypeVar

from models.taxonomy import TaxonomyEntry

_WHITESPACE = re.compile(r"\s+")

T = TypeVar("T", bound=TaxonomyEntry)


def normalize_name(name: Optional[str]) -> Optional[str]:
    """
    Normalize a display name for comparison.

    - "  Rings  " → "rings"
    - "Wedding   Arches" → "wedding arches"

    Args:
        name: Original name (any case, stray whitespace)

    Returns:
        Lowercased, whitespace-collapsed string, or None if input is empty
    """
    if not name:
        return None

    name = _WHITESPACE.sub(" ", name.strip())

    if not name:
        return None

    return name.casefold()


def find_exact_match(name: str, entries: Iterable[T]) -> Optional[T]:
    """First entry whose name equals `name` ignoring case."""
    target = normalize_name(name)
    if target is None:
        return None

    for entry in entries:
        if normalize_name(entry.name) == target:
            return entry
    return None


def find_loose_match(name: str, entries: Iterable[T]) -> Optional[T]:
    """
    Exact match first, then bidirectional substring.

    "Gold Rings" matches "Rings", and "Ring" matches "Rings".
    """
    entries = list(entries)
    exact = find_exact_match(name, entries)
    if exact:
        return exact

    target = normalize_name(name)
    if target is None:
        return None

    for entry in entries:
        candidate = normalize_name(entry.name)
        if not candidate:
            continue
        if candidate in target or target in candidate:
            return entry
    return None


def clean_text(value: Optional[str], max_length: int = 500) -> Optional[str]:
    """
    Clean connector-provided text for storage.

    - Strips whitespace
    - Truncates to max length
    - Returns None for empty/whitespace-only strings
    """
    if value is None:
        return None

    value = str(value).strip()

    if not value:
        return None

    if len(value) > max_length:
        value = value[:max_length]

    return value
