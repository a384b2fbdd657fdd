"""Utilities to normalize categories, descriptions and tags."""

from __future__ import annotations

import re
from typing import Iterable, Optional, Tuple

DEFAULT_SEPARATOR = "::"

_WHITESPACE_PATTERN = re.compile(r"\s{2,}")


def normalize_text(value: Optional[str]) -> Optional[str]:
    """Trim and collapse runs of whitespace; empty input becomes ``None``."""
    if value is None:
        return None
    normalized = _WHITESPACE_PATTERN.sub(" ", value.strip())
    return normalized or None


def normalize_category(value: Optional[str], separator: str = DEFAULT_SEPARATOR) -> Optional[str]:
    """Strip whitespace around each hierarchy level and drop empty levels."""
    text = normalize_text(value)
    if text is None:
        return None
    parts = [part.strip() for part in text.split(separator)]
    cleaned = [part for part in parts if part]
    return separator.join(cleaned) or None


def normalize_tags(tags: Optional[Iterable[str]]) -> Tuple[str, ...]:
    """Return a sorted, de-duplicated tuple of tags.

    Comma separated values are split, so ``["a,b", "c"]`` yields three tags.
    """
    if not tags:
        return ()
    collected = set()
    for raw in tags:
        for piece in raw.split(","):
            tag = normalize_text(piece)
            if tag:
                collected.add(tag)
    return tuple(sorted(collected))


def split_category(category: str, separator: str = DEFAULT_SEPARATOR) -> Tuple[str, str]:
    """Split into (top-level category, sub-category).

    The sub-category keeps any deeper levels joined by the separator and is
    empty when the category has a single level.
    """
    parts = category.split(separator)
    if len(parts) > 1:
        return parts[0], separator.join(parts[1:])
    return parts[0], ""
