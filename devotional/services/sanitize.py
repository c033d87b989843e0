"""Normalization of untrusted text and verse lists.

Output is still raw text. HTML/JSON encoding belongs to whatever renders it.
"""

from collections.abc import Mapping
from typing import Any

from devotional.config import settings
from devotional.models.verse import Verse


def sanitize_text(value: Any, max_length: int = 1000) -> str:
    """Trim and truncate a string; anything that is not a string becomes ``""``."""
    if not isinstance(value, str):
        return ""
    # strip again: truncation can expose trailing whitespace
    return value.strip()[:max_length].strip()


def validate_verses(
    value: Any,
    max_count: int | None = None,
    max_reference_length: int | None = None,
    max_text_length: int | None = None,
) -> list[Verse]:
    """Keep well-formed ``{reference, text}`` entries, sanitized and capped.

    Used the same way on client-submitted verses and on verses returned by
    the model. Never raises: non-list input yields an empty list.

    Args:
        value: Untrusted input, expected to be a list of mappings.
        max_count: Maximum verses kept (first ones win).
        max_reference_length: Cap for each reference.
        max_text_length: Cap for each verse text.

    Returns:
        List of Verse objects in input order.
    """
    if max_count is None:
        max_count = settings.devotional_max_verses
    if max_reference_length is None:
        max_reference_length = settings.devotional_max_reference_length
    if max_text_length is None:
        max_text_length = settings.devotional_max_verse_text_length

    if not isinstance(value, (list, tuple)):
        return []

    verses: list[Verse] = []
    for entry in value:
        if len(verses) >= max_count:
            break
        if not isinstance(entry, Mapping):
            continue
        reference = entry.get("reference")
        text = entry.get("text")
        if not isinstance(reference, str) or not isinstance(text, str):
            continue
        reference = sanitize_text(reference, max_reference_length)
        text = sanitize_text(text, max_text_length)
        if not reference or not text:
            continue
        verses.append(Verse(reference=reference, text=text))
    return verses
