"""
Text utilities for comparing spreadsheet headers and catalog values.
"""

import re
import unicodedata
from typing import Optional

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def strip_accents(text: str) -> str:
    """
    Remove accent marks, keeping the base characters.

    "Édition" → "Edition"
    """
    # NFD decomposition separates base chars from accents
    normalized = unicodedata.normalize("NFD", text)
    return "".join(c for c in normalized if unicodedata.category(c) != "Mn")


def normalize_header(header: Optional[str]) -> str:
    """
    Normalize a column header (or alias) for comparison.

    Case-folds, drops accents and strips everything that is not a letter
    or digit:
    - "Book Title" → "booktitle"
    - "ISBN-13" → "isbn13"
    - "  Año Pub.  " → "anopub"

    Args:
        header: Raw header text

    Returns:
        Normalized key, empty string for empty input
    """
    if not header:
        return ""
    return _NON_ALNUM.sub("", strip_accents(header).casefold())


def normalize_token(value: str) -> str:
    """
    Normalize an enum token for comparison.

    Lowercases and folds runs of spaces/underscores into a hyphen so
    "Like New", "like_new" and "LIKE-NEW" compare equal.
    """
    return re.sub(r"[\s_]+", "-", value.strip().lower())


def truncate_text(value: Optional[str], max_length: int = 80) -> Optional[str]:
    """
    Shorten text for display in reports and logs.

    Returns None for empty/whitespace-only strings.
    """
    if not value:
        return None

    value = value.strip()
    if not value:
        return None

    if len(value) > max_length:
        return value[: max_length - 1] + "…"

    return value
