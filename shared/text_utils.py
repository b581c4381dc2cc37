"""
Text utilities for protocol identifiers and fuzzy comparisons.

Protocol ids are URL-safe slugs derived from the (type, brand, model)
triple of the equipment they cover:

    slugify("Domo PTZ", "Hikvision", "DS-2")  ->  "domo-ptz-hikvision-ds-2"
"""

import re
import unicodedata


def strip_accents(text: str) -> str:
    """Remove diacritics (NFD decomposition, combining marks dropped)."""
    normalized = unicodedata.normalize("NFD", text)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))


def normalize_text(text: str | None) -> str:
    """
    Normalize text for case-insensitive comparisons.

    Lower-cases, strips accents and collapses inner whitespace.
    """
    if not text:
        return ""
    text = strip_accents(text).lower()
    return re.sub(r"\s+", " ", text).strip()


def slugify(*parts: str) -> str:
    """
    Build a slug from one or more text parts.

    Parts are joined with a single space, then:
    1. accents are folded and the result is lower-cased
    2. every whitespace run becomes "-"
    3. characters outside [a-z0-9-] are dropped

    Repeated hyphens are kept as they are so that ids stay stable with
    records created by earlier versions of the dashboard.
    """
    text = " ".join(part.strip() for part in parts if part is not None)
    text = strip_accents(text).lower()
    text = re.sub(r"\s+", "-", text)
    return re.sub(r"[^a-z0-9-]", "", text)
