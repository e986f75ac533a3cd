"""Small text helpers shared by services."""

import re
import unicodedata


def slugify(name: str) -> str:
    """URL slug for a category name: 'Ficção Científica' -> 'ficcao-cientifica'."""
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(c for c in decomposed if not unicodedata.combining(c))
    slug = re.sub(r"\s+", "-", ascii_only.strip().lower())
    slug = re.sub(r"[^\w-]+", "", slug)
    return re.sub(r"-{2,}", "-", slug).strip("-")


def clean_optional(value):
    """Trim strings and map blanks to None."""
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value
