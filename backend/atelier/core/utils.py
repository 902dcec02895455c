"""
Core Utilities

Shared helpers used across the application.
"""
import re
import unicodedata
from datetime import datetime, timezone
from typing import Optional

_NON_DIGITS = re.compile(r"\D")


def utcnow() -> datetime:
    """
    Return timezone-aware UTC datetime.

    Use this instead of datetime.utcnow() which returns naive datetime.
    """
    return datetime.now(timezone.utc)


def only_digits(value: Optional[str]) -> str:
    """Strip punctuation from postal codes, phones and documents ("01310-100" -> "01310100")."""
    if not value:
        return ""
    return _NON_DIGITS.sub("", str(value))


def strip_accents(value: str) -> str:
    """Remove diacritics ("Expresso São Miguel" -> "Expresso Sao Miguel")."""
    normalized = unicodedata.normalize("NFKD", value)
    return "".join(ch for ch in normalized if not unicodedata.combining(ch))
