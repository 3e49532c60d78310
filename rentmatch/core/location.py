"""Free-text location normalization shared by candidate selection and scoring.

Rental requests carry a free-text location such as ``"Mokotów, Warszawa"``
or just ``"Kraków"``; properties carry a city. Both sides are reduced to the
same canonical form before any comparison:

- leading/trailing whitespace removed, inner whitespace collapsed
- Unicode compatibility decomposition (NFKD) with combining marks dropped,
  so ``"Kraków"`` and ``"Krakow"`` compare equal
- letters with a stroke that have no decomposition (``ł``, ``ø``, ``đ`` ...)
  folded to their base letter
- case-folded

The city token of a request is the last non-empty comma-separated segment
("District, City" -> "city"). A location without any non-empty segment has
no token and is treated as invalid input by the callers.
"""
import re
import unicodedata
from typing import Optional

_STROKE_LETTERS = str.maketrans({
    "ł": "l",
    "Ł": "L",
    "ø": "o",
    "Ø": "O",
    "đ": "d",
    "Đ": "D",
    "ħ": "h",
    "Ħ": "H",
    "ß": "ss",
})

_WHITESPACE_RE = re.compile(r"\s+")


def strip_diacritics(value: str) -> str:

    decomposed = unicodedata.normalize("NFKD", value.translate(_STROKE_LETTERS))
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def normalize_location(value: Optional[str]) -> str:
    """
    Normalize a location or city string for comparison.

    Args:
        value: Raw text (may be None)

    Returns:
        Canonical form, empty string when nothing meaningful remains
    """
    if not value:
        return ""

    folded = strip_diacritics(str(value)).casefold()
    return _WHITESPACE_RE.sub(" ", folded).strip()


def split_location(value: Optional[str]) -> list[str]:
    """Split a location on commas into normalized, non-empty segments."""
    if not value:
        return []

    segments = (normalize_location(part) for part in str(value).split(","))
    return [segment for segment in segments if segment]


def extract_city_token(value: Optional[str]) -> Optional[str]:
    """
    Extract the normalized city token from a free-text location.

    Examples:
        "Mokotów, Warszawa" -> "warszawa"
        "  KRAKÓW " -> "krakow"
        "Wola, " -> "wola"
        ", , " -> None

    Args:
        value: Free-text location from a rental request

    Returns:
        The last non-empty comma-separated segment, or None
    """
    segments = split_location(value)
    if not segments:
        return None
    return segments[-1]
