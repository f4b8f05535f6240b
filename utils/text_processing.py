"""Text processing utilities for music matching."""

import re
import unicodedata
from typing import Any, Dict, List, Optional, Tuple

_PUNCTUATION = re.compile(r"[^\w\s]|_")
_WHITESPACE = re.compile(r"\s+")
_BRACKETED = re.compile(r"[\(\[][^\)\]]*[\)\]]")
_DASH_SUFFIX = re.compile(r"\s+[-–—]\s+.*$")


def normalize_text(text: Optional[str]) -> str:
    """Normalize text for comparison.

    Case-folds, drops accents and punctuation, and collapses whitespace, so
    that "Beyoncé – Halo!" and "beyonce halo" compare equal.

    Args:
        text: Text to normalize

    Returns:
        Normalized text, or an empty string for missing input
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    stripped = _PUNCTUATION.sub("", stripped)
    return _WHITESPACE.sub(" ", stripped).strip()


def fold_text(text: Optional[str]) -> str:
    """Case-fold and trim text without touching punctuation."""
    if not text:
        return ""
    return _WHITESPACE.sub(" ", text.casefold()).strip()


def strip_version_info(title: Optional[str]) -> str:
    """Drop bracketed qualifiers and dash suffixes from a title.

    "Let It Be (Remastered 2009)" and "Let It Be - Live" both become
    "Let It Be".
    """
    if not title:
        return ""
    base = _BRACKETED.sub(" ", title)
    base = _DASH_SUFFIX.sub("", base)
    base = _WHITESPACE.sub(" ", base).strip()
    return base or title.strip()


def comparable_text(text: Optional[str]) -> str:
    """Normalized text, or the case-folded text when nothing survives.

    Names made only of punctuation ("!!!") keep their characters instead of
    collapsing to an empty string that would equal every other such name.
    """
    return normalize_text(text) or fold_text(text)


def normalized_key(artist: Optional[str], title: Optional[str]) -> Tuple[str, str]:
    """Build the (artist, title) key used for exact matching."""
    return comparable_text(artist), comparable_text(title)


def safe_get(d: Dict[str, Any], keys: List[Any], default: Any = None) -> Any:
    """Safely get nested dictionary values.

    Args:
        d: Dictionary to retrieve value from
        keys: List of keys (or list indexes) to traverse
        default: Default value if key path doesn't exist

    Returns:
        Value at key path or default if not found
    """
    for key in keys:
        try:
            d = d[key]
        except (KeyError, IndexError, TypeError):
            return default

    return d


def build_search_query(
    artist: str, title: str, album: Optional[str] = None
) -> str:
    """Create a Spotify field-filtered search query from track metadata.

    Args:
        artist: Artist name
        title: Track title
        album: Optional album name

    Returns:
        Query string such as ``track:Let It Be artist:The Beatles``
    """
    query_parts = [f"track:{_clean_query_value(title)}"]
    if artist:
        query_parts.append(f"artist:{_clean_query_value(artist)}")
    if album:
        query_parts.append(f"album:{_clean_query_value(album)}")

    return _WHITESPACE.sub(" ", " ".join(query_parts)).strip()


def _clean_query_value(value: str) -> str:
    # Colons and quotes would be read as field filters by the search endpoint
    return _WHITESPACE.sub(" ", re.sub(r"[:\"]", " ", value)).strip()
