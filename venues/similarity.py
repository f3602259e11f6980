"""
Venue name similarity

Trigram similarity with the same semantics as PostgreSQL's pg_trgm extension,
so the in-memory provider and the PostGIS provider score names identically:

- names are lowercased and split into alphanumeric words
- each word is padded with two leading spaces and one trailing space
- the score is |shared trigrams| / |all distinct trigrams| of both names

A case-insensitive substring relationship ("The Grand" inside
"The Grand Theatre") also counts as evidence for the stricter detection
paths, even when the trigram score is low.
"""
import re
from functools import lru_cache
from typing import FrozenSet, Optional

_WORD_RE = re.compile(r"[^\W_]+", re.UNICODE)
_PUNCT_RE = re.compile(r"[^\w\s]", re.UNICODE)
_SPACE_RE = re.compile(r"\s+")


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, drop punctuation and collapse whitespace"""
    if not name:
        return ""
    normalized = _PUNCT_RE.sub(" ", name.lower())
    return _SPACE_RE.sub(" ", normalized).strip()


@lru_cache(maxsize=4096)
def trigrams(text: str) -> FrozenSet[str]:
    """Distinct pg_trgm-style trigrams of a string"""
    grams = set()
    for word in _WORD_RE.findall(text.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i : i + 3])
    return frozenset(grams)


def trigram_similarity(name_a: str, name_b: str) -> float:
    grams_a = trigrams(name_a)
    grams_b = trigrams(name_b)
    if not grams_a or not grams_b:
        return 0.0

    shared = len(grams_a & grams_b)
    return shared / (len(grams_a) + len(grams_b) - shared)


def name_similarity(name_a: Optional[str], name_b: Optional[str]) -> float:
    """Symmetric 0.0-1.0 similarity between two venue names"""
    name_a = name_a or ""
    name_b = name_b or ""

    if name_a == name_b:
        return 1.0

    # Names with no letters or digits have no trigrams to share
    if trigrams(name_a) and normalize_name(name_a) == normalize_name(name_b):
        return 1.0

    return trigram_similarity(name_a, name_b)


def is_substring_match(name_a: Optional[str], name_b: Optional[str]) -> bool:
    """Case-insensitive containment in either direction"""
    lower_a = (name_a or "").strip().lower()
    lower_b = (name_b or "").strip().lower()
    if not lower_a or not lower_b:
        return False
    return lower_a in lower_b or lower_b in lower_a


def names_match(name_a: Optional[str], name_b: Optional[str], min_similarity: float) -> bool:
    """Similarity at or above the minimum, or one name contains the other"""
    return name_similarity(name_a, name_b) >= min_similarity or is_substring_match(name_a, name_b)
