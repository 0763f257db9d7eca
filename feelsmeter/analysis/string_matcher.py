"""Fuzzy string matching primitives for artist/song comparison.

All functions are pure and deterministic so they can be tested in isolation
from the rest of the pipeline.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence, Tuple

import jellyfish


@dataclass(frozen=True)
class BestMatch:
    """Winning candidate from :func:`find_best_match`."""

    match: str
    score: float
    index: int


def normalize(text: Optional[str]) -> str:
    """Lowercase, replace punctuation with spaces and collapse whitespace."""
    if not text:
        return ""
    normalized = re.sub(r"[^\w\s]", " ", text.lower())
    return re.sub(r"\s+", " ", normalized).strip()


def similarity_ratio(text1: Optional[str], text2: Optional[str]) -> float:
    """Normalized Levenshtein similarity in [0, 1], case-insensitive."""
    if not text1 or not text2:
        return 0.0

    s1 = text1.lower().strip()
    s2 = text2.lower().strip()
    if s1 == s2:
        return 1.0

    max_len = max(len(s1), len(s2))
    distance = jellyfish.levenshtein_distance(s1, s2)
    return 1.0 - distance / max_len


def fuzzy_match(text1: Optional[str], text2: Optional[str], threshold: float = 0.8) -> bool:
    return similarity_ratio(text1, text2) >= threshold


def find_best_match(
    query: Optional[str], candidates: Optional[Sequence[Optional[str]]], threshold: float = 0.6
) -> Optional[BestMatch]:
    """Linear scan for the most similar candidate.

    Ties keep the first candidate seen. Empty candidates are skipped but keep
    their position in the numbering.
    """
    if not query or not candidates:
        return None

    best_match = None
    best_score = 0.0
    best_index = -1

    for index, candidate in enumerate(candidates):
        if not candidate:
            continue
        score = similarity_ratio(query, candidate)
        if score > best_score:
            best_score = score
            best_match = candidate
            best_index = index

    if best_match is None or best_score < threshold:
        return None
    return BestMatch(match=best_match, score=best_score, index=best_index)


def _field(record: Any, name: str) -> Optional[str]:
    if record is None:
        return None
    if isinstance(record, dict):
        return record.get(name)
    return getattr(record, name, None)


def combined_score(query: Any, candidate: Any) -> float:
    """Mean similarity over the comparable artist/song fields.

    A field missing on both sides is left out of the mean; a field present on
    only one side counts as 0. Records may be mappings or objects exposing
    ``artist`` and ``song``.
    """
    scores = []
    for name in ("artist", "song"):
        q_value = _field(query, name)
        c_value = _field(candidate, name)
        if not q_value and not c_value:
            continue
        scores.append(similarity_ratio(q_value, c_value))

    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def best_candidate(
    query: Any, candidates: Optional[Sequence[Any]], min_score: float = 0.0
) -> Optional[Tuple[Any, float]]:
    """Candidate record with the highest :func:`combined_score`.

    First seen wins ties; None when nothing reaches ``min_score``.
    """
    if not candidates:
        return None

    best = None
    best_score = -1.0
    for candidate in candidates:
        if candidate is None:
            continue
        score = combined_score(query, candidate)
        if score > best_score:
            best, best_score = candidate, score

    if best is None or best_score < min_score:
        return None
    return best, best_score
