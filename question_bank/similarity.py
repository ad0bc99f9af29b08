# question_bank/similarity.py
# Created: 2026-10-02
# Purpose: Normalized edit-distance similarity between question texts

"""
Similarity Engine

Levenshtein distance normalized by the longer string:

    similarity(a, b) = 1 - distance(a, b) / max(len(a), len(b))

Two empty strings are identical (1.0). Callers are responsible for case and
whitespace normalization before calling in.
"""

from rapidfuzz.distance import Levenshtein


def levenshtein_distance(a: str, b: str) -> int:
    """Return the classic (unit cost) edit distance between two strings."""
    return Levenshtein.distance(a, b)


def similarity(a: str, b: str) -> float:
    """Return the normalized similarity of two strings in [0, 1]."""
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / longest


__all__ = ["levenshtein_distance", "similarity"]
