# question_bank/duplicate_detector.py
# Created: 2026-10-03
# Purpose: Exact-hash and fuzzy duplicate detection against a topic corpus

"""
Duplicate Detector

Two-stage check, per topic only:

    1. exact  - identical content hash (question + answer, normalized)
    2. fuzzy  - lower-cased question similarity above the threshold

The check is a best-effort pre-filter. The persistence layer still enforces
hash uniqueness, so a candidate that slips through a concurrent writer is
rejected at insert time instead.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from question_bank.question_models import Question
from question_bank.similarity import similarity


logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.85


def compute_hash(question: Question) -> str:
    """SHA-256 over the lower-cased, trimmed question text and answer."""
    content = f"{question.question.lower().strip()}_{question.answer.lower().strip()}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


@dataclass
class DuplicateCheck:
    """Result of checking one candidate."""

    is_duplicate: bool
    reason: Optional[str] = None  # "exact" | "fuzzy"
    similarity: float = 0.0
    match: Optional[Question] = None

    def __bool__(self) -> bool:
        return self.is_duplicate


class DuplicateDetector:
    """Decides whether a candidate duplicates an existing question of its topic."""

    def __init__(self, threshold: float = DEFAULT_SIMILARITY_THRESHOLD):
        self.threshold = threshold

    def check(self, candidate: Question, corpus: Iterable[Question]) -> DuplicateCheck:
        same_topic = [q for q in corpus if q.topic == candidate.topic]
        candidate_hash = candidate.hash or compute_hash(candidate)

        for existing in same_topic:
            if (existing.hash or compute_hash(existing)) == candidate_hash:
                return DuplicateCheck(True, reason="exact", similarity=1.0, match=existing)

        text = candidate.question.lower()
        for existing in same_topic:
            score = similarity(text, existing.question.lower())
            if score > self.threshold:
                return DuplicateCheck(True, reason="fuzzy", similarity=score, match=existing)

        return DuplicateCheck(False)

    def is_duplicate(self, candidate: Question, corpus: Iterable[Question]) -> bool:
        return self.check(candidate, corpus).is_duplicate


__all__ = [
    "DEFAULT_SIMILARITY_THRESHOLD",
    "DuplicateCheck",
    "DuplicateDetector",
    "compute_hash",
]
