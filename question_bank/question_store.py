# question_bank/question_store.py
# Created: 2026-10-04
# Purpose: Ingestion store - dedup-checked, one-at-a-time writes per topic

"""
Ingestion Store

Owns the corpus per topic. Every save() call:

    1. snapshots the topic corpus once (documented race: another process can
       still write a duplicate between the snapshot and our insert)
    2. runs the DuplicateDetector on each candidate against the snapshot plus
       candidates already accepted in this call
    3. writes survivors one at a time, so a uniqueness violation on one
       candidate never aborts its siblings; the violation counts as a duplicate
    4. reports {saved, duplicates, rejected, total}; candidates with blank
       question text are rejected before the detector runs

Persistence is pluggable through QuestionBackend (MongoDB or JSON files).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from question_bank.duplicate_detector import DuplicateDetector, compute_hash
from question_bank.question_models import (
    EXAMPLE_PLACEHOLDER,
    Question,
    SaveResult,
    TopicStats,
    utc_now_iso,
)


logger = logging.getLogger(__name__)


# ============================================================================
# Exceptions
# ============================================================================

class StorageError(Exception):
    """The persistence layer is unreachable or failed mid-call."""
    pass


class DuplicateQuestionError(StorageError):
    """A write hit the (topic, hash) uniqueness constraint."""
    pass


# ============================================================================
# Backend Interface
# ============================================================================

class QuestionBackend(ABC):
    """
    Abstract persistence capability consumed by the IngestionStore.

    insert_one() must enforce (topic, hash) uniqueness and
    raise DuplicateQuestionError on violation.
    """

    def connect(self) -> None:
        pass

    def disconnect(self) -> None:
        pass

    @abstractmethod
    def find_by_topic(self, topic: str) -> List[Question]:
        pass

    @abstractmethod
    def count_by_topic(self, topic: str) -> int:
        pass

    @abstractmethod
    def insert_one(self, question: Question) -> Question:
        pass

    @abstractmethod
    def stats(self) -> Dict[str, TopicStats]:
        pass

    @abstractmethod
    def clear(self) -> int:
        """Delete every stored question; return how many were removed."""
        pass

    def __enter__(self) -> "QuestionBackend":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.disconnect()


# ============================================================================
# Ingestion Store
# ============================================================================

class IngestionStore:
    """Dedup-checked writer over a QuestionBackend."""

    def __init__(
        self,
        backend: QuestionBackend,
        detector: Optional[DuplicateDetector] = None,
        topics: Optional[Iterable[str]] = None,
    ):
        self.backend = backend
        self.detector = detector or DuplicateDetector()
        self.topics = list(topics) if topics is not None else None

    def validate_topic(self, topic: str) -> None:
        if self.topics is not None and topic not in self.topics:
            raise ValueError(f"Unknown topic '{topic}'. Must be one of: {', '.join(self.topics)}")

    def save(self, topic: str, candidates: Iterable[Question]) -> SaveResult:
        """
        Save candidates for *topic*, skipping duplicates.

        Raises:
            ValueError: topic is not in the configured topic set
            StorageError: the backend failed (not raised for duplicates)
        """
        self.validate_topic(topic)
        candidates = list(candidates)
        corpus = self.backend.find_by_topic(topic)

        result = SaveResult()
        accepted: List[Question] = []

        for candidate in candidates:
            if not (candidate.question or "").strip():
                logger.warning(f"Rejected candidate with empty question text (id={candidate.id})")
                result.rejected += 1
                continue

            prepared = replace(candidate, topic=topic)
            prepared.hash = compute_hash(prepared)

            check = self.detector.check(prepared, corpus + accepted)
            if check:
                logger.info(
                    f"{check.reason.capitalize()} duplicate skipped "
                    f"({check.similarity:.2f}): \"{prepared.question[:50]}...\""
                )
                result.duplicates += 1
                continue
            accepted.append(prepared)

        for question in accepted:
            question.saved_at = utc_now_iso()
            if not question.example:
                question.example = EXAMPLE_PLACEHOLDER
            try:
                self.backend.insert_one(question)
                result.saved += 1
            except DuplicateQuestionError:
                logger.warning(f"Skipping question with duplicate hash {question.hash[:16]}: "
                               f"\"{question.question[:100]}\"")
                result.duplicates += 1

        result.total = self.backend.count_by_topic(topic)

        logger.info(f"Saved {result.saved} new questions for {topic} "
                    f"({result.duplicates} duplicates, {result.rejected} rejected, {result.total} total)")
        return result

    # Exposed name for the CLI layer
    ingest = save

    def load(self, topic: str) -> List[Question]:
        return self.backend.find_by_topic(topic)

    def count(self, topic: str) -> int:
        return self.backend.count_by_topic(topic)

    def stats(self) -> Dict[str, Dict[str, int]]:
        """Per-topic totals and difficulty breakdown."""
        by_topic = self.backend.stats()
        for topic in self.topics or []:
            by_topic.setdefault(topic, TopicStats(topic=topic))
        return {topic: s.to_dict() for topic, s in sorted(by_topic.items())}

    def clear(self) -> int:
        return self.backend.clear()


__all__ = [
    "StorageError",
    "DuplicateQuestionError",
    "QuestionBackend",
    "IngestionStore",
]
