# question_bank/question_models.py
# Created: 2026-10-02
# Purpose: Data models for interview questions and ingestion results

"""
Question Models - Type-safe internal representations with dict serialization.

Pattern: "Dataclasses internally, dicts externally". Mongo documents and backup
files both use the dict form produced by Question.to_dict().
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


# ============================================================================
# Enums
# ============================================================================

class Difficulty(Enum):
    """Concrete difficulty pinned on every stored question."""
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"

    @classmethod
    def coerce(cls, value: Any, default: "Difficulty" = None) -> "Difficulty":
        """Map loose model output onto a difficulty, falling back to *default*."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return default or cls.MEDIUM


MIXED_DIFFICULTY = "mixed"
EXAMPLE_PLACEHOLDER = "No example provided"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ============================================================================
# Data Models
# ============================================================================

@dataclass
class Question:
    """Interview question (internal representation)."""

    id: str
    question: str
    topic: str
    difficulty: Difficulty = Difficulty.MEDIUM
    tags: List[str] = field(default_factory=lambda: ["general"])
    example: str = ""
    options: List[str] = field(default_factory=list)
    answer: str = ""
    timestamp: str = field(default_factory=utc_now_iso)

    # Set by the store
    hash: Optional[str] = None
    saved_at: Optional[str] = None

    @property
    def text(self) -> str:
        return self.question

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "question": self.question,
            "difficulty": self.difficulty.value,
            "topic": self.topic,
            "tags": list(self.tags),
            "example": self.example,
            "options": list(self.options),
            "answer": self.answer,
            "timestamp": self.timestamp,
        }
        if self.hash is not None:
            data["hash"] = self.hash
        if self.saved_at is not None:
            data["savedAt"] = self.saved_at
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Question":
        """Rebuild a question from a stored document or backup entry."""
        tags = data.get("tags")
        options = data.get("options")
        return cls(
            id=str(data.get("id") or data.get("_id") or ""),
            question=str(data.get("question", "")),
            topic=str(data.get("topic", "")),
            difficulty=Difficulty.coerce(data.get("difficulty")),
            tags=[str(t) for t in tags] if isinstance(tags, list) else ["general"],
            example=str(data.get("example") or ""),
            options=[str(o) for o in options] if isinstance(options, list) else [],
            answer=str(data.get("answer") or ""),
            timestamp=str(data.get("timestamp") or utc_now_iso()),
            hash=data.get("hash"),
            saved_at=_as_iso(data.get("savedAt")),
        )


def _as_iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


@dataclass
class SaveResult:
    """Outcome of one IngestionStore.save() call."""

    saved: int = 0
    duplicates: int = 0
    rejected: int = 0
    total: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "saved": self.saved,
            "duplicates": self.duplicates,
            "rejected": self.rejected,
            "total": self.total,
        }


@dataclass
class TopicStats:
    """Per-topic corpus counts."""

    topic: str
    total: int = 0
    easy: int = 0
    medium: int = 0
    hard: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {"total": self.total, "easy": self.easy, "medium": self.medium, "hard": self.hard}


__all__ = [
    "Difficulty",
    "MIXED_DIFFICULTY",
    "EXAMPLE_PLACEHOLDER",
    "Question",
    "SaveResult",
    "TopicStats",
    "utc_now_iso",
]
