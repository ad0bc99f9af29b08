# question_bank/backup.py
# Created: 2026-10-06
# Purpose: Timestamped JSON backups of fetched question batches

"""
Backup files are the safety net in front of the store: every fetched batch is
written to disk before it is ingested, so a failed save can be replayed with
`question-bank restore`.

File shape:

    {
      "metadata": {"topic", "model", "difficulty", "timestamp", "count", "source"},
      "questions": [ {question dict}, ... ]
    }

Filename: {topic}_{model}_{difficulty}_{timestamp}.json
"""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from question_bank.question_models import MIXED_DIFFICULTY, Question


logger = logging.getLogger(__name__)

BACKUP_SOURCE = "AI API"


class BackupError(Exception):
    """A backup file could not be written or read."""
    pass


@dataclass
class BackupFile:
    """A loaded backup: metadata plus its question records."""

    path: Path
    metadata: Dict[str, Any] = field(default_factory=dict)
    questions: List[Question] = field(default_factory=list)

    @property
    def topic(self) -> Optional[str]:
        """Topic from metadata, falling back to the first question."""
        topic = self.metadata.get("topic")
        if not topic and self.questions:
            topic = self.questions[0].topic
        return topic or None


def _safe(part: str) -> str:
    return str(part).replace("/", "-").replace(" ", "_")


class BackupManager:
    """Write, list, load and expire backup files in one directory."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def ensure_directory(self) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)

    def persist(
        self,
        topic: str,
        questions: Iterable[Question],
        model: str,
        difficulty: str = MIXED_DIFFICULTY,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Path:
        """Write *questions* to a new backup file and return its path."""
        questions = list(questions)
        now = datetime.now(timezone.utc)
        stamp = now.strftime("%Y-%m-%dT%H-%M-%S-%f")
        filename = f"{_safe(topic)}_{_safe(model)}_{_safe(difficulty)}_{stamp}.json"
        filepath = self.directory / filename

        record = {
            "metadata": {
                "topic": topic,
                "model": model,
                "difficulty": difficulty,
                "timestamp": now.isoformat(),
                "count": len(questions),
                "source": BACKUP_SOURCE,
                **(metadata or {}),
            },
            "questions": [q.to_dict() for q in questions],
        }

        try:
            self.ensure_directory()
            with open(filepath, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, ensure_ascii=False, default=str)
        except OSError as e:
            logger.error(f"Error saving backup: {e}")
            raise BackupError(f"Cannot write backup {filepath}: {e}") from e

        logger.info(f"Backup saved: {filename}")
        return filepath

    def list(self) -> List[Path]:
        """Backup files, oldest name first."""
        if not self.directory.exists():
            return []
        return sorted(self.directory.glob("*.json"))

    def resolve(self, name: str) -> Path:
        """Accept a bare filename (looked up in the backup directory) or a path."""
        path = Path(name)
        if not path.exists() and (self.directory / name).exists():
            path = self.directory / name
        return path

    def load(self, path: Path) -> BackupFile:
        """
        Read one backup file.

        A bare list of questions (older backups) is accepted with empty metadata.

        Raises:
            BackupError: unreadable or malformed file
        """
        path = Path(path)
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            raise BackupError(f"Cannot load backup {path.name}: {e}") from e

        if isinstance(data, list):
            metadata, raw_questions = {}, data
        elif isinstance(data, dict):
            metadata = data.get("metadata") or {}
            raw_questions = data.get("questions") or []
        else:
            raise BackupError(f"Unexpected backup format in {path.name}")

        questions = [Question.from_dict(q) for q in raw_questions if isinstance(q, dict)]
        return BackupFile(path=path, metadata=metadata, questions=questions)

    def purge_older_than(self, days: int, now: Optional[float] = None) -> int:
        """Delete backups whose modification time is more than *days* old."""
        cutoff = (now if now is not None else time.time()) - days * 86400
        deleted = 0
        for path in self.list():
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    deleted += 1
                    logger.info(f"Deleted old backup: {path.name}")
            except OSError as e:
                logger.warning(f"Could not remove {path.name}: {e}")

        if deleted:
            logger.info(f"Cleaned up {deleted} old backup files")
        return deleted

    def stats(self) -> Dict[str, Dict[str, Any]]:
        """Per topic/model totals across all readable backups."""
        stats: Dict[str, Dict[str, Any]] = {}
        for path in self.list():
            try:
                backup = self.load(path)
            except BackupError as e:
                logger.warning(str(e))
                continue

            meta = backup.metadata
            topic = backup.topic or "unknown"
            model = meta.get("model", "unknown")
            count = meta.get("count", len(backup.questions))

            entry = stats.setdefault(f"{topic}_{model}", {
                "topic": topic,
                "model": model,
                "totalQuestions": 0,
                "files": [],
            })
            entry["totalQuestions"] += count
            entry["files"].append({
                "filename": path.name,
                "count": count,
                "timestamp": meta.get("timestamp"),
                "difficulty": meta.get("difficulty"),
            })
        return stats


__all__ = ["BACKUP_SOURCE", "BackupError", "BackupFile", "BackupManager"]
