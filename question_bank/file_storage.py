# question_bank/file_storage.py
# Created: 2026-10-05
# Purpose: JSON file question backend (one file per topic + global hash index)

"""
File-based question backend.

Layout under the data directory:

    <topic>.json   list of question dicts for the topic
    hashes.json    {topic: {hash: {id, savedAt}}} index of every stored hash

The hash index is the uniqueness constraint: insert_one() refuses a hash that
is already indexed for the same topic.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from question_bank.question_models import Question, TopicStats
from question_bank.question_store import DuplicateQuestionError, QuestionBackend, StorageError


logger = logging.getLogger(__name__)

HASHES_FILE = "hashes.json"


class JsonFileQuestionBackend(QuestionBackend):
    """Questions persisted as JSON files in *data_dir*."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.hashes_file = self.data_dir / HASHES_FILE

    def connect(self) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Cannot create data directory {self.data_dir}: {e}") from e

    def _topic_file(self, topic: str) -> Path:
        return self.data_dir / f"{topic}.json"

    def _read(self, path: Path, default: Any) -> Any:
        if not path.exists():
            return default
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise StorageError(f"Corrupt store file {path}: {e}") from e
        except OSError as e:
            raise StorageError(f"Cannot read {path}: {e}") from e

    def _write(self, path: Path, content: Any) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(".tmp")
            tmp.write_text(json.dumps(content, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"Cannot write {path}: {e}") from e

    def load_hashes(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        return self._read(self.hashes_file, {})

    def topics(self) -> List[str]:
        if not self.data_dir.exists():
            return []
        return sorted(p.stem for p in self.data_dir.glob("*.json") if p.name != HASHES_FILE)

    def find_by_topic(self, topic: str) -> List[Question]:
        docs = self._read(self._topic_file(topic), [])
        questions = [Question.from_dict(doc) for doc in docs]
        questions.sort(key=lambda q: q.saved_at or "", reverse=True)
        return questions

    def count_by_topic(self, topic: str) -> int:
        return len(self._read(self._topic_file(topic), []))

    def insert_one(self, question: Question) -> Question:
        """
        Append *question* to its topic file, then record its hash.

        The topic file is checked as well as hashes.json, so a record written
        without its index entry still blocks a second insert of the same hash.
        """
        hashes = self.load_hashes()
        topic_hashes = hashes.setdefault(question.topic, {})
        path = self._topic_file(question.topic)
        docs = self._read(path, [])

        if question.hash in topic_hashes or any(doc.get("hash") == question.hash for doc in docs):
            raise DuplicateQuestionError(f"Duplicate hash {question.hash} in {question.topic}")

        docs.append(question.to_dict())
        topic_hashes[question.hash] = {
            "id": question.id,
            "savedAt": question.saved_at,
        }
        self._write(path, docs)
        self._write(self.hashes_file, hashes)
        return question

    def stats(self) -> Dict[str, TopicStats]:
        result: Dict[str, TopicStats] = {}
        for topic in self.topics():
            stats = TopicStats(topic=topic)
            for question in self.find_by_topic(topic):
                stats.total += 1
                level = question.difficulty.value
                setattr(stats, level, getattr(stats, level) + 1)
            result[topic] = stats
        return result

    def clear(self) -> int:
        deleted = 0
        for topic in self.topics():
            deleted += self.count_by_topic(topic)
            self._topic_file(topic).unlink()
        if self.hashes_file.exists():
            self.hashes_file.unlink()
        logger.info(f"Deleted {deleted} questions from {self.data_dir}")
        return deleted


__all__ = ["JsonFileQuestionBackend", "HASHES_FILE"]
