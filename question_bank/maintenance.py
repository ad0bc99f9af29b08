# question_bank/maintenance.py
# Created: 2026-10-08
# Purpose: Restore, duplicate report, file-store migration and clearing

"""
Maintenance operations behind the CLI subcommands.

Every write goes through IngestionStore.save(), so restores and migrations
get the same dedup guarantees as a live fetch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from tqdm import tqdm

from question_bank.backup import BackupError, BackupFile, BackupManager
from question_bank.duplicate_detector import DuplicateDetector, compute_hash
from question_bank.file_storage import JsonFileQuestionBackend
from question_bank.question_models import SaveResult
from question_bank.question_store import IngestionStore, QuestionBackend, StorageError


logger = logging.getLogger(__name__)


# =======================
# Restore
# =======================

@dataclass
class FileRestoreResult:
    filename: str
    topic: Optional[str] = None
    found: int = 0
    restored: int = 0
    skipped: int = 0
    rejected: int = 0
    error: Optional[str] = None


@dataclass
class RestoreReport:
    files: List[FileRestoreResult] = field(default_factory=list)
    purged: int = 0

    @property
    def total_restored(self) -> int:
        return sum(f.restored for f in self.files)

    @property
    def total_skipped(self) -> int:
        return sum(f.skipped for f in self.files)


def restore_backups(
    store: IngestionStore,
    backups: BackupManager,
    filenames: Optional[Iterable[str]] = None,
    purge_days: Optional[int] = None,
    show_progress: bool = False,
) -> RestoreReport:
    """
    Re-ingest backup files (all of them when *filenames* is None).

    A file that cannot be read, has no topic, or names an unknown topic is
    reported and skipped; the remaining files are still processed.
    """
    paths = [backups.resolve(name) for name in filenames] if filenames else backups.list()
    report = RestoreReport()

    for path in tqdm(paths, desc="Restoring backups", disable=not show_progress):
        entry = FileRestoreResult(filename=Path(path).name)
        report.files.append(entry)

        try:
            backup = backups.load(path)
        except BackupError as e:
            logger.error(str(e))
            entry.error = str(e)
            continue

        entry.found = len(backup.questions)
        if not backup.questions:
            logger.warning(f"No questions found in {entry.filename}")
            continue

        entry.topic = backup.topic
        if not entry.topic:
            entry.error = "no topic in metadata or questions"
            logger.error(f"Skipping {entry.filename}: {entry.error}")
            continue

        try:
            result = store.save(entry.topic, backup.questions)
        except (ValueError, StorageError) as e:
            logger.error(f"Error processing {entry.filename}: {e}")
            entry.error = str(e)
            continue

        entry.restored = result.saved
        entry.skipped = result.duplicates
        entry.rejected = result.rejected
        logger.info(f"{entry.filename}: restored {result.saved}, skipped {result.duplicates} duplicates")

    if purge_days is not None:
        report.purged = backups.purge_older_than(purge_days)

    logger.info(f"Restore finished: {report.total_restored} restored, "
                f"{report.total_skipped} duplicates skipped, {len(report.files)} files")
    return report


# =======================
# Duplicate Report
# =======================

@dataclass
class DuplicateEntry:
    question: str
    hash: str
    difficulty: str
    status: str  # "exact" | "fuzzy" | "unique"
    similarity: float = 0.0
    match: Optional[str] = None


@dataclass
class DuplicateReport:
    topic: str
    existing: int
    entries: List[DuplicateEntry] = field(default_factory=list)

    @property
    def duplicates(self) -> int:
        return sum(1 for e in self.entries if e.status != "unique")

    @property
    def unique(self) -> int:
        return sum(1 for e in self.entries if e.status == "unique")

    @property
    def duplicate_rate(self) -> int:
        return round(self.duplicates / len(self.entries) * 100) if self.entries else 0

    def summary(self) -> Dict[str, Any]:
        return {
            "topic": self.topic,
            "checked": len(self.entries),
            "duplicates": self.duplicates,
            "unique": self.unique,
            "duplicateRate": self.duplicate_rate,
        }


def check_backup_duplicates(
    backup: BackupFile,
    backend: QuestionBackend,
    detector: Optional[DuplicateDetector] = None,
) -> DuplicateReport:
    """Classify every question in *backup* against the stored corpus. Read-only."""
    detector = detector or DuplicateDetector()
    topic = backup.topic
    if not topic:
        raise ValueError(f"Backup {backup.path.name} has no topic")

    corpus = backend.find_by_topic(topic)
    report = DuplicateReport(topic=topic, existing=len(corpus))

    for question in backup.questions:
        question = replace(question, topic=topic, hash=None)
        check = detector.check(question, corpus)
        report.entries.append(DuplicateEntry(
            question=question.question,
            hash=compute_hash(question),
            difficulty=question.difficulty.value,
            status=check.reason if check else "unique",
            similarity=check.similarity,
            match=check.match.question if check.match else None,
        ))

    return report


# =======================
# Migration
# =======================

def migrate_file_store(
    source: JsonFileQuestionBackend,
    target: IngestionStore,
    show_progress: bool = False,
) -> Dict[str, SaveResult]:
    """Copy every topic file of a JSON store into *target* through save()."""
    results: Dict[str, SaveResult] = {}
    topics = source.topics()
    logger.info(f"Found {len(topics)} data files to migrate")

    for topic in tqdm(topics, desc="Migrating topics", disable=not show_progress):
        questions = source.find_by_topic(topic)
        logger.info(f"Migrating {topic}: {len(questions)} questions")
        try:
            results[topic] = target.save(topic, questions)
        except ValueError as e:
            logger.error(f"Skipping {topic}: {e}")
            continue

    migrated = sum(r.saved for r in results.values())
    skipped = sum(r.duplicates for r in results.values())
    logger.info(f"Migration completed: {migrated} migrated, {skipped} duplicates skipped")
    return results


def validate_migration(source: JsonFileQuestionBackend, target: QuestionBackend) -> Dict[str, Dict[str, int]]:
    """Per-topic counts in the JSON store next to the target backend."""
    return {
        topic: {"json": source.count_by_topic(topic), "target": target.count_by_topic(topic)}
        for topic in source.topics()
    }


# =======================
# Clearing
# =======================

def clear_questions(store: IngestionStore) -> int:
    deleted = store.clear()
    logger.info(f"Deleted {deleted} questions")
    return deleted


__all__ = [
    "FileRestoreResult",
    "RestoreReport",
    "restore_backups",
    "DuplicateEntry",
    "DuplicateReport",
    "check_backup_duplicates",
    "migrate_file_store",
    "validate_migration",
    "clear_questions",
]
