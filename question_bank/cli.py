# question_bank/cli.py
# Created: 2026-10-09
# Purpose: Command-line entry point (fetch, recursive, stats, restore, maintenance)

"""
question-bank CLI

Examples:
  # One batch of 10 mixed-difficulty React questions
  question-bank fetch react --count 10

  # Keep fetching until 100 new Python questions are stored
  question-bank recursive python --target 100 --batch-size 20

  # Replay every backup file into the store
  question-bank restore

  # Compare a backup against the stored corpus without writing
  question-bank check-duplicates react_deepseek_mixed_2026-10-09T10-00-00-000000.json
"""

import argparse
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from question_bank.backup import BackupError, BackupManager
from question_bank.config import APP_CONFIG, AppConfig
from question_bank.database_setup import MongoQuestionBackend
from question_bank.duplicate_detector import DuplicateDetector
from question_bank.file_storage import JsonFileQuestionBackend
from question_bank.llm_abstraction import LLMClient
from question_bank.llm_layer import ProviderRouter
from question_bank.log_setup import configure_logging
from question_bank.maintenance import (
    check_backup_duplicates,
    clear_questions,
    migrate_file_store,
    restore_backups,
    validate_migration,
)
from question_bank.question_fetcher import QuestionFetcher
from question_bank.question_store import IngestionStore, QuestionBackend, StorageError
from question_bank.recursive_fetcher import FetchSessionError, RecursiveFetcher


logger = logging.getLogger(__name__)


# =======================
# Wiring
# =======================

def build_backend(config: AppConfig) -> QuestionBackend:
    if config.storage_backend == "file":
        return JsonFileQuestionBackend(Path(config.file_store.data_dir))
    return MongoQuestionBackend(config.database)


def build_store(config: AppConfig, backend: QuestionBackend) -> IngestionStore:
    return IngestionStore(
        backend,
        detector=DuplicateDetector(config.dedup.similarity_threshold),
        topics=config.topics,
    )


def build_fetcher(config: AppConfig, model: str) -> QuestionFetcher:
    client = LLMClient(
        ProviderRouter(config.providers),
        config.llm_profiles,
        config.retry,
        debug=config.debug_mode,
    )
    return QuestionFetcher(client, profile=model)


# =======================
# Commands
# =======================

def cmd_fetch(args, config: AppConfig, backend: QuestionBackend) -> int:
    store = build_store(config, backend)
    fetcher = build_fetcher(config, args.model)

    questions = fetcher.fetch_batch(args.topic, args.count, args.difficulty)
    if not questions:
        print("No questions fetched.")
        return 1

    BackupManager(Path(config.backup.directory)).persist(
        args.topic, questions, model=args.model, difficulty=args.difficulty
    )
    result = store.save(args.topic, questions)
    print(f"Fetched {len(questions)} | saved {result.saved} | "
          f"duplicates {result.duplicates} | total {result.total}")
    return 0


def cmd_recursive(args, config: AppConfig, backend: QuestionBackend) -> int:
    store = build_store(config, backend)
    fetcher = build_fetcher(config, args.model)
    controller = RecursiveFetcher(fetcher.fetch_batch, store, config.fetch)

    bar = tqdm(total=args.target, desc=f"Fetching {args.topic}", unit="q")

    def on_progress(progress):
        bar.n = progress["current"]
        bar.set_postfix(duplicates=progress["stats"]["totalDuplicates"])
        bar.refresh()

    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: controller.stop())
    try:
        final = controller.start(
            args.topic,
            args.target,
            difficulty=args.difficulty,
            batch_size=args.batch_size,
            on_progress=on_progress,
        )
    except FetchSessionError as e:
        print(f"Cannot start session: {e}")
        return 2
    finally:
        signal.signal(signal.SIGINT, previous_handler)
        bar.close()

    if controller.fetched:
        BackupManager(Path(config.backup.directory)).persist(
            args.topic, controller.fetched, model=args.model, difficulty=args.difficulty,
            metadata={"session": final.state.value},
        )

    summary = final.to_dict()
    print(f"Session {summary['state']}: {summary['finalSaved']}/{summary['targetCount']} saved "
          f"({summary['progressPercent']}%) in {summary['durationMinutes']} min")
    print(f"Batches {summary['stats']['batchesCompleted']} | fetched {summary['stats']['totalFetched']} | "
          f"duplicates {summary['stats']['totalDuplicates']}")
    return 0 if final.success else 1


def cmd_stats(args, config: AppConfig, backend: QuestionBackend) -> int:
    stats = build_store(config, backend).stats()
    for topic, s in stats.items():
        print(f"{topic}: {s['total']} questions "
              f"({s['easy']} easy, {s['medium']} medium, {s['hard']} hard)")
    return 0


def cmd_restore(args, config: AppConfig, backend: QuestionBackend) -> int:
    backups = BackupManager(Path(config.backup.directory))
    if not backups.list():
        print("No backup files found.")
        return 0

    report = restore_backups(
        build_store(config, backend),
        backups,
        filenames=args.files or None,
        purge_days=args.purge_days,
        show_progress=True,
    )
    for entry in report.files:
        status = f"error: {entry.error}" if entry.error else \
            f"restored {entry.restored}, skipped {entry.skipped}, rejected {entry.rejected}"
        print(f"{entry.filename}: {status}")
    print(f"Total restored {report.total_restored} | duplicates skipped {report.total_skipped} | "
          f"files {len(report.files)}")
    if args.purge_days is not None:
        print(f"Cleaned up {report.purged} old backup files")
    return 1 if any(entry.error for entry in report.files) else 0


def cmd_backups(args, config: AppConfig, backend: Optional[QuestionBackend] = None) -> int:
    stats = BackupManager(Path(config.backup.directory)).stats()
    if not stats:
        print("No backup files found.")
        return 0
    for stat in stats.values():
        print(f"{stat['topic']} ({stat['model']}): {stat['totalQuestions']} questions "
              f"in {len(stat['files'])} files")
    return 0


def cmd_cleanup_backups(args, config: AppConfig, backend: Optional[QuestionBackend] = None) -> int:
    days = args.days if args.days is not None else config.backup.retention_days
    deleted = BackupManager(Path(config.backup.directory)).purge_older_than(days)
    print(f"Cleaned up {deleted} backup files older than {days} days")
    return 0


def cmd_check_duplicates(args, config: AppConfig, backend: QuestionBackend) -> int:
    backups = BackupManager(Path(config.backup.directory))
    try:
        backup = backups.load(backups.resolve(args.file))
    except BackupError as e:
        print(str(e))
        return 1

    report = check_backup_duplicates(
        backup, backend, DuplicateDetector(config.dedup.similarity_threshold)
    )
    for entry in report.entries:
        if entry.status == "unique":
            print(f"UNIQUE    {entry.question[:60]}")
        else:
            print(f"{entry.status.upper():<9} {entry.question[:60]} "
                  f"({round(entry.similarity * 100)}% vs \"{(entry.match or '')[:40]}\")")
    summary = report.summary()
    print(f"Checked {summary['checked']} | duplicates {summary['duplicates']} | "
          f"unique {summary['unique']} | duplicate rate {summary['duplicateRate']}%")
    return 0


def cmd_migrate(args, config: AppConfig, backend: QuestionBackend) -> int:
    source = JsonFileQuestionBackend(Path(args.data_dir or config.file_store.data_dir))
    if args.validate:
        for topic, counts in validate_migration(source, backend).items():
            print(f"{topic}: JSON={counts['json']}, target={counts['target']}")
        return 0

    results = migrate_file_store(source, build_store(config, backend), show_progress=True)
    for topic, result in results.items():
        print(f"{topic}: {result.saved} migrated, {result.duplicates} skipped")
    return 0


def cmd_clear(args, config: AppConfig, backend: QuestionBackend) -> int:
    if not args.yes:
        print("Refusing to clear without --yes")
        return 2
    deleted = clear_questions(build_store(config, backend))
    print(f"Deleted {deleted} questions")
    return 0


# Commands that never touch the question store
STORELESS = {cmd_backups, cmd_cleanup_backups}


# =======================
# Argument Parsing
# =======================

def build_parser(config: AppConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="question-bank",
        description="Fetch AI-generated interview questions and store them without duplicates.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("--log-level", default=config.log_level,
                        help=f"Console log level (default: {config.log_level})")
    sub = parser.add_subparsers(dest="command", required=True)

    def add_fetch_options(p):
        p.add_argument("topic", choices=config.topics)
        p.add_argument("--difficulty", choices=config.difficulties, default="mixed")
        p.add_argument("--model", choices=sorted(config.llm_profiles), default=config.default_profile)

    p = sub.add_parser("fetch", help="Fetch one batch, back it up and store it")
    add_fetch_options(p)
    p.add_argument("--count", type=int, choices=config.question_counts, default=5)
    p.set_defaults(func=cmd_fetch)

    p = sub.add_parser("recursive", help="Fetch batches until TARGET new questions are stored")
    add_fetch_options(p)
    p.add_argument("--target", type=int, required=True)
    p.add_argument("--batch-size", type=int, choices=config.fetch.batch_sizes,
                   default=config.fetch.default_batch_size)
    p.set_defaults(func=cmd_recursive)

    p = sub.add_parser("stats", help="Per-topic question counts")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("restore", help="Re-ingest backup files")
    p.add_argument("files", nargs="*", help="Backup filenames (default: all)")
    p.add_argument("--purge-days", type=int, default=None,
                   help="Afterwards delete backups older than this many days")
    p.set_defaults(func=cmd_restore)

    p = sub.add_parser("backups", help="Summarize backup files")
    p.set_defaults(func=cmd_backups)

    p = sub.add_parser("cleanup-backups", help="Delete old backup files")
    p.add_argument("--days", type=int, default=None,
                   help=f"Age threshold in days (default: {config.backup.retention_days})")
    p.set_defaults(func=cmd_cleanup_backups)

    p = sub.add_parser("check-duplicates", help="Compare a backup against the stored corpus")
    p.add_argument("file")
    p.set_defaults(func=cmd_check_duplicates)

    p = sub.add_parser("migrate", help="Copy the JSON file store into MongoDB")
    p.add_argument("--data-dir", default=None)
    p.add_argument("--validate", action="store_true", help="Only compare counts")
    p.set_defaults(func=cmd_migrate, backend="mongo")

    p = sub.add_parser("clear", help="Delete every stored question")
    p.add_argument("--yes", action="store_true")
    p.set_defaults(func=cmd_clear)

    return parser


def main(argv: Optional[List[str]] = None, config: AppConfig = APP_CONFIG) -> int:
    parser = build_parser(config)
    args = parser.parse_args(argv)
    configure_logging(args.log_level, config.log_file)

    if args.func in STORELESS:
        return args.func(args, config)

    if getattr(args, "backend", None) == "mongo":
        backend = MongoQuestionBackend(config.database)
    else:
        backend = build_backend(config)

    try:
        with backend:
            return args.func(args, config, backend)
    except StorageError as e:
        logger.error(f"Storage error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
