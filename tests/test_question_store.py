import json

import pytest
from pymongo.errors import AutoReconnect

from question_bank.duplicate_detector import DuplicateDetector, compute_hash
from question_bank.file_storage import JsonFileQuestionBackend
from question_bank.question_models import EXAMPLE_PLACEHOLDER, Difficulty
from question_bank.question_store import DuplicateQuestionError, IngestionStore, StorageError


TOPICS = ["javascript", "typescript", "nodejs", "sql", "react", "python"]
BASE = "abcdefghijklmnopqrst"
NINETY_PERCENT = "abcdefghijklmnopqrxy"
EIGHTY_PERCENT = "abcdefghijklmnopwxyz"


class StaleSnapshotBackend:
    """Wraps a backend so the pre-write snapshot misses a concurrent writer's record."""

    def __init__(self, inner):
        self.inner = inner

    def find_by_topic(self, topic):
        return []

    def __getattr__(self, name):
        return getattr(self.inner, name)


class TestSave:
    def test_same_candidate_twice(self, store, make_question):
        first = store.save("react", [make_question("What is JSX?", answer="A")])
        second = store.save("react", [make_question("What is JSX?", answer="A")])

        assert (first.saved, first.duplicates, first.total) == (1, 0, 1)
        assert (second.saved, second.duplicates, second.total) == (0, 1, 1)

    def test_intra_batch_duplicates(self, store, make_question):
        result = store.save("react", [
            make_question("What is JSX?", answer="A"),
            make_question("what is jsx?", answer="a"),
            make_question(BASE),
            make_question(NINETY_PERCENT),
        ])
        assert result.to_dict() == {"saved": 2, "duplicates": 2, "rejected": 0, "total": 2}

    def test_ninety_percent_rephrasing_rejected(self, store, make_question):
        store.save("react", [make_question(BASE)])
        result = store.save("react", [make_question(NINETY_PERCENT)])
        assert (result.saved, result.duplicates) == (0, 1)

    def test_eighty_percent_rephrasing_accepted(self, store, make_question):
        store.save("react", [make_question(BASE)])
        result = store.save("react", [make_question(EIGHTY_PERCENT)])
        assert (result.saved, result.duplicates, result.total) == (1, 0, 2)

    def test_duplicate_in_other_topic_does_not_block(self, store, make_question):
        store.save("react", [make_question("What is a closure?", answer="A")])
        result = store.save("javascript", [make_question("What is a closure?", answer="A")])
        assert (result.saved, result.duplicates, result.total) == (1, 0, 1)

    def test_unknown_topic_rejected_before_writes(self, store, backend, make_question):
        with pytest.raises(ValueError):
            store.save("cobol", [make_question("Q", topic="cobol")])
        assert backend.count_by_topic("cobol") == 0

    def test_persisted_fields(self, store, make_question):
        candidate = make_question("What is a hook?", answer="B", topic="python", difficulty=Difficulty.HARD)
        store.save("react", [candidate])

        [stored] = store.load("react")
        assert stored.topic == "react"
        assert stored.hash == compute_hash(stored)
        assert stored.saved_at is not None
        assert stored.example == EXAMPLE_PLACEHOLDER
        assert stored.difficulty is Difficulty.HARD

        # caller's candidate is left untouched
        assert candidate.topic == "python"
        assert candidate.hash is None

    def test_late_uniqueness_violation_counts_as_duplicate(self, backend, make_question):
        racer = make_question("What is a closure?", answer="A")
        racer.hash = compute_hash(racer)
        racer.saved_at = "2026-01-01T00:00:00+00:00"
        backend.insert_one(racer)

        store = IngestionStore(StaleSnapshotBackend(backend), DuplicateDetector(), topics=TOPICS)
        result = store.save("react", [
            make_question("What is a closure?", answer="A"),
            make_question("Explain the virtual DOM", answer="B"),
        ])

        assert (result.saved, result.duplicates, result.total) == (1, 1, 2)

    def test_blank_question_text_rejected(self, store, make_question):
        result = store.save("sql", [
            make_question(""),
            make_question("   \n"),
            make_question("What is a JOIN?"),
        ])

        assert (result.saved, result.duplicates, result.rejected, result.total) == (1, 0, 2, 1)
        assert [q.question for q in store.load("sql")] == ["What is a JOIN?"]

    def test_ingest_alias(self, store, make_question):
        assert store.ingest("sql", [make_question("What is a JOIN?")]).saved == 1

    def test_empty_candidates(self, store):
        assert store.save("sql", []).to_dict() == {"saved": 0, "duplicates": 0, "rejected": 0, "total": 0}


class TestStats:
    def test_breakdown_by_difficulty(self, store, make_question):
        store.save("react", [
            make_question("What is JSX?", difficulty=Difficulty.EASY),
            make_question("Explain reconciliation", difficulty=Difficulty.HARD),
            make_question("What does useMemo cache?", difficulty=Difficulty.HARD),
        ])
        stats = store.stats()

        assert stats["react"] == {"total": 3, "easy": 1, "medium": 0, "hard": 2}
        assert stats["python"] == {"total": 0, "easy": 0, "medium": 0, "hard": 0}
        assert list(stats) == sorted(TOPICS)

    def test_clear(self, store, make_question):
        store.save("react", [make_question("What is JSX?"), make_question("Explain reconciliation")])
        assert store.clear() == 2
        assert store.count("react") == 0


class TestMongoBackend:
    def test_indexes_created(self, mongo_backend, fake_collection):
        unique = [kwargs for keys, kwargs in fake_collection.indexes if kwargs.get("unique")]
        assert unique == [{"unique": True, "name": "topic_hash_unique"}]

    def test_connection_failure_raised_as_storage_error(self, mongo_backend, fake_collection, make_question):
        store = IngestionStore(mongo_backend, topics=TOPICS)
        fake_collection.error = AutoReconnect("connection reset")
        with pytest.raises(StorageError):
            store.save("react", [make_question("Q")])

    def test_find_by_topic_newest_first(self, mongo_backend, make_question):
        for i, saved_at in enumerate(["2026-01-01", "2026-03-01", "2026-02-01"]):
            question = make_question(f"question {i}")
            question.hash = compute_hash(question)
            question.saved_at = saved_at
            mongo_backend.insert_one(question)

        assert [q.saved_at for q in mongo_backend.find_by_topic("react")] == [
            "2026-03-01", "2026-02-01", "2026-01-01"
        ]

    def test_find_by_hash(self, mongo_backend, make_question):
        question = make_question("What is JSX?")
        question.hash = compute_hash(question)
        mongo_backend.insert_one(question)

        assert mongo_backend.find_by_hash(question.hash).question == "What is JSX?"
        assert mongo_backend.find_by_hash("0" * 64) is None


class TestFileBackend:
    def test_layout(self, file_backend, make_question):
        store = IngestionStore(file_backend, topics=TOPICS)
        store.save("react", [make_question("What is JSX?")])

        assert (file_backend.data_dir / "react.json").exists()
        hashes = json.loads((file_backend.data_dir / "hashes.json").read_text())
        assert list(hashes) == ["react"]
        assert len(hashes["react"]) == 1
        assert file_backend.topics() == ["react"]

    def test_corrupt_file_raises_storage_error(self, file_backend):
        (file_backend.data_dir / "react.json").write_text("{not json")
        with pytest.raises(StorageError):
            file_backend.find_by_topic("react")

    def test_reopened_store_sees_existing_corpus(self, tmp_path, make_question):
        IngestionStore(JsonFileQuestionBackend(tmp_path), topics=TOPICS).save(
            "sql", [make_question("What is a JOIN?")]
        )
        result = IngestionStore(JsonFileQuestionBackend(tmp_path), topics=TOPICS).save(
            "sql", [make_question("What is a JOIN?")]
        )
        assert (result.saved, result.duplicates, result.total) == (0, 1, 1)

    def test_record_without_index_entry_still_blocks_insert(self, file_backend, make_question):
        stored = make_question("What is a JOIN?", answer="A", topic="sql")
        stored.hash = compute_hash(stored)
        file_backend.insert_one(stored)
        (file_backend.data_dir / "hashes.json").write_text("{}")

        again = make_question("What is a JOIN?", answer="A", topic="sql")
        again.hash = compute_hash(again)
        with pytest.raises(DuplicateQuestionError):
            file_backend.insert_one(again)
        assert file_backend.count_by_topic("sql") == 1
