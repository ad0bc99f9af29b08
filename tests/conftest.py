import uuid
from types import SimpleNamespace

import pytest
from pymongo import DESCENDING
from pymongo.errors import DuplicateKeyError

from question_bank.config import DatabaseConfig
from question_bank.database_setup import MongoQuestionBackend
from question_bank.duplicate_detector import DuplicateDetector
from question_bank.file_storage import JsonFileQuestionBackend
from question_bank.question_models import Difficulty, Question
from question_bank.question_store import IngestionStore


TOPICS = ["javascript", "typescript", "nodejs", "sql", "react", "python"]


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    def sort(self, key, direction):
        self.docs.sort(key=lambda d: d.get(key) or "", reverse=direction == DESCENDING)
        return self

    def __iter__(self):
        return iter(self.docs)


class FakeCollection:
    """In-memory stand-in for a pymongo collection with a (topic, hash) unique index."""

    def __init__(self):
        self.docs = []
        self.indexes = []
        self.error = None

    def _check(self):
        if self.error is not None:
            raise self.error

    @staticmethod
    def _matches(doc, query):
        return all(doc.get(k) == v for k, v in (query or {}).items())

    def create_index(self, keys, **kwargs):
        self.indexes.append((keys, kwargs))
        return kwargs.get("name", "_".join(k for k, _ in keys))

    def find(self, query=None):
        self._check()
        return FakeCursor([dict(d) for d in self.docs if self._matches(d, query)])

    def find_one(self, query):
        self._check()
        for doc in self.docs:
            if self._matches(doc, query):
                return dict(doc)
        return None

    def count_documents(self, query):
        self._check()
        return sum(1 for d in self.docs if self._matches(d, query))

    def insert_one(self, doc):
        self._check()
        if any(d.get("topic") == doc.get("topic") and d.get("hash") == doc.get("hash") for d in self.docs):
            raise DuplicateKeyError("E11000 duplicate key error collection: questions index: topic_hash_unique")
        self.docs.append(dict(doc))
        return SimpleNamespace(inserted_id=len(self.docs))

    def delete_many(self, query):
        self._check()
        kept = [d for d in self.docs if not self._matches(d, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)

    def aggregate(self, pipeline):
        self._check()
        groups = {}
        for doc in self.docs:
            key = (doc.get("topic"), doc.get("difficulty"))
            groups[key] = groups.get(key, 0) + 1
        return [{"_id": {"topic": t, "difficulty": d}, "count": c} for (t, d), c in groups.items()]


@pytest.fixture
def db_config():
    return DatabaseConfig(
        uri="mongodb://localhost:27017",
        db_name="question-bank-test",
        questions_collection="questions",
        server_selection_timeout_ms=100,
        connect_timeout_ms=100,
        socket_timeout_ms=100,
        max_pool_size=1,
    )


@pytest.fixture
def fake_collection():
    return FakeCollection()


@pytest.fixture
def mongo_backend(db_config, fake_collection):
    backend = MongoQuestionBackend(db_config, collection=fake_collection)
    backend.connect()
    return backend


@pytest.fixture
def file_backend(tmp_path):
    backend = JsonFileQuestionBackend(tmp_path / "data")
    backend.connect()
    return backend


@pytest.fixture(params=["mongo", "file"])
def backend(request, db_config, tmp_path):
    if request.param == "mongo":
        backend = MongoQuestionBackend(db_config, collection=FakeCollection())
    else:
        backend = JsonFileQuestionBackend(tmp_path / "data")
    backend.connect()
    return backend


@pytest.fixture
def store(backend):
    return IngestionStore(backend, DuplicateDetector(0.85), topics=TOPICS)


@pytest.fixture
def make_question():
    def _make(text, answer="", topic="react", difficulty=Difficulty.MEDIUM, **kwargs):
        return Question(
            id=kwargs.pop("id", uuid.uuid4().hex[:8]),
            question=text,
            topic=topic,
            difficulty=difficulty,
            answer=answer,
            **kwargs
        )
    return _make


def _random_text():
    return f"{uuid.uuid4().hex} {uuid.uuid4().hex}"


@pytest.fixture
def random_text():
    """Question text that is never fuzzy-similar to another call's result."""
    return _random_text
