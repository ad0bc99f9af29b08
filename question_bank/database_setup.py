# question_bank/database_setup.py
# Created: 2026-10-04
# Purpose: MongoDB connection helpers and the Mongo question backend

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from pymongo import MongoClient, ASCENDING, DESCENDING, TEXT
from pymongo.errors import DuplicateKeyError, PyMongoError

from question_bank.config import DatabaseConfig
from question_bank.question_models import Question, TopicStats
from question_bank.question_store import DuplicateQuestionError, QuestionBackend, StorageError


logger = logging.getLogger(__name__)


# =======================
# Database Functions
# =======================

def get_client(config: DatabaseConfig) -> MongoClient:
    """Initialize and return a new MongoDB client."""
    try:
        client = MongoClient(
            config.uri,
            serverSelectionTimeoutMS=config.server_selection_timeout_ms,
            connectTimeoutMS=config.connect_timeout_ms,
            socketTimeoutMS=config.socket_timeout_ms,
            maxPoolSize=config.max_pool_size,
            retryWrites=True,
        )
        # Test connection
        client.admin.command('ping')
        logger.info("Successfully connected to MongoDB.")
        return client
    except PyMongoError as e:
        logger.error(f"Failed to connect to MongoDB: {e}")
        raise StorageError(f"Database connection failed: {e}") from e


def get_db(client: MongoClient, config: DatabaseConfig):
    """Return the database instance."""
    return client[config.db_name]


def initialize_collection(collection) -> None:
    """Create the uniqueness constraint and query indexes on the questions collection."""
    collection.create_index([("topic", ASCENDING), ("hash", ASCENDING)], unique=True, name="topic_hash_unique")
    logger.info("Ensured unique index on (topic, hash).")

    collection.create_index([("hash", ASCENDING)])

    collection.create_index([("topic", ASCENDING), ("difficulty", ASCENDING)])
    collection.create_index([("topic", ASCENDING), ("tags", ASCENDING)])
    collection.create_index([("difficulty", ASCENDING), ("tags", ASCENDING)])
    collection.create_index([("topic", ASCENDING), ("savedAt", DESCENDING)])
    try:
        collection.create_index([("question", TEXT), ("example", TEXT)], name="question_text")
    except PyMongoError as e:
        # An existing text index with different fields is not fatal for ingestion
        logger.warning(f"Error creating text index: {e}")


# =======================
# Mongo Backend
# =======================

class MongoQuestionBackend(QuestionBackend):
    """
    Questions stored as documents in one collection.

    (topic, hash) uniqueness is a hard constraint (unique index); a
    DuplicateKeyError on insert surfaces as DuplicateQuestionError.
    """

    def __init__(
        self,
        config: DatabaseConfig,
        client: Optional[MongoClient] = None,
        collection=None,
    ):
        self.config = config
        self._client = client
        self._owns_client = client is None and collection is None
        self._collection = collection
        self._initialized = False

    @property
    def collection(self):
        if self._collection is None:
            self.connect()
        return self._collection

    def connect(self) -> None:
        if self._collection is None:
            if self._client is None:
                self._client = get_client(self.config)
            self._collection = get_db(self._client, self.config)[self.config.questions_collection]

        if not self._initialized:
            try:
                initialize_collection(self._collection)
            except PyMongoError as e:
                raise StorageError(f"Failed to prepare collection: {e}") from e
            self._initialized = True

    def disconnect(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            logger.info("Disconnected from MongoDB.")
            self._client = None
            self._collection = None
            self._initialized = False

    def find_by_topic(self, topic: str) -> List[Question]:
        try:
            cursor = self.collection.find({"topic": topic}).sort("savedAt", DESCENDING)
            return [Question.from_dict(doc) for doc in cursor]
        except PyMongoError as e:
            raise StorageError(f"Error loading questions for topic {topic}: {e}") from e

    def count_by_topic(self, topic: str) -> int:
        try:
            return self.collection.count_documents({"topic": topic})
        except PyMongoError as e:
            raise StorageError(f"Error counting questions for topic {topic}: {e}") from e

    def find_by_hash(self, content_hash: str) -> Optional[Question]:
        try:
            doc = self.collection.find_one({"hash": content_hash})
        except PyMongoError as e:
            raise StorageError(f"Error looking up hash {content_hash[:16]}: {e}") from e
        return Question.from_dict(doc) if doc else None

    def insert_one(self, question: Question) -> Question:
        """Insert a document into the questions collection."""
        try:
            self.collection.insert_one(question.to_dict())
            logger.debug(f"Inserted question {question.id}")
            return question
        except DuplicateKeyError as e:
            raise DuplicateQuestionError(f"Duplicate hash {question.hash}") from e
        except PyMongoError as e:
            logger.error(f"Error inserting question: {e}")
            raise StorageError(f"Error inserting question: {e}") from e

    def stats(self) -> Dict[str, TopicStats]:
        pipeline = [
            {"$group": {"_id": {"topic": "$topic", "difficulty": "$difficulty"},
                        "count": {"$sum": 1}}},
        ]
        try:
            rows = list(self.collection.aggregate(pipeline))
        except PyMongoError as e:
            raise StorageError(f"Error getting stats: {e}") from e

        result: Dict[str, TopicStats] = {}
        for row in rows:
            topic = row["_id"].get("topic")
            difficulty = row["_id"].get("difficulty")
            stats = result.setdefault(topic, TopicStats(topic=topic))
            stats.total += row["count"]
            if difficulty in ("easy", "medium", "hard"):
                setattr(stats, difficulty, getattr(stats, difficulty) + row["count"])
        return result

    def clear(self) -> int:
        try:
            deleted = self.collection.delete_many({}).deleted_count
        except PyMongoError as e:
            raise StorageError(f"Error clearing questions: {e}") from e
        logger.info(f"Deleted {deleted} questions from '{self.config.questions_collection}'.")
        return deleted


__all__ = [
    "get_client",
    "get_db",
    "initialize_collection",
    "MongoQuestionBackend",
]
