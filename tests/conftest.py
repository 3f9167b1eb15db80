from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("MONGO_URI", "mongodb://localhost:27017")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("SESSION_SECRET", "test-session-secret")
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "s3cret")
os.environ.setdefault("ROLLOVER_MARKER_PATH", "/tmp/fleetmon-test-marker.json")

import copy
import itertools
from collections.abc import AsyncIterator
from enum import Enum
from types import SimpleNamespace
from typing import Any, Dict, List, Optional, Tuple

import pytest
import pytest_asyncio
from fakeredis.aioredis import FakeRedis
from pymongo import ReturnDocument
from pymongo.errors import OperationFailure, PyMongoError

from fleetmon.db.repositories.activity_logs_repo import ActivityLogsRepository
from fleetmon.db.repositories.agents_repo import AgentsRepository
from fleetmon.db.repositories.stats_repo import StatsRepository
from fleetmon.models.domain.activity_log import ActivityLog
from fleetmon.models.domain.agent import Agent
from fleetmon.services.activity_service import ActivityLogger
from fleetmon.services.ingestion_service import IngestionService
from fleetmon.services.stats_service import StatsAggregator


# Minimal evaluator for the aggregation expressions built in fleetmon.db.pipelines,
# so the in-memory collections apply the same updates Mongo would.
def evaluate(expr: Any, doc: Dict[str, Any]) -> Any:
    if isinstance(expr, str) and expr.startswith("$"):
        return doc.get(expr[1:])
    if isinstance(expr, dict) and len(expr) == 1:
        (op, args), = expr.items()
        if op == "$cond":
            condition, then, otherwise = args
            return evaluate(then if evaluate(condition, doc) else otherwise, doc)
        values = [evaluate(arg, doc) for arg in args]
        if op == "$add":
            return sum(values)
        if op == "$ifNull":
            return next((value for value in values if value is not None), None)
        if op == "$eq":
            return values[0] == values[1]
        if op == "$gt":
            return values[0] is not None and values[0] > values[1]
        if op == "$divide":
            return values[0] / values[1]
        raise AssertionError(f"unsupported operator {op}")
    return expr


def apply_update(doc: Dict[str, Any], update: Any) -> Dict[str, Any]:
    if isinstance(update, list):
        for stage in update:
            computed = {key: evaluate(expr, doc) for key, expr in stage["$set"].items()}
            doc.update(computed)
        return doc
    for key, value in update.get("$set", {}).items():
        doc[key] = value
    for path, amount in update.get("$inc", {}).items():
        target = doc
        *parents, leaf = path.split(".")
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = target.get(leaf, 0) + amount
    return doc


def _matches(doc: Dict[str, Any], query: Dict[str, Any]) -> bool:
    for key, expected in query.items():
        if isinstance(expected, dict) and "$ne" in expected:
            if doc.get(key) == expected["$ne"]:
                return False
        elif doc.get(key) != expected:
            return False
    return True


def _public(doc: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in doc.items() if key != "_id"}


class InMemoryCursor:
    def __init__(self, docs: List[Dict[str, Any]]) -> None:
        self._docs = docs

    def sort(self, key_or_list: Any, direction: Optional[int] = None) -> "InMemoryCursor":
        keys = [(key_or_list, direction or 1)] if isinstance(key_or_list, str) else list(key_or_list)
        for key, order in reversed(keys):
            # Missing fields sort first, as in Mongo.
            self._docs.sort(key=lambda doc: (doc.get(key) is not None, doc.get(key)), reverse=order < 0)
        return self

    def limit(self, count: int) -> "InMemoryCursor":
        self._docs = self._docs[:count]
        return self

    async def __aiter__(self):
        for doc in self._docs:
            yield copy.deepcopy(doc)


class InMemoryCollection:
    """Records every call and applies it to a list of dicts with Mongo's update semantics."""

    _ids = itertools.count(1)

    def __init__(self, name: str) -> None:
        self.name = name
        self.docs: List[Dict[str, Any]] = []
        self.calls: List[Tuple[str, Dict[str, Any], Any]] = []
        self.fail = False

    def _record(self, op: str, query: Dict[str, Any], session: Any) -> None:
        if self.fail:
            raise PyMongoError(f"{self.name} unavailable")
        self.calls.append((op, query, session))

    def _insert(self, query: Dict[str, Any], update: Any) -> Dict[str, Any]:
        doc = {key: value for key, value in query.items() if not isinstance(value, dict)}
        doc.setdefault("_id", next(self._ids))
        if isinstance(update, dict):
            doc.update(update.get("$setOnInsert", {}))
        self.docs.append(doc)
        return doc

    async def create_index(self, *args: Any, **kwargs: Any) -> str:
        return "index"

    async def find_one(self, query: Dict[str, Any], session: Any = None) -> Optional[Dict[str, Any]]:
        self._record("find_one", query, session)
        doc = next((doc for doc in self.docs if _matches(doc, query)), None)
        return copy.deepcopy(doc) if doc else None

    def find(self, query: Dict[str, Any], session: Any = None) -> InMemoryCursor:
        self._record("find", query, session)
        return InMemoryCursor([doc for doc in self.docs if _matches(doc, query)])

    async def insert_one(self, document: Dict[str, Any], session: Any = None) -> SimpleNamespace:
        self._record("insert_one", document, session)
        document.setdefault("_id", next(self._ids))
        self.docs.append(copy.deepcopy(document))
        return SimpleNamespace(inserted_id=document["_id"])

    async def update_one(self, query: Dict[str, Any], update: Any, upsert: bool = False, session: Any = None):
        self._record("update_one", query, session)
        doc = next((doc for doc in self.docs if _matches(doc, query)), None)
        if doc is None:
            if not upsert:
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
            doc = self._insert(query, update)
            apply_update(doc, update)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])
        apply_update(doc, update)
        return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)

    async def update_many(self, query: Dict[str, Any], update: Any, session: Any = None):
        self._record("update_many", query, session)
        matched = [doc for doc in self.docs if _matches(doc, query)]
        for doc in matched:
            apply_update(doc, update)
        return SimpleNamespace(matched_count=len(matched), modified_count=len(matched))

    async def find_one_and_update(
        self,
        query: Dict[str, Any],
        update: Any,
        upsert: bool = False,
        return_document: bool = ReturnDocument.BEFORE,
        session: Any = None,
    ) -> Optional[Dict[str, Any]]:
        self._record("find_one_and_update", query, session)
        doc = next((doc for doc in self.docs if _matches(doc, query)), None)
        before = copy.deepcopy(doc)
        if doc is None:
            if not upsert:
                return None
            doc = self._insert(query, update)
        apply_update(doc, update)
        return copy.deepcopy(doc) if return_document == ReturnDocument.AFTER else before


class InMemorySession:
    def __init__(self, client: "InMemoryClient") -> None:
        self.client = client
        self.in_transaction = False

    async def __aenter__(self) -> "InMemorySession":
        return self

    async def __aexit__(self, *exc: Any) -> None:
        return None

    async def with_transaction(self, callback):
        if self.client.fail_transactions:
            raise OperationFailure("Transaction numbers are only allowed on a replica set member or mongos")
        self.client.transactions += 1
        self.in_transaction = True
        try:
            return await callback(self)
        finally:
            self.in_transaction = False


class InMemoryClient:
    def __init__(self) -> None:
        self.transactions = 0
        self.fail_transactions = False

    async def start_session(self) -> InMemorySession:
        return InMemorySession(self)


class InMemoryDatabase:
    def __init__(self) -> None:
        self.client = InMemoryClient()
        self._collections: Dict[str, InMemoryCollection] = {}

    def __getitem__(self, name: str) -> InMemoryCollection:
        return self._collections.setdefault(name, InMemoryCollection(name))


# The repositories below are the production ones; the subclasses only add
# seeding, inspection and failure switches for tests.
class MemoryAgentsRepository(AgentsRepository):
    def seed(self, agent_id: str, **fields: Any) -> Agent:
        doc = {key: value.value if isinstance(value, Enum) else value for key, value in fields.items()}
        doc["agent_id"] = agent_id
        self._collection.docs.append(doc)
        return Agent(**doc)

    @property
    def docs(self) -> Dict[str, Dict[str, Any]]:
        return {doc["agent_id"]: _public(doc) for doc in self._collection.docs}

    @property
    def fail(self) -> bool:
        return self._collection.fail

    @fail.setter
    def fail(self, value: bool) -> None:
        self._collection.fail = value


class MemoryStatsRepository(StatsRepository):
    @property
    def agents(self) -> Dict[str, Dict[str, Any]]:
        return {doc["agent_id"]: _public(doc) for doc in self._agents.docs}

    @property
    def breakdown(self) -> Dict[Tuple[str, str], Dict[str, Any]]:
        return {(doc["agent_id"], doc["api_type"]): _public(doc) for doc in self._breakdown.docs}

    @property
    def daily(self) -> Dict[Tuple[str, str], Dict[str, Any]]:
        return {(doc["agent_id"], doc["date"]): _public(doc) for doc in self._daily.docs}

    @property
    def hourly(self) -> Dict[Tuple[str, str], Dict[str, Any]]:
        return {(doc["agent_id"], doc["hour"]): _public(doc) for doc in self._hourly.docs}

    @property
    def fail(self) -> bool:
        return self._db.client.fail_transactions

    @fail.setter
    def fail(self, value: bool) -> None:
        self._db.client.fail_transactions = value


class MemoryLogsRepository(ActivityLogsRepository):
    @property
    def rows(self) -> List[ActivityLog]:
        return sorted((ActivityLog(**doc) for doc in self._collection.docs), key=lambda log: log.log_id)

    @property
    def fail(self) -> bool:
        return self._collection.fail

    @fail.setter
    def fail(self, value: bool) -> None:
        self._collection.fail = value
        self._sequences.fail = value


class RecordingPublisher:
    def __init__(self) -> None:
        self.messages: List[Tuple[str, str, Dict[str, Any]]] = []

    async def publish(self, table: str, event: str, payload: Optional[Dict[str, Any]] = None) -> None:
        self.messages.append((table, event, payload or {}))


@pytest.fixture
def memory_db() -> InMemoryDatabase:
    return InMemoryDatabase()


@pytest.fixture
def agents_repo(memory_db) -> MemoryAgentsRepository:
    return MemoryAgentsRepository(memory_db)


@pytest.fixture
def stats_repo(memory_db) -> MemoryStatsRepository:
    return MemoryStatsRepository(memory_db)


@pytest.fixture
def logs_repo(memory_db) -> MemoryLogsRepository:
    return MemoryLogsRepository(memory_db)


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def aggregator(agents_repo, stats_repo, publisher) -> StatsAggregator:
    return StatsAggregator(agents_repo=agents_repo, stats_repo=stats_repo, publisher=publisher)


@pytest.fixture
def activity_logger(logs_repo, publisher) -> ActivityLogger:
    return ActivityLogger(logs_repo=logs_repo, publisher=publisher)


@pytest.fixture
def ingestion(aggregator, activity_logger) -> IngestionService:
    return IngestionService(aggregator=aggregator, activity_logger=activity_logger)


@pytest.fixture
def pipeline_apply():
    return apply_update


@pytest_asyncio.fixture
async def fake_redis() -> AsyncIterator[FakeRedis]:
    client = FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        await client.aclose()
