"""
Pytest configuration and fixtures for queue tests.
"""

import copy
import os
import sys
import threading
from datetime import datetime, timezone
from typing import Dict, Any, List, Optional

import pytest
from bson import ObjectId

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from mongo_queue.queue import Queue
from mongo_queue.storage.base import MessageStore, IndexKeys

# Fixed starting point for the fake clock: 2023-11-14T22:13:20Z
START_TIME = 1_700_000_000.0


class FakeClock:
    """Manually advanced wall clock."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


_MISSING = object()


def _resolve(document: Dict[str, Any], path: str) -> Any:
    value = document
    for part in path.split('.'):
        if not isinstance(value, dict) or part not in value:
            return _MISSING
        value = value[part]
    return value


def _compare(value: Any, operator: str, operand: Any) -> bool:
    if operator == '$exists':
        return (value is not _MISSING) == bool(operand)
    if operator == '$ne':
        return value is _MISSING or value != operand
    if operator == '$in':
        return value is not _MISSING and value in operand
    if operator == '$nin':
        return value is _MISSING or value not in operand
    if value is _MISSING:
        return False
    try:
        if operator == '$gt':
            return value > operand
        if operator == '$gte':
            return value >= operand
        if operator == '$lt':
            return value < operand
        if operator == '$lte':
            return value <= operand
    except TypeError:
        return False
    raise NotImplementedError(f"Operator {operator} not supported by the in-memory store")


def matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    """Evaluate the subset of the MongoDB query language the queue emits."""
    for key, condition in query.items():
        if key == '$or':
            if not any(matches(document, clause) for clause in condition):
                return False
            continue

        value = _resolve(document, key)
        if isinstance(condition, dict) and condition and all(k.startswith('$') for k in condition):
            if not all(_compare(value, op, operand) for op, operand in condition.items()):
                return False
        elif value is _MISSING or value != condition:
            return False
    return True


class InMemoryMessageStore(MessageStore):
    """Thread-safe in-memory message store for tests without MongoDB."""

    def __init__(self, namespace: str = "testing.messages"):
        self._namespace = namespace
        self.records: List[Dict[str, Any]] = []
        self.indexes: Dict[str, IndexKeys] = {"_id_": [("_id", 1)]}
        self.lock = threading.Lock()

    @property
    def namespace(self) -> str:
        return self._namespace

    def insert(self, record: Dict[str, Any]) -> ObjectId:
        with self.lock:
            stored = copy.deepcopy(record)
            stored["_id"] = ObjectId()
            self.records.append(stored)
            return stored["_id"]

    def claim_one(self, query, update, sort) -> Optional[Dict[str, Any]]:
        with self.lock:
            candidates = [r for r in self.records if matches(r, query)]
            for field, direction in reversed(sort):
                candidates.sort(key=lambda r: r[field], reverse=direction == -1)
            if not candidates:
                return None
            record = candidates[0]
            prior = {"_id": record["_id"], "payload": copy.deepcopy(record["payload"])}
            record.update(copy.deepcopy(update["$set"]))
            return prior

    def update_one(self, message_id, update, upsert=False) -> None:
        with self.lock:
            for record in self.records:
                if record["_id"] == message_id:
                    record.update(copy.deepcopy(update.get("$set", {})))
                    return
            if upsert:
                record = {"_id": message_id}
                record.update(copy.deepcopy(update.get("$set", {})))
                record.update(copy.deepcopy(update.get("$setOnInsert", {})))
                self.records.append(record)

    def delete_one(self, message_id) -> None:
        with self.lock:
            self.records = [r for r in self.records if r["_id"] != message_id]

    def count(self, query) -> int:
        with self.lock:
            return sum(1 for r in self.records if matches(r, query))

    def index_keys(self) -> List[IndexKeys]:
        return [list(keys) for keys in self.indexes.values()]

    def create_index(self, keys: IndexKeys, name: str) -> None:
        self.indexes[name] = list(keys)

    def is_valid_id(self, value) -> bool:
        return isinstance(value, ObjectId)

    def find(self, message_id) -> Optional[Dict[str, Any]]:
        for record in self.records:
            if record["_id"] == message_id:
                return record
        return None


def utc(seconds: float) -> datetime:
    return datetime.fromtimestamp(seconds, tz=timezone.utc)


@pytest.fixture
def clock():
    """Create a fake clock."""
    return FakeClock()


@pytest.fixture
def store():
    """Create an in-memory message store."""
    return InMemoryMessageStore()


@pytest.fixture
def queue(store, clock):
    """Create a queue on the in-memory store."""
    return Queue(store, clock=clock)
