"""
Document store abstraction for the vote pipeline.

The aggregation engine and results query service only ever talk to a
``DocumentStore``; the concrete store is chosen at startup and passed in
through constructors so tests can swap in ``InMemoryDocumentStore``.

Collections:
- messages: Message definitions (admin owned)
- ab_pairs: A/B testing pairs (admin owned)
- votes: Accepted ballots, one document per vote
- vote_dedup: One marker per (message, identity hash)
- idempotency: One marker per processed batch key (expires)
- vote_counters: Sharded aggregate counters
- vote_rollups: Shard sums refreshed by the rollup job
"""

import copy
import threading
import zlib
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Protocol, runtime_checkable

MESSAGES_COLLECTION = "messages"
AB_PAIRS_COLLECTION = "ab_pairs"
VOTES_COLLECTION = "votes"
VOTE_DEDUP_COLLECTION = "vote_dedup"
IDEMPOTENCY_COLLECTION = "idempotency"
VOTE_COUNTERS_COLLECTION = "vote_counters"
VOTE_ROLLUPS_COLLECTION = "vote_rollups"

ALL_COLLECTIONS = (
    MESSAGES_COLLECTION,
    AB_PAIRS_COLLECTION,
    VOTES_COLLECTION,
    VOTE_DEDUP_COLLECTION,
    IDEMPOTENCY_COLLECTION,
    VOTE_COUNTERS_COLLECTION,
    VOTE_ROLLUPS_COLLECTION,
)

FILTER_OPS = ("eq", "ne", "ge", "le", "in")


@dataclass(frozen=True)
class QueryFilter:
    """A single predicate on a top-level document field."""

    field: str
    op: str
    value: Any

    def __post_init__(self) -> None:
        if self.op not in FILTER_OPS:
            raise ValueError(f"Unsupported filter op: {self.op}")

    def matches(self, record: dict[str, Any]) -> bool:
        actual = record.get(self.field)
        if self.op == "ne":
            return actual != self.value
        if actual is None:
            return False
        if self.op == "eq":
            return actual == self.value
        if self.op == "ge":
            return actual >= self.value
        if self.op == "le":
            return actual <= self.value
        return actual in self.value


def eq(field: str, value: Any) -> QueryFilter:
    return QueryFilter(field, "eq", value)


@runtime_checkable
class DocumentStore(Protocol):
    """Protocol for the durable key/value-with-query store."""

    async def get(self, collection: str, key: str) -> dict[str, Any] | None: ...

    async def put(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None: ...

    async def put_if_absent(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool: ...

    async def atomic_increment(
        self,
        collection: str,
        key: str,
        field: str,
        delta: int,
        initial: dict[str, Any] | None = None,
    ) -> int: ...

    async def query(self, collection: str, filters: list[QueryFilter]) -> list[dict[str, Any]]: ...

    async def delete(self, collection: str, key: str) -> bool: ...

    async def close(self) -> None: ...


class InMemoryDocumentStore:
    """
    Process-local implementation of ``DocumentStore``.

    Writes are serialised per key through a fixed pool of striped locks, so
    two increments of the same counter never lose an update while unrelated
    counters do not contend on one global lock.
    """

    LOCK_STRIPES = 64

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, tuple[dict[str, Any], datetime | None]]] = {}
        self._stripes = [threading.Lock() for _ in range(self.LOCK_STRIPES)]
        self._collections_lock = threading.Lock()

    def _lock_for(self, collection: str, key: str) -> threading.Lock:
        index = zlib.crc32(f"{collection}/{key}".encode()) % self.LOCK_STRIPES
        return self._stripes[index]

    def _collection(self, name: str) -> dict[str, tuple[dict[str, Any], datetime | None]]:
        with self._collections_lock:
            return self._collections.setdefault(name, {})

    @staticmethod
    def _expiry(ttl_seconds: int | None) -> datetime | None:
        if ttl_seconds is None:
            return None
        return datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)

    @staticmethod
    def _is_live(expires_at: datetime | None, now: datetime) -> bool:
        return expires_at is None or expires_at > now

    def _live_record(self, collection: str, key: str) -> dict[str, Any] | None:
        entry = self._collection(collection).get(key)
        if entry is None:
            return None
        record, expires_at = entry
        if not self._is_live(expires_at, datetime.now(timezone.utc)):
            return None
        return record

    async def get(self, collection: str, key: str) -> dict[str, Any] | None:
        record = self._live_record(collection, key)
        return copy.deepcopy(record) if record is not None else None

    async def put(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> None:
        with self._lock_for(collection, key):
            self._collection(collection)[key] = (copy.deepcopy(record), self._expiry(ttl_seconds))

    async def put_if_absent(
        self,
        collection: str,
        key: str,
        record: dict[str, Any],
        ttl_seconds: int | None = None,
    ) -> bool:
        with self._lock_for(collection, key):
            if self._live_record(collection, key) is not None:
                return False
            self._collection(collection)[key] = (copy.deepcopy(record), self._expiry(ttl_seconds))
            return True

    async def atomic_increment(
        self,
        collection: str,
        key: str,
        field: str,
        delta: int,
        initial: dict[str, Any] | None = None,
    ) -> int:
        with self._lock_for(collection, key):
            entries = self._collection(collection)
            record = self._live_record(collection, key)
            if record is None:
                record = copy.deepcopy(initial) if initial else {}
                record.setdefault("id", key)
                entries[key] = (record, None)
            record[field] = int(record.get(field, 0)) + delta
            return record[field]

    async def query(self, collection: str, filters: list[QueryFilter]) -> list[dict[str, Any]]:
        now = datetime.now(timezone.utc)
        # Snapshot so concurrent writers cannot resize the dict mid-iteration
        entries = list(self._collection(collection).values())
        return [
            copy.deepcopy(record)
            for record, expires_at in entries
            if self._is_live(expires_at, now) and all(f.matches(record) for f in filters)
        ]

    async def delete(self, collection: str, key: str) -> bool:
        with self._lock_for(collection, key):
            return self._collection(collection).pop(key, None) is not None

    async def close(self) -> None:
        return None

    def purge_expired(self) -> int:
        """Drop expired records; returns how many were removed."""
        now = datetime.now(timezone.utc)
        removed = 0
        with self._collections_lock:
            names = list(self._collections)
        for name in names:
            entries = self._collection(name)
            for key, (_, expires_at) in list(entries.items()):
                if self._is_live(expires_at, now):
                    continue
                with self._lock_for(name, key):
                    entry = entries.get(key)
                    if entry is not None and not self._is_live(entry[1], now):
                        del entries[key]
                        removed += 1
        return removed
