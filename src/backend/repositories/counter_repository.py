"""
Aggregate counter repository.

Counters are keyed by (message, day, geo, party, demo, value) and split into
shards so hot counters spread their writes. A counter's true value is the sum
of its shards; rollup documents cache that sum per key.
"""

import hashlib
from typing import Optional

from db.store import VOTE_COUNTERS_COLLECTION, VOTE_ROLLUPS_COLLECTION, DocumentStore, QueryFilter
from models.documents import AggregateCounterDocument, AggregateRollupDocument, Buckets, utc_now


def shard_for(message_id: str, identity: str, shard_count: int) -> int:
    """Deterministically pick a shard for a voter on a message."""
    digest = hashlib.sha256(f"{message_id}:{identity}".encode()).hexdigest()
    return int(digest[:8], 16) % shard_count


def counter_key(message_id: str, day: str, geo: str, party: str, demo: str, value: str) -> str:
    """Composite key shared by all shards of one counter."""
    return f"msg={message_id}|day={day}|geo={geo}|party={party}|demo={demo}|value={value}"


def shard_key(composite_key: str, shard: int) -> str:
    return f"{composite_key}|shard={shard}"


def record_key(record: AggregateCounterDocument | AggregateRollupDocument) -> str:
    """Composite key of a shard or rollup document."""
    return counter_key(record.message_id, record.day, record.geo, record.party, record.demo, record.value)


class CounterRepository:
    """Repository for sharded vote counters and their rollups."""

    def __init__(self, store: DocumentStore, shard_count: int = 16):
        if shard_count < 1:
            raise ValueError("shard_count must be positive")
        self.store = store
        self.shard_count = shard_count

    def shard_for(self, message_id: str, identity: str) -> int:
        return shard_for(message_id, identity, self.shard_count)

    # ========================================================================
    # Shards
    # ========================================================================

    async def increment(
        self,
        message_id: str,
        day: str,
        buckets: Buckets,
        value: str,
        shard: int,
        delta: int = 1,
    ) -> int:
        """Atomically add ``delta`` to one shard; returns the shard's new count."""
        composite = counter_key(message_id, day, buckets.geo, buckets.party, buckets.demo, value)
        key = shard_key(composite, shard)
        initial = AggregateCounterDocument(
            id=key,
            message_id=message_id,
            day=day,
            geo=buckets.geo,
            party=buckets.party,
            demo=buckets.demo,
            value=value,
            shard=shard,
            count=0,
        ).to_record()
        return await self.store.atomic_increment(VOTE_COUNTERS_COLLECTION, key, "count", delta, initial=initial)

    async def query_shards(self, filters: list[QueryFilter]) -> list[AggregateCounterDocument]:
        records = await self.store.query(VOTE_COUNTERS_COLLECTION, filters)
        return [AggregateCounterDocument.model_validate(record) for record in records]

    # ========================================================================
    # Rollups
    # ========================================================================

    async def get_rollup(self, composite: str) -> Optional[AggregateRollupDocument]:
        record = await self.store.get(VOTE_ROLLUPS_COLLECTION, composite)
        if record is None:
            return None
        return AggregateRollupDocument.model_validate(record)

    async def save_rollup(self, rollup: AggregateRollupDocument) -> None:
        rollup.refreshed_at = utc_now()
        await self.store.put(VOTE_ROLLUPS_COLLECTION, rollup.id, rollup.to_record())

    async def query_rollups(self, filters: list[QueryFilter]) -> list[AggregateRollupDocument]:
        records = await self.store.query(VOTE_ROLLUPS_COLLECTION, filters)
        return [AggregateRollupDocument.model_validate(record) for record in records]
