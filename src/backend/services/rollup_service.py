"""
Rollup service.

Folds the shards of every counter key into a single rollup document so result
queries can read one document per key instead of one per shard. Rollups lag
the shards by at most one refresh interval and are never lowered.
"""

from collections import defaultdict
from typing import Optional

import structlog

from db.store import DocumentStore, QueryFilter, eq
from models.documents import AggregateCounterDocument, AggregateRollupDocument
from repositories.counter_repository import CounterRepository, record_key

logger = structlog.get_logger(__name__)


class RollupService:
    """Maintains rollup documents from sharded counters."""

    def __init__(self, store: DocumentStore, counters: Optional[CounterRepository] = None):
        self.counters = counters or CounterRepository(store)

    async def refresh_rollups(self, message_id: Optional[str] = None) -> int:
        """
        Recompute rollups from shards.

        Args:
            message_id: Limit the refresh to one message

        Returns:
            Number of rollup documents written
        """
        filters: list[QueryFilter] = [eq("message_id", message_id)] if message_id else []
        shards = await self.counters.query_shards(filters)

        sums: dict[str, int] = defaultdict(int)
        templates: dict[str, AggregateCounterDocument] = {}
        for shard in shards:
            key = record_key(shard)
            sums[key] += max(shard.count, 0)
            templates.setdefault(key, shard)

        written = 0
        for key, total in sums.items():
            existing = await self.counters.get_rollup(key)
            if existing is not None and existing.count >= total:
                continue

            template = templates[key]
            await self.counters.save_rollup(
                AggregateRollupDocument(
                    id=key,
                    message_id=template.message_id,
                    day=template.day,
                    geo=template.geo,
                    party=template.party,
                    demo=template.demo,
                    value=template.value,
                    count=total,
                )
            )
            written += 1

        logger.info("rollups_refreshed", message_id=message_id, keys=len(sums), written=written)
        return written
