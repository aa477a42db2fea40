"""
Results query service.

Reads aggregate counters (never ballots) and folds them into result rows
grouped by one dimension. Every accepted vote increments both a day counter
and an all-time (``ALL``) counter, so:

- queries without a date range read only the all-time counters, unless they
  are grouped by date
- date-ranged and date-grouped queries read only day counters

Either way each vote is counted exactly once per query, and because counters
only ever grow, re-running a query never reports fewer votes.
"""

import asyncio
from collections import defaultdict
from datetime import date, timedelta
from typing import Optional, Union

import structlog

from core.exceptions import VoteValidationError
from db.store import DocumentStore, QueryFilter, eq
from models.documents import (
    ALL_DAYS,
    FAVORABLE_VALUES,
    UNFAVORABLE_VALUES,
    AggregateCounterDocument,
    AggregateRollupDocument,
    VoteValue,
    utc_now,
)
from repositories.counter_repository import CounterRepository, record_key
from schemas.vote import (
    GroupBy,
    MessageComparison,
    MessageVoteStats,
    ResultRow,
    ResultsFilters,
    ResultsResponse,
    VoteWindowStats,
)
from services.bucket_deriver import region_for_geo
from services.vote_aggregation_service import report_inconsistent_counter

logger = structlog.get_logger(__name__)

CounterRecord = Union[AggregateCounterDocument, AggregateRollupDocument]

RECENT_WINDOW_DAYS = 7


# ============================================================================
# Vote math
# ============================================================================


def favorability(counts: dict[str, int]) -> float:
    """(favorable - unfavorable) / total, or 0.0 when there are no votes."""
    total = sum(counts.values())
    if total == 0:
        return 0.0
    favorable = sum(n for value, n in counts.items() if value in FAVORABLE_VALUES)
    unfavorable = sum(n for value, n in counts.items() if value in UNFAVORABLE_VALUES)
    return (favorable - unfavorable) / total


def rates(counts: dict[str, int]) -> dict[str, float]:
    total = sum(counts.values())
    if total == 0:
        return {}
    return {value: n / total for value, n in counts.items()}


def _non_zero(counts: dict[str, int]) -> dict[str, int]:
    # Stable output order follows the VoteValue declaration
    return {v.value: counts[v.value] for v in VoteValue if counts.get(v.value, 0) > 0}


def _group_value(record: CounterRecord, group_by: GroupBy) -> str:
    if group_by == GroupBy.MESSAGE:
        return record.message_id
    if group_by == GroupBy.DATE:
        return record.day
    if group_by == GroupBy.REGION:
        return region_for_geo(record.geo).value
    return getattr(record, group_by.value)


def _checked_count(record: CounterRecord) -> int:
    if record.count < 0:
        report_inconsistent_counter(record.message_id, record.day, getattr(record, "shard", -1), record.count)
        return 0
    return record.count


# ============================================================================
# Service
# ============================================================================


class ResultsQueryService:
    """Aggregated, read-only views over vote counters."""

    def __init__(self, store: DocumentStore, counters: Optional[CounterRepository] = None):
        self.store = store
        self.counters = counters or CounterRepository(store)

    @staticmethod
    def _store_filters(filters: ResultsFilters) -> list[QueryFilter]:
        store_filters: list[QueryFilter] = []
        if filters.message_id:
            store_filters.append(eq("message_id", filters.message_id))
        for dimension in ("geo", "party", "demo"):
            value = getattr(filters, dimension)
            if value is not None:
                store_filters.append(eq(dimension, getattr(value, "value", value)))

        if filters.has_date_range or filters.group_by == GroupBy.DATE:
            store_filters.append(QueryFilter("day", "ne", ALL_DAYS))
            if filters.from_date is not None:
                store_filters.append(QueryFilter("day", "ge", filters.from_date.isoformat()))
            if filters.to_date is not None:
                store_filters.append(QueryFilter("day", "le", filters.to_date.isoformat()))
        else:
            store_filters.append(eq("day", ALL_DAYS))
        return store_filters

    async def _read_counters(self, filters: ResultsFilters) -> list[CounterRecord]:
        store_filters = self._store_filters(filters)
        shards = await self.counters.query_shards(store_filters)
        if not filters.use_rollups:
            return list(shards)

        rollups = await self.counters.query_rollups(store_filters)
        if not rollups:
            logger.info("results_rollups_missing", group_by=filters.group_by.value)
            return list(shards)

        # Keys first seen after the last refresh have no rollup yet
        covered = {rollup.id for rollup in rollups}
        fresh = [shard for shard in shards if record_key(shard) not in covered]
        if fresh:
            logger.info("results_rollups_partial", rollups=len(rollups), unrolled_shards=len(fresh))
        return [*rollups, *fresh]

    async def aggregate_vote_results(self, filters: Optional[ResultsFilters] = None) -> ResultsResponse:
        """
        Group counter values into result rows.

        Raises:
            VoteValidationError: ``from`` is after ``to``
        """
        filters = filters or ResultsFilters()
        if filters.from_date and filters.to_date and filters.from_date > filters.to_date:
            raise VoteValidationError("'from' must not be after 'to'")

        records = await self._read_counters(filters)

        grouped: dict[str, dict[str, int]] = defaultdict(lambda: defaultdict(int))
        totals: dict[str, int] = defaultdict(int)
        for record in records:
            count = _checked_count(record)
            if count == 0:
                continue
            grouped[_group_value(record, filters.group_by)][record.value] += count
            totals[record.value] += count

        items = [
            ResultRow(
                group_value=group_value,
                counts=_non_zero(counts),
                total=sum(counts.values()),
                favorability=favorability(counts),
            )
            for group_value, counts in sorted(grouped.items())
        ]

        logger.debug(
            "results_aggregated",
            group_by=filters.group_by.value,
            counters=len(records),
            rows=len(items),
        )
        return ResultsResponse(
            group_by=filters.group_by,
            items=items[: filters.limit],
            totals=_non_zero(totals),
        )

    async def _window_stats(self, filters: list[QueryFilter]) -> VoteWindowStats:
        counts: dict[str, int] = defaultdict(int)
        for record in await self.counters.query_shards(filters):
            counts[record.value] += _checked_count(record)
        counts = _non_zero(counts)
        return VoteWindowStats(
            counts=counts,
            total=sum(counts.values()),
            rates=rates(counts),
            favorability=favorability(counts),
        )

    async def get_message_vote_stats(self, message_id: str, today: Optional[date] = None) -> MessageVoteStats:
        """All-time and last-seven-days statistics for one message."""
        today = today or utc_now().date()
        window_start = today - timedelta(days=RECENT_WINDOW_DAYS - 1)

        all_time, recent = await asyncio.gather(
            self._window_stats([eq("message_id", message_id), eq("day", ALL_DAYS)]),
            self._window_stats(
                [
                    eq("message_id", message_id),
                    QueryFilter("day", "ne", ALL_DAYS),
                    QueryFilter("day", "ge", window_start.isoformat()),
                    QueryFilter("day", "le", today.isoformat()),
                ]
            ),
        )
        return MessageVoteStats(message_id=message_id, all_time=all_time, last_7_days=recent)

    async def compare_messages(self, message_a: str, message_b: str) -> MessageComparison:
        """Compare two messages on all-time favorability and engagement."""
        stats_a, stats_b = await asyncio.gather(
            self.get_message_vote_stats(message_a),
            self.get_message_vote_stats(message_b),
        )
        favorability_diff = stats_a.all_time.favorability - stats_b.all_time.favorability
        engagement_diff = stats_a.all_time.total - stats_b.all_time.total

        winner: Optional[str] = None
        if favorability_diff > 0:
            winner = "a"
        elif favorability_diff < 0:
            winner = "b"

        return MessageComparison(
            message_a=stats_a,
            message_b=stats_b,
            favorability_diff=favorability_diff,
            engagement_diff=engagement_diff,
            winner=winner,
        )
