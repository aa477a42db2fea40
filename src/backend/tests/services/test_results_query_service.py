"""
Tests for the results query service.
"""

from datetime import date, datetime, timedelta, timezone

import pytest

from core.exceptions import ConsistencyWarning, VoteValidationError
from db.store import VOTE_COUNTERS_COLLECTION
from models.documents import AggregateCounterDocument
from schemas.vote import BucketContext, GroupBy, ResultsFilters
from services.results_query_service import ResultsQueryService, favorability, rates
from services.rollup_service import RollupService
from services.vote_aggregation_service import VoteAggregationEngine

DAY_1 = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)
DAY_2 = datetime(2024, 3, 5, 9, 0, tzinfo=timezone.utc)


async def cast(store, message_id: str, value: str, voter: str, when: datetime = DAY_2, **buckets) -> None:
    engine = VoteAggregationEngine(store, shard_count=4, clock=lambda: when)
    await engine.process_vote_batch(
        [{"message_id": message_id, "value": value}],
        user_id=voter,
        user_context=BucketContext(**buckets),
    )


@pytest.mark.unit
class TestVoteMath:
    """Test favorability and rates."""

    def test_favorability(self) -> None:
        assert favorability({}) == 0.0
        assert favorability({"love": 2, "like": 1, "hate": 1}) == 0.5
        assert favorability({"down": 3}) == -1.0

    def test_rates(self) -> None:
        assert rates({}) == {}
        assert rates({"up": 1, "down": 3}) == {"up": 0.25, "down": 0.75}


@pytest.mark.unit
class TestAggregateVoteResults:
    """Test grouped results over counters."""

    async def test_all_time_counts_each_vote_once(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", when=DAY_1)
        await cast(store, "m1", "hate", "u2", when=DAY_2)
        await cast(store, "m2", "like", "u1")

        response = await ResultsQueryService(store).aggregate_vote_results()

        assert response.group_by == GroupBy.MESSAGE
        assert [row.group_value for row in response.items] == ["m1", "m2"]
        m1 = response.items[0]
        assert m1.counts == {"love": 1, "hate": 1}
        assert m1.total == 2
        assert m1.favorability == 0.0
        assert response.totals == {"love": 1, "like": 1, "hate": 1}

    async def test_results_never_decrease(self, store, seeded_messages) -> None:
        service = ResultsQueryService(store)
        previous = 0
        for i in range(5):
            await cast(store, "m1", "like", f"u{i}")
            total = sum((await service.aggregate_vote_results()).totals.values())
            assert total >= previous
            previous = total

        assert previous == 5

    async def test_date_range_reads_day_counters(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", when=DAY_1)
        await cast(store, "m1", "hate", "u2", when=DAY_2)

        service = ResultsQueryService(store)
        only_day_2 = await service.aggregate_vote_results(
            ResultsFilters(from_date=DAY_2.date(), to_date=DAY_2.date())
        )
        open_ended = await service.aggregate_vote_results(ResultsFilters(from_date=DAY_1.date()))

        assert only_day_2.totals == {"hate": 1}
        assert open_ended.totals == {"love": 1, "hate": 1}

    async def test_extending_to_never_lowers_counts(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", when=DAY_1)
        await cast(store, "m1", "hate", "u2", when=DAY_2)
        await cast(store, "m1", "love", "u3", when=DAY_2 + timedelta(days=3))

        service = ResultsQueryService(store)
        windows = [
            ResultsFilters(from_date=DAY_1.date(), to_date=DAY_1.date()),
            ResultsFilters(from_date=DAY_1.date(), to_date=DAY_2.date()),
            ResultsFilters(from_date=DAY_1.date()),
        ]
        totals = [(await service.aggregate_vote_results(f)).totals for f in windows]

        assert totals == [{"love": 1}, {"love": 1, "hate": 1}, {"love": 2, "hate": 1}]
        for narrower, wider in zip(totals, totals[1:]):
            assert all(wider.get(value, 0) >= count for value, count in narrower.items())

    async def test_from_after_to_is_invalid(self, store) -> None:
        filters = ResultsFilters(from_date=date(2024, 3, 5), to_date=date(2024, 3, 4))

        with pytest.raises(VoteValidationError):
            await ResultsQueryService(store).aggregate_vote_results(filters)

    async def test_group_by_date(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", when=DAY_1)
        await cast(store, "m1", "like", "u2", when=DAY_2)
        await cast(store, "m2", "like", "u3", when=DAY_2)

        response = await ResultsQueryService(store).aggregate_vote_results(ResultsFilters(group_by=GroupBy.DATE))

        assert [(row.group_value, row.total) for row in response.items] == [
            ("2024-03-04", 1),
            ("2024-03-05", 2),
        ]

    async def test_group_by_region(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", geo="CA")
        await cast(store, "m1", "love", "u2", geo="WA")
        await cast(store, "m1", "hate", "u3", geo="NY")
        await cast(store, "m1", "hate", "u4")

        response = await ResultsQueryService(store).aggregate_vote_results(ResultsFilters(group_by=GroupBy.REGION))

        rows = {row.group_value: row.counts for row in response.items}
        assert rows == {"west": {"love": 2}, "northeast": {"hate": 1}, "unknown": {"hate": 1}}

    async def test_bucket_filters_accept_aliases(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1", geo="CA", party="d")
        await cast(store, "m1", "hate", "u2", geo="CA", party="r")
        await cast(store, "m1", "hate", "u3", geo="TX", party="d")

        filters = ResultsFilters(group_by=GroupBy.PARTY, geo="california")
        response = await ResultsQueryService(store).aggregate_vote_results(filters)

        assert {row.group_value: row.total for row in response.items} == {"democrat": 1, "republican": 1}

    async def test_limit(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1")
        await cast(store, "m2", "love", "u1")

        response = await ResultsQueryService(store).aggregate_vote_results(ResultsFilters(limit=1))

        assert [row.group_value for row in response.items] == ["m1"]
        assert response.totals == {"love": 2}

    async def test_negative_counter_is_clamped_and_reported(self, store) -> None:
        record = AggregateCounterDocument(
            id="bad",
            message_id="m1",
            day="ALL",
            geo="unknown",
            party="unknown",
            demo="unknown",
            value="love",
            shard=0,
            count=-3,
        ).to_record()
        await store.put(VOTE_COUNTERS_COLLECTION, "bad", record)

        with pytest.warns(ConsistencyWarning):
            response = await ResultsQueryService(store).aggregate_vote_results()

        assert response.items == []


@pytest.mark.unit
class TestRollupReads:
    """Test results served from rollups."""

    async def test_missing_rollups_fall_back_to_shards(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1")

        response = await ResultsQueryService(store).aggregate_vote_results(ResultsFilters(use_rollups=True))

        assert response.totals == {"love": 1}

    async def test_rollups_lag_until_refreshed(self, store, seeded_messages) -> None:
        service = ResultsQueryService(store)
        await cast(store, "m1", "love", "u1")
        await RollupService(store).refresh_rollups()
        await cast(store, "m1", "love", "u2")

        stale = await service.aggregate_vote_results(ResultsFilters(use_rollups=True))
        await RollupService(store).refresh_rollups()
        fresh = await service.aggregate_vote_results(ResultsFilters(use_rollups=True))

        assert stale.totals == {"love": 1}
        assert fresh.totals == {"love": 2}

    async def test_keys_added_after_refresh_come_from_shards(self, store, seeded_messages) -> None:
        service = ResultsQueryService(store)
        await cast(store, "m1", "love", "u1", geo="CA")
        await RollupService(store).refresh_rollups()
        await cast(store, "m1", "hate", "u2", geo="NY")
        await cast(store, "m2", "like", "u3")

        response = await service.aggregate_vote_results(ResultsFilters(use_rollups=True))
        by_geo = await service.aggregate_vote_results(ResultsFilters(use_rollups=True, group_by=GroupBy.GEO))

        assert response.totals == {"love": 1, "hate": 1, "like": 1}
        assert {row.group_value: row.counts for row in by_geo.items} == {
            "CA": {"love": 1},
            "NY": {"hate": 1},
            "unknown": {"like": 1},
        }


@pytest.mark.unit
class TestMessageStats:
    """Test per-message statistics and comparison."""

    async def test_recent_window_includes_today_and_six_prior_days(self, store, seeded_messages) -> None:
        today = DAY_2
        await cast(store, "m1", "love", "u1", when=today)
        await cast(store, "m1", "like", "u2", when=today - timedelta(days=6))
        await cast(store, "m1", "hate", "u3", when=today - timedelta(days=7))

        stats = await ResultsQueryService(store).get_message_vote_stats("m1", today=today.date())

        assert stats.all_time.total == 3
        assert stats.last_7_days.counts == {"love": 1, "like": 1}
        assert stats.last_7_days.favorability == 1.0
        assert stats.all_time.rates["hate"] == pytest.approx(1 / 3)

    async def test_stats_for_message_without_votes(self, store, seeded_messages) -> None:
        stats = await ResultsQueryService(store).get_message_vote_stats("m2")

        assert stats.all_time.total == 0
        assert stats.all_time.favorability == 0.0
        assert stats.last_7_days.rates == {}

    async def test_compare_picks_more_favorable_message(self, store, seeded_messages) -> None:
        await cast(store, "m1", "hate", "u1")
        await cast(store, "m2", "love", "u1")
        await cast(store, "m2", "like", "u2")

        comparison = await ResultsQueryService(store).compare_messages("m1", "m2")

        assert comparison.winner == "b"
        assert comparison.favorability_diff == -2.0
        assert comparison.engagement_diff == -1

    async def test_compare_tie_has_no_winner(self, store, seeded_messages) -> None:
        await cast(store, "m1", "love", "u1")
        await cast(store, "m2", "like", "u1")

        comparison = await ResultsQueryService(store).compare_messages("m1", "m2")

        assert comparison.winner is None
        assert comparison.favorability_diff == 0.0
