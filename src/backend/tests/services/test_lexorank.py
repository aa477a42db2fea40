"""
Tests for LexoRank ordering.
"""

import pytest

from services.lexorank import (
    MAX_RANK_LENGTH,
    compare_ranks,
    generate_initial_rank,
    generate_initial_ranks,
    generate_rank_between,
    is_valid_rank,
    needs_rebalance,
    rebalance_ranks,
)


@pytest.mark.unit
class TestRankValidation:
    """Test rank validity and comparison."""

    @pytest.mark.parametrize("rank", ["a", "0i", "zz", "h8"])
    def test_valid_ranks(self, rank: str) -> None:
        assert is_valid_rank(rank) is True

    @pytest.mark.parametrize("rank", [None, "", "000", "A", "a-b"])
    def test_invalid_ranks(self, rank) -> None:
        assert is_valid_rank(rank) is False

    def test_compare_treats_trailing_zeros_as_equal(self) -> None:
        assert compare_ranks("a", "a0") == 0
        assert compare_ranks("a", "b") == -1
        assert compare_ranks("b", "ab") == 1


@pytest.mark.unit
class TestRankGeneration:
    """Test generating ranks."""

    def test_initial_rank(self) -> None:
        assert generate_initial_rank() == "y"
        assert generate_rank_between() == "y"

    def test_initial_ranks_are_increasing(self) -> None:
        ranks = generate_initial_ranks(3)

        assert ranks == ["9", "i", "r"]
        assert generate_initial_ranks(0) == []

    def test_many_initial_ranks_are_unique_and_sorted(self) -> None:
        ranks = generate_initial_ranks(100)

        assert len(set(ranks)) == 100
        assert ranks == sorted(ranks)

    def test_between_adjacent_ranks_extends_length(self) -> None:
        rank = generate_rank_between("a", "b")

        assert rank == "ai"
        assert "a" < rank < "b"

    def test_open_ends(self) -> None:
        assert generate_rank_between("h", None) == "q"
        assert generate_rank_between(None, "1") == "0i"

    def test_repeated_insertion_stays_ordered(self) -> None:
        low, high = "a", "b"
        for _ in range(20):
            middle = generate_rank_between(low, high)
            assert low < middle < high
            high = middle

    @pytest.mark.parametrize(("before", "after"), [("b", "a"), ("a", "a"), ("a", "a0")])
    def test_rejects_misordered_neighbours(self, before: str, after: str) -> None:
        with pytest.raises(ValueError):
            generate_rank_between(before, after)

    def test_rejects_invalid_rank(self) -> None:
        with pytest.raises(ValueError):
            generate_rank_between("A", None)


@pytest.mark.unit
class TestRebalance:
    """Test rebalance detection and respacing."""

    def test_healthy_ranks(self) -> None:
        assert needs_rebalance(["9", "i", "r"]) is False

    def test_collisions_and_long_ranks_need_rebalance(self) -> None:
        assert needs_rebalance(["a", "a"]) is True
        assert needs_rebalance(["a", "a0"]) is True
        assert needs_rebalance(["a" * (MAX_RANK_LENGTH + 1)]) is True

    def test_rebalance_preserves_positions_and_order(self) -> None:
        ranks = ["r", "a", "a", "k"]

        fresh = rebalance_ranks(ranks)

        assert fresh[1] < fresh[2] < fresh[3] < fresh[0]
        assert needs_rebalance(fresh) is False
