"""
LexoRank ordering for messages and A/B pairs.

Ranks are base-36 strings read as fractions (``"h"`` is 17/36, ``"h8"`` is
17/36 + 8/1296) and ordered lexicographically. A new rank can always be
placed between two distinct ranks, so moving one item rewrites one document.
Generated ranks never end in ``0``, which keeps lexicographic order and
fractional order in agreement.
"""

from typing import Optional

BASE36_CHARS = "0123456789abcdefghijklmnopqrstuvwxyz"
BASE = 36

# 'y': leaves room on both sides of the first item
INITIAL_RANK_VALUE = 34

# Ranks longer than this are still valid but trigger a rebalance
MAX_RANK_LENGTH = 12


def _to_base36(num: int, width: int) -> str:
    digits = []
    while num > 0:
        num, remainder = divmod(num, BASE)
        digits.append(BASE36_CHARS[remainder])
    return "".join(reversed(digits)).rjust(width, "0")


def _from_base36(rank: str) -> int:
    value = 0
    for char in rank:
        index = BASE36_CHARS.find(char)
        if index < 0:
            raise ValueError(f"Invalid base-36 character: {char!r}")
        value = value * BASE + index
    return value


def _scaled(rank: str, width: int) -> int:
    return _from_base36(rank.ljust(width, "0"))


def _format(num: int, width: int) -> str:
    return _to_base36(num, width).rstrip("0")


def is_valid_rank(rank: Optional[str]) -> bool:
    """A rank is a non-empty base-36 string with a non-zero value."""
    if not rank:
        return False
    if any(char not in BASE36_CHARS for char in rank):
        return False
    return rank.strip("0") != ""


def compare_ranks(rank1: str, rank2: str) -> int:
    """Compare two ranks by value; returns -1, 0 or 1."""
    width = max(len(rank1), len(rank2))
    left, right = rank1.ljust(width, "0"), rank2.ljust(width, "0")
    return (left > right) - (left < right)


def generate_initial_rank() -> str:
    return _to_base36(INITIAL_RANK_VALUE, 1)


def generate_initial_ranks(count: int) -> list[str]:
    """Evenly spaced, strictly increasing ranks for ``count`` items."""
    if count <= 0:
        return []

    width = 1
    while BASE**width < count + 1:
        width += 1
    step = BASE**width // (count + 1)
    return [_format(i * step, width) for i in range(1, count + 1)]


def generate_rank_between(before: Optional[str] = None, after: Optional[str] = None) -> str:
    """
    Generate a rank strictly between two ranks.

    Args:
        before: Rank that must sort before the new one (None for the start)
        after: Rank that must sort after the new one (None for the end)

    Raises:
        ValueError: A rank is invalid or ``before`` does not sort before ``after``
    """
    if before is None and after is None:
        return generate_initial_rank()

    for rank in (before, after):
        if rank is not None and not is_valid_rank(rank):
            raise ValueError(f"Invalid rank: {rank!r}")

    if before is not None and after is not None and compare_ranks(before, after) >= 0:
        raise ValueError("Before rank must be less than after rank")

    width = max(len(before or ""), len(after or ""))
    while True:
        low = _scaled(before, width) if before is not None else 0
        high = _scaled(after, width) if after is not None else BASE**width
        if high - low > 1:
            return _format((low + high) // 2, width)
        width += 1


def needs_rebalance(ranks: list[str]) -> bool:
    """True when ranks collide, are invalid, or have grown too long."""
    if any(not is_valid_rank(rank) or len(rank) > MAX_RANK_LENGTH for rank in ranks):
        return True

    ordered = sorted(ranks)
    return any(compare_ranks(current, following) >= 0 for current, following in zip(ordered, ordered[1:]))


def rebalance_ranks(ranks: list[str]) -> list[str]:
    """
    Evenly respaced ranks for items currently holding ``ranks``.

    The i-th returned rank belongs to the item at position i of ``ranks``;
    relative order is preserved (ties keep their input order).
    """
    order = sorted(range(len(ranks)), key=lambda i: ranks[i])
    fresh = generate_initial_ranks(len(ranks))
    result = [""] * len(ranks)
    for position, index in enumerate(order):
        result[index] = fresh[position]
    return result
