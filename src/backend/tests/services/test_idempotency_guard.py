"""
Tests for the idempotency guard.
"""

import asyncio

import pytest

from core.exceptions import DuplicateVoteError, VoteValidationError
from db.store import IDEMPOTENCY_COLLECTION, InMemoryDocumentStore
from services.idempotency_guard import IdempotencyGuard


@pytest.mark.unit
class TestIdempotencyGuard:
    """Test check, record and claim semantics."""

    async def test_unknown_key_is_not_processed(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())

        assert await guard.check_idempotency("batch-1") is False

    async def test_record_then_check(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())

        await guard.record_idempotency("batch-1")

        assert await guard.check_idempotency("batch-1") is True
        assert await guard.check_idempotency("batch-2") is False

    async def test_record_stores_expiry(self) -> None:
        store = InMemoryDocumentStore()
        await IdempotencyGuard(store, ttl_seconds=3600).record_idempotency("batch-1")

        record = await store.get(IDEMPOTENCY_COLLECTION, "batch-1")

        assert record["id"] == "batch-1"
        assert record["expires_at"] > record["processed_at"]

    async def test_expired_key_can_be_reused(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore(), ttl_seconds=-1)

        await guard.record_idempotency("batch-1")

        assert await guard.check_idempotency("batch-1") is False
        assert await guard.claim("batch-1") is True

    async def test_concurrent_claims_have_one_winner(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())

        results = await asyncio.gather(*(guard.claim("batch-1") for _ in range(10)))

        assert results.count(True) == 1

    async def test_require_claim_raises_on_replay(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())
        await guard.require_claim("batch-1")

        with pytest.raises(DuplicateVoteError):
            await guard.require_claim("batch-1")

    async def test_release_allows_retry(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())
        await guard.require_claim("batch-1")

        await guard.release("batch-1")

        assert await guard.claim("batch-1") is True

    @pytest.mark.parametrize("key", ["", "   "])
    async def test_empty_key_is_invalid(self, key: str) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())

        with pytest.raises(VoteValidationError):
            await guard.check_idempotency(key)

    @pytest.mark.parametrize("key", ["a/b", "key?x", "k#1", "x" * 129])
    async def test_key_format_is_enforced(self, key: str) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())

        with pytest.raises(VoteValidationError):
            await guard.claim(key)

    async def test_scopes_keep_callers_apart(self) -> None:
        store = InMemoryDocumentStore()
        guard = IdempotencyGuard(store)

        assert await guard.claim("retry-1", scope="alice") is True
        assert await guard.claim("retry-1", scope="bob") is True
        assert await guard.claim("retry-1", scope="alice") is False
        assert await guard.check_idempotency("retry-1") is False
        assert await store.get(IDEMPOTENCY_COLLECTION, "alice:retry-1") is not None

    async def test_release_is_scoped(self) -> None:
        guard = IdempotencyGuard(InMemoryDocumentStore())
        await guard.require_claim("retry-1", scope="alice")
        await guard.require_claim("retry-1", scope="bob")

        await guard.release("retry-1", scope="alice")

        assert await guard.claim("retry-1", scope="alice") is True
        assert await guard.claim("retry-1", scope="bob") is False
