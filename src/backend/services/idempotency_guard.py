"""
Idempotency guard for vote batches.

A client that retries a batch with the same idempotency key gets the batch
applied at most once. Keys are claimed with a conditional insert so two
concurrent requests carrying the same new key cannot both proceed.

Keys are chosen by clients, so the engine scopes each key to its caller:
two voters who both send ``retry-1`` hold two separate records.
"""

import re
from datetime import timedelta
from typing import Optional

import structlog

from core.config import settings
from core.exceptions import DuplicateVoteError, VoteValidationError
from db.store import IDEMPOTENCY_COLLECTION, DocumentStore
from models.documents import IdempotencyDocument, utc_now

logger = structlog.get_logger(__name__)

# Also safe as a Cosmos DB item id (no '/', '\\', '?' or '#')
IDEMPOTENCY_KEY_PATTERN = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class IdempotencyGuard:
    """Tracks processed idempotency keys in the store; records expire after a TTL."""

    def __init__(self, store: DocumentStore, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.idempotency_ttl_seconds

    @staticmethod
    def record_id(key: str, scope: Optional[str] = None) -> str:
        """Store id for a key, prefixed by the caller scope when there is one."""
        if not key or not key.strip():
            raise VoteValidationError("idempotency key must not be empty")
        if not IDEMPOTENCY_KEY_PATTERN.match(key):
            raise VoteValidationError(
                "idempotency key must be 1-128 letters, digits, '.', '_', ':' or '-'"
            )
        return f"{scope}:{key}" if scope else key

    def _record(self, record_id: str) -> dict:
        now = utc_now()
        return IdempotencyDocument(
            id=record_id,
            processed_at=now,
            expires_at=now + timedelta(seconds=self.ttl_seconds),
        ).to_record()

    async def check_idempotency(self, key: str, scope: Optional[str] = None) -> bool:
        """Return True if the key was already processed (and has not expired)."""
        return await self.store.get(IDEMPOTENCY_COLLECTION, self.record_id(key, scope)) is not None

    async def record_idempotency(self, key: str, scope: Optional[str] = None) -> None:
        """Mark the key as processed, unconditionally."""
        record_id = self.record_id(key, scope)
        await self.store.put(
            IDEMPOTENCY_COLLECTION,
            record_id,
            self._record(record_id),
            ttl_seconds=self.ttl_seconds,
        )

    async def claim(self, key: str, scope: Optional[str] = None) -> bool:
        """
        Atomically check-and-record a key.

        Returns:
            True if this caller now owns the key, False if it was already taken
        """
        record_id = self.record_id(key, scope)
        return await self.store.put_if_absent(
            IDEMPOTENCY_COLLECTION,
            record_id,
            self._record(record_id),
            ttl_seconds=self.ttl_seconds,
        )

    async def require_claim(self, key: str, scope: Optional[str] = None) -> None:
        """Claim the key or raise ``DuplicateVoteError`` if it was already processed."""
        if not await self.claim(key, scope):
            logger.info("idempotency_key_replayed", key_prefix=key[:8])
            raise DuplicateVoteError("idempotency key already processed")

    async def release(self, key: str, scope: Optional[str] = None) -> None:
        """Drop a claim so a batch aborted by a storage failure can be retried."""
        await self.store.delete(IDEMPOTENCY_COLLECTION, self.record_id(key, scope))
