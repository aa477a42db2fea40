"""
Vote aggregation engine.

Processes a batch of votes from one voter:

1. Resolve the voter identity (user id, else anonymous session id).
2. Claim the batch idempotency key, scoped to the voter; a replayed key
   changes nothing.
3. Derive the voter's buckets once for the whole batch.
4. For each vote, check the message, claim the (message, identity) dedup
   marker, then increment the day and all-time counters and store the ballot.

Per-vote problems are reported in the result and never abort the batch. Only
storage failures abort, after releasing the claims that would otherwise block
a retry.
"""

import warnings
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Optional, Sequence
from uuid import uuid4

import structlog
from pydantic import ValidationError

from core.config import settings
from core.exceptions import ConsistencyWarning, DuplicateVoteError, StorageError, VoteValidationError
from core.security import generate_caller_hash
from db.store import DocumentStore
from models.documents import (
    ALL_DAYS,
    Buckets,
    IdentityKind,
    MessageDocument,
    MessageStatus,
    VoteDocument,
    VoterProfile,
    utc_now,
)
from repositories.counter_repository import CounterRepository
from repositories.message_repository import MessageRepository
from repositories.vote_repository import VoteRepository
from schemas.vote import BucketContext, VoteIn
from services.bucket_deriver import derive_buckets, override_buckets
from services.idempotency_guard import IdempotencyGuard
from services.vote_dedup_guard import VoteDedupGuard

logger = structlog.get_logger(__name__)


@dataclass
class VoteBatchResult:
    """Outcome of one batch; ``accepted + dropped + len(errors)`` equals the batch size."""

    accepted: int = 0
    dropped: int = 0
    errors: list[str] = field(default_factory=list)
    batch_id: str = ""
    replayed: bool = False


def resolve_identity(user_id: Optional[str], anon_session_id: Optional[str]) -> tuple[IdentityKind, str]:
    """Authenticated user wins; otherwise the anonymous session; otherwise reject."""
    if user_id:
        return IdentityKind.USER, user_id
    if anon_session_id:
        return IdentityKind.ANON, anon_session_id
    raise VoteValidationError("A user id or anonymous session id is required to vote")


class VoteAggregationEngine:
    """
    Applies vote batches to the store.

    The engine keeps no state between calls, so one instance can serve
    concurrent batches.
    """

    def __init__(
        self,
        store: DocumentStore,
        idempotency_guard: Optional[IdempotencyGuard] = None,
        dedup_guard: Optional[VoteDedupGuard] = None,
        shard_count: Optional[int] = None,
        max_batch_size: Optional[int] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.store = store
        self.idempotency_guard = idempotency_guard or IdempotencyGuard(store)
        self.dedup_guard = dedup_guard or VoteDedupGuard(store, ttl_seconds=settings.vote_dedup_ttl_seconds)
        self.messages = MessageRepository(store)
        self.votes = VoteRepository(store)
        self.counters = CounterRepository(store, shard_count=shard_count or settings.COUNTER_SHARD_COUNT)
        self.max_batch_size = max_batch_size or settings.MAX_VOTES_PER_BATCH
        self.clock = clock

    def _parse_votes(self, votes: Sequence[Any]) -> list[VoteIn]:
        if not votes:
            raise VoteValidationError("A vote batch must contain at least one vote")
        if len(votes) > self.max_batch_size:
            raise VoteValidationError(f"A vote batch may contain at most {self.max_batch_size} votes")
        try:
            return [vote if isinstance(vote, VoteIn) else VoteIn.model_validate(vote) for vote in votes]
        except ValidationError as e:
            raise VoteValidationError(f"Invalid vote: {e.errors()[0]['msg']}") from e

    @staticmethod
    def _resolve_buckets(profile: Optional[VoterProfile], user_context: Optional[BucketContext]) -> Buckets:
        buckets = derive_buckets(profile)
        if user_context is None:
            return buckets
        return override_buckets(buckets, user_context.geo, user_context.party, user_context.demo)

    async def process_vote_batch(
        self,
        votes: Sequence[Any],
        profile: Optional[VoterProfile] = None,
        user_id: Optional[str] = None,
        anon_session_id: Optional[str] = None,
        idempotency_key: Optional[str] = None,
        user_context: Optional[BucketContext] = None,
        source: str = "messages",
    ) -> VoteBatchResult:
        """
        Validate, deduplicate and count a batch of votes.

        Args:
            votes: ``VoteIn`` instances or equivalent mappings
            profile: Raw voter attributes used to derive buckets
            user_id: Authenticated user id (takes precedence)
            anon_session_id: Anonymous session id
            idempotency_key: Client supplied key; one is generated when absent
            user_context: Explicit buckets overriding profile-derived ones
            source: Label for logs (``messages`` or ``abtest``)

        Returns:
            VoteBatchResult with accepted/dropped counts and per-vote errors

        Raises:
            VoteValidationError: Malformed batch or no voter identity
            StorageError: The store failed; nothing further was applied
        """
        parsed = self._parse_votes(votes)
        identity_kind, identity_key = resolve_identity(user_id, anon_session_id)
        batch_id = idempotency_key or uuid4().hex
        caller_scope = generate_caller_hash(identity_key, identity_kind.value)

        try:
            await self.idempotency_guard.require_claim(batch_id, caller_scope)
        except DuplicateVoteError:
            logger.info(
                "idempotency_replay",
                source=source,
                batch_size=len(parsed),
                key_prefix=batch_id[:8],
            )
            return VoteBatchResult(dropped=len(parsed), batch_id=batch_id, replayed=True)

        buckets = self._resolve_buckets(profile, user_context)
        day = self.clock().date().isoformat()
        result = VoteBatchResult(batch_id=batch_id)
        message_cache: dict[str, Optional[MessageDocument]] = {}

        try:
            for index, vote in enumerate(parsed):
                if vote.message_id not in message_cache:
                    message_cache[vote.message_id] = await self.messages.get_by_id(vote.message_id)
                message = message_cache[vote.message_id]

                if message is None:
                    result.errors.append(f"vote {index}: message '{vote.message_id}' not found")
                    continue
                if message.status != MessageStatus.ACTIVE.value:
                    result.errors.append(f"vote {index}: message '{vote.message_id}' is not active")
                    continue

                try:
                    identity_hash = await self.dedup_guard.require_claim(
                        vote.message_id, identity_key, identity_kind
                    )
                except DuplicateVoteError:
                    result.dropped += 1
                    continue

                await self._apply_vote(vote, identity_key, identity_kind, identity_hash, buckets, day, batch_id)
                result.accepted += 1
        except StorageError:
            logger.error(
                "vote_batch_aborted",
                source=source,
                batch_id=batch_id[:8],
                accepted_before_failure=result.accepted,
            )
            await self._release_quietly(
                self.idempotency_guard.release(batch_id, caller_scope), "idempotency"
            )
            raise

        if result.errors:
            logger.warning("vote_batch_errors", source=source, batch_id=batch_id[:8], errors=result.errors)

        logger.info(
            "vote_batch_processed",
            source=source,
            batch_id=batch_id[:8],
            identity_kind=identity_kind.value,
            accepted=result.accepted,
            dropped=result.dropped,
            errors=len(result.errors),
        )
        return result

    async def _apply_vote(
        self,
        vote: VoteIn,
        identity_key: str,
        identity_kind: IdentityKind,
        identity_hash: str,
        buckets: Buckets,
        day: str,
        batch_id: str,
    ) -> None:
        """Count one claimed vote and store its ballot."""
        value = vote.value.value
        shard = self.counters.shard_for(vote.message_id, identity_hash)
        incremented = False

        try:
            for counter_day in (day, ALL_DAYS):
                count = await self.counters.increment(vote.message_id, counter_day, buckets, value, shard)
                incremented = True
                if count < 1:
                    report_inconsistent_counter(vote.message_id, counter_day, shard, count)

            await self.votes.create(
                VoteDocument(
                    message_id=vote.message_id,
                    value=vote.value,
                    identity_kind=identity_kind,
                    identity_hash=identity_hash,
                    geo=buckets.geo,
                    party=buckets.party,
                    demo=buckets.demo,
                    day=day,
                    voted_at_client=vote.voted_at_client,
                    batch_id=batch_id,
                )
            )
        except StorageError:
            # Once any counter moved the vote is counted; keep the marker so a
            # retry cannot count it twice.
            if not incremented:
                await self._release_quietly(
                    self.dedup_guard.release(vote.message_id, identity_key, identity_kind), "dedup"
                )
            raise

    @staticmethod
    async def _release_quietly(release, claim: str) -> None:
        try:
            await release
        except StorageError as e:
            logger.error("claim_release_failed", claim=claim, error=str(e))


def report_inconsistent_counter(message_id: str, day: str, shard: int, count: int) -> None:
    """Surface a counter seen at an impossible value to operators."""
    logger.error(
        "counter_consistency_warning",
        message_id=message_id,
        day=day,
        shard=shard,
        count=count,
    )
    warnings.warn(
        f"Counter for message {message_id} day {day} shard {shard} observed at {count}",
        ConsistencyWarning,
        stacklevel=2,
    )
