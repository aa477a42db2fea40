"""
Vote dedup guard.

Enforces one counted vote per (message, identity). The marker key is a salted
hash of the identity kind, the identity and the message id, so markers
cannot be linked back to a voter or across messages.

Anonymous session ids and user ids are separate identity spaces: the same
string used as a session id and as a user id yields two different markers,
and an anonymous vote is never reconciled with a later authenticated one.
"""

from typing import Optional, Union

import structlog

from core.exceptions import DuplicateVoteError, VoteValidationError
from core.security import generate_identity_hash
from db.store import VOTE_DEDUP_COLLECTION, DocumentStore
from models.documents import IdentityKind, VoteDedupDocument

logger = structlog.get_logger(__name__)

Kind = Union[IdentityKind, str]


class VoteDedupGuard:
    """Tracks which identities have voted on which messages."""

    def __init__(self, store: DocumentStore, ttl_seconds: Optional[int] = None):
        # None keeps markers forever
        self.store = store
        self.ttl_seconds = ttl_seconds

    @staticmethod
    def marker_id(message_id: str, identity_key: str, identity_kind: Kind = IdentityKind.USER) -> str:
        if not message_id or not identity_key:
            raise VoteValidationError("message id and identity are required for dedup")
        kind = IdentityKind(identity_kind).value
        return generate_identity_hash(identity_key, message_id, kind)

    def _record(self, marker: str, message_id: str, identity_kind: Kind) -> dict:
        return VoteDedupDocument(
            id=marker,
            message_id=message_id,
            identity_kind=IdentityKind(identity_kind),
        ).to_record()

    async def has_voted(
        self,
        message_id: str,
        identity_key: str,
        identity_kind: Kind = IdentityKind.USER,
    ) -> bool:
        marker = self.marker_id(message_id, identity_key, identity_kind)
        return await self.store.get(VOTE_DEDUP_COLLECTION, marker) is not None

    async def record_vote(
        self,
        message_id: str,
        identity_key: str,
        identity_kind: Kind = IdentityKind.USER,
    ) -> None:
        marker = self.marker_id(message_id, identity_key, identity_kind)
        await self.store.put(
            VOTE_DEDUP_COLLECTION,
            marker,
            self._record(marker, message_id, identity_kind),
            ttl_seconds=self.ttl_seconds,
        )

    async def claim(
        self,
        message_id: str,
        identity_key: str,
        identity_kind: Kind = IdentityKind.USER,
    ) -> bool:
        """
        Atomically check-and-record a vote marker.

        Returns:
            True if this is the identity's first vote on the message
        """
        marker = self.marker_id(message_id, identity_key, identity_kind)
        return await self.store.put_if_absent(
            VOTE_DEDUP_COLLECTION,
            marker,
            self._record(marker, message_id, identity_kind),
            ttl_seconds=self.ttl_seconds,
        )

    async def require_claim(
        self,
        message_id: str,
        identity_key: str,
        identity_kind: Kind = IdentityKind.USER,
    ) -> str:
        """Claim the marker or raise ``DuplicateVoteError``; returns the marker id."""
        if not await self.claim(message_id, identity_key, identity_kind):
            raise DuplicateVoteError(f"identity already voted on message {message_id}")
        return self.marker_id(message_id, identity_key, identity_kind)

    async def release(
        self,
        message_id: str,
        identity_key: str,
        identity_kind: Kind = IdentityKind.USER,
    ) -> None:
        """Drop a marker whose vote could not be persisted."""
        marker = self.marker_id(message_id, identity_key, identity_kind)
        await self.store.delete(VOTE_DEDUP_COLLECTION, marker)
        logger.warning("vote_dedup_marker_released", message_id=message_id, marker_prefix=marker[:8])
