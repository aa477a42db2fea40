"""
Vote repository.

Only the salted identity hash is stored with a ballot, never a user id or
session id.
"""

from db.store import VOTES_COLLECTION, DocumentStore
from models.documents import VoteDocument


class VoteRepository:
    """Append-only store of accepted votes."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create(self, vote: VoteDocument) -> VoteDocument:
        await self.store.put(VOTES_COLLECTION, vote.id, vote.to_record())
        return vote
