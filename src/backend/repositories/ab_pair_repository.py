"""
A/B pair repository.
"""

from typing import Optional

from db.store import AB_PAIRS_COLLECTION, DocumentStore, QueryFilter, eq
from models.documents import ABPairDocument, ABPairStatus, utc_now
from repositories.message_repository import rank_order


class ABPairRepository:
    """Repository for A/B pairs."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_by_id(self, pair_id: str) -> Optional[ABPairDocument]:
        record = await self.store.get(AB_PAIRS_COLLECTION, pair_id)
        return ABPairDocument.model_validate(record) if record else None

    async def list(self, status: Optional[ABPairStatus] = None) -> list[ABPairDocument]:
        filters: list[QueryFilter] = []
        if status is not None:
            filters.append(eq("status", ABPairStatus(status).value))
        records = await self.store.query(AB_PAIRS_COLLECTION, filters)
        return sorted((ABPairDocument.model_validate(r) for r in records), key=rank_order)

    async def create(self, pair: ABPairDocument) -> ABPairDocument:
        created = await self.store.put_if_absent(AB_PAIRS_COLLECTION, pair.id, pair.to_record())
        if not created:
            raise ValueError(f"A/B pair {pair.id} already exists")
        return pair

    async def save(self, pair: ABPairDocument) -> ABPairDocument:
        pair.updated_at = utc_now()
        await self.store.put(AB_PAIRS_COLLECTION, pair.id, pair.to_record())
        return pair
