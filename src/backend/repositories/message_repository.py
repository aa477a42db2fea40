"""
Message repository.

Messages are listed in rank order; ties on rank (which only appear before a
rebalance) fall back to creation time.
"""

from typing import Optional

from db.store import MESSAGES_COLLECTION, DocumentStore, QueryFilter, eq
from models.documents import MessageDocument, MessageStatus, utc_now


def rank_order(document) -> tuple:
    return (document.rank, document.created_at)


class MessageRepository:
    """Repository for message definitions."""

    def __init__(self, store: DocumentStore):
        self.store = store

    async def get_by_id(self, message_id: str) -> Optional[MessageDocument]:
        record = await self.store.get(MESSAGES_COLLECTION, message_id)
        return MessageDocument.model_validate(record) if record else None

    async def list(self, status: Optional[MessageStatus] = None) -> list[MessageDocument]:
        filters: list[QueryFilter] = []
        if status is not None:
            filters.append(eq("status", MessageStatus(status).value))
        records = await self.store.query(MESSAGES_COLLECTION, filters)
        return sorted((MessageDocument.model_validate(r) for r in records), key=rank_order)

    async def create(self, message: MessageDocument) -> MessageDocument:
        created = await self.store.put_if_absent(MESSAGES_COLLECTION, message.id, message.to_record())
        if not created:
            raise ValueError(f"Message {message.id} already exists")
        return message

    async def save(self, message: MessageDocument) -> MessageDocument:
        message.updated_at = utc_now()
        await self.store.put(MESSAGES_COLLECTION, message.id, message.to_record())
        return message
