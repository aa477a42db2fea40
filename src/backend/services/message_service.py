"""
Message and A/B pair administration.

Handles creation, updates, soft deletion and LexoRank reordering. Deleting a
message archives it; its counters stay queryable and it stops accepting votes.
"""

from typing import Optional, TypeVar, Union

import structlog

from core.exceptions import NotFoundError, VoteValidationError
from db.store import DocumentStore
from models.documents import ABPairDocument, ABPairStatus, MessageDocument, MessageStatus
from repositories.ab_pair_repository import ABPairRepository
from repositories.message_repository import MessageRepository
from schemas.message import ABPairCreate, ABPairPatch, MessageCreate, MessagePatch, ReorderRequest
from services.lexorank import generate_rank_between, needs_rebalance, rebalance_ranks

logger = structlog.get_logger(__name__)

Ranked = TypeVar("Ranked", MessageDocument, ABPairDocument)


class MessageService:
    """Admin operations over messages and A/B pairs."""

    def __init__(self, store: DocumentStore):
        self.messages = MessageRepository(store)
        self.pairs = ABPairRepository(store)

    # ========================================================================
    # Ranking
    # ========================================================================

    @staticmethod
    def _rank_at_end(items: list[Ranked]) -> str:
        return generate_rank_between(items[-1].rank if items else None, None)

    async def _rebalance(self, items: list[Ranked], repository: Union[MessageRepository, ABPairRepository]) -> None:
        """Respace ranks in place, saving only items whose rank changed."""
        new_ranks = rebalance_ranks([item.rank for item in items])
        changed = 0
        for item, rank in zip(items, new_ranks):
            if item.rank != rank:
                item.rank = rank
                await repository.save(item)
                changed += 1
        items.sort(key=lambda item: item.rank)
        logger.info("ranks_rebalanced", kind=type(items[0]).__name__ if items else None, changed=changed)

    async def _reorder(
        self,
        request: ReorderRequest,
        items: list[Ranked],
        repository: Union[MessageRepository, ABPairRepository],
        label: str,
    ) -> Ranked:
        by_id = {item.id: item for item in items}
        moving = by_id.get(request.id)
        if moving is None:
            raise NotFoundError(f"{label} to reorder not found")
        for neighbour_id, side in ((request.before_id, "Before"), (request.after_id, "After")):
            if neighbour_id is not None and neighbour_id not in by_id:
                raise VoteValidationError(f"{side} {label.lower()} not found")

        others = [item for item in items if item.id != moving.id]
        if needs_rebalance([item.rank for item in others]):
            await self._rebalance(others, repository)

        position = {item.id: index for index, item in enumerate(others)}
        before: Optional[Ranked] = by_id[request.before_id] if request.before_id else None
        after: Optional[Ranked] = by_id[request.after_id] if request.after_id else None

        if before is not None and after is None:
            following = position[before.id] + 1
            after = others[following] if following < len(others) else None
        elif after is not None and before is None:
            preceding = position[after.id] - 1
            before = others[preceding] if preceding >= 0 else None
        elif before is None and after is None:
            before = others[-1] if others else None

        if before is not None and after is not None and position[before.id] >= position[after.id]:
            raise VoteValidationError(f"Before {label.lower()} must sort ahead of after {label.lower()}")

        moving.rank = generate_rank_between(
            before.rank if before is not None else None,
            after.rank if after is not None else None,
        )
        await repository.save(moving)
        logger.info("item_reordered", kind=label, id=moving.id, rank=moving.rank)
        return moving

    # ========================================================================
    # Messages
    # ========================================================================

    async def list_messages(self, status: Optional[MessageStatus] = None) -> list[MessageDocument]:
        return await self.messages.list(status)

    async def get_message(self, message_id: str) -> MessageDocument:
        message = await self.messages.get_by_id(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message

    async def create_message(self, data: MessageCreate) -> MessageDocument:
        existing = await self.messages.list()
        message = MessageDocument(
            slogan=data.slogan,
            subline=data.subline,
            status=data.status,
            rank=self._rank_at_end(existing),
        )
        await self.messages.create(message)
        logger.info("message_created", message_id=message.id, status=message.status)
        return message

    async def update_message(self, message_id: str, patch: MessagePatch) -> MessageDocument:
        message = await self.get_message(message_id)
        for field_name, value in patch.model_dump(exclude_unset=True).items():
            if value is None and field_name != "subline":
                raise VoteValidationError(f"{field_name} cannot be null")
            setattr(message, field_name, value.value if isinstance(value, MessageStatus) else value)
        await self.messages.save(message)
        logger.info("message_updated", message_id=message_id, fields=sorted(patch.model_fields_set))
        return message

    async def archive_message(self, message_id: str) -> MessageDocument:
        message = await self.get_message(message_id)
        message.status = MessageStatus.ARCHIVED.value
        await self.messages.save(message)
        logger.info("message_archived", message_id=message_id)
        return message

    async def reorder_message(self, request: ReorderRequest) -> MessageDocument:
        return await self._reorder(request, await self.messages.list(), self.messages, "Message")

    # ========================================================================
    # A/B pairs
    # ========================================================================

    async def _validate_pair_messages(self, message_a: str, message_b: str) -> None:
        if message_a == message_b:
            raise VoteValidationError("An A/B pair needs two different messages")
        for message_id in (message_a, message_b):
            if await self.messages.get_by_id(message_id) is None:
                raise VoteValidationError(f"Message {message_id} not found")

    async def list_pairs(self, status: Optional[ABPairStatus] = None) -> list[ABPairDocument]:
        return await self.pairs.list(status)

    async def get_pair(self, pair_id: str) -> ABPairDocument:
        pair = await self.pairs.get_by_id(pair_id)
        if pair is None:
            raise NotFoundError("A/B pair not found")
        return pair

    async def create_pair(self, data: ABPairCreate) -> ABPairDocument:
        await self._validate_pair_messages(data.message_a, data.message_b)
        existing = await self.pairs.list()
        pair = ABPairDocument(
            message_a=data.message_a,
            message_b=data.message_b,
            status=data.status,
            rank=self._rank_at_end(existing),
        )
        await self.pairs.create(pair)
        logger.info("ab_pair_created", pair_id=pair.id)
        return pair

    async def update_pair(self, pair_id: str, patch: ABPairPatch) -> ABPairDocument:
        pair = await self.get_pair(pair_id)
        updates = patch.model_dump(exclude_unset=True)
        message_a = updates.get("message_a", pair.message_a)
        message_b = updates.get("message_b", pair.message_b)
        if "message_a" in updates or "message_b" in updates:
            await self._validate_pair_messages(message_a, message_b)

        pair.message_a = message_a
        pair.message_b = message_b
        if updates.get("status") is not None:
            pair.status = ABPairStatus(updates["status"]).value
        await self.pairs.save(pair)
        logger.info("ab_pair_updated", pair_id=pair_id, fields=sorted(patch.model_fields_set))
        return pair

    async def archive_pair(self, pair_id: str) -> ABPairDocument:
        pair = await self.get_pair(pair_id)
        pair.status = ABPairStatus.INACTIVE.value
        await self.pairs.save(pair)
        logger.info("ab_pair_archived", pair_id=pair_id)
        return pair

    async def reorder_pair(self, request: ReorderRequest) -> ABPairDocument:
        return await self._reorder(request, await self.pairs.list(), self.pairs, "A/B pair")
