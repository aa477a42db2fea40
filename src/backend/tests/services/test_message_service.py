"""
Tests for message and A/B pair administration.
"""

import pytest
from pydantic import ValidationError

from core.exceptions import NotFoundError, VoteValidationError
from models.documents import MessageStatus
from schemas.message import ABPairCreate, ABPairPatch, MessageCreate, MessagePatch, ReorderRequest
from services.message_service import MessageService


async def create_messages(service: MessageService, count: int) -> list:
    return [await service.create_message(MessageCreate(slogan=f"Slogan {i}")) for i in range(count)]


async def ordered_ids(service: MessageService) -> list[str]:
    return [m.id for m in await service.list_messages()]


@pytest.mark.unit
class TestMessageCrud:
    """Test message create, update and archive."""

    async def test_new_messages_append_in_rank_order(self, store) -> None:
        service = MessageService(store)

        created = await create_messages(service, 3)

        assert await ordered_ids(service) == [m.id for m in created]
        assert created[0].rank == "y"

    async def test_get_missing_message(self, store) -> None:
        with pytest.raises(NotFoundError):
            await MessageService(store).get_message("nope")

    async def test_update_fields(self, store) -> None:
        service = MessageService(store)
        message = (await create_messages(service, 1))[0]

        updated = await service.update_message(
            message.id, MessagePatch(slogan="New slogan", subline=None, status=MessageStatus.DRAFT)
        )

        assert updated.slogan == "New slogan"
        assert updated.subline is None
        assert updated.status == "draft"
        assert (await service.get_message(message.id)).slogan == "New slogan"

    async def test_update_rejects_null_slogan(self, store) -> None:
        service = MessageService(store)
        message = (await create_messages(service, 1))[0]

        with pytest.raises(VoteValidationError):
            await service.update_message(message.id, MessagePatch(slogan=None))

    def test_empty_patch_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            MessagePatch()

    async def test_archive_keeps_message(self, store) -> None:
        service = MessageService(store)
        message = (await create_messages(service, 1))[0]

        await service.archive_message(message.id)

        assert (await service.get_message(message.id)).status == "archived"
        assert await service.list_messages(MessageStatus.ACTIVE) == []


@pytest.mark.unit
class TestReorderMessages:
    """Test LexoRank moves."""

    async def test_move_to_start(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)

        await service.reorder_message(ReorderRequest(id=c.id, after_id=a.id))

        assert await ordered_ids(service) == [c.id, a.id, b.id]

    async def test_move_between_neighbours(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)

        moved = await service.reorder_message(ReorderRequest(id=a.id, before_id=b.id, after_id=c.id))

        assert b.rank < moved.rank < c.rank
        assert await ordered_ids(service) == [b.id, a.id, c.id]

    async def test_move_after_item_takes_its_following_slot(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)

        await service.reorder_message(ReorderRequest(id=c.id, before_id=a.id))

        assert await ordered_ids(service) == [a.id, c.id, b.id]

    async def test_move_to_end(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)

        await service.reorder_message(ReorderRequest(id=a.id))

        assert await ordered_ids(service) == [b.id, c.id, a.id]

    async def test_misordered_neighbours_are_rejected(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)

        with pytest.raises(VoteValidationError):
            await service.reorder_message(ReorderRequest(id=a.id, before_id=c.id, after_id=b.id))

    async def test_unknown_items(self, store) -> None:
        service = MessageService(store)
        a, b = await create_messages(service, 2)

        with pytest.raises(NotFoundError):
            await service.reorder_message(ReorderRequest(id="nope", before_id=a.id))
        with pytest.raises(VoteValidationError):
            await service.reorder_message(ReorderRequest(id=a.id, before_id="nope"))

    def test_self_reference_is_invalid(self) -> None:
        with pytest.raises(ValidationError):
            ReorderRequest(id="a", before_id="a")

    async def test_colliding_ranks_are_rebalanced(self, store) -> None:
        service = MessageService(store)
        a, b, c = await create_messages(service, 3)
        for message in (a, b):
            message.rank = "m"
            await service.messages.save(message)

        await service.reorder_message(ReorderRequest(id=c.id, after_id=a.id))

        messages = await service.list_messages()
        ranks = [m.rank for m in messages]
        assert len(set(ranks)) == 3
        assert messages[0].id == c.id


@pytest.mark.unit
class TestABPairs:
    """Test A/B pair administration."""

    async def test_create_and_list(self, store, seeded_messages) -> None:
        service = MessageService(store)

        pair = await service.create_pair(ABPairCreate(message_a="m1", message_b="m2"))

        assert [p.id for p in await service.list_pairs()] == [pair.id]
        assert pair.status == "active"

    async def test_pair_needs_two_existing_messages(self, store, seeded_messages) -> None:
        service = MessageService(store)

        with pytest.raises(VoteValidationError):
            await service.create_pair(ABPairCreate(message_a="m1", message_b="m1"))
        with pytest.raises(VoteValidationError):
            await service.create_pair(ABPairCreate(message_a="m1", message_b="missing"))

    async def test_update_revalidates_messages(self, store, seeded_messages) -> None:
        service = MessageService(store)
        pair = await service.create_pair(ABPairCreate(message_a="m1", message_b="m2"))

        with pytest.raises(VoteValidationError):
            await service.update_pair(pair.id, ABPairPatch(message_b="m1"))

        updated = await service.update_pair(pair.id, ABPairPatch(message_b="draft", status="inactive"))
        assert (updated.message_b, updated.status) == ("draft", "inactive")

    async def test_archive_pair_deactivates(self, store, seeded_messages) -> None:
        service = MessageService(store)
        pair = await service.create_pair(ABPairCreate(message_a="m1", message_b="m2"))

        await service.archive_pair(pair.id)

        assert (await service.get_pair(pair.id)).status == "inactive"
        assert await service.list_pairs("active") == []

    async def test_reorder_pairs(self, store, seeded_messages) -> None:
        service = MessageService(store)
        first = await service.create_pair(ABPairCreate(message_a="m1", message_b="m2"))
        second = await service.create_pair(ABPairCreate(message_a="m2", message_b="m1"))

        await service.reorder_pair(ReorderRequest(id=second.id, after_id=first.id))

        assert [p.id for p in await service.list_pairs()] == [second.id, first.id]

    async def test_missing_pair(self, store) -> None:
        with pytest.raises(NotFoundError):
            await MessageService(store).get_pair("nope")
