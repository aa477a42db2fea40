"""
Public message endpoints.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from api.deps import get_message_service
from models.documents import ABPairStatus, MessageStatus
from schemas.message import ABPair, Message
from services.message_service import MessageService

router = APIRouter()


@router.get("", response_model=list[Message])
async def list_active_messages(
    service: Annotated[MessageService, Depends(get_message_service)],
) -> list[Message]:
    """Active messages in display (rank) order."""
    messages = await service.list_messages(MessageStatus.ACTIVE)
    return [Message.model_validate(m) for m in messages]


@router.get("/abtest/pairs", response_model=list[ABPair])
async def list_active_pairs(
    service: Annotated[MessageService, Depends(get_message_service)],
) -> list[ABPair]:
    """Active A/B pairs in display (rank) order."""
    pairs = await service.list_pairs(ABPairStatus.ACTIVE)
    return [ABPair.model_validate(p) for p in pairs]
