"""
Admin Message Management Endpoints.

Provides CRUD, ordering and analytics for messages and A/B pairs.
These endpoints are protected and require admin privileges.

Security measures:
- All endpoints require valid JWT authentication
- Token must carry the is_admin claim
- Audit logging for all destructive operations
- Input validation via Pydantic schemas
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Query, Request, Response, status
from pydantic import ValidationError

from api.deps import (
    TokenUser,
    get_current_admin,
    get_message_service,
    get_results_service,
    get_rollup_service,
)
from core.exceptions import VoteValidationError
from models.documents import ABPairStatus, MessageStatus
from schemas.message import ABPair, ABPairCreate, ABPairPatch, Message, MessageCreate, MessagePatch, ReorderRequest
from schemas.vote import MessageComparison, MessageVoteStats, ResultsFilters, ResultsResponse
from services.message_service import MessageService
from services.results_query_service import ResultsQueryService
from services.rollup_service import RollupService

logger = structlog.get_logger(__name__)

router = APIRouter()

AdminUser = Annotated[TokenUser, Depends(get_current_admin)]
Messages = Annotated[MessageService, Depends(get_message_service)]


# ============================================================================
# Results and analytics
# ============================================================================


def get_results_filters(request: Request) -> ResultsFilters:
    """
    Build results filters from query parameters.

    Parameters may be spelled camelCase (``groupBy``, ``messageId``,
    ``useRollups``) or snake_case (``group_by``, ...); ``from`` and ``to``
    bound the date range.
    """
    try:
        return ResultsFilters.model_validate(dict(request.query_params))
    except ValidationError as e:
        error = e.errors()[0]
        field = ".".join(str(part) for part in error["loc"])
        raise VoteValidationError(f"Invalid results filter {field}: {error['msg']}") from e


@router.get("/results", response_model=ResultsResponse)
async def get_results(
    admin: AdminUser,
    filters: Annotated[ResultsFilters, Depends(get_results_filters)],
    service: Annotated[ResultsQueryService, Depends(get_results_service)],
) -> ResultsResponse:
    """Aggregated vote counts grouped by message, geo, region, party, demo or date."""
    return await service.aggregate_vote_results(filters)


@router.get("/abtest/compare", response_model=MessageComparison)
async def compare_messages(
    admin: AdminUser,
    service: Annotated[ResultsQueryService, Depends(get_results_service)],
    messages: Messages,
    message_a: str,
    message_b: str,
) -> MessageComparison:
    """Compare two messages head to head."""
    await messages.get_message(message_a)
    await messages.get_message(message_b)
    return await service.compare_messages(message_a, message_b)


@router.post("/rollups/refresh")
async def refresh_rollups(
    admin: AdminUser,
    service: Annotated[RollupService, Depends(get_rollup_service)],
    message_id: Optional[str] = None,
) -> dict[str, int]:
    """Refresh rollups now instead of waiting for the scheduled job."""
    written = await service.refresh_rollups(message_id)
    logger.info("admin_rollup_refresh", admin_id=admin.id, message_id=message_id, written=written)
    return {"written": written}


# ============================================================================
# A/B pairs
# ============================================================================


@router.get("/abtest/pairs", response_model=list[ABPair])
async def list_pairs(
    admin: AdminUser,
    messages: Messages,
    status_filter: Annotated[Optional[ABPairStatus], Query(alias="status")] = None,
) -> list[ABPair]:
    pairs = await messages.list_pairs(status_filter)
    return [ABPair.model_validate(p) for p in pairs]


@router.post("/abtest/pairs", response_model=ABPair, status_code=status.HTTP_201_CREATED)
async def create_pair(data: ABPairCreate, admin: AdminUser, messages: Messages) -> ABPair:
    pair = await messages.create_pair(data)
    logger.info("admin_pair_created", admin_id=admin.id, pair_id=pair.id)
    return ABPair.model_validate(pair)


@router.post("/abtest/reorder", response_model=ABPair)
async def reorder_pair(data: ReorderRequest, admin: AdminUser, messages: Messages) -> ABPair:
    return ABPair.model_validate(await messages.reorder_pair(data))


@router.get("/abtest/{pair_id}", response_model=ABPair)
async def get_pair(pair_id: str, admin: AdminUser, messages: Messages) -> ABPair:
    return ABPair.model_validate(await messages.get_pair(pair_id))


@router.patch("/abtest/{pair_id}", response_model=ABPair)
async def update_pair(pair_id: str, data: ABPairPatch, admin: AdminUser, messages: Messages) -> ABPair:
    pair = await messages.update_pair(pair_id, data)
    logger.info("admin_pair_updated", admin_id=admin.id, pair_id=pair_id)
    return ABPair.model_validate(pair)


@router.delete("/abtest/{pair_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_pair(pair_id: str, admin: AdminUser, messages: Messages) -> Response:
    """Deactivate an A/B pair."""
    await messages.archive_pair(pair_id)
    logger.info("admin_pair_deleted", admin_id=admin.id, pair_id=pair_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Messages
# ============================================================================


@router.get("", response_model=list[Message])
async def list_messages(
    admin: AdminUser,
    messages: Messages,
    status_filter: Annotated[Optional[MessageStatus], Query(alias="status")] = None,
) -> list[Message]:
    """All messages (optionally by status) in rank order."""
    return [Message.model_validate(m) for m in await messages.list_messages(status_filter)]


@router.post("", response_model=Message, status_code=status.HTTP_201_CREATED)
async def create_message(data: MessageCreate, admin: AdminUser, messages: Messages) -> Message:
    message = await messages.create_message(data)
    logger.info("admin_message_created", admin_id=admin.id, message_id=message.id)
    return Message.model_validate(message)


@router.post("/reorder", response_model=Message)
async def reorder_message(data: ReorderRequest, admin: AdminUser, messages: Messages) -> Message:
    """Move a message between two neighbours."""
    return Message.model_validate(await messages.reorder_message(data))


@router.get("/{message_id}", response_model=Message)
async def get_message(message_id: str, admin: AdminUser, messages: Messages) -> Message:
    return Message.model_validate(await messages.get_message(message_id))


@router.get("/{message_id}/stats", response_model=MessageVoteStats)
async def get_message_stats(
    message_id: str,
    admin: AdminUser,
    messages: Messages,
    service: Annotated[ResultsQueryService, Depends(get_results_service)],
) -> MessageVoteStats:
    """All-time and last-7-days vote statistics for a message."""
    await messages.get_message(message_id)
    return await service.get_message_vote_stats(message_id)


@router.patch("/{message_id}", response_model=Message)
async def update_message(message_id: str, data: MessagePatch, admin: AdminUser, messages: Messages) -> Message:
    message = await messages.update_message(message_id, data)
    logger.info("admin_message_updated", admin_id=admin.id, message_id=message_id)
    return Message.model_validate(message)


@router.delete("/{message_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_message(message_id: str, admin: AdminUser, messages: Messages) -> Response:
    """Archive a message; its votes and counters are kept."""
    await messages.archive_message(message_id)
    logger.info("admin_message_deleted", admin_id=admin.id, message_id=message_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
