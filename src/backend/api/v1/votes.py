"""
Vote batch endpoints.

Voters submit reactions in batches. Authenticated callers vote as their user;
everyone else votes under an anonymous session. The response only reports
how many votes were accepted or dropped; per-vote errors are logged.
"""

from typing import Annotated, Optional

import structlog
from fastapi import APIRouter, Depends, Header

from api.deps import VoterIdentity, get_vote_engine, get_voter_identity
from schemas.vote import VoteBatchRequest, VoteBatchResponse
from services.vote_aggregation_service import VoteAggregationEngine

logger = structlog.get_logger(__name__)

router = APIRouter()


async def _process(
    batch: VoteBatchRequest,
    voter: VoterIdentity,
    engine: VoteAggregationEngine,
    idempotency_header: Optional[str],
    source: str,
) -> VoteBatchResponse:
    result = await engine.process_vote_batch(
        batch.votes,
        profile=batch.profile,
        user_id=voter.user_id,
        anon_session_id=voter.anon_session_id,
        idempotency_key=batch.idempotency_key or idempotency_header,
        user_context=batch.user_context,
        source=source,
    )
    return VoteBatchResponse(accepted=result.accepted, dropped=result.dropped)


@router.post("/vote-batch", response_model=VoteBatchResponse)
async def submit_vote_batch(
    batch: VoteBatchRequest,
    voter: Annotated[VoterIdentity, Depends(get_voter_identity)],
    engine: Annotated[VoteAggregationEngine, Depends(get_vote_engine)],
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
) -> VoteBatchResponse:
    """
    Submit a batch of message votes.

    The idempotency key may be sent in the body or the ``Idempotency-Key``
    header; replaying a processed key reports every vote as dropped.
    """
    return await _process(batch, voter, engine, idempotency_key, source="messages")


@router.post("/abtest/vote-batch", response_model=VoteBatchResponse)
async def submit_abtest_vote_batch(
    batch: VoteBatchRequest,
    voter: Annotated[VoterIdentity, Depends(get_voter_identity)],
    engine: Annotated[VoteAggregationEngine, Depends(get_vote_engine)],
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
) -> VoteBatchResponse:
    """
    Submit votes cast while comparing an A/B pair.

    A/B votes usually arrive as one vote per message of the pair; they are
    counted exactly like regular votes.
    """
    return await _process(batch, voter, engine, idempotency_key, source="abtest")
