"""Schemas module initialization."""

from schemas.message import ABPair, ABPairCreate, ABPairPatch, Message, MessageCreate, MessagePatch, ReorderRequest
from schemas.vote import (
    BucketContext,
    GroupBy,
    MessageComparison,
    MessageVoteStats,
    ResultRow,
    ResultsFilters,
    ResultsResponse,
    VoteBatchRequest,
    VoteBatchResponse,
    VoteIn,
)

__all__ = [
    "ABPair",
    "ABPairCreate",
    "ABPairPatch",
    "BucketContext",
    "GroupBy",
    "Message",
    "MessageComparison",
    "MessageCreate",
    "MessagePatch",
    "MessageVoteStats",
    "ReorderRequest",
    "ResultRow",
    "ResultsFilters",
    "ResultsResponse",
    "VoteBatchRequest",
    "VoteBatchResponse",
    "VoteIn",
]
