"""Document models module."""

from models.documents import (
    ABPairDocument,
    ABPairStatus,
    AggregateCounterDocument,
    AggregateRollupDocument,
    Buckets,
    DemoBucket,
    GeoBucket,
    IdempotencyDocument,
    IdentityKind,
    MessageDocument,
    MessageStatus,
    PartyBucket,
    Region,
    VoteDedupDocument,
    VoteDocument,
    VoterProfile,
    VoteValue,
)

__all__ = [
    "ABPairDocument",
    "ABPairStatus",
    "AggregateCounterDocument",
    "AggregateRollupDocument",
    "Buckets",
    "DemoBucket",
    "GeoBucket",
    "IdempotencyDocument",
    "IdentityKind",
    "MessageDocument",
    "MessageStatus",
    "PartyBucket",
    "Region",
    "VoteDedupDocument",
    "VoteDocument",
    "VoterProfile",
    "VoteValue",
]
