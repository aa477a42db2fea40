"""
Document models for the vote pipeline.

These Pydantic models define the document structure persisted through the
document store. Every document is flat and carries its own ``id``, which is
also the store key (and the Cosmos partition key).

Collections:
- messages: Message definitions (admin owned)
- ab_pairs: A/B pairs of messages (admin owned)
- votes: Accepted ballots (raw voter ids are never stored)
- vote_dedup: One marker per (message, identity)
- idempotency: One marker per processed batch key
- vote_counters: Sharded aggregate counters
- vote_rollups: Shard sums maintained by the rollup job
"""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Bucket Enums
# ============================================================================


class GeoBucket(str, Enum):
    """US state (or DC) of the voter."""

    AL = "AL"
    AK = "AK"
    AZ = "AZ"
    AR = "AR"
    CA = "CA"
    CO = "CO"
    CT = "CT"
    DE = "DE"
    DC = "DC"
    FL = "FL"
    GA = "GA"
    HI = "HI"
    ID = "ID"
    IL = "IL"
    IN = "IN"
    IA = "IA"
    KS = "KS"
    KY = "KY"
    LA = "LA"
    ME = "ME"
    MD = "MD"
    MA = "MA"
    MI = "MI"
    MN = "MN"
    MS = "MS"
    MO = "MO"
    MT = "MT"
    NE = "NE"
    NV = "NV"
    NH = "NH"
    NJ = "NJ"
    NM = "NM"
    NY = "NY"
    NC = "NC"
    ND = "ND"
    OH = "OH"
    OK = "OK"
    OR = "OR"
    PA = "PA"
    RI = "RI"
    SC = "SC"
    SD = "SD"
    TN = "TN"
    TX = "TX"
    UT = "UT"
    VT = "VT"
    VA = "VA"
    WA = "WA"
    WV = "WV"
    WI = "WI"
    WY = "WY"
    UNKNOWN = "unknown"


class Region(str, Enum):
    """Census region, derived from the geo bucket at read time."""

    NORTHEAST = "northeast"
    MIDWEST = "midwest"
    SOUTH = "south"
    WEST = "west"
    UNKNOWN = "unknown"


class PartyBucket(str, Enum):
    """Self-reported party affiliation."""

    DEMOCRAT = "democrat"
    REPUBLICAN = "republican"
    INDEPENDENT = "independent"
    OTHER = "other"
    UNKNOWN = "unknown"


class DemoBucket(str, Enum):
    """Age band of the voter."""

    AGE_18_24 = "18_24"
    AGE_25_34 = "25_34"
    AGE_35_44 = "35_44"
    AGE_45_54 = "45_54"
    AGE_55_64 = "55_64"
    AGE_65_PLUS = "65_plus"
    UNKNOWN = "unknown"


# ============================================================================
# Vote Enums
# ============================================================================


class VoteValue(str, Enum):
    """Reaction recorded for a message."""

    LOVE = "love"
    LIKE = "like"
    DISLIKE = "dislike"
    HATE = "hate"
    UP = "up"
    DOWN = "down"


# Four-point scale as submitted by older clients (choice 1 = love ... 4 = hate)
CHOICE_VALUES = {
    1: VoteValue.LOVE,
    2: VoteValue.LIKE,
    3: VoteValue.DISLIKE,
    4: VoteValue.HATE,
}

FAVORABLE_VALUES = frozenset({VoteValue.LOVE.value, VoteValue.LIKE.value, VoteValue.UP.value})
UNFAVORABLE_VALUES = frozenset({VoteValue.DISLIKE.value, VoteValue.HATE.value, VoteValue.DOWN.value})


class IdentityKind(str, Enum):
    """Which identity a vote was deduplicated against."""

    USER = "user"
    ANON = "anon"


class MessageStatus(str, Enum):
    """Message lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"


class ABPairStatus(str, Enum):
    """A/B pair status."""

    ACTIVE = "active"
    INACTIVE = "inactive"


# Day value of the all-time aggregate counters
ALL_DAYS = "ALL"


# ============================================================================
# Voter Context
# ============================================================================


class Buckets(BaseModel):
    """The three anonymised dimensions attached to a vote."""

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    geo: GeoBucket = GeoBucket.UNKNOWN
    party: PartyBucket = PartyBucket.UNKNOWN
    demo: DemoBucket = DemoBucket.UNKNOWN


class VoterProfile(BaseModel):
    """
    Raw profile attributes a bucket can be derived from.

    Every field is optional; absent or unrecognised values map to the
    ``unknown`` bucket rather than failing.
    """

    model_config = ConfigDict(extra="ignore")

    state: Optional[str] = None
    zip_code: Optional[str] = None
    party_preference: Optional[str] = None
    political_alignment: Optional[str] = None
    age: Optional[int] = None
    birth_date: Optional[date] = None


# ============================================================================
# Base Document Model
# ============================================================================


class StoreDocument(BaseModel):
    """
    Base class for persisted documents.

    All documents have an ``id`` that doubles as the store key.
    """

    model_config = ConfigDict(
        # Tolerate extra fields written by older releases or the store itself
        extra="ignore",
        use_enum_values=True,
    )

    id: str = Field(default_factory=lambda: str(uuid4()))

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


# ============================================================================
# Message Documents
# ============================================================================


class MessageDocument(StoreDocument):
    """
    Message stored in the 'messages' collection.

    Only ``active`` messages accept votes. Deleting a message archives it so
    that historic counters keep a readable owner.
    """

    slogan: str = Field(..., min_length=1, max_length=240)
    subline: Optional[str] = Field(None, max_length=240)
    status: MessageStatus = MessageStatus.ACTIVE
    rank: str

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class ABPairDocument(StoreDocument):
    """A/B pair stored in the 'ab_pairs' collection."""

    message_a: str
    message_b: str
    status: ABPairStatus = ABPairStatus.ACTIVE
    rank: str

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# ============================================================================
# Vote Documents
# ============================================================================


class VoteDocument(StoreDocument):
    """
    Accepted vote stored in the 'votes' collection.

    Privacy-preserving: only the salted identity hash is kept.
    """

    message_id: str
    value: VoteValue
    identity_kind: IdentityKind
    identity_hash: str

    geo: GeoBucket = GeoBucket.UNKNOWN
    party: PartyBucket = PartyBucket.UNKNOWN
    demo: DemoBucket = DemoBucket.UNKNOWN

    day: str  # UTC day (YYYY-MM-DD) the server accepted the vote
    submitted_at: datetime = Field(default_factory=utc_now)
    voted_at_client: Optional[datetime] = None
    batch_id: str


class VoteDedupDocument(StoreDocument):
    """
    Dedup marker stored in the 'vote_dedup' collection.

    ``id`` is the identity hash, which already binds the message id.
    """

    message_id: str
    identity_kind: Optional[IdentityKind] = None
    voted_at: datetime = Field(default_factory=utc_now)


class IdempotencyDocument(StoreDocument):
    """Processed batch marker stored in the 'idempotency' collection."""

    processed_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime


# ============================================================================
# Aggregate Documents
# ============================================================================


class AggregateCounterDocument(StoreDocument):
    """
    Sharded counter stored in the 'vote_counters' collection.

    ``day`` is a UTC date or ``ALL`` for the all-time counter. The true count
    for a dimension tuple is the sum of its shards.
    """

    message_id: str
    day: str
    geo: GeoBucket
    party: PartyBucket
    demo: DemoBucket
    value: VoteValue
    shard: int
    count: int = 0


class AggregateRollupDocument(StoreDocument):
    """Sum of all shards of one counter key, refreshed by the rollup job."""

    message_id: str
    day: str
    geo: GeoBucket
    party: PartyBucket
    demo: DemoBucket
    value: VoteValue
    count: int = 0
    refreshed_at: datetime = Field(default_factory=utc_now)
