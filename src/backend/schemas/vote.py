"""
Vote-related Pydantic schemas.

These schemas handle vote batch ingestion and aggregated results.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from core.config import settings
from models.documents import CHOICE_VALUES, DemoBucket, GeoBucket, PartyBucket, VoterProfile, VoteValue
from services.bucket_deriver import parse_demo, parse_geo, parse_party


def _parse_optional(parser, value: Any) -> Any:
    if value is None or not isinstance(value, str):
        return value
    return parser(value)


class WireModel(BaseModel):
    """camelCase on the wire; snake_case names are accepted on input too."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Ingestion
# ============================================================================


class VoteIn(WireModel):
    """A single vote as submitted by a client."""

    message_id: str = Field(..., min_length=1, max_length=128)
    value: VoteValue
    voted_at_client: Optional[datetime] = None

    @field_validator("value", mode="before")
    @classmethod
    def normalize_value(cls, v: Any) -> Any:
        """Accept four-point choices (1-4) as well as value names."""
        if isinstance(v, bool):
            return v
        if isinstance(v, int):
            if v not in CHOICE_VALUES:
                raise ValueError("choice must be between 1 and 4")
            return CHOICE_VALUES[v]
        if isinstance(v, str):
            text = v.strip().lower()
            if text.isdigit() and int(text) in CHOICE_VALUES:
                return CHOICE_VALUES[int(text)]
            return text
        return v


class BucketContext(WireModel):
    """
    Explicit, pre-derived buckets supplied by the caller.

    Each field overrides the profile-derived bucket when present. Aliases
    (``ca``, ``California``, ``D``, ``gop``, ``65+``) are normalised;
    unrecognised values are rejected.
    """

    geo: Optional[GeoBucket] = None
    party: Optional[PartyBucket] = None
    demo: Optional[DemoBucket] = None

    @field_validator("geo", mode="before")
    @classmethod
    def normalize_geo(cls, v: Any) -> Any:
        return _parse_optional(parse_geo, v)

    @field_validator("party", mode="before")
    @classmethod
    def normalize_party(cls, v: Any) -> Any:
        return _parse_optional(parse_party, v)

    @field_validator("demo", mode="before")
    @classmethod
    def normalize_demo(cls, v: Any) -> Any:
        return _parse_optional(parse_demo, v)


class VoteBatchRequest(WireModel):
    """Request body for a vote batch."""

    votes: list[VoteIn] = Field(..., min_length=1)
    idempotency_key: Optional[str] = Field(
        None,
        min_length=1,
        max_length=128,
        pattern=r"^[A-Za-z0-9._:-]+$",
        description="Client retry key, scoped to the voter",
    )
    user_context: Optional[BucketContext] = None
    profile: Optional[VoterProfile] = None

    @field_validator("votes")
    @classmethod
    def validate_batch_size(cls, v: list[VoteIn]) -> list[VoteIn]:
        if len(v) > settings.MAX_VOTES_PER_BATCH:
            raise ValueError(f"at most {settings.MAX_VOTES_PER_BATCH} votes per batch")
        return v


class VoteBatchResponse(WireModel):
    """Outcome of a vote batch as returned to end users."""

    accepted: int = Field(..., ge=0)
    dropped: int = Field(..., ge=0)


# ============================================================================
# Results
# ============================================================================


class GroupBy(str, Enum):
    """Dimension that result rows are grouped by."""

    MESSAGE = "message"
    GEO = "geo"
    REGION = "region"
    PARTY = "party"
    DEMO = "demo"
    DATE = "date"


class ResultsFilters(WireModel):
    """
    Filters for aggregated results.

    Bucket filters use the same aliases as explicit vote buckets. The date
    range is inclusive on both ends.
    """

    group_by: GroupBy = GroupBy.MESSAGE
    message_id: Optional[str] = None
    geo: Optional[GeoBucket] = None
    party: Optional[PartyBucket] = None
    demo: Optional[DemoBucket] = None
    from_date: Optional[date] = Field(None, alias="from")
    to_date: Optional[date] = Field(None, alias="to")
    limit: int = Field(default=settings.RESULTS_DEFAULT_LIMIT, ge=1, le=settings.RESULTS_MAX_LIMIT)
    use_rollups: bool = False

    @field_validator("geo", mode="before")
    @classmethod
    def normalize_geo(cls, v: Any) -> Any:
        return _parse_optional(parse_geo, v)

    @field_validator("party", mode="before")
    @classmethod
    def normalize_party(cls, v: Any) -> Any:
        return _parse_optional(parse_party, v)

    @field_validator("demo", mode="before")
    @classmethod
    def normalize_demo(cls, v: Any) -> Any:
        return _parse_optional(parse_demo, v)

    @property
    def has_date_range(self) -> bool:
        return self.from_date is not None or self.to_date is not None


class ResultRow(WireModel):
    """Aggregated counts for one group value."""

    group_value: str
    counts: dict[str, int] = Field(default_factory=dict, description="Non-zero counts per vote value")
    total: int = 0
    favorability: float = Field(0.0, ge=-1, le=1)


class ResultsResponse(WireModel):
    """Aggregated results for a filter set."""

    group_by: GroupBy
    items: list[ResultRow] = Field(default_factory=list)
    totals: dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Message statistics
# ============================================================================


class VoteWindowStats(WireModel):
    """Counts and rates for one time window."""

    counts: dict[str, int] = Field(default_factory=dict)
    total: int = 0
    rates: dict[str, float] = Field(default_factory=dict)
    favorability: float = 0.0


class MessageVoteStats(WireModel):
    """All-time and recent vote statistics for a message."""

    message_id: str
    all_time: VoteWindowStats
    last_7_days: VoteWindowStats = Field(..., alias="last7Days")


class MessageComparison(WireModel):
    """Head-to-head comparison of two messages."""

    message_a: MessageVoteStats
    message_b: MessageVoteStats
    favorability_diff: float
    engagement_diff: int
    winner: Optional[str] = Field(None, description="'a', 'b' or None for a tie")
