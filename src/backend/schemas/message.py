"""
Message and A/B pair Pydantic schemas.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models.documents import ABPairStatus, MessageStatus


class MessageCreate(BaseModel):
    """Schema for creating a new message."""

    slogan: str = Field(..., min_length=1, max_length=240)
    subline: Optional[str] = Field(None, max_length=240)
    status: MessageStatus = MessageStatus.ACTIVE


class MessagePatch(BaseModel):
    """Partial update of a message; at least one field is required."""

    slogan: Optional[str] = Field(None, min_length=1, max_length=240)
    subline: Optional[str] = Field(None, max_length=240)
    status: Optional[MessageStatus] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "MessagePatch":
        if not self.model_fields_set:
            raise ValueError("No valid fields to update")
        return self


class Message(BaseModel):
    """Schema for message responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    slogan: str
    subline: Optional[str] = None
    status: MessageStatus
    rank: str
    created_at: datetime
    updated_at: datetime


class ReorderRequest(BaseModel):
    """
    Move an item between two neighbours.

    ``before_id`` is the item that should sort immediately before the moved
    item and ``after_id`` the one immediately after it. Either may be omitted
    to move to the start or end of the list.
    """

    id: str
    before_id: Optional[str] = None
    after_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_neighbours(self) -> "ReorderRequest":
        if self.id in (self.before_id, self.after_id):
            raise ValueError("An item cannot be reordered relative to itself")
        if self.before_id is not None and self.before_id == self.after_id:
            raise ValueError("before_id and after_id must differ")
        return self


class ABPairCreate(BaseModel):
    """Schema for creating an A/B pair."""

    message_a: str
    message_b: str
    status: ABPairStatus = ABPairStatus.ACTIVE


class ABPairPatch(BaseModel):
    """Partial update of an A/B pair."""

    message_a: Optional[str] = None
    message_b: Optional[str] = None
    status: Optional[ABPairStatus] = None

    @model_validator(mode="after")
    def require_one_field(self) -> "ABPairPatch":
        if not self.model_fields_set:
            raise ValueError("No valid fields to update")
        return self


class ABPair(BaseModel):
    """Schema for A/B pair responses."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    message_a: str
    message_b: str
    status: ABPairStatus
    rank: str
    created_at: datetime
    updated_at: datetime
