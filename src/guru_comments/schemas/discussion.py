"""Discussion-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DiscussionCreate(BaseModel):
    """Schema for creating a new discussion.

    Length limits are enforced by the store so the configured maximum applies.
    """

    title: str = Field(..., description="Discussion title")


class DiscussionUpdate(BaseModel):
    title: str | None = Field(None, description="New title")
    is_archived: bool | None = Field(None, description="Archive flag")


class DiscussionResponse(BaseModel):
    id: int
    title: str
    created_by: str
    created_at: datetime
    updated_at: datetime
    is_archived: bool

    model_config = ConfigDict(from_attributes=True)
