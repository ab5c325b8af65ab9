"""Comment-related Pydantic schemas."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    """Schema for creating a comment or a reply."""

    discussion_id: int = Field(..., description="Owning discussion")
    content: str = Field(..., description="Comment body")
    parent_comment_id: int | None = Field(None, description="Parent comment for replies")


class CommentUpdate(BaseModel):
    content: str = Field(..., description="Replacement comment body")


class CommentResponse(BaseModel):
    id: int
    discussion_id: int
    parent_comment_id: int | None
    author_id: str
    content: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class AttachmentCreate(BaseModel):
    """Metadata for a blob the client already uploaded."""

    filename: str
    mime_type: str
    file_size: int = Field(..., description="Size in bytes")
    object_key: str = Field(..., description="Locator in blob storage")


class AttachmentResponse(BaseModel):
    id: int
    comment_id: int
    filename: str
    mime_type: str
    file_size: int
    object_key: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CommentNodeResponse(BaseModel):
    """A node of the comment tree; tombstones carry no author or content."""

    id: int
    discussion_id: int
    parent_comment_id: int | None
    is_tombstone: bool
    author_id: str | None = None
    content: str | None = None
    created_at: datetime
    updated_at: datetime | None = None
    attachments: list[AttachmentResponse] = Field(default_factory=list)
    children: list[CommentNodeResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True)


class CommentTreeResponse(BaseModel):
    discussion_id: int
    total: int
    comments: list[CommentNodeResponse]

CommentNodeResponse.model_rebuild()
