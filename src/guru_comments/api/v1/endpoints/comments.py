# src/guru_comments/api/v1/endpoints/comments.py
"""Comment and attachment endpoints."""

from __future__ import annotations

from collections.abc import Sequence

from fastapi import APIRouter, status

from guru_comments.api.v1.dependencies import CurrentUserDep, ReadLimit, StoreDep, WriteLimit
from guru_comments.models import Attachment, Comment
from guru_comments.schemas.comment import (
    AttachmentCreate,
    AttachmentResponse,
    CommentCreate,
    CommentResponse,
    CommentUpdate,
)

router = APIRouter(prefix="/comments", tags=["comments"])


@router.post(
    "/",
    response_model=CommentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[WriteLimit],
)
async def create_comment(
    payload: CommentCreate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Comment:
    """Post a top-level comment or a reply within the same discussion."""
    return store.create_comment(
        payload.discussion_id,
        current_user.id,
        payload.content,
        parent_comment_id=payload.parent_comment_id,
    )


@router.get("/{comment_id}", response_model=CommentResponse, dependencies=[ReadLimit])
async def get_comment(comment_id: int, store: StoreDep) -> Comment:
    return store.get_comment(comment_id)


@router.patch("/{comment_id}", response_model=CommentResponse, dependencies=[WriteLimit])
async def edit_comment(
    comment_id: int,
    payload: CommentUpdate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Comment:
    """Edit a comment (author or admin)."""
    return store.edit_comment(comment_id, current_user.id, payload.content)


@router.delete(
    "/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[WriteLimit],
)
async def delete_comment(comment_id: int, current_user: CurrentUserDep, store: StoreDep) -> None:
    """Soft-delete a comment (author or admin). Repeated deletes succeed."""
    store.soft_delete_comment(comment_id, current_user.id)


@router.post("/{comment_id}/restore", response_model=CommentResponse, dependencies=[WriteLimit])
async def restore_comment(
    comment_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Comment:
    """Undo a soft delete (admin only)."""
    return store.restore_comment(comment_id, current_user.id)


@router.post(
    "/{comment_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[WriteLimit],
)
async def add_attachment(
    comment_id: int,
    payload: AttachmentCreate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Attachment:
    return store.add_attachment(
        comment_id,
        current_user.id,
        filename=payload.filename,
        mime_type=payload.mime_type,
        file_size=payload.file_size,
        object_key=payload.object_key,
    )


@router.get(
    "/{comment_id}/attachments",
    response_model=list[AttachmentResponse],
    dependencies=[ReadLimit],
)
async def list_attachments(comment_id: int, store: StoreDep) -> Sequence[Attachment]:
    return store.list_attachments(comment_id)
