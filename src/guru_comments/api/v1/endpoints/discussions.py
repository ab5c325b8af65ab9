# src/guru_comments/api/v1/endpoints/discussions.py
"""Discussion endpoints and the comment tree read path."""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Query, status

from guru_comments.api.v1.dependencies import CurrentUserDep, ReadLimit, StoreDep, WriteLimit
from guru_comments.models import Discussion
from guru_comments.schemas.comment import CommentNodeResponse, CommentTreeResponse
from guru_comments.schemas.common import Page
from guru_comments.schemas.discussion import (
    DiscussionCreate,
    DiscussionResponse,
    DiscussionUpdate,
)
from guru_comments.services.comment_tree import count_nodes

router = APIRouter(prefix="/discussions", tags=["discussions"])


@router.get("/", response_model=Page[DiscussionResponse], dependencies=[ReadLimit])
async def list_discussions(
    store: StoreDep,
    limit: int = Query(50, ge=1, le=100, description="Maximum number of discussions"),
    offset: int = Query(0, ge=0),
    include_archived: bool = Query(True),
) -> Page[DiscussionResponse]:
    """List live discussions, newest first."""
    page = store.list_discussions(limit, offset, include_archived=include_archived)
    return Page[DiscussionResponse](
        items=[DiscussionResponse.model_validate(item) for item in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.post(
    "/",
    response_model=DiscussionResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[WriteLimit],
)
async def create_discussion(
    payload: DiscussionCreate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Discussion:
    return store.create_discussion(payload.title, current_user.id)


@router.get("/{discussion_id}", response_model=DiscussionResponse, dependencies=[ReadLimit])
async def get_discussion(discussion_id: int, store: StoreDep) -> Discussion:
    return store.get_discussion(discussion_id)


@router.patch("/{discussion_id}", response_model=DiscussionResponse, dependencies=[WriteLimit])
async def update_discussion(
    discussion_id: int,
    payload: DiscussionUpdate,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> Discussion:
    """Rename or archive a discussion (owner or admin)."""
    return store.update_discussion(
        discussion_id,
        current_user.id,
        title=payload.title,
        is_archived=payload.is_archived,
    )


@router.delete(
    "/{discussion_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[WriteLimit],
)
async def delete_discussion(
    discussion_id: int,
    current_user: CurrentUserDep,
    store: StoreDep,
) -> None:
    """Soft-delete a discussion (admin only)."""
    store.soft_delete_discussion(discussion_id, current_user.id)


@router.get(
    "/{discussion_id}/comments",
    response_model=CommentTreeResponse,
    dependencies=[ReadLimit],
)
async def get_comment_tree(
    discussion_id: int,
    store: StoreDep,
    since: datetime | None = Query(
        None, description="Only comments created after this instant, plus their ancestors"
    ),
) -> CommentTreeResponse:
    """Return the discussion's comments as a nested, chronologically ordered forest."""
    forest = store.list_top_level_tree(discussion_id, since=since)
    return CommentTreeResponse(
        discussion_id=discussion_id,
        total=count_nodes(forest),
        comments=[
            CommentNodeResponse.model_validate(node, from_attributes=True) for node in forest
        ],
    )
