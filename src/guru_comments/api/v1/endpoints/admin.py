# src/guru_comments/api/v1/endpoints/admin.py
"""Admin-only user management endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Query, status

from guru_comments.api.v1.dependencies import AdminUserDep, SessionDep
from guru_comments.models import User
from guru_comments.repositories import user_repo
from guru_comments.schemas.common import Page
from guru_comments.schemas.user import AdminStatusUpdate, UserResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/users", tags=["admin"])


@router.get("/", response_model=Page[UserResponse])
async def list_users(
    admin: AdminUserDep,
    db: SessionDep,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
) -> Page[UserResponse]:
    page = user_repo.list_users(db, limit=limit, offset=offset)
    return Page[UserResponse](
        items=[UserResponse.model_validate(user) for user in page.items],
        total=page.total,
        limit=page.limit,
        offset=page.offset,
        has_more=page.has_more,
    )


@router.patch("/{user_id}", response_model=UserResponse)
async def update_admin_status(
    user_id: str,
    payload: AdminStatusUpdate,
    admin: AdminUserDep,
    db: SessionDep,
) -> User:
    """Grant or revoke admin rights for a user."""
    logger.info("Admin %s setting is_admin=%s on %s", admin.id, payload.is_admin, user_id)
    return user_repo.set_admin(db, user_id, payload.is_admin)


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_user(user_id: str, admin: AdminUserDep, db: SessionDep) -> None:
    """Remove a user who has never authored content."""
    user_repo.delete_user(db, user_id)
