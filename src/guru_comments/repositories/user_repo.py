"""Data access helpers for working with users."""
from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Generic, TypeVar

from sqlalchemy import exists, func, select
from sqlalchemy.orm import Session

from guru_comments.core.errors import NotFound, ReferentialConflict, ValidationError
from guru_comments.db.time import utcnow
from guru_comments.models import Comment, Discussion, User, UserKind

__all__ = [
    "PaginatedResponse",
    "create_user",
    "delete_user",
    "get_user",
    "get_user_by_subject",
    "get_user_by_username",
    "list_users",
    "set_admin",
]

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PaginatedResponse(Generic[T]):
    """A page of results plus the totals needed to request the next one."""

    items: list[T]
    total: int
    limit: int
    offset: int

    @property
    def has_more(self) -> bool:
        return self.offset + self.limit < self.total


def get_user(db: Session, user_id: str) -> User | None:
    """Return a single user by primary key."""
    return db.get(User, user_id)


def get_user_by_username(db: Session, username: str) -> User | None:
    return db.execute(select(User).where(User.username == username)).scalar_one_or_none()


def get_user_by_subject(db: Session, subject: str) -> User | None:
    """Return the user bound to an identity-provider subject claim."""
    return db.execute(select(User).where(User.auth_subject == subject)).scalar_one_or_none()


def list_users(db: Session, limit: int = 50, offset: int = 0) -> PaginatedResponse[User]:
    """Return users newest first with offset-based pagination."""
    total = db.execute(select(func.count()).select_from(User)).scalar_one()
    users = db.execute(
        select(User).order_by(User.created_at.desc(), User.id).limit(limit).offset(offset)
    ).scalars()
    return PaginatedResponse(items=list(users), total=int(total), limit=limit, offset=offset)


def create_user(
    db: Session,
    *,
    username: str,
    kind: UserKind = UserKind.LOCAL,
    user_id: str | None = None,
    email: str | None = None,
    auth_subject: str | None = None,
    is_admin: bool = False,
) -> User:
    """Persist a new user and return it."""
    if not username.strip():
        raise ValidationError("Username must not be empty", field="username")
    if get_user_by_username(db, username) is not None:
        raise ValidationError(f"Username {username!r} is already taken", field="username")
    now = utcnow()
    user = User(
        id=user_id or str(uuid.uuid4()),
        username=username,
        kind=kind.value,
        email=email,
        auth_subject=auth_subject,
        is_admin=is_admin,
        created_at=now,
        updated_at=now,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def set_admin(db: Session, user_id: str, is_admin: bool) -> User:
    """Grant or revoke admin rights; the only path that changes ``is_admin``."""
    user = get_user(db, user_id)
    if user is None:
        raise NotFound(f"User not found: {user_id}")
    user.is_admin = is_admin
    user.updated_at = utcnow()
    db.commit()
    db.refresh(user)
    logger.info("User %s admin status set to %s", user_id, is_admin)
    return user


def has_authored_content(db: Session, user_id: str) -> bool:
    """Return True if the user owns any discussion or comment row."""
    owns_discussion = db.execute(select(exists().where(Discussion.created_by == user_id))).scalar()
    owns_comment = db.execute(select(exists().where(Comment.author_id == user_id))).scalar()
    return bool(owns_discussion or owns_comment)


def delete_user(db: Session, user_id: str) -> None:
    """Hard-delete a user who has never authored content.

    Raises:
        NotFound: If the user does not exist.
        ReferentialConflict: If the user still owns discussions or comments.
    """
    user = get_user(db, user_id)
    if user is None:
        raise NotFound(f"User not found: {user_id}")
    if has_authored_content(db, user_id):
        raise ReferentialConflict(
            "User has authored content and cannot be removed", field="user_id"
        )
    db.delete(user)
    db.commit()
