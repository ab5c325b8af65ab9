"""Persistence and invariants for discussions, comments and attachments.

Every call is synchronous and single-attempt. Backing-store outages surface
as :class:`StorageUnavailable`; retrying is the caller's business.

Soft delete is the only delete this module performs. A discussion's
``deleted_at`` hides it and, independently, every comment under it: each
comment lookup re-checks the owning discussion rather than relying on a
cascade.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy import delete, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from guru_comments.core.errors import (
    FileTooLarge,
    Forbidden,
    InvalidFileType,
    InvalidReference,
    NotFound,
    StorageUnavailable,
    Unauthorized,
    ValidationError,
)
from guru_comments.core.settings import Settings
from guru_comments.db.time import later_than, utcnow
from guru_comments.models import Attachment, Comment, Discussion, User
from guru_comments.repositories.user_repo import PaginatedResponse
from guru_comments.services.comment_tree import CommentNode, build_forest

logger = logging.getLogger(__name__)

BlobReleaseHook = Callable[[list[str]], None]


def _log_released_blobs(object_keys: list[str]) -> None:
    logger.info("Released %d blob(s) for deletion: %s", len(object_keys), object_keys)


@dataclass(frozen=True)
class ContentLimits:
    """Input bounds enforced at write time."""

    max_title_length: int = 200
    max_comment_length: int = 10_000
    max_attachment_size: int = 5 * 1024 * 1024
    allowed_attachment_types: frozenset[str] = field(
        default_factory=lambda: frozenset({"image/png", "image/jpeg", "image/gif", "image/webp"})
    )

    @classmethod
    def from_settings(cls, settings: Settings) -> ContentLimits:
        return cls(
            max_title_length=settings.max_title_length,
            max_comment_length=settings.max_comment_length,
            max_attachment_size=settings.max_attachment_size,
            allowed_attachment_types=frozenset(settings.allowed_attachment_types),
        )


class CommentTreeStore:
    """Discussion and comment operations over one SQLAlchemy session."""

    def __init__(
        self,
        db: Session,
        limits: ContentLimits | None = None,
        *,
        on_blobs_released: BlobReleaseHook | None = None,
    ) -> None:
        self.db = db
        self.limits = limits or ContentLimits()
        self._on_blobs_released = on_blobs_released or _log_released_blobs

    # --- helpers -------------------------------------------------------------------
    @contextmanager
    def _storage(self) -> Iterator[None]:
        try:
            yield
        except (OperationalError, InterfaceError, PoolTimeoutError) as exc:
            try:
                self.db.rollback()
            except (OperationalError, InterfaceError, PoolTimeoutError):
                logger.debug("Rollback after storage failure also failed", exc_info=True)
            logger.error("Relational store unavailable: %s", exc)
            raise StorageUnavailable() from exc

    def _require_actor(self, actor_id: str | None) -> User:
        if not actor_id:
            raise Unauthorized()
        actor = self.db.get(User, actor_id)
        if actor is None:
            logger.warning("Rejected actor id %s with no user row", actor_id)
            raise Unauthorized("Unknown actor")
        return actor

    @staticmethod
    def _ensure_owner_or_admin(actor: User, owner_id: str, what: str) -> None:
        if actor.id != owner_id and not actor.is_admin:
            raise Forbidden(f"Only the author or an admin can modify this {what}")

    def _validate_title(self, title: str) -> str:
        title = (title or "").strip()
        if not title:
            raise ValidationError("Title must not be empty", field="title")
        if len(title) > self.limits.max_title_length:
            raise ValidationError(
                f"Title exceeds {self.limits.max_title_length} characters", field="title"
            )
        return title

    def _validate_content(self, content: str) -> str:
        if not content or not content.strip():
            raise ValidationError("Content must not be empty", field="content")
        if len(content) > self.limits.max_comment_length:
            raise ValidationError(
                f"Content exceeds {self.limits.max_comment_length} characters", field="content"
            )
        return content

    def _live_discussion(self, discussion_id: int) -> Discussion:
        discussion = self.db.get(Discussion, discussion_id)
        if discussion is None or discussion.deleted_at is not None:
            raise NotFound("Discussion not found", field="discussion_id")
        return discussion

    def _visible_comment(self, comment_id: int) -> Comment:
        """Return the comment (deleted or not) if its discussion is live."""
        comment = self.db.get(Comment, comment_id)
        if comment is None:
            raise NotFound("Comment not found", field="comment_id")
        discussion = self.db.get(Discussion, comment.discussion_id)
        if discussion is None or discussion.deleted_at is not None:
            raise NotFound("Comment not found", field="comment_id")
        return comment

    def _live_comment(self, comment_id: int) -> Comment:
        comment = self._visible_comment(comment_id)
        if comment.deleted_at is not None:
            raise NotFound("Comment not found", field="comment_id")
        return comment

    # --- discussions ---------------------------------------------------------------
    def create_discussion(self, title: str, owner_id: str | None) -> Discussion:
        """Create a live discussion owned by ``owner_id``."""
        with self._storage():
            owner = self._require_actor(owner_id)
            title = self._validate_title(title)
            now = utcnow()
            discussion = Discussion(
                title=title,
                created_by=owner.id,
                created_at=now,
                updated_at=now,
                is_archived=False,
                deleted_at=None,
            )
            self.db.add(discussion)
            self.db.commit()
            self.db.refresh(discussion)
            return discussion

    def get_discussion(self, discussion_id: int) -> Discussion:
        with self._storage():
            return self._live_discussion(discussion_id)

    def list_discussions(
        self,
        limit: int = 50,
        offset: int = 0,
        *,
        include_archived: bool = True,
    ) -> PaginatedResponse[Discussion]:
        """Return live discussions, newest first."""
        with self._storage():
            conditions = [Discussion.deleted_at.is_(None)]
            if not include_archived:
                conditions.append(Discussion.is_archived.is_(False))
            total = self.db.execute(
                select(func.count()).select_from(Discussion).where(*conditions)
            ).scalar_one()
            rows = self.db.execute(
                select(Discussion)
                .where(*conditions)
                .order_by(Discussion.created_at.desc(), Discussion.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
            return PaginatedResponse(items=list(rows), total=int(total), limit=limit, offset=offset)

    def update_discussion(
        self,
        discussion_id: int,
        actor_id: str | None,
        *,
        title: str | None = None,
        is_archived: bool | None = None,
    ) -> Discussion:
        """Rename or (un)archive a discussion. Owner or admin only."""
        with self._storage():
            actor = self._require_actor(actor_id)
            discussion = self._live_discussion(discussion_id)
            self._ensure_owner_or_admin(actor, discussion.created_by, "discussion")
            if title is not None:
                discussion.title = self._validate_title(title)
            if is_archived is not None:
                discussion.is_archived = is_archived
            discussion.updated_at = later_than(discussion.updated_at)
            self.db.commit()
            self.db.refresh(discussion)
            return discussion

    def soft_delete_discussion(self, discussion_id: int, actor_id: str | None) -> None:
        """Hide a discussion and, by extension, all of its comments. Admin only.

        Child comment rows are left untouched. Deleting twice is a no-op.
        """
        with self._storage():
            actor = self._require_actor(actor_id)
            if not actor.is_admin:
                raise Forbidden("Only admins can delete discussions")
            discussion = self.db.get(Discussion, discussion_id)
            if discussion is None:
                raise NotFound("Discussion not found", field="discussion_id")
            if discussion.deleted_at is not None:
                return
            discussion.deleted_at = utcnow()
            self.db.commit()
            logger.info("Discussion %s soft-deleted by %s", discussion_id, actor.id)

    # --- comments ------------------------------------------------------------------
    def create_comment(
        self,
        discussion_id: int,
        author_id: str | None,
        content: str,
        parent_comment_id: int | None = None,
    ) -> Comment:
        """Add a comment, optionally as a reply.

        Raises:
            NotFound: The discussion is missing or soft-deleted.
            ValidationError: ``content`` is empty or too long.
            InvalidReference: The parent does not exist, belongs to another
                discussion, or is soft-deleted.
        """
        with self._storage():
            author = self._require_actor(author_id)
            content = self._validate_content(content)
            discussion = self._live_discussion(discussion_id)

            if parent_comment_id is not None:
                parent = self.db.get(Comment, parent_comment_id)
                if parent is None:
                    raise InvalidReference(
                        f"Parent comment {parent_comment_id} does not exist",
                        field="parent_comment_id",
                    )
                if parent.discussion_id != discussion.id:
                    raise InvalidReference(
                        f"Parent comment {parent_comment_id} belongs to another discussion",
                        field="parent_comment_id",
                    )
                if parent.deleted_at is not None:
                    raise InvalidReference(
                        f"Parent comment {parent_comment_id} has been deleted",
                        field="parent_comment_id",
                    )

            now = utcnow()
            comment = Comment(
                discussion_id=discussion.id,
                parent_comment_id=parent_comment_id,
                author_id=author.id,
                content=content,
                created_at=now,
                updated_at=now,
                deleted_at=None,
            )
            self.db.add(comment)
            self.db.commit()
            self.db.refresh(comment)
            return comment

    def get_comment(self, comment_id: int) -> Comment:
        with self._storage():
            return self._live_comment(comment_id)

    def edit_comment(self, comment_id: int, editor_id: str | None, new_content: str) -> Comment:
        """Replace a live comment's content. Author or admin only.

        ``updated_at`` always moves strictly forward; ``created_at`` is untouched.
        """
        with self._storage():
            editor = self._require_actor(editor_id)
            comment = self._live_comment(comment_id)
            self._ensure_owner_or_admin(editor, comment.author_id, "comment")
            comment.content = self._validate_content(new_content)
            comment.updated_at = later_than(comment.updated_at)
            self.db.commit()
            self.db.refresh(comment)
            return comment

    def soft_delete_comment(self, comment_id: int, actor_id: str | None) -> None:
        """Tombstone a comment. Author or admin only; repeated calls are no-ops.

        Attachment metadata is removed with the comment and the freed object
        keys are handed to the blob-release hook once the delete is committed.
        """
        with self._storage():
            actor = self._require_actor(actor_id)
            comment = self._visible_comment(comment_id)
            self._ensure_owner_or_admin(actor, comment.author_id, "comment")
            if comment.deleted_at is not None:
                return

            object_keys = list(
                self.db.execute(
                    select(Attachment.object_key)
                    .where(Attachment.comment_id == comment.id)
                    .order_by(Attachment.id)
                ).scalars()
            )
            if object_keys:
                self.db.execute(delete(Attachment).where(Attachment.comment_id == comment.id))
            comment.deleted_at = utcnow()
            self.db.commit()
            logger.info("Comment %s soft-deleted by %s", comment_id, actor.id)

        if object_keys:
            self._on_blobs_released(object_keys)

    def restore_comment(self, comment_id: int, actor_id: str | None) -> Comment:
        """Admin-only undelete. Attachments removed at delete time stay gone."""
        with self._storage():
            actor = self._require_actor(actor_id)
            if not actor.is_admin:
                raise Forbidden("Only admins can restore comments")
            comment = self._visible_comment(comment_id)
            if comment.deleted_at is not None:
                comment.deleted_at = None
                self.db.commit()
                self.db.refresh(comment)
                logger.info("Comment %s restored by %s", comment_id, actor.id)
            return comment

    def list_top_level_tree(
        self,
        discussion_id: int,
        since: datetime | None = None,
    ) -> list[CommentNode]:
        """Return the discussion's comment forest in chronological order.

        One query loads every comment row and one loads every attachment; the
        tree is then assembled in memory. See :func:`build_forest` for the
        tombstone and ``since`` rules.
        """
        with self._storage():
            self._live_discussion(discussion_id)
            comments = list(
                self.db.execute(
                    select(Comment)
                    .where(Comment.discussion_id == discussion_id)
                    .order_by(Comment.created_at, Comment.id)
                ).scalars()
            )
            grouped: dict[int, list[Attachment]] = defaultdict(list)
            attachments = self.db.execute(
                select(Attachment)
                .join(Comment, Attachment.comment_id == Comment.id)
                .where(Comment.discussion_id == discussion_id)
                .order_by(Attachment.id)
            ).scalars()
            for attachment in attachments:
                grouped[attachment.comment_id].append(attachment)
        return build_forest(comments, since=since, attachments=grouped)

    # --- attachments ---------------------------------------------------------------
    def add_attachment(
        self,
        comment_id: int,
        actor_id: str | None,
        *,
        filename: str,
        mime_type: str,
        file_size: int,
        object_key: str,
    ) -> Attachment:
        """Record metadata for a blob already uploaded under ``object_key``."""
        with self._storage():
            actor = self._require_actor(actor_id)
            comment = self._live_comment(comment_id)
            self._ensure_owner_or_admin(actor, comment.author_id, "comment")
            if not filename or not filename.strip():
                raise ValidationError("Filename must not be empty", field="filename")
            if not object_key or not object_key.strip():
                raise ValidationError("Object key must not be empty", field="object_key")
            if file_size <= 0:
                raise ValidationError("File size must be positive", field="file_size")
            if file_size > self.limits.max_attachment_size:
                raise FileTooLarge(
                    f"File exceeds {self.limits.max_attachment_size} bytes", field="file_size"
                )
            if mime_type not in self.limits.allowed_attachment_types:
                raise InvalidFileType(f"Unsupported file type: {mime_type}", field="mime_type")

            attachment = Attachment(
                comment_id=comment.id,
                filename=filename.strip(),
                mime_type=mime_type,
                file_size=file_size,
                object_key=object_key,
                created_at=utcnow(),
            )
            self.db.add(attachment)
            self.db.commit()
            self.db.refresh(attachment)
            return attachment

    def list_attachments(self, comment_id: int) -> Sequence[Attachment]:
        with self._storage():
            comment = self._live_comment(comment_id)
            return list(
                self.db.execute(
                    select(Attachment)
                    .where(Attachment.comment_id == comment.id)
                    .order_by(Attachment.id)
                ).scalars()
            )
