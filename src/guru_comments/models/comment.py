# src/guru_comments/models/comment.py
"""SQLAlchemy models for comments and their attachments."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from guru_comments.db.session import Base
from guru_comments.db.time import utcnow


class Comment(Base):
    """A node in a discussion's comment forest.

    Top-level comments have ``parent_comment_id = NULL``. The parent, when
    set, always belongs to the same discussion and was persisted first, so
    the parent chain is acyclic.
    """

    __tablename__ = "comments"

    # Autoincrement id doubles as the insertion order tie-break.
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discussion_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("discussions.id", ondelete="CASCADE"),
        nullable=False,
    )
    parent_comment_id: Mapped[int | None] = mapped_column(
        Integer,
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    author_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
    )
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_comments_discussion", "discussion_id"),
        Index("idx_comments_discussion_parent", "discussion_id", "parent_comment_id"),
        Index("idx_comments_parent", "parent_comment_id"),
        Index("idx_comments_author", "author_id"),
        Index("idx_comments_created", "created_at"),
        Index("idx_comments_deleted", "deleted_at"),
    )

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class Attachment(Base):
    """Metadata for a file stored in external blob storage."""

    __tablename__ = "attachments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    comment_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("comments.id", ondelete="CASCADE"),
        nullable=False,
    )
    filename: Mapped[str] = mapped_column(Text, nullable=False)
    mime_type: Mapped[str] = mapped_column(String(128), nullable=False)
    file_size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    # Opaque locator into the blob store.
    object_key: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (
        Index("idx_attachments_comment", "comment_id"),
        Index("idx_attachments_object_key", "object_key"),
    )
