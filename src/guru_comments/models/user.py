# src/guru_comments/models/user.py
"""SQLAlchemy models for local and federated identities."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum

from sqlalchemy import Boolean, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from guru_comments.db.session import Base
from guru_comments.db.time import utcnow


class UserKind(StrEnum):
    """Where an identity was established."""

    LOCAL = "local"
    FEDERATED = "federated"


class User(Base):
    """An author of discussions and comments.

    ``is_admin`` is independent of ``kind`` and only changes through an
    explicit admin action.
    """

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default=UserKind.LOCAL.value)
    email: Mapped[str | None] = mapped_column(Text, nullable=True)
    # Subject claim issued by the external identity provider.
    auth_subject: Mapped[str | None] = mapped_column(Text, unique=True, nullable=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )

    __table_args__ = (Index("idx_users_kind", "kind"),)
