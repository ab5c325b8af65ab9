# src/guru_comments/models/__init__.py
"""SQLAlchemy models for the Guru comment service."""

from .comment import Attachment, Comment
from .discussion import Discussion
from .user import User, UserKind

__all__ = [
    "Attachment", "Comment",
    "Discussion",
    "User", "UserKind",
]
