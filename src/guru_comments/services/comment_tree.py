"""Rebuild a nested comment forest from a discussion's flat comment rows."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime

from guru_comments.db.time import as_utc
from guru_comments.models import Attachment, Comment


@dataclass
class CommentNode:
    """One comment in an assembled tree.

    Tombstones keep only structural fields; their content and author are
    withheld.
    """

    id: int
    discussion_id: int
    parent_comment_id: int | None
    created_at: datetime
    is_tombstone: bool = False
    author_id: str | None = None
    content: str | None = None
    updated_at: datetime | None = None
    attachments: list[Attachment] = field(default_factory=list)
    children: list[CommentNode] = field(default_factory=list)

    @classmethod
    def from_comment(
        cls, comment: Comment, attachments: Sequence[Attachment] = ()
    ) -> CommentNode:
        if comment.deleted_at is not None:
            return cls(
                id=comment.id,
                discussion_id=comment.discussion_id,
                parent_comment_id=comment.parent_comment_id,
                created_at=comment.created_at,
                is_tombstone=True,
            )
        return cls(
            id=comment.id,
            discussion_id=comment.discussion_id,
            parent_comment_id=comment.parent_comment_id,
            created_at=comment.created_at,
            author_id=comment.author_id,
            content=comment.content,
            updated_at=comment.updated_at,
            attachments=list(attachments),
        )


def sort_key(comment: Comment) -> tuple[datetime, int]:
    """Chronological order with insertion id as the tie-break."""
    return (as_utc(comment.created_at), comment.id)


def build_forest(
    comments: Sequence[Comment],
    *,
    since: datetime | None = None,
    attachments: Mapping[int, Sequence[Attachment]] | None = None,
) -> list[CommentNode]:
    """Assemble the visible comment forest of one discussion.

    A comment is *selected* when it is live and, if ``since`` is given, was
    created strictly after it. Every ancestor of a selected comment is kept
    as well, so replies stay attached to their thread even when the parent
    predates the cutoff or was deleted. Kept ancestors that are deleted become
    tombstones; deleted comments without a selected descendant are dropped.

    Args:
        comments: All rows of the discussion, in any order.
        since: Optional polling cutoff.
        attachments: Attachment rows grouped by comment id.

    Returns:
        Root nodes ordered by ``(created_at, id)``, children in the same order.
    """
    rows = sorted(comments, key=sort_key)
    index = {row.id: i for i, row in enumerate(rows)}
    parent_of: list[int | None] = [
        index.get(row.parent_comment_id) if row.parent_comment_id is not None else None
        for row in rows
    ]
    cutoff = as_utc(since) if since is not None else None

    keep = [False] * len(rows)
    for i, row in enumerate(rows):
        if row.deleted_at is not None:
            continue
        if cutoff is not None and as_utc(row.created_at) <= cutoff:
            continue
        # Walk up until reaching a node some earlier walk already kept.
        cursor: int | None = i
        while cursor is not None and not keep[cursor]:
            keep[cursor] = True
            cursor = parent_of[cursor]

    attachments = attachments or {}
    nodes: dict[int, CommentNode] = {}
    for i, row in enumerate(rows):
        if keep[i]:
            nodes[i] = CommentNode.from_comment(row, attachments.get(row.id, ()))

    # Linking in sorted order leaves every child list already ordered.
    roots: list[CommentNode] = []
    for i, node in nodes.items():
        parent = parent_of[i]
        if rows[i].parent_comment_id is None:
            roots.append(node)
        elif parent is not None and parent in nodes:
            nodes[parent].children.append(node)
    return roots


def count_nodes(forest: Sequence[CommentNode]) -> int:
    """Return the total number of nodes in ``forest``."""
    total = 0
    stack = list(forest)
    while stack:
        node = stack.pop()
        total += 1
        stack.extend(node.children)
    return total
