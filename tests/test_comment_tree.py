# mypy: ignore-errors
# tests/test_comment_tree.py
from datetime import UTC, datetime, timedelta

from guru_comments.models import Attachment, Comment
from guru_comments.services.comment_tree import CommentNode, build_forest, count_nodes

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def _comment(comment_id, parent=None, *, minutes=0, deleted=False, naive=False):
    created = T0 + timedelta(minutes=minutes)
    if naive:
        created = created.replace(tzinfo=None)
    return Comment(
        id=comment_id,
        discussion_id=1,
        parent_comment_id=parent,
        author_id="alice-id",
        content=f"comment {comment_id}",
        created_at=created,
        updated_at=created,
        deleted_at=created if deleted else None,
    )


def _ids(nodes):
    return [node.id for node in nodes]


class TestBuildForest:
    def test_empty_discussion_yields_empty_forest(self):
        assert build_forest([]) == []

    def test_roots_and_children_are_chronological(self):
        rows = [
            _comment(4, parent=1, minutes=4),
            _comment(2, minutes=2),
            _comment(1, minutes=1),
            _comment(3, parent=1, minutes=3),
        ]

        forest = build_forest(rows)

        assert _ids(forest) == [1, 2]
        assert _ids(forest[0].children) == [3, 4]
        assert forest[1].children == []

    def test_equal_timestamps_break_ties_by_id(self):
        rows = [_comment(9), _comment(5), _comment(7)]

        assert _ids(build_forest(rows)) == [5, 7, 9]

    def test_deleted_leaf_is_omitted(self):
        rows = [_comment(1, minutes=1), _comment(2, parent=1, minutes=2, deleted=True)]

        forest = build_forest(rows)

        assert _ids(forest) == [1]
        assert forest[0].children == []

    def test_deleted_parent_with_live_reply_becomes_tombstone(self):
        rows = [_comment(1, minutes=1, deleted=True), _comment(2, parent=1, minutes=2)]

        forest = build_forest(rows)

        assert len(forest) == 1
        tombstone = forest[0]
        assert tombstone.is_tombstone is True
        assert tombstone.content is None
        assert tombstone.author_id is None
        assert _ids(tombstone.children) == [2]
        assert tombstone.children[0].content == "comment 2"

    def test_deleted_chain_without_live_descendant_disappears(self):
        rows = [
            _comment(1, minutes=1, deleted=True),
            _comment(2, parent=1, minutes=2, deleted=True),
        ]

        assert build_forest(rows) == []

    def test_since_keeps_ancestors_of_new_replies(self):
        rows = [
            _comment(1, minutes=1),
            _comment(2, parent=1, minutes=2),
            _comment(3, parent=2, minutes=10),
            _comment(4, minutes=3),
        ]

        forest = build_forest(rows, since=T0 + timedelta(minutes=5))

        assert _ids(forest) == [1]
        assert _ids(forest[0].children) == [2]
        assert _ids(forest[0].children[0].children) == [3]

    def test_since_is_exclusive(self):
        rows = [_comment(1, minutes=5), _comment(2, minutes=6)]

        assert _ids(build_forest(rows, since=T0 + timedelta(minutes=5))) == [2]

    def test_naive_timestamps_are_treated_as_utc(self):
        rows = [_comment(1, minutes=1, naive=True), _comment(2, minutes=10, naive=True)]

        assert _ids(build_forest(rows, since=T0 + timedelta(minutes=5))) == [2]

    def test_attachments_are_attached_to_live_nodes_only(self):
        rows = [_comment(1, minutes=1, deleted=True), _comment(2, parent=1, minutes=2)]
        files = {
            1: [Attachment(id=10, comment_id=1, filename="a.png", mime_type="image/png",
                           file_size=3, object_key="k/a", created_at=T0)],
            2: [Attachment(id=11, comment_id=2, filename="b.png", mime_type="image/png",
                           file_size=3, object_key="k/b", created_at=T0)],
        }

        forest = build_forest(rows, attachments=files)

        assert forest[0].attachments == []
        assert [a.object_key for a in forest[0].children[0].attachments] == ["k/b"]


class TestCountNodes:
    def test_counts_every_level(self):
        leaf = CommentNode(id=3, discussion_id=1, parent_comment_id=2, created_at=T0)
        mid = CommentNode(id=2, discussion_id=1, parent_comment_id=1, created_at=T0, children=[leaf])
        root = CommentNode(id=1, discussion_id=1, parent_comment_id=None, created_at=T0, children=[mid])
        other = CommentNode(id=4, discussion_id=1, parent_comment_id=None, created_at=T0)

        assert count_nodes([root, other]) == 4
        assert count_nodes([]) == 0
