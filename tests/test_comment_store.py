# mypy: ignore-errors
# tests/test_comment_store.py
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

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
from guru_comments.db.time import as_utc
from guru_comments.models import Comment
from guru_comments.services.comment_store import CommentTreeStore


@pytest.fixture()
def discussion(store, alice):
    return store.create_discussion("Release notes", alice.id)


def _attach(store, comment, actor, key="uploads/a.png", **overrides):
    fields = {
        "filename": "a.png",
        "mime_type": "image/png",
        "file_size": 100,
        "object_key": key,
    }
    fields.update(overrides)
    return store.add_attachment(comment.id, actor.id, **fields)


class TestDiscussions:
    def test_create_and_get(self, store, alice):
        created = store.create_discussion("  Hello  ", alice.id)

        fetched = store.get_discussion(created.id)
        assert fetched.title == "Hello"
        assert fetched.created_by == alice.id
        assert fetched.deleted_at is None
        assert fetched.is_archived is False

    def test_create_requires_actor(self, store):
        with pytest.raises(Unauthorized):
            store.create_discussion("Title", None)

    def test_unknown_actor_is_unauthorized_and_logged(self, store, caplog):
        with pytest.raises(Unauthorized) as exc_info:
            store.create_discussion("Title", "ghost")

        assert exc_info.value.message == "Unknown actor"
        assert "Rejected actor id ghost with no user row" in caplog.text

    @pytest.mark.parametrize("title", ["", "   ", "x" * 51])
    def test_create_rejects_bad_titles(self, store, alice, title):
        with pytest.raises(ValidationError) as exc_info:
            store.create_discussion(title, alice.id)
        assert exc_info.value.field == "title"

    def test_list_is_newest_first_and_skips_deleted(self, store, alice, admin):
        first = store.create_discussion("first", alice.id)
        second = store.create_discussion("second", alice.id)
        gone = store.create_discussion("gone", alice.id)
        store.soft_delete_discussion(gone.id, admin.id)

        page = store.list_discussions(limit=1)

        assert page.total == 2
        assert [d.id for d in page.items] == [second.id]
        assert page.has_more is True
        assert [d.id for d in store.list_discussions(limit=1, offset=1).items] == [first.id]

    def test_list_can_exclude_archived(self, store, alice):
        kept = store.create_discussion("kept", alice.id)
        archived = store.create_discussion("archived", alice.id)
        store.update_discussion(archived.id, alice.id, is_archived=True)

        page = store.list_discussions(include_archived=False)

        assert [d.id for d in page.items] == [kept.id]

    def test_update_by_owner_bumps_updated_at(self, store, alice, discussion):
        before = as_utc(discussion.updated_at)

        updated = store.update_discussion(discussion.id, alice.id, title="Renamed")

        assert updated.title == "Renamed"
        assert as_utc(updated.updated_at) > before

    def test_update_by_stranger_is_forbidden(self, store, bob, discussion):
        with pytest.raises(Forbidden):
            store.update_discussion(discussion.id, bob.id, title="Mine now")

    def test_admin_may_update_any_discussion(self, store, admin, discussion):
        assert store.update_discussion(discussion.id, admin.id, is_archived=True).is_archived

    def test_soft_delete_requires_admin(self, store, alice, discussion):
        with pytest.raises(Forbidden):
            store.soft_delete_discussion(discussion.id, alice.id)

    def test_soft_delete_hides_discussion_and_is_idempotent(self, store, admin, discussion):
        store.soft_delete_discussion(discussion.id, admin.id)
        store.soft_delete_discussion(discussion.id, admin.id)

        with pytest.raises(NotFound):
            store.get_discussion(discussion.id)

    def test_soft_delete_unknown_discussion(self, store, admin):
        with pytest.raises(NotFound):
            store.soft_delete_discussion(999, admin.id)


class TestCreateComment:
    def test_top_level_and_reply(self, store, alice, bob, discussion):
        top = store.create_comment(discussion.id, alice.id, "first")
        reply = store.create_comment(discussion.id, bob.id, "re: first", parent_comment_id=top.id)

        assert top.parent_comment_id is None
        assert reply.parent_comment_id == top.id
        assert reply.discussion_id == discussion.id
        assert reply.id > top.id

    def test_requires_actor(self, store, discussion):
        with pytest.raises(Unauthorized):
            store.create_comment(discussion.id, None, "anon")

    @pytest.mark.parametrize("content", ["", "   \n", "y" * 201])
    def test_rejects_bad_content(self, store, alice, discussion, content):
        with pytest.raises(ValidationError) as exc_info:
            store.create_comment(discussion.id, alice.id, content)
        assert exc_info.value.field == "content"

    def test_accepts_content_at_limit(self, store, alice, discussion):
        assert store.create_comment(discussion.id, alice.id, "y" * 200).content == "y" * 200

    def test_unknown_discussion(self, store, alice):
        with pytest.raises(NotFound):
            store.create_comment(404, alice.id, "hello")

    def test_deleted_discussion_rejects_new_comments(self, store, alice, admin, discussion):
        store.soft_delete_discussion(discussion.id, admin.id)

        with pytest.raises(NotFound):
            store.create_comment(discussion.id, alice.id, "too late")

    def test_missing_parent(self, store, alice, discussion):
        with pytest.raises(InvalidReference) as exc_info:
            store.create_comment(discussion.id, alice.id, "orphan", parent_comment_id=12345)
        assert exc_info.value.field == "parent_comment_id"

    def test_parent_in_other_discussion(self, store, alice, discussion):
        other = store.create_discussion("Other", alice.id)
        foreign = store.create_comment(other.id, alice.id, "elsewhere")

        with pytest.raises(InvalidReference):
            store.create_comment(discussion.id, alice.id, "cross", parent_comment_id=foreign.id)

    def test_reply_to_deleted_parent_is_rejected(self, store, alice, discussion):
        parent = store.create_comment(discussion.id, alice.id, "soon gone")
        store.soft_delete_comment(parent.id, alice.id)

        with pytest.raises(InvalidReference):
            store.create_comment(discussion.id, alice.id, "late", parent_comment_id=parent.id)


class TestEditAndDelete:
    def test_author_edit_moves_updated_at_forward(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "draft")
        created_at = as_utc(comment.created_at)
        updated_at = as_utc(comment.updated_at)

        edited = store.edit_comment(comment.id, alice.id, "final")

        assert edited.content == "final"
        assert as_utc(edited.created_at) == created_at
        assert as_utc(edited.updated_at) > updated_at

    def test_stranger_cannot_edit(self, store, alice, bob, discussion):
        comment = store.create_comment(discussion.id, alice.id, "mine")

        with pytest.raises(Forbidden):
            store.edit_comment(comment.id, bob.id, "yours")

    def test_anonymous_edit_is_unauthorized_not_forbidden(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "mine")

        with pytest.raises(Unauthorized):
            store.edit_comment(comment.id, None, "x")

    def test_admin_can_edit(self, store, alice, admin, discussion):
        comment = store.create_comment(discussion.id, alice.id, "rude")
        created_at = as_utc(comment.created_at)
        updated_at = as_utc(comment.updated_at)

        edited = store.edit_comment(comment.id, admin.id, "[moderated]")

        assert edited.content == "[moderated]"
        assert edited.author_id == alice.id
        assert as_utc(edited.created_at) == created_at
        assert as_utc(edited.updated_at) > updated_at

    def test_edit_validates_content(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "ok")

        with pytest.raises(ValidationError):
            store.edit_comment(comment.id, alice.id, " ")

    def test_edit_deleted_comment_is_not_found(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "bye")
        store.soft_delete_comment(comment.id, alice.id)

        with pytest.raises(NotFound):
            store.edit_comment(comment.id, alice.id, "hello again")

    def test_delete_is_idempotent(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "bye")

        store.soft_delete_comment(comment.id, alice.id)
        store.soft_delete_comment(comment.id, alice.id)

        with pytest.raises(NotFound):
            store.get_comment(comment.id)

    def test_stranger_cannot_delete(self, store, alice, bob, discussion):
        comment = store.create_comment(discussion.id, alice.id, "mine")

        with pytest.raises(Forbidden):
            store.soft_delete_comment(comment.id, bob.id)

    def test_delete_unknown_comment(self, store, alice):
        with pytest.raises(NotFound):
            store.soft_delete_comment(777, alice.id)

    def test_comments_of_deleted_discussion_are_hidden(self, store, alice, admin, discussion):
        comment = store.create_comment(discussion.id, alice.id, "hidden soon")
        store.soft_delete_discussion(discussion.id, admin.id)

        with pytest.raises(NotFound):
            store.get_comment(comment.id)
        with pytest.raises(NotFound):
            store.list_top_level_tree(discussion.id)

    def test_admin_restore(self, store, alice, admin, discussion):
        comment = store.create_comment(discussion.id, alice.id, "oops")
        store.soft_delete_comment(comment.id, alice.id)

        with pytest.raises(Forbidden):
            store.restore_comment(comment.id, alice.id)

        restored = store.restore_comment(comment.id, admin.id)
        assert restored.deleted_at is None
        assert store.get_comment(comment.id).content == "oops"


class TestTree:
    def test_reply_under_deleted_parent_survives_as_tombstone(self, store, alice, bob, discussion):
        c1 = store.create_comment(discussion.id, alice.id, "Hello")
        c2 = store.create_comment(discussion.id, bob.id, "Reply", parent_comment_id=c1.id)

        forest = store.list_top_level_tree(discussion.id)
        assert [n.id for n in forest] == [c1.id]
        assert [n.id for n in forest[0].children] == [c2.id]
        assert forest[0].content == "Hello"

        store.soft_delete_comment(c1.id, alice.id)

        forest = store.list_top_level_tree(discussion.id)
        assert len(forest) == 1
        assert forest[0].id == c1.id
        assert forest[0].is_tombstone is True
        assert forest[0].content is None
        assert [n.content for n in forest[0].children] == ["Reply"]

        store.soft_delete_comment(c2.id, bob.id)

        assert store.list_top_level_tree(discussion.id) == []

    def test_empty_discussion(self, store, discussion):
        assert store.list_top_level_tree(discussion.id) == []

    def test_tree_is_scoped_to_discussion(self, store, alice, discussion):
        other = store.create_discussion("Other", alice.id)
        store.create_comment(other.id, alice.id, "elsewhere")
        mine = store.create_comment(discussion.id, alice.id, "here")

        assert [n.id for n in store.list_top_level_tree(discussion.id)] == [mine.id]

    def test_since_filters_and_keeps_ancestors(self, store, db_session, alice, discussion):
        old = store.create_comment(discussion.id, alice.id, "old")
        older_sibling = store.create_comment(discussion.id, alice.id, "old sibling")
        fresh = store.create_comment(discussion.id, alice.id, "fresh", parent_comment_id=old.id)
        cutoff = as_utc(fresh.created_at)
        for row, shift in ((old, -10), (older_sibling, -5), (fresh, 5)):
            db_session.get(Comment, row.id).created_at = cutoff + timedelta(seconds=shift)
        db_session.commit()

        forest = store.list_top_level_tree(discussion.id, since=cutoff)

        assert [n.id for n in forest] == [old.id]
        assert [n.id for n in forest[0].children] == [fresh.id]

    def test_tree_includes_attachments(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "see picture")
        _attach(store, comment, alice)

        forest = store.list_top_level_tree(discussion.id)

        assert [a.object_key for a in forest[0].attachments] == ["uploads/a.png"]


class TestAttachments:
    def test_add_and_list(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "files")
        first = _attach(store, comment, alice, key="k/1")
        second = _attach(store, comment, alice, key="k/2", mime_type="image/jpeg")

        assert [a.id for a in store.list_attachments(comment.id)] == [first.id, second.id]

    def test_only_author_or_admin(self, store, alice, bob, discussion):
        comment = store.create_comment(discussion.id, alice.id, "files")

        with pytest.raises(Forbidden):
            _attach(store, comment, bob)

    def test_rejects_oversized_file(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "files")

        with pytest.raises(FileTooLarge):
            _attach(store, comment, alice, file_size=1025)

    def test_rejects_unknown_type(self, store, alice, discussion):
        comment = store.create_comment(discussion.id, alice.id, "files")

        with pytest.raises(InvalidFileType):
            _attach(store, comment, alice, mime_type="application/x-msdownload")

    @pytest.mark.parametrize(
        ("overrides", "field"),
        [
            ({"filename": " "}, "filename"),
            ({"object_key": ""}, "object_key"),
            ({"file_size": 0}, "file_size"),
        ],
    )
    def test_rejects_invalid_metadata(self, store, alice, discussion, overrides, field):
        comment = store.create_comment(discussion.id, alice.id, "files")

        with pytest.raises(ValidationError) as exc_info:
            _attach(store, comment, alice, **overrides)
        assert exc_info.value.field == field

    def test_delete_releases_blobs_once(self, store, alice, discussion, released_blobs):
        comment = store.create_comment(discussion.id, alice.id, "files")
        _attach(store, comment, alice, key="k/1")
        _attach(store, comment, alice, key="k/2")

        store.soft_delete_comment(comment.id, alice.id)
        store.soft_delete_comment(comment.id, alice.id)

        assert released_blobs == [["k/1", "k/2"]]

    def test_delete_without_attachments_does_not_call_hook(
        self, store, alice, discussion, released_blobs
    ):
        comment = store.create_comment(discussion.id, alice.id, "plain")

        store.soft_delete_comment(comment.id, alice.id)

        assert released_blobs == []


class TestStorageUnavailable:
    def test_connection_failure_maps_to_storage_unavailable(self):
        db = MagicMock()
        db.get.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        store = CommentTreeStore(db)

        with pytest.raises(StorageUnavailable):
            store.create_discussion("Title", "alice-id")
        db.rollback.assert_called_once()

    def test_domain_errors_pass_through(self):
        db = MagicMock()
        db.get.return_value = None
        store = CommentTreeStore(db)

        with pytest.raises(NotFound):
            store.get_discussion(1)
        db.rollback.assert_not_called()
