"""
Tests for DeletionCascade: single-entry removal and whole-thread teardown.
"""

import asyncio

from sqlalchemy.exc import OperationalError

from app.models.tagging import (
    DeletionKind,
    MessageRef,
    RemovalOutcome,
    ScopeKind,
    TagDeletionAction,
    ThreadScope,
)
from app.services.deletion_cascade import DeletionCascade
from app.services.thread_resolver import ThreadResolver

ENTRY = MessageRef(channel_id="DU1", ts="900.000002")


class TestDeleteTagFromMessage:
    """Remove control on an aggregated entry."""

    def test_removes_tag_and_entry(self, store, cascade, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug", "ui"], make_snapshot())

        outcome = asyncio.run(cascade.delete_tag_from_message(record.id, "bug", ENTRY))

        assert outcome is RemovalOutcome.TAG_REMOVED
        assert store.get_record(record.id).tags == ["ui"]
        assert fake_slack.deleted == [("DU1", "900.000002")]

    def test_last_tag_deletes_record(self, store, cascade, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())

        outcome = asyncio.run(cascade.delete_tag_from_message(record.id, "bug", ENTRY))

        assert outcome is RemovalOutcome.RECORD_DELETED
        assert store.get_record(record.id) is None

    def test_stale_entry_is_still_deleted(self, cascade, fake_slack):
        outcome = asyncio.run(cascade.delete_tag_from_message(999, "bug", ENTRY))

        assert outcome is RemovalOutcome.NOT_FOUND
        assert fake_slack.deleted == [("DU1", "900.000002")]

    def test_entry_delete_failure_keeps_store_change(self, store, cascade, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug", "ui"], make_snapshot())
        fake_slack.failing.add("chat_delete")

        outcome = asyncio.run(cascade.delete_tag_from_message(record.id, "bug", ENTRY))

        assert outcome is RemovalOutcome.TAG_REMOVED
        assert store.get_record(record.id).tags == ["ui"]

    def test_store_error_is_logged_and_entry_still_deleted(self, store, cascade, fake_slack, monkeypatch):
        def broken_remove(record_id, tag):
            raise OperationalError("DELETE FROM message_tags", {}, Exception("database is locked"))

        monkeypatch.setattr(store, "remove_tag", broken_remove)

        outcome = asyncio.run(cascade.delete_tag_from_message(1, "bug", ENTRY))

        assert outcome is RemovalOutcome.FAILED
        assert fake_slack.deleted == [("DU1", "900.000002")]


class TestDeleteTagThread:
    """Delete control on a thread root."""

    def test_global_thread(self, store, resolver, cascade, fake_slack, make_snapshot):
        r1 = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(user_id="U1"))
        r2 = store.upsert_tag_assignment("C1", "1.000002", ["bug", "ui"], make_snapshot(user_id="U2"))
        thread = asyncio.run(resolver.resolve(ThreadScope.workspace(), "bug"))

        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.workspace(), "bug"))

        assert fake_slack.deleted == [("CAGGREGATE", thread.thread_ts)]
        assert result.threads_deleted == 1
        assert result.records_deleted == 1
        assert result.records_updated == 1
        assert result.failures == 0
        assert store.get_record(r1.id) is None
        assert store.get_record(r2.id).tags == ["ui"]

    def test_user_thread_leaves_other_users_alone(self, store, resolver, cascade, fake_slack, make_snapshot):
        r1 = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(user_id="U1"))
        r2 = store.upsert_tag_assignment("C1", "1.000002", ["bug"], make_snapshot(user_id="U2"))
        t1 = asyncio.run(resolver.resolve(ThreadScope.for_user("U1"), "bug"))
        t2 = asyncio.run(resolver.resolve(ThreadScope.for_user("U2"), "bug"))

        asyncio.run(cascade.delete_tag_thread(ThreadScope.for_user("U1"), "bug"))

        assert fake_slack.deleted == [("DU1", t1.thread_ts)]
        assert store.get_record(r1.id) is None
        assert store.get_record(r2.id).thread_pointer(ScopeKind.USER, "bug") == t2.thread_ts

    def test_message_thread_covers_siblings_sharing_it(self, store, resolver, cascade, fake_slack, make_snapshot):
        r1 = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(user_id="U1"))
        thread = asyncio.run(resolver.resolve(ThreadScope.for_message("U1", r1.id), "bug"))
        r2 = store.upsert_tag_assignment("C1", "1.000002", ["bug", "ui"], make_snapshot(user_id="U1"))
        asyncio.run(resolver.resolve(ThreadScope.for_message("U1", r2.id), "bug"))

        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.for_message("U1", r2.id), "bug"))

        assert fake_slack.deleted == [("DU1", thread.thread_ts)]
        assert result.records_deleted == 1
        assert result.records_updated == 1
        assert store.get_record(r1.id) is None
        assert store.get_record(r2.id).tags == ["ui"]

    def test_duplicate_roots_from_a_race_are_all_deleted(self, store, cascade, fake_slack, make_snapshot):
        r1 = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(user_id="U1"))
        store.record_thread_pointer(ThreadScope.workspace(), "bug", "100.000001")
        r2 = store.upsert_tag_assignment("C1", "1.000002", ["bug"], make_snapshot(user_id="U2"))
        store.record_thread_pointer(ThreadScope.workspace(), "bug", "100.000002")

        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.workspace(), "bug"))

        assert sorted(fake_slack.deleted) == [("CAGGREGATE", "100.000001"), ("CAGGREGATE", "100.000002")]
        assert result.threads_deleted == 2
        assert store.get_record(r1.id) is None
        assert store.get_record(r2.id) is None

    def test_missing_channel_still_strips_tags(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug", "ui"], make_snapshot())
        store.record_thread_pointer(ThreadScope.workspace(), "bug", "100.000001")
        cascade = DeletionCascade(store, ThreadResolver(store, fake_slack), fake_slack)

        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.workspace(), "bug"))

        assert fake_slack.deleted == []
        assert result.failures == 1
        assert store.get_record(record.id).tags == ["ui"]

    def test_root_delete_failure_is_counted(self, store, resolver, cascade, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug", "ui"], make_snapshot())
        asyncio.run(resolver.resolve(ThreadScope.workspace(), "bug"))
        fake_slack.failing.add("chat_delete")

        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.workspace(), "bug"))

        assert result.failures == 1
        assert result.threads_deleted == 0
        assert store.get_record(record.id).tags == ["ui"]

    def test_unknown_thread_is_a_no_op(self, cascade, fake_slack):
        result = asyncio.run(cascade.delete_tag_thread(ThreadScope.workspace(), "nothing"))

        assert result.model_dump() == {
            "scope": "global",
            "tag": "nothing",
            "records_updated": 0,
            "records_deleted": 0,
            "threads_deleted": 0,
            "failures": 0,
        }
        assert fake_slack.deleted == []


class TestHandle:
    """Dispatch of parsed remove-control actions."""

    def test_entry_action(self, store, cascade, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())
        action = TagDeletionAction(kind=DeletionKind.ENTRY, tag="bug", record_id=record.id, entry=ENTRY)

        outcome = asyncio.run(cascade.handle(action))

        assert outcome is RemovalOutcome.RECORD_DELETED

    def test_thread_action_parses_scope_key(self, store, resolver, cascade, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(user_id="U1"))
        thread = asyncio.run(resolver.resolve(ThreadScope.for_user("U1"), "bug"))
        action = TagDeletionAction(kind=DeletionKind.THREAD, tag="bug", scope_key="user:U1")

        result = asyncio.run(cascade.handle(action))

        assert result.scope == "user:U1"
        assert fake_slack.deleted == [("DU1", thread.thread_ts)]
        assert store.get_record(record.id) is None
