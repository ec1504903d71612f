"""
Tests for AggregationPoster entry formatting and publishing.
"""

import asyncio
import json

from app.integrations.slack.blocks import REMOVE_ENTRY_ACTION
from app.models.tagging import TaggerContext, ThreadRef
from app.services.aggregation_poster import AggregationPoster

THREAD = ThreadRef(channel_id="DU1", thread_ts="900.000001")


def context(tagger="UTAGGER", author_name="Alice"):
    return TaggerContext(
        tagger_user_id=tagger,
        channel_id="C1",
        message_ts="1.000001",
        message_author_id="UAUTHOR",
        message_author_name=author_name,
    )


class TestFormatEntry:
    """Summary entry text."""

    def test_entry_links_back_and_attributes(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())
        poster = AggregationPoster(fake_slack)

        text = poster.format_entry(record, context())

        assert "<https://example.slack.com/archives/C1/p1|@Alice's message>" in text
        assert "<@UTAGGER>" in text
        assert "> Deploy failed on staging" in text

    def test_preview_is_truncated(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot(text="x" * 500))
        poster = AggregationPoster(fake_slack, preview_length=200)

        text = poster.format_entry(record, context())
        preview = text.split("\n> ", 1)[1]

        assert len(preview) == 200
        assert preview.endswith("…")

    def test_missing_permalink_and_author(self, store, fake_slack, make_snapshot):
        snap = make_snapshot(author_name=None)
        snap.message_permalink = None
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], snap)
        poster = AggregationPoster(fake_slack)

        text = poster.format_entry(record, context(author_name=None))

        assert text.startswith("@Unknown's message")


class TestPublish:
    """Posting into the resolved thread."""

    def test_publishes_reply_in_thread_with_remove_control(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())
        poster = AggregationPoster(fake_slack)

        outcome = asyncio.run(poster.publish(THREAD, "bug", record, context()))

        assert outcome.posted is True
        post = fake_slack.posted[0]
        assert post["channel"] == "DU1"
        assert post["thread_ts"] == "900.000001"
        assert outcome.entry_ts == post["ts"]
        button = post["blocks"][-1]["elements"][0]
        assert button["action_id"] == REMOVE_ENTRY_ACTION
        assert json.loads(button["value"]) == {"record_id": record.id, "tag": "bug"}

    def test_delete_control_can_be_disabled(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())
        poster = AggregationPoster(fake_slack, include_delete_control=False)

        asyncio.run(poster.publish(THREAD, "bug", record, context()))

        assert [b["type"] for b in fake_slack.posted[0]["blocks"]] == ["section"]

    def test_failure_is_reported_not_raised(self, store, fake_slack, make_snapshot):
        record = store.upsert_tag_assignment("C1", "1.000001", ["bug"], make_snapshot())
        fake_slack.failing.add("chat_postMessage")
        poster = AggregationPoster(fake_slack)

        outcome = asyncio.run(poster.publish(THREAD, "bug", record, context()))

        assert outcome.posted is False
        assert outcome.error == "internal_error"
        assert outcome.thread == THREAD
