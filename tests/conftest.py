"""
Shared fixtures: in-memory Tag Store and a recording fake of the Slack client.
"""

import asyncio

import pytest

from app.config import Settings
from app.db.session import build_engine, build_session_factory, init_db
from app.integrations.slack.client import ConversationServiceError
from app.models.tagging import MessageSnapshot, ScopeKind, TagPolicy
from app.services.aggregation_poster import AggregationPoster
from app.services.deletion_cascade import DeletionCascade
from app.services.dispatcher import AggregationDispatcher
from app.services.tag_store import TagStore
from app.services.tag_workflow import TagSubmissionWorkflow
from app.services.thread_resolver import ThreadResolver

AGGREGATION_CHANNEL = "CAGGREGATE"


class FakeSlack:
    """Records every call; methods listed in ``failing`` raise like Slack would."""

    def __init__(self):
        self.posted = []
        self.deleted = []
        self.reactions = []
        self.views = []
        self.failing = set()
        self._ts = 0

    def _check(self, method):
        if method in self.failing:
            raise ConversationServiceError(method, "internal_error")

    def _next_ts(self):
        self._ts += 1
        return f"1700000000.{self._ts:06d}"

    async def open_direct_channel(self, user_id):
        self._check("conversations_open")
        return f"D{user_id}"

    async def post_message(self, channel_id, text, thread_ts=None, blocks=None):
        self._check("chat_postMessage")
        await asyncio.sleep(0)  # Yield like a real network call
        ts = self._next_ts()
        self.posted.append(
            {"channel": channel_id, "text": text, "thread_ts": thread_ts, "blocks": blocks, "ts": ts}
        )
        return ts

    async def delete_message(self, channel_id, ts):
        self._check("chat_delete")
        self.deleted.append((channel_id, ts))
        return True

    async def get_permalink(self, channel_id, message_ts):
        self._check("chat_getPermalink")
        return f"https://example.slack.com/archives/{channel_id}/p{message_ts.replace('.', '')}"

    async def get_user_display_name(self, user_id):
        self._check("users_info")
        return f"Name {user_id}"

    async def add_reaction(self, channel_id, message_ts, name):
        self._check("reactions_add")
        self.reactions.append((channel_id, message_ts, name))

    async def open_view(self, trigger_id, view):
        self._check("views_open")
        self.views.append((trigger_id, view))

    @property
    def thread_roots(self):
        return [post for post in self.posted if post["thread_ts"] is None]

    def replies_in(self, thread_ts):
        return [post for post in self.posted if post["thread_ts"] == thread_ts]


def make_settings(**overrides) -> Settings:
    values = {
        "thread_scope": ScopeKind.MESSAGE,
        "tag_policy": TagPolicy.UNION,
        "aggregation_channel_id": AGGREGATION_CHANNEL,
        "database_url": "sqlite://",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def snapshot(user_id="UTAGGER", text="Deploy failed on staging", author_name="Alice"):
    return MessageSnapshot(
        tagger_user_id=user_id,
        message_text=text,
        message_permalink="https://example.slack.com/archives/C1/p1",
        message_author_id="UAUTHOR",
        message_author_name=author_name,
    )


@pytest.fixture
def session_factory():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return TagStore(session_factory)


@pytest.fixture
def fake_slack():
    return FakeSlack()


@pytest.fixture
def resolver(store, fake_slack):
    return ThreadResolver(store, fake_slack, aggregation_channel_id=AGGREGATION_CHANNEL)


@pytest.fixture
def make_workflow(store, fake_slack):
    """Build a workflow (and its dispatcher) for the given settings overrides."""

    def _make(**overrides):
        settings = make_settings(**overrides)
        resolver = ThreadResolver(
            store, fake_slack, aggregation_channel_id=settings.aggregation_channel_id
        )
        poster = AggregationPoster(fake_slack, preview_length=settings.preview_length)
        dispatcher = AggregationDispatcher(settings.aggregation_concurrency)
        workflow = TagSubmissionWorkflow(
            store=store,
            resolver=resolver,
            poster=poster,
            conversations=fake_slack,
            dispatcher=dispatcher,
            settings=settings,
        )
        return workflow, dispatcher

    return _make


@pytest.fixture
def cascade(store, resolver, fake_slack):
    return DeletionCascade(store, resolver, fake_slack)


@pytest.fixture
def make_snapshot():
    return snapshot
