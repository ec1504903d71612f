"""
Service wiring for the API routes.

One instance of each service per process; routes receive them through
FastAPI's Depends so tests can override them.
"""

from functools import lru_cache

from app.config import get_settings
from app.db.session import get_session_factory
from app.integrations.slack.client import SlackClient
from app.services.aggregation_poster import AggregationPoster
from app.services.deletion_cascade import DeletionCascade
from app.services.dispatcher import AggregationDispatcher
from app.services.tag_store import TagStore
from app.services.tag_workflow import TagSubmissionWorkflow
from app.services.thread_resolver import ThreadResolver


@lru_cache
def get_tag_store() -> TagStore:
    return TagStore(get_session_factory())


@lru_cache
def get_slack_client() -> SlackClient:
    return SlackClient()


@lru_cache
def get_dispatcher() -> AggregationDispatcher:
    return AggregationDispatcher(get_settings().aggregation_concurrency)


@lru_cache
def get_thread_resolver() -> ThreadResolver:
    settings = get_settings()
    return ThreadResolver(
        get_tag_store(),
        get_slack_client(),
        aggregation_channel_id=settings.aggregation_channel_id or None,
        include_delete_control=settings.include_delete_controls,
    )


@lru_cache
def get_workflow() -> TagSubmissionWorkflow:
    settings = get_settings()
    poster = AggregationPoster(
        get_slack_client(),
        preview_length=settings.preview_length,
        include_delete_control=settings.include_delete_controls,
    )
    return TagSubmissionWorkflow(
        store=get_tag_store(),
        resolver=get_thread_resolver(),
        poster=poster,
        conversations=get_slack_client(),
        dispatcher=get_dispatcher(),
        settings=settings,
    )


@lru_cache
def get_deletion_cascade() -> DeletionCascade:
    return DeletionCascade(get_tag_store(), get_thread_resolver(), get_slack_client())
