"""
Tag Submission Workflow

Orchestrates one tagging interaction end to end:
1. Open the tag form with suggestions and previously applied tags
2. Collect and validate the submitted tags
3. Persist them (replace or union policy)
4. In the background: acknowledge with a reaction, reply on the original
   message, and aggregate each submitted tag into its thread

Background failures are logged and never roll back step 3.
"""

import logging
from typing import List, Optional

from app.config import Settings, get_settings
from app.db.models import TaggedMessage
from app.integrations.slack.blocks import MAX_TAG_LENGTH, NEW_TAG_BLOCK, build_tag_modal, tagged_reply_text
from app.integrations.slack.client import ConversationServiceError, SlackClient
from app.integrations.slack.interactions import submission_metadata
from app.models.tagging import (
    ScopeKind,
    SubmissionResult,
    TagForm,
    TagInitiation,
    TagPolicy,
    TagSubmission,
    TaggerContext,
    ThreadScope,
)
from app.services.aggregation_poster import AggregationPoster
from app.services.dispatcher import AggregationDispatcher
from app.services.tag_store import TagStore
from app.services.thread_resolver import ThreadResolver
from app.utils.helpers import collect_tags

logger = logging.getLogger(__name__)


class TagValidationError(ValueError):
    """Submitted tags are unusable; shown to the user under ``block_id``."""

    def __init__(self, block_id: str, message: str):
        self.block_id = block_id
        self.message = message
        super().__init__(message)


class TagSubmissionWorkflow:
    """Form preparation and tag submission handling."""

    def __init__(
        self,
        store: TagStore,
        resolver: ThreadResolver,
        poster: AggregationPoster,
        conversations: SlackClient,
        dispatcher: AggregationDispatcher,
        settings: Optional[Settings] = None,
    ):
        self.store = store
        self.resolver = resolver
        self.poster = poster
        self.conversations = conversations
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def prepare_form(self, channel_id: str, message_ts: str) -> TagForm:
        existing = self.store.find_record(channel_id, message_ts)
        return TagForm(
            suggested_tags=self.store.popular_tags(self.settings.popular_tag_limit),
            existing_tags=existing.tags if existing else [],
        )

    async def open_tag_form(self, initiation: TagInitiation) -> TagForm:
        """
        Open the tag modal for a message.

        Permalink and author name are snapshotted now and carried through the
        modal's private_metadata; failing to fetch either only degrades display.

        Raises:
            ConversationServiceError: If the modal itself cannot be opened
        """
        form = self.prepare_form(initiation.channel_id, initiation.message_ts)

        permalink = None
        try:
            permalink = await self.conversations.get_permalink(initiation.channel_id, initiation.message_ts)
        except ConversationServiceError as e:
            logger.warning(f"Could not fetch permalink for {initiation.channel_id}/{initiation.message_ts}: {e}")

        author_name = None
        if initiation.message_author_id:
            try:
                author_name = await self.conversations.get_user_display_name(initiation.message_author_id)
            except ConversationServiceError as e:
                logger.warning(f"Could not fetch user info for {initiation.message_author_id}: {e}")

        view = build_tag_modal(
            suggested_tags=form.suggested_tags,
            existing_tags=form.existing_tags,
            private_metadata=submission_metadata(initiation, author_name, permalink),
            multi_select=self.settings.allow_multiple_tag_selection,
            prefill_existing=self.settings.tag_policy is TagPolicy.REPLACE,
        )
        await self.conversations.open_view(initiation.trigger_id, view)
        logger.info(
            f"Opened tag form for {initiation.channel_id}/{initiation.message_ts} "
            f"({len(form.suggested_tags)} suggestions, {len(form.existing_tags)} existing)"
        )
        return form

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    async def submit(self, submission: TagSubmission) -> SubmissionResult:
        """
        Validate and persist a submission, then enqueue its side effects.

        Raises:
            TagValidationError: If no usable tag was submitted or one is too long
        """
        tags = collect_tags(submission.selected_tags, submission.new_tags_text)
        if not tags:
            raise TagValidationError(NEW_TAG_BLOCK, "Choose or enter at least one tag")
        if any(len(tag) > MAX_TAG_LENGTH for tag in tags):
            raise TagValidationError(
                NEW_TAG_BLOCK, f"Tags can be at most {MAX_TAG_LENGTH} characters long"
            )

        record = self.store.upsert_tag_assignment(
            submission.channel_id,
            submission.message_ts,
            tags,
            submission.snapshot(),
            policy=self.settings.tag_policy,
        )
        context = submission.context()

        scheduled = 1
        self.dispatcher.submit(
            f"notify:{record.id}",
            lambda: self.acknowledge_and_notify(context, tags),
        )
        for tag in tags:
            self.dispatcher.submit(
                f"aggregate:{record.id}:{tag}",
                lambda tag=tag: self.aggregate_tag(record, tag, context),
            )
            scheduled += 1

        return SubmissionResult(
            record_id=record.id,
            tags=record.tags,
            applied_tags=tags,
            scheduled_jobs=scheduled,
        )

    def scope_for(self, record: TaggedMessage, context: TaggerContext) -> ThreadScope:
        kind = self.settings.thread_scope
        if kind is ScopeKind.GLOBAL:
            return ThreadScope.workspace()
        if kind is ScopeKind.USER:
            return ThreadScope.for_user(context.tagger_user_id)
        return ThreadScope.for_message(context.tagger_user_id, record.id)

    async def acknowledge_and_notify(self, context: TaggerContext, tags: List[str]) -> None:
        """Reaction on the original message, then a reply in its thread. Both best-effort."""
        try:
            await self.conversations.add_reaction(
                context.channel_id, context.message_ts, self.settings.acknowledgment_reaction
            )
        except ConversationServiceError as e:
            logger.error(f"Failed to add reaction to {context.channel_id}/{context.message_ts}: {e}")

        try:
            await self.conversations.post_message(
                context.channel_id,
                tagged_reply_text(context.tagger_user_id, tags),
                thread_ts=context.message_ts,
            )
        except ConversationServiceError as e:
            logger.error(f"Failed to post thread reply on {context.channel_id}/{context.message_ts}: {e}")

    async def aggregate_tag(self, record: TaggedMessage, tag: str, context: TaggerContext) -> bool:
        """Resolve the tag's thread, then post the entry. Returns True if the entry was posted."""
        scope = self.scope_for(record, context)
        try:
            thread = await self.resolver.resolve(scope, tag)
        except (ConversationServiceError, ValueError) as e:
            logger.error(f"Failed to resolve thread for ({scope}, {tag}): {e}")
            return False

        outcome = await self.poster.publish(thread, tag, record, context)
        return outcome.posted
