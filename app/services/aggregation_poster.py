"""
Aggregation Poster

Formats a summary entry for one tagged message and posts it as a reply in
the tag's aggregation thread. Does not touch the Tag Store; the resolver has
already memoized the thread pointer before anything is posted.
"""

import logging

from app.db.models import TaggedMessage
from app.integrations.slack.blocks import build_entry_blocks
from app.integrations.slack.client import ConversationServiceError, SlackClient
from app.models.tagging import PublishOutcome, TaggerContext, ThreadRef
from app.utils.helpers import truncate_text

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_LENGTH = 200


class AggregationPoster:
    """Publishes tagged-message entries into aggregation threads."""

    def __init__(
        self,
        conversations: SlackClient,
        preview_length: int = DEFAULT_PREVIEW_LENGTH,
        include_delete_control: bool = True,
    ):
        self.conversations = conversations
        self.preview_length = preview_length
        self.include_delete_control = include_delete_control

    def format_entry(self, message: TaggedMessage, context: TaggerContext) -> str:
        """
        Entry text: link back to the original, attribution, quoted preview.

        Example:
            <https://x.slack.com/archives/C1/p1|@Alice's message> · tagged by <@U2>
            > The deploy failed again with…
        """
        author = context.message_author_name or message.message_author_name or "Unknown"
        permalink = message.message_permalink
        link = f"<{permalink}|@{author}'s message>" if permalink else f"@{author}'s message"

        lines = [f"{link} · tagged by <@{context.tagger_user_id}>"]
        preview = truncate_text(message.message_text, self.preview_length)
        if preview:
            lines.extend(f"> {line}" for line in preview.splitlines())
        return "\n".join(lines)

    async def publish(
        self,
        thread: ThreadRef,
        tag: str,
        message: TaggedMessage,
        context: TaggerContext,
    ) -> PublishOutcome:
        text = self.format_entry(message, context)
        blocks = build_entry_blocks(text, message.id, tag, self.include_delete_control)

        try:
            entry_ts = await self.conversations.post_message(
                thread.channel_id, text, thread_ts=thread.thread_ts, blocks=blocks
            )
        except ConversationServiceError as e:
            logger.error(
                f"Failed to post '{tag}' entry for record {message.id} "
                f"into {thread.channel_id}/{thread.thread_ts}: {e}"
            )
            return PublishOutcome(posted=False, thread=thread, error=e.error)

        logger.info(f"Posted '{tag}' entry {entry_ts} for record {message.id} into thread {thread.thread_ts}")
        return PublishOutcome(posted=True, thread=thread, entry_ts=entry_ts)
