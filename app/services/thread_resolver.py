"""
Thread Resolver

Maps (scope, tag) to the Slack thread that aggregates the tag, creating the
thread root on first use and memoizing its ts in the Tag Store.

Lookup, creation and memoization are not guarded by a lock. Two concurrent
first resolutions of the same (scope, tag) can both post a root; the store's
back-fill only fills empty pointers, so the first one stays authoritative
and the other root is left orphaned. No tag assignment is lost either way.
"""

import logging
from typing import Dict, Optional

from app.integrations.slack.blocks import build_thread_root_blocks, thread_root_text
from app.integrations.slack.client import SlackClient
from app.models.tagging import ScopeKind, ThreadRef, ThreadScope
from app.services.tag_store import TagStore

logger = logging.getLogger(__name__)


class ThreadResolver:
    """Find-or-create aggregation threads per scope."""

    def __init__(
        self,
        store: TagStore,
        conversations: SlackClient,
        aggregation_channel_id: Optional[str] = None,
        include_delete_control: bool = True,
    ):
        self.store = store
        self.conversations = conversations
        self.aggregation_channel_id = aggregation_channel_id
        self.include_delete_control = include_delete_control
        self._dm_channels: Dict[str, str] = {}

    async def channel_for(self, scope: ThreadScope) -> str:
        """
        Channel hosting the threads of a scope.

        Raises:
            ValueError: If global scope is used without an aggregation channel
            ConversationServiceError: If the DM cannot be opened
        """
        if scope.kind is ScopeKind.GLOBAL:
            if not self.aggregation_channel_id:
                raise ValueError("Global thread scope requires AGGREGATION_CHANNEL_ID")
            return self.aggregation_channel_id

        channel_id = self._dm_channels.get(scope.user_id)
        if channel_id is None:
            channel_id = await self.conversations.open_direct_channel(scope.user_id)
            self._dm_channels[scope.user_id] = channel_id
        return channel_id

    async def resolve(self, scope: ThreadScope, tag: str) -> ThreadRef:
        """
        Return the aggregation thread for (scope, tag), creating it if needed.

        Raises:
            ConversationServiceError: If the thread root could not be posted
        """
        thread_ts = self.store.find_thread_for_tag(scope, tag)
        channel_id = await self.channel_for(scope)
        if thread_ts:
            # Records tagged after the thread was created have no pointer yet;
            # fill them so the thread stays reachable if its creator loses the tag
            self.store.record_thread_pointer(scope, tag, thread_ts)
            logger.debug(f"Reusing thread {thread_ts} for ({scope}, {tag})")
            return ThreadRef(channel_id=channel_id, thread_ts=thread_ts)

        thread_ts = await self.conversations.post_message(
            channel_id,
            thread_root_text(tag),
            blocks=build_thread_root_blocks(tag, scope.key(), self.include_delete_control),
        )
        updated = self.store.record_thread_pointer(scope, tag, thread_ts)
        logger.info(
            f"Created thread {thread_ts} in {channel_id} for ({scope}, {tag}), "
            f"pointer stored on {updated} row(s)"
        )
        return ThreadRef(channel_id=channel_id, thread_ts=thread_ts)
