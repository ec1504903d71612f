"""
Deletion Cascade

Removes a tag from one message, or tears down a whole tag thread and strips
the tag from every message aggregated in it. Nothing here is transactional:
each record mutation and each Slack delete is attempted once, on its own,
and logged.
"""

import logging
from typing import Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from app.integrations.slack.client import ConversationServiceError, SlackClient
from app.models.tagging import (
    CascadeResult,
    DeletionKind,
    MessageRef,
    RemovalOutcome,
    TagDeletionAction,
    ThreadScope,
)
from app.services.tag_store import TagStore
from app.services.thread_resolver import ThreadResolver

logger = logging.getLogger(__name__)


class DeletionCascade:
    """Tag removal for single entries and whole threads."""

    def __init__(self, store: TagStore, resolver: ThreadResolver, conversations: SlackClient):
        self.store = store
        self.resolver = resolver
        self.conversations = conversations

    async def handle(self, action: TagDeletionAction):
        """Dispatch a remove-control press to the matching entry point."""
        if action.kind is DeletionKind.ENTRY:
            return await self.delete_tag_from_message(action.record_id, action.tag, action.entry)
        return await self.delete_tag_thread(ThreadScope.parse(action.scope_key), action.tag)

    async def delete_tag_from_message(
        self, record_id: int, tag: str, entry: Optional[MessageRef] = None
    ) -> RemovalOutcome:
        """
        Remove one tag from one message and delete its aggregated entry.

        The entry delete is attempted even when the record is already gone, so
        a stale entry can still be cleaned up.
        """
        try:
            outcome = self.store.remove_tag(record_id, tag)
        except SQLAlchemyError as e:
            outcome = RemovalOutcome.FAILED
            logger.error(f"Failed to remove '{tag}' from record {record_id}: {e}", exc_info=True)
        if outcome is RemovalOutcome.NOT_FOUND:
            logger.info(f"Tag '{tag}' not on record {record_id}, nothing to remove")

        if entry is not None:
            try:
                await self.conversations.delete_message(entry.channel_id, entry.ts)
            except ConversationServiceError as e:
                logger.error(f"Failed to delete entry {entry.channel_id}/{entry.ts}: {e}")

        return outcome

    async def delete_tag_thread(self, scope: ThreadScope, tag: str) -> CascadeResult:
        """
        Delete the (scope, tag) thread root(s) and remove the tag from every
        record aggregated under it.

        Every distinct root pointer held by the affected records is deleted,
        which also cleans up duplicates left by concurrent thread creation.
        """
        result = CascadeResult(scope=scope.key(), tag=tag)
        records = self.store.records_with_tag(scope, tag)

        roots: Set[str] = {
            pointer
            for pointer in (record.thread_pointer(scope.kind, tag) for record in records)
            if pointer
        }
        if not roots:
            pointer = self.store.find_thread_for_tag(scope, tag)
            if pointer:
                roots.add(pointer)

        if roots:
            try:
                channel_id = await self.resolver.channel_for(scope)
            except (ConversationServiceError, ValueError) as e:
                logger.error(f"Cannot locate channel for ({scope}, {tag}), skipping remote delete: {e}")
                result.failures += len(roots)
            else:
                for thread_ts in sorted(roots):
                    try:
                        if await self.conversations.delete_message(channel_id, thread_ts):
                            result.threads_deleted += 1
                    except ConversationServiceError as e:
                        result.failures += 1
                        logger.error(f"Failed to delete thread root {channel_id}/{thread_ts}: {e}")

        for record in records:
            try:
                outcome = self.store.remove_tag(record.id, tag)
            except SQLAlchemyError as e:
                result.failures += 1
                logger.error(f"Failed to remove '{tag}' from record {record.id}: {e}", exc_info=True)
                continue
            if outcome is RemovalOutcome.RECORD_DELETED:
                result.records_deleted += 1
            elif outcome is RemovalOutcome.TAG_REMOVED:
                result.records_updated += 1

        logger.info(
            f"Cascade delete ({scope}, {tag}): {result.threads_deleted} thread(s) deleted, "
            f"{result.records_updated} record(s) updated, {result.records_deleted} record(s) deleted, "
            f"{result.failures} failure(s)"
        )
        return result
