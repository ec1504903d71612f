"""
Tag Store

Persistent record of message -> tags assignments and the memoized aggregation
thread pointers for each tag.

Responsibilities:
- Find-or-create a TaggedMessage per (channel_id, message_ts)
- Replace or union tag sets
- Popular-tag suggestions
- Thread pointer lookup and back-fill per scope
- Tag removal, deleting records left without tags
"""

import logging
from typing import Iterable, List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from app.db.models import MessageTag, TaggedMessage, POINTER_COLUMNS, utcnow
from app.models.tagging import (
    MessageSnapshot,
    RemovalOutcome,
    ScopeKind,
    TagPolicy,
    ThreadScope,
)
from app.utils.helpers import normalize_tags

logger = logging.getLogger(__name__)


class TagStore:
    """Tag assignments and thread pointers backed by SQLAlchemy."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    def upsert_tag_assignment(
        self,
        channel_id: str,
        message_ts: str,
        tags: Iterable[str],
        snapshot: MessageSnapshot,
        policy: TagPolicy = TagPolicy.UNION,
    ) -> TaggedMessage:
        """
        Apply a tag set to a message, creating its record on first use.

        Under REPLACE the stored set becomes exactly ``tags`` (removed tags
        lose their pointers); under UNION ``tags`` are added to it. Snapshot
        fields and ``tagged_at`` are refreshed on every call.

        Raises:
            ValueError: If ``tags`` is empty after normalization
        """
        tags = normalize_tags(tags)
        if not tags:
            raise ValueError("At least one non-empty tag is required")

        with self._session_factory() as session:
            record = self._find_or_create(session, channel_id, message_ts, snapshot.tagger_user_id)

            record.tagger_user_id = snapshot.tagger_user_id
            record.message_text = snapshot.message_text
            record.message_permalink = snapshot.message_permalink
            record.message_author_id = snapshot.message_author_id
            record.message_author_name = snapshot.message_author_name
            record.tagged_at = utcnow()

            if policy is TagPolicy.REPLACE:
                for link in list(record.tag_links):
                    if link.tag not in tags:
                        record.tag_links.remove(link)
                # Flush deletes first so a re-added tag cannot collide on the unique key
                session.flush()

            existing = set(record.tags)
            for tag in tags:
                if tag not in existing:
                    record.tag_links.append(MessageTag(tag=tag))

            session.commit()
            logger.info(
                f"Tagged {channel_id}/{message_ts} (record {record.id}, policy={policy.value}): {record.tags}"
            )
            return record

    def _find_or_create(
        self, session: Session, channel_id: str, message_ts: str, tagger_user_id: str
    ) -> TaggedMessage:
        record = self._select_record(session, channel_id, message_ts)
        if record is not None:
            return record

        record = TaggedMessage(
            channel_id=channel_id,
            message_ts=message_ts,
            tagger_user_id=tagger_user_id,
        )
        session.add(record)
        try:
            session.flush()
        except IntegrityError:
            # Another request created the row between our select and insert
            session.rollback()
            logger.info(f"Record for {channel_id}/{message_ts} created concurrently, reusing it")
            record = self._select_record(session, channel_id, message_ts)
            if record is None:
                raise
        return record

    @staticmethod
    def _select_record(session: Session, channel_id: str, message_ts: str) -> Optional[TaggedMessage]:
        stmt = select(TaggedMessage).where(
            TaggedMessage.channel_id == channel_id,
            TaggedMessage.message_ts == message_ts,
        )
        return session.scalars(stmt).one_or_none()

    def find_record(self, channel_id: str, message_ts: str) -> Optional[TaggedMessage]:
        with self._session_factory() as session:
            return self._select_record(session, channel_id, message_ts)

    def get_record(self, record_id: int) -> Optional[TaggedMessage]:
        with self._session_factory() as session:
            return session.get(TaggedMessage, record_id)

    def popular_tags(self, limit: int = 20) -> List[str]:
        """Most frequently used tags, ties broken by first use."""
        if limit <= 0:
            return []
        uses = func.count(MessageTag.id)
        stmt = (
            select(MessageTag.tag)
            .group_by(MessageTag.tag)
            .order_by(uses.desc(), func.min(MessageTag.id))
            .limit(limit)
        )
        with self._session_factory() as session:
            return list(session.scalars(stmt))

    # ------------------------------------------------------------------
    # Thread pointers
    # ------------------------------------------------------------------

    def find_thread_for_tag(self, scope: ThreadScope, tag: str) -> Optional[str]:
        """
        Return the memoized thread ts for (scope, tag), or None.

        Among several candidates the one on the lowest record id wins.
        """
        column = getattr(MessageTag, POINTER_COLUMNS[scope.kind])

        with self._session_factory() as session:
            if scope.kind is ScopeKind.MESSAGE:
                own = session.scalar(
                    select(column).where(
                        MessageTag.tagged_message_id == scope.record_id,
                        MessageTag.tag == tag,
                        column.is_not(None),
                    )
                )
                if own:
                    return own

            stmt = select(column).where(MessageTag.tag == tag, column.is_not(None))
            if scope.kind is not ScopeKind.GLOBAL:
                stmt = stmt.join(MessageTag.message).where(
                    TaggedMessage.tagger_user_id == scope.user_id
                )
            stmt = stmt.order_by(MessageTag.tagged_message_id, MessageTag.id).limit(1)
            return session.scalars(stmt).first()

    def record_thread_pointer(self, scope: ThreadScope, tag: str, thread_ts: str) -> int:
        """
        Memoize a thread pointer.

        Global and user scopes back-fill every matching row that has no
        pointer yet; existing pointers are left alone. Message scope writes
        the single (record, tag) row.

        Returns:
            Number of rows updated
        """
        column_name = POINTER_COLUMNS[scope.kind]
        column = getattr(MessageTag, column_name)

        stmt = update(MessageTag).where(MessageTag.tag == tag)
        if scope.kind is ScopeKind.MESSAGE:
            stmt = stmt.where(MessageTag.tagged_message_id == scope.record_id)
        else:
            stmt = stmt.where(column.is_(None))
            if scope.kind is ScopeKind.USER:
                user_records = select(TaggedMessage.id).where(
                    TaggedMessage.tagger_user_id == scope.user_id
                )
                stmt = stmt.where(MessageTag.tagged_message_id.in_(user_records))
        stmt = stmt.values({column_name: thread_ts}).execution_options(synchronize_session=False)

        with self._session_factory() as session:
            result = session.execute(stmt)
            session.commit()
            updated = result.rowcount or 0

        logger.debug(f"Recorded thread {thread_ts} for ({scope}, {tag}) on {updated} row(s)")
        return updated

    # ------------------------------------------------------------------
    # Removal and enumeration
    # ------------------------------------------------------------------

    def remove_tag(self, record_id: int, tag: str) -> RemovalOutcome:
        """Remove a tag and its pointers; delete the record if no tag remains."""
        with self._session_factory() as session:
            record = session.get(TaggedMessage, record_id)
            if record is None:
                return RemovalOutcome.NOT_FOUND

            link = record.link_for(tag)
            if link is None:
                return RemovalOutcome.NOT_FOUND

            record.tag_links.remove(link)
            if not record.tag_links:
                session.delete(record)
                outcome = RemovalOutcome.RECORD_DELETED
            else:
                record.tagged_at = utcnow()
                outcome = RemovalOutcome.TAG_REMOVED
            session.commit()

        logger.info(f"Removed tag '{tag}' from record {record_id}: {outcome.value}")
        return outcome

    def records_with_tag(self, scope: ThreadScope, tag: str) -> List[TaggedMessage]:
        """
        Records carrying ``tag`` under ``scope``, lowest id first.

        For message scope: the scope's own record plus the same user's records
        that share its message-scope pointer for the tag.
        """
        stmt = (
            select(TaggedMessage)
            .join(TaggedMessage.tag_links)
            .where(MessageTag.tag == tag)
            .order_by(TaggedMessage.id)
        )
        if scope.kind is not ScopeKind.GLOBAL:
            stmt = stmt.where(TaggedMessage.tagger_user_id == scope.user_id)

        if scope.kind is ScopeKind.MESSAGE:
            pointer = self.find_thread_for_tag(scope, tag)
            if pointer is None:
                stmt = stmt.where(TaggedMessage.id == scope.record_id)
            else:
                stmt = stmt.where(
                    (TaggedMessage.id == scope.record_id)
                    | (MessageTag.message_thread_ts == pointer)
                )

        with self._session_factory() as session:
            return list(session.scalars(stmt).unique())
