"""
ORM models for tagged messages.

A TaggedMessage owns one MessageTag row per tag. The row carries the thread
pointers for that tag under each scoping policy, so the tag set and the
tag -> thread map can only change together.
"""

from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import DateTime, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.session import Base
from app.models.tagging import ScopeKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaggedMessage(Base):
    __tablename__ = "tagged_messages"

    id: Mapped[int] = mapped_column(primary_key=True)
    channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    message_ts: Mapped[str] = mapped_column(String(32), nullable=False)  # Slack timestamp
    tagger_user_id: Mapped[str] = mapped_column(String(64), nullable=False)

    # Snapshots for display
    message_text: Mapped[Optional[str]] = mapped_column(Text)
    message_permalink: Mapped[Optional[str]] = mapped_column(String(512))
    message_author_id: Mapped[Optional[str]] = mapped_column(String(64))
    message_author_name: Mapped[Optional[str]] = mapped_column(String(255))

    tagged_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow
    )

    tag_links: Mapped[List["MessageTag"]] = relationship(
        back_populates="message",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="MessageTag.id",
    )

    __table_args__ = (
        UniqueConstraint("channel_id", "message_ts", name="uq_tagged_messages_channel_ts"),
        Index("ix_tagged_messages_tagger_user_id", "tagger_user_id"),
        Index("ix_tagged_messages_tagged_at", "tagged_at"),
    )

    @property
    def tags(self) -> List[str]:
        return [link.tag for link in self.tag_links]

    @property
    def tag_threads(self) -> Dict[str, str]:
        """Message-scope pointers: tag -> thread ts."""
        return {
            link.tag: link.message_thread_ts
            for link in self.tag_links
            if link.message_thread_ts
        }

    def link_for(self, tag: str) -> Optional["MessageTag"]:
        for link in self.tag_links:
            if link.tag == tag:
                return link
        return None

    def thread_pointer(self, kind: ScopeKind, tag: str) -> Optional[str]:
        link = self.link_for(tag)
        if link is None:
            return None
        return link.pointer(kind)

    def __repr__(self) -> str:
        return f"<TaggedMessage {self.id} {self.channel_id}/{self.message_ts} tags={self.tags}>"


class MessageTag(Base):
    __tablename__ = "message_tags"

    id: Mapped[int] = mapped_column(primary_key=True)
    tagged_message_id: Mapped[int] = mapped_column(
        ForeignKey("tagged_messages.id", ondelete="CASCADE"), nullable=False
    )
    tag: Mapped[str] = mapped_column(String(255), nullable=False)

    # Thread pointers, one per scoping policy
    shared_thread_ts: Mapped[Optional[str]] = mapped_column(String(32))
    user_thread_ts: Mapped[Optional[str]] = mapped_column(String(32))
    message_thread_ts: Mapped[Optional[str]] = mapped_column(String(32))

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    message: Mapped[TaggedMessage] = relationship(back_populates="tag_links")

    __table_args__ = (
        UniqueConstraint("tagged_message_id", "tag", name="uq_message_tags_message_tag"),
        Index("ix_message_tags_tag", "tag"),
        Index("ix_message_tags_tag_user_thread", "tag", "user_thread_ts"),
    )

    def pointer(self, kind: ScopeKind) -> Optional[str]:
        return getattr(self, POINTER_COLUMNS[kind])


POINTER_COLUMNS = {
    ScopeKind.GLOBAL: "shared_thread_ts",
    ScopeKind.USER: "user_thread_ts",
    ScopeKind.MESSAGE: "message_thread_ts",
}
