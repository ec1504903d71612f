"""
Tagging Models

Typed events delivered by the interaction transport, scoping policy for
aggregation threads, and result objects returned by the tagging services.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class TagPolicy(str, Enum):
    """How a submitted tag set combines with the stored one."""

    REPLACE = "replace"  # Submitted set overwrites the stored set (re-editing)
    UNION = "union"  # Submitted tags are added, nothing is removed


class ScopeKind(str, Enum):
    """Partitioning rule for aggregation threads."""

    GLOBAL = "global"  # One thread per tag for the whole workspace
    USER = "user"  # One thread per (tagger, tag) in the tagger's DM
    MESSAGE = "message"  # Pointer kept per message per tag, in the tagger's DM


class RemovalOutcome(str, Enum):
    """Result of removing one tag from one record."""

    NOT_FOUND = "not_found"
    TAG_REMOVED = "tag_removed"
    RECORD_DELETED = "record_deleted"
    FAILED = "failed"  # Store error, logged


@dataclass(frozen=True)
class ThreadScope:
    """Scope half of an aggregation thread identity ``(scope, tag)``."""

    kind: ScopeKind
    user_id: Optional[str] = None
    record_id: Optional[int] = None

    @classmethod
    def workspace(cls) -> "ThreadScope":
        return cls(ScopeKind.GLOBAL)

    @classmethod
    def for_user(cls, user_id: str) -> "ThreadScope":
        return cls(ScopeKind.USER, user_id=user_id)

    @classmethod
    def for_message(cls, user_id: str, record_id: int) -> "ThreadScope":
        return cls(ScopeKind.MESSAGE, user_id=user_id, record_id=record_id)

    def key(self) -> str:
        """
        Serialize the scope, e.g. for a button value.

        Examples:
            global
            user:U123
            message:U123:42
        """
        if self.kind is ScopeKind.GLOBAL:
            return "global"
        if self.kind is ScopeKind.USER:
            return f"user:{self.user_id}"
        return f"message:{self.user_id}:{self.record_id}"

    @classmethod
    def parse(cls, key: str) -> "ThreadScope":
        """
        Inverse of ``key()``.

        Raises:
            ValueError: If the key is not a valid scope
        """
        parts = key.split(":")
        if parts == ["global"]:
            return cls.workspace()
        if len(parts) == 2 and parts[0] == "user" and parts[1]:
            return cls.for_user(parts[1])
        if len(parts) == 3 and parts[0] == "message" and parts[1] and parts[2].isdigit():
            return cls.for_message(parts[1], int(parts[2]))
        raise ValueError(f"Invalid thread scope: {key}")

    def __str__(self) -> str:
        return self.key()


class ThreadRef(BaseModel):
    """Location of an aggregation thread root."""

    channel_id: str
    thread_ts: str


class MessageRef(BaseModel):
    """Location of a single posted message."""

    channel_id: str
    ts: str


class MessageSnapshot(BaseModel):
    """Fields copied from the original message at tagging time."""

    tagger_user_id: str
    message_text: Optional[str] = None
    message_permalink: Optional[str] = None
    message_author_id: Optional[str] = None
    message_author_name: Optional[str] = None


class TaggerContext(BaseModel):
    """Who tagged what, used for attribution in posted messages."""

    tagger_user_id: str
    channel_id: str
    message_ts: str
    message_author_id: Optional[str] = None
    message_author_name: Optional[str] = None


# Inbound events


class TagInitiation(BaseModel):
    """A user asked to tag a message (message shortcut)."""

    trigger_id: str
    channel_id: str
    message_ts: str
    user_id: str
    message_author_id: Optional[str] = None
    message_text: Optional[str] = None


class TagSubmission(BaseModel):
    """Tags chosen in the form, plus the context carried from initiation."""

    channel_id: str
    message_ts: str
    tagger_user_id: str
    message_author_id: Optional[str] = None
    message_author_name: Optional[str] = None
    message_text: Optional[str] = None
    permalink: Optional[str] = None
    selected_tags: List[str] = Field(default_factory=list)
    new_tags_text: Optional[str] = None

    def snapshot(self) -> MessageSnapshot:
        return MessageSnapshot(
            tagger_user_id=self.tagger_user_id,
            message_text=self.message_text,
            message_permalink=self.permalink,
            message_author_id=self.message_author_id,
            message_author_name=self.message_author_name,
        )

    def context(self) -> TaggerContext:
        return TaggerContext(
            tagger_user_id=self.tagger_user_id,
            channel_id=self.channel_id,
            message_ts=self.message_ts,
            message_author_id=self.message_author_id,
            message_author_name=self.message_author_name,
        )


class DeletionKind(str, Enum):
    ENTRY = "entry"  # One tag from one message
    THREAD = "thread"  # A whole tag thread


class TagDeletionAction(BaseModel):
    """A user pressed one of the remove controls."""

    kind: DeletionKind
    tag: str
    user_id: Optional[str] = None
    record_id: Optional[int] = None
    scope_key: Optional[str] = None
    entry: Optional[MessageRef] = None  # The aggregated entry holding the control


# Results


class TagForm(BaseModel):
    """Data handed to the form builder when a tag form is opened."""

    suggested_tags: List[str] = Field(default_factory=list)
    existing_tags: List[str] = Field(default_factory=list)


class SubmissionResult(BaseModel):
    """Outcome of the synchronous part of a tag submission."""

    record_id: int
    tags: List[str] = Field(..., description="Tags stored on the record after the mutation")
    applied_tags: List[str] = Field(..., description="Tags submitted in this interaction")
    scheduled_jobs: int = Field(0, description="Background side-effect jobs enqueued")


class PublishOutcome(BaseModel):
    """Outcome of posting one aggregation entry."""

    posted: bool
    thread: ThreadRef
    entry_ts: Optional[str] = None
    error: Optional[str] = None


class CascadeResult(BaseModel):
    """Outcome of deleting a whole tag thread."""

    scope: str
    tag: str
    records_updated: int = 0
    records_deleted: int = 0
    threads_deleted: int = 0
    failures: int = 0
