# Shared data models
from app.models.tagging import (
    TagPolicy,
    ScopeKind,
    ThreadScope,
    ThreadRef,
    MessageRef,
    MessageSnapshot,
    TaggerContext,
    TagInitiation,
    TagSubmission,
    TagDeletionAction,
    DeletionKind,
    RemovalOutcome,
    SubmissionResult,
    PublishOutcome,
    CascadeResult,
)

__all__ = [
    "TagPolicy",
    "ScopeKind",
    "ThreadScope",
    "ThreadRef",
    "MessageRef",
    "MessageSnapshot",
    "TaggerContext",
    "TagInitiation",
    "TagSubmission",
    "TagDeletionAction",
    "DeletionKind",
    "RemovalOutcome",
    "SubmissionResult",
    "PublishOutcome",
    "CascadeResult",
]
