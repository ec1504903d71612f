"""
Slack Interaction Parser

Turns raw interaction payloads (message shortcuts, view submissions, block
actions) into the typed events the tagging services consume.
"""

import json
import logging
from typing import Any, Dict, Optional, Union

from pydantic import ValidationError

from app.integrations.slack.blocks import (
    EXISTING_TAG_ACTION,
    EXISTING_TAG_BLOCK,
    NEW_TAG_ACTION,
    NEW_TAG_BLOCK,
    REMOVE_ENTRY_ACTION,
    REMOVE_THREAD_ACTION,
    TAG_MODAL_CALLBACK_ID,
    TAG_SHORTCUT_CALLBACK_ID,
)
from app.utils.helpers import truncate_text
from app.models.tagging import (
    DeletionKind,
    MessageRef,
    TagDeletionAction,
    TagInitiation,
    TagSubmission,
)

logger = logging.getLogger(__name__)

InteractionEvent = Union[TagInitiation, TagSubmission, TagDeletionAction]

# private_metadata is capped at 3000 characters by Slack
METADATA_TEXT_LIMIT = 1500


class InteractionParseError(ValueError):
    """Payload is malformed or lacks a required field."""


def parse_interaction(payload: Dict[str, Any]) -> Optional[InteractionEvent]:
    """
    Parse a Slack interaction payload.

    Returns:
        The typed event, or None for interactions this app does not handle

    Raises:
        InteractionParseError: If a handled interaction is malformed
    """
    kind = payload.get("type")
    try:
        if kind in ("message_action", "shortcut"):
            if payload.get("callback_id") != TAG_SHORTCUT_CALLBACK_ID:
                return None
            return _parse_initiation(payload)

        if kind == "view_submission":
            view = payload.get("view") or {}
            if view.get("callback_id") != TAG_MODAL_CALLBACK_ID:
                return None
            return _parse_submission(view)

        if kind == "block_actions":
            return _parse_deletion(payload)
    except (KeyError, TypeError, ValueError, ValidationError) as e:
        raise InteractionParseError(f"Malformed {kind} payload: {e}") from e

    logger.debug(f"Ignoring interaction type {kind}")
    return None


def _parse_initiation(payload: Dict[str, Any]) -> TagInitiation:
    message = payload["message"]
    return TagInitiation(
        trigger_id=payload["trigger_id"],
        channel_id=payload["channel"]["id"],
        message_ts=message["ts"],
        user_id=payload["user"]["id"],
        message_author_id=message.get("user"),
        message_text=message.get("text"),
    )


def _parse_submission(view: Dict[str, Any]) -> TagSubmission:
    metadata = json.loads(view.get("private_metadata") or "{}")
    values = view.get("state", {}).get("values", {})

    new_tags_text = (
        values.get(NEW_TAG_BLOCK, {}).get(NEW_TAG_ACTION, {}).get("value")
    )

    selected = values.get(EXISTING_TAG_BLOCK, {}).get(EXISTING_TAG_ACTION, {})
    selected_tags = []
    if selected.get("selected_option"):
        selected_tags.append(selected["selected_option"]["value"])
    for option in selected.get("selected_options") or []:
        selected_tags.append(option["value"])

    return TagSubmission(
        channel_id=metadata["channel_id"],
        message_ts=metadata["message_ts"],
        tagger_user_id=metadata["user_id"],
        message_author_id=metadata.get("message_user_id"),
        message_author_name=metadata.get("message_user_name"),
        message_text=metadata.get("message_text"),
        permalink=metadata.get("permalink"),
        selected_tags=selected_tags,
        new_tags_text=new_tags_text,
    )


def _parse_deletion(payload: Dict[str, Any]) -> Optional[TagDeletionAction]:
    actions = payload.get("actions") or []
    action = next(
        (a for a in actions if a.get("action_id") in (REMOVE_ENTRY_ACTION, REMOVE_THREAD_ACTION)),
        None,
    )
    if action is None:
        return None

    value = json.loads(action["value"])
    user_id = (payload.get("user") or {}).get("id")

    container = payload.get("container") or {}
    entry = None
    if container.get("channel_id") and container.get("message_ts"):
        entry = MessageRef(channel_id=container["channel_id"], ts=container["message_ts"])

    if action["action_id"] == REMOVE_ENTRY_ACTION:
        return TagDeletionAction(
            kind=DeletionKind.ENTRY,
            tag=value["tag"],
            record_id=int(value["record_id"]),
            user_id=user_id,
            entry=entry,
        )
    return TagDeletionAction(
        kind=DeletionKind.THREAD,
        tag=value["tag"],
        scope_key=value["scope"],
        user_id=user_id,
    )


def submission_metadata(
    initiation: TagInitiation,
    message_author_name: Optional[str],
    permalink: Optional[str],
) -> Dict[str, Any]:
    """Context stored in the modal's private_metadata, read back by _parse_submission."""
    return {
        "channel_id": initiation.channel_id,
        "message_ts": initiation.message_ts,
        "user_id": initiation.user_id,
        "message_user_id": initiation.message_author_id,
        "message_user_name": message_author_name,
        "message_text": truncate_text(initiation.message_text, METADATA_TEXT_LIMIT),
        "permalink": permalink,
    }
