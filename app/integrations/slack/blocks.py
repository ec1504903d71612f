"""
Slack Block Kit builders for the tag form and aggregation messages.
"""

import json
from typing import Any, Dict, List

from app.utils.helpers import truncate_text

# Identifiers shared with interactions.py
TAG_SHORTCUT_CALLBACK_ID = "add_message_tag"
TAG_MODAL_CALLBACK_ID = "tag_modal"
EXISTING_TAG_BLOCK = "existing_tag_block"
EXISTING_TAG_ACTION = "existing_tag_select"
NEW_TAG_BLOCK = "new_tag_block"
NEW_TAG_ACTION = "new_tag_input"
REMOVE_ENTRY_ACTION = "remove_tag_entry"
REMOVE_THREAD_ACTION = "remove_tag_thread"

# Slack caps static_select options at 100
MAX_SELECT_OPTIONS = 100
# Option text is capped at 75 characters (value at 150); longer tags cannot be offered
MAX_TAG_LENGTH = 75
# Views reject private_metadata longer than 3000 characters
PRIVATE_METADATA_LIMIT = 3000


def _plain(text: str) -> Dict[str, Any]:
    return {"type": "plain_text", "text": text}


def build_tag_modal(
    suggested_tags: List[str],
    existing_tags: List[str],
    private_metadata: Dict[str, Any],
    multi_select: bool = False,
    prefill_existing: bool = False,
) -> Dict[str, Any]:
    """
    Build the "Tag message" modal.

    Args:
        suggested_tags: Popular tags offered for selection
        existing_tags: Tags already on the message
        private_metadata: Context echoed back on submission
        multi_select: Allow picking several suggested tags
        prefill_existing: Put existing tags in the text input (replace policy)
    """
    blocks: List[Dict[str, Any]] = []

    if existing_tags and not prefill_existing:
        blocks.append({
            "type": "context",
            "elements": [{
                "type": "mrkdwn",
                "text": "Already tagged: " + format_tag_list(existing_tags),
            }],
        })

    options = [
        {"text": _plain(tag), "value": tag}
        for tag in suggested_tags
        if len(tag) <= MAX_TAG_LENGTH
    ][:MAX_SELECT_OPTIONS]
    if options:
        element: Dict[str, Any] = {
            "type": "multi_static_select" if multi_select else "static_select",
            "action_id": EXISTING_TAG_ACTION,
            "placeholder": _plain("Choose an existing tag"),
            "options": options,
        }
        blocks.append({
            "type": "input",
            "block_id": EXISTING_TAG_BLOCK,
            "optional": True,
            "element": element,
            "label": _plain("Choose an existing tag"),
        })

    text_input: Dict[str, Any] = {
        "type": "plain_text_input",
        "action_id": NEW_TAG_ACTION,
        "placeholder": _plain("e.g. bug, ui"),
    }
    if prefill_existing and existing_tags:
        text_input["initial_value"] = ", ".join(existing_tags)

    blocks.append({
        "type": "input",
        "block_id": NEW_TAG_BLOCK,
        "optional": True,
        "element": text_input,
        "label": _plain("Or enter new tags (comma-separated)"),
    })

    return {
        "type": "modal",
        "callback_id": TAG_MODAL_CALLBACK_ID,
        "title": _plain("Tag message"),
        "submit": _plain("Save"),
        "close": _plain("Cancel"),
        "blocks": blocks,
        "private_metadata": encode_private_metadata(private_metadata),
    }


def encode_private_metadata(metadata: Dict[str, Any]) -> str:
    """
    Serialize modal context, shortening ``message_text`` until the encoded
    string fits PRIVATE_METADATA_LIMIT. Escaped quotes and newlines count too.
    """
    encoded = json.dumps(metadata, ensure_ascii=False)
    text = metadata.get("message_text") or ""
    while len(encoded) > PRIVATE_METADATA_LIMIT and text:
        overflow = len(encoded) - PRIVATE_METADATA_LIMIT
        text = truncate_text(text, len(text) - overflow)
        encoded = json.dumps({**metadata, "message_text": text}, ensure_ascii=False)
    return encoded


def thread_root_text(tag: str) -> str:
    return f"🏷️ *{tag}*"


def build_thread_root_blocks(tag: str, scope_key: str, include_delete: bool = True) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": thread_root_text(tag)}},
    ]
    if include_delete:
        blocks.append({
            "type": "actions",
            "elements": [{
                "type": "button",
                "action_id": REMOVE_THREAD_ACTION,
                "text": _plain("Delete tag thread"),
                "style": "danger",
                "value": json.dumps({"scope": scope_key, "tag": tag}),
                "confirm": {
                    "title": _plain("Delete this tag thread?"),
                    "text": _plain(f"'{tag}' will be removed from every message in this thread."),
                    "confirm": _plain("Delete"),
                    "deny": _plain("Cancel"),
                },
            }],
        })
    return blocks


def build_entry_blocks(
    entry_text: str, record_id: int, tag: str, include_delete: bool = True
) -> List[Dict[str, Any]]:
    blocks: List[Dict[str, Any]] = [
        {"type": "section", "text": {"type": "mrkdwn", "text": entry_text}},
    ]
    if include_delete:
        blocks.append({
            "type": "actions",
            "elements": [{
                "type": "button",
                "action_id": REMOVE_ENTRY_ACTION,
                "text": _plain("Remove"),
                "value": json.dumps({"record_id": record_id, "tag": tag}),
            }],
        })
    return blocks


def validation_errors(block_id: str, message: str) -> Dict[str, Any]:
    """view_submission response that shows an error under one input."""
    return {"response_action": "errors", "errors": {block_id: message}}


def format_tag_list(tags: List[str]) -> str:
    return ", ".join(f"`{tag}`" for tag in tags)


def tagged_reply_text(tagger_user_id: str, tags: List[str]) -> str:
    label = "tag" if len(tags) == 1 else "tags"
    return f"<@{tagger_user_id}> added the {label} {format_tag_list(tags)} 🏷️"
