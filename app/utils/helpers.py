"""
Shared Utility Functions

Common helper functions used across multiple modules.
"""

import logging
from typing import Any, Iterable, List, Optional

logger = logging.getLogger(__name__)

TAG_SEPARATOR = ","


def flatten_list(items: Any) -> List[str]:
    """
    Flatten a potentially nested list to a single-level list of strings.

    Handles various formats:
    - Nested lists: [["a", "b"]] → ["a", "b"]
    - Flat lists: ["a", "b"] → ["a", "b"]
    - Single string: "a" → ["a"]
    - None/empty: None → []

    Args:
        items: Any value that could be a list, nested list, or string

    Returns:
        Flat list of strings
    """
    if not items:
        return []

    if isinstance(items, str):
        return [items]

    if not isinstance(items, (list, tuple, set)):
        return [str(items)]

    result = []
    for item in items:
        if isinstance(item, (list, tuple, set)):
            for subitem in item:
                result.append(subitem if isinstance(subitem, str) else str(subitem))
        elif isinstance(item, str):
            result.append(item)
        elif item is not None:
            result.append(str(item))

    return result


def split_tag_input(text: Optional[str]) -> List[str]:
    """Split comma-separated free text into raw tag candidates."""
    if not text:
        return []
    return text.split(TAG_SEPARATOR)


def normalize_tags(tags: Iterable[str]) -> List[str]:
    """
    Trim whitespace, drop empty entries and de-duplicate.

    First occurrence wins, so the caller's order is preserved.
    """
    seen = set()
    result = []
    for tag in tags:
        cleaned = tag.strip()
        if cleaned and cleaned not in seen:
            seen.add(cleaned)
            result.append(cleaned)
    return result


def collect_tags(selected: Any, new_tags_text: Optional[str]) -> List[str]:
    """
    Merge tags picked from suggestions with comma-separated typed tags.

    Args:
        selected: One selected tag, a list of them, or nothing
        new_tags_text: Free text such as "bug, ui"

    Returns:
        Normalized tag list, selections first
    """
    return normalize_tags(flatten_list(selected) + split_tag_input(new_tags_text))


def truncate_text(text: Optional[str], limit: int, suffix: str = "…") -> str:
    """Cut text to at most ``limit`` characters, marking the cut with ``suffix``."""
    if not text:
        return ""
    if limit <= 0:
        return ""
    if len(text) <= limit:
        return text
    return text[: max(limit - len(suffix), 0)] + suffix
