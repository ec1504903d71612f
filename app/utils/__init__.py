"""
Utility package exports
"""

from app.utils.helpers import flatten_list, split_tag_input, normalize_tags, collect_tags, truncate_text

__all__ = ["flatten_list", "split_tag_input", "normalize_tags", "collect_tags", "truncate_text"]
