from .task_parser import (
    extract_inline_metadata,
    parse_document,
    parse_line,
    parse_metadata_block,
    parse_recurrence,
    short_ref_for,
)
from .hierarchy import build_hierarchy, descendants
from .search_query import parse_search_query

__all__ = [
    "parse_line",
    "parse_document",
    "parse_recurrence",
    "parse_metadata_block",
    "extract_inline_metadata",
    "short_ref_for",
    "build_hierarchy",
    "descendants",
    "parse_search_query",
]
