"""Full-text indexing and search."""

from .index import FullTextIndex
from .search import QueryService, SearchResult, lookup, merge_hits

__all__ = [
    "FullTextIndex",
    "QueryService",
    "SearchResult",
    "lookup",
    "merge_hits",
]
