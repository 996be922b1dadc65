"""
Searchmatic data models for multi-database search.
"""

from .search import (
    SUPPORTED_DATABASES,
    AggregatedSearchResponse,
    DatabaseCount,
    DatabaseError,
    DatabaseSearchResponse,
    FieldSearch,
    SearchQuery,
    SearchResult,
    normalize_doi,
    normalize_title,
)

__all__ = [
    "SUPPORTED_DATABASES",
    "AggregatedSearchResponse",
    "DatabaseCount",
    "DatabaseError",
    "DatabaseSearchResponse",
    "FieldSearch",
    "SearchQuery",
    "SearchResult",
    "normalize_doi",
    "normalize_title",
]
