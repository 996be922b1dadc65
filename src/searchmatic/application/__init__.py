"""
Application Layer - Use Cases and Business Logic Orchestration

Contains:
- search: Multi-database search (query translation, aggregation, merging)
- screening: Duplicate detection over imported articles
"""

from .screening import DuplicateDetector, DuplicateGroup
from .search import SearchAggregator, build_query, normalize

__all__ = [
    "DuplicateDetector",
    "DuplicateGroup",
    "SearchAggregator",
    "build_query",
    "normalize",
]
