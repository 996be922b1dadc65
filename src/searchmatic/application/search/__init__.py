"""
Search use cases: query translation, normalization, merging and aggregation.
"""

from .aggregator import SearchAggregator, estimate_search_time
from .normalizer import normalize, normalize_many
from .query_builder import NativeQuery, build_query
from .result_merger import MergeStats, ResultMerger

__all__ = [
    "MergeStats",
    "NativeQuery",
    "ResultMerger",
    "SearchAggregator",
    "build_query",
    "estimate_search_time",
    "normalize",
    "normalize_many",
]
