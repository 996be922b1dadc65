"""
Screening support for imported articles.
"""

from .duplicates import (
    DEFAULT_THRESHOLD,
    DuplicateDetector,
    DuplicateGroup,
    author_similarity,
    calculate_similarity,
    levenshtein_distance,
    string_similarity,
)

__all__ = [
    "DEFAULT_THRESHOLD",
    "DuplicateDetector",
    "DuplicateGroup",
    "author_similarity",
    "calculate_similarity",
    "levenshtein_distance",
    "string_similarity",
]
