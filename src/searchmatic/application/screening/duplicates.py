"""
Rule-based duplicate detection over a project's imported articles.

Each pair of articles gets a weighted similarity score:

    field         weight   comparison
    title           3      Levenshtein ratio
    authors         2      share of names with a close match (ratio > 0.8)
    doi             2      exact match after normalization
    journal         1      Levenshtein ratio
    year            1      same publication year

score = weighted sum / sum of weights of the fields present on both sides.
Articles scoring at or above the threshold against an earlier article are
grouped under it; the earlier one is the group's primary.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Protocol

from searchmatic.models.search import normalize_doi

DEFAULT_THRESHOLD = 0.85

TITLE_WEIGHT = 3
AUTHORS_WEIGHT = 2
DOI_WEIGHT = 2
JOURNAL_WEIGHT = 1
YEAR_WEIGHT = 1

AUTHOR_MATCH_RATIO = 0.8


class Comparable(Protocol):
    """Fields read from an article; the ORM Article satisfies this."""

    id: Any
    title: str
    authors: list[str] | None
    doi: str | None
    journal: str | None
    publication_date: str | None


@dataclass
class SimilarityScore:
    score: float
    matching_fields: list[str] = field(default_factory=list)


@dataclass
class DuplicateGroup:
    primary: Any
    duplicates: list[Any] = field(default_factory=list)
    similarity_score: float = 0.0
    matching_fields: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_id": self.primary.id,
            "duplicate_ids": [d.id for d in self.duplicates],
            "similarity_score": round(self.similarity_score, 4),
            "matching_fields": self.matching_fields,
        }


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with a two-row table."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def string_similarity(a: str, b: str) -> float:
    """1.0 for identical strings, 0.0 for nothing in common (case-insensitive)."""
    a, b = a.lower().strip(), b.lower().strip()
    longer = max(len(a), len(b))
    if longer == 0:
        return 1.0
    return (longer - levenshtein_distance(a, b)) / longer


def author_similarity(first: list[str], second: list[str]) -> float:
    if not first and not second:
        return 1.0
    if not first or not second:
        return 0.0
    matches = sum(1 for a in first if any(string_similarity(a, b) > AUTHOR_MATCH_RATIO for b in second))
    return matches / max(len(first), len(second))


def _year(date: str | None) -> int | None:
    match = re.match(r"(\d{4})", date or "")
    return int(match.group(1)) if match else None


def calculate_similarity(first: Comparable, second: Comparable) -> SimilarityScore:
    score = 0.0
    total_weight = 0
    matching: list[str] = []

    if first.title and second.title:
        total_weight += TITLE_WEIGHT
        sim = string_similarity(first.title, second.title)
        score += sim * TITLE_WEIGHT
        if sim > 0.8:
            matching.append("title")

    if first.authors and second.authors:
        total_weight += AUTHORS_WEIGHT
        sim = author_similarity(list(first.authors), list(second.authors))
        score += sim * AUTHORS_WEIGHT
        if sim > 0.7:
            matching.append("authors")

    if first.doi and second.doi:
        total_weight += DOI_WEIGHT
        if normalize_doi(first.doi) == normalize_doi(second.doi):
            score += DOI_WEIGHT
            matching.append("doi")

    if first.journal and second.journal:
        total_weight += JOURNAL_WEIGHT
        sim = string_similarity(first.journal, second.journal)
        score += sim * JOURNAL_WEIGHT
        if sim > 0.9:
            matching.append("journal")

    year1, year2 = _year(first.publication_date), _year(second.publication_date)
    if year1 is not None and year2 is not None:
        total_weight += YEAR_WEIGHT
        if year1 == year2:
            score += YEAR_WEIGHT
            matching.append("year")

    return SimilarityScore(score / total_weight if total_weight else 0.0, matching)


class DuplicateDetector:
    """
    Groups near-identical articles.

    Usage:
        groups = DuplicateDetector(threshold=0.9).detect(articles)
    """

    def __init__(self, threshold: float = DEFAULT_THRESHOLD):
        if not 0.0 <= threshold <= 1.0:
            raise ValueError(f"threshold must be between 0 and 1, got {threshold}")
        self.threshold = threshold

    def detect(self, articles: list[Comparable]) -> list[DuplicateGroup]:
        groups: list[DuplicateGroup] = []
        processed: set[Any] = set()

        for i, primary in enumerate(articles):
            if primary.id in processed:
                continue

            group = DuplicateGroup(primary=primary)
            for candidate in articles[i + 1 :]:
                if candidate.id in processed:
                    continue
                similarity = calculate_similarity(primary, candidate)
                if similarity.score >= self.threshold:
                    group.duplicates.append(candidate)
                    processed.add(candidate.id)
                    if similarity.score > group.similarity_score:
                        group.similarity_score = similarity.score
                    if not group.matching_fields:
                        group.matching_fields = similarity.matching_fields

            if group.duplicates:
                processed.add(primary.id)
                groups.append(group)

        return groups
