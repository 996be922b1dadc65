"""
ResultMerger - cross-database deduplication of search results.

Records from different databases describing the same work are grouped
(DOI > PMID > normalized title) with Union-Find, and each group collapses
into the record with the most identifiers and metadata.

Architecture Decision:
    Pure processing over SearchResult objects, no API calls.
    Output order follows the first occurrence of each group, so results from
    the first database searched stay on top.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from searchmatic.models.search import SearchResult, normalize_doi, normalize_title

logger = logging.getLogger(__name__)

# Titles this short collide too often to be used as a match key
TITLE_MIN_LENGTH = 21


@dataclass
class MergeStats:
    """Counts of what the merge did, per match key."""

    input_count: int = 0
    unique_count: int = 0
    dedup_by_doi: int = 0
    dedup_by_pmid: int = 0
    dedup_by_title: int = 0

    @property
    def duplicates_removed(self) -> int:
        return self.input_count - self.unique_count

    def to_dict(self) -> dict[str, Any]:
        return {
            "input_count": self.input_count,
            "unique_count": self.unique_count,
            "duplicates_removed": self.duplicates_removed,
            "by_doi": self.dedup_by_doi,
            "by_pmid": self.dedup_by_pmid,
            "by_title": self.dedup_by_title,
        }


class UnionFind:
    """Disjoint set union with path compression and union by rank."""

    def __init__(self, n: int):
        self.parent = list(range(n))
        self.rank = [0] * n

    def find(self, x: int) -> int:
        if self.parent[x] != x:
            self.parent[x] = self.find(self.parent[x])
        return self.parent[x]

    def union(self, x: int, y: int) -> bool:
        """Returns True if x and y were in different sets."""
        px, py = self.find(x), self.find(y)
        if px == py:
            return False
        if self.rank[px] < self.rank[py]:
            px, py = py, px
        self.parent[py] = px
        if self.rank[px] == self.rank[py]:
            self.rank[px] += 1
        return True

    def get_groups(self) -> dict[int, list[int]]:
        """{root: [members]} in order of each group's first member."""
        groups: dict[int, list[int]] = {}
        for i in range(len(self.parent)):
            groups.setdefault(self.find(i), []).append(i)
        return groups


class ResultMerger:
    """
    Merges duplicate SearchResults returned by several databases.

    Usage:
        merger = ResultMerger()
        unique, stats = merger.merge(pubmed_results + crossref_results)
    """

    def __init__(self, title_min_length: int = TITLE_MIN_LENGTH):
        self._title_min_length = title_min_length

    def merge(self, results: list[SearchResult]) -> tuple[list[SearchResult], MergeStats]:
        """
        Group duplicates and collapse each group into one record.

        Input records are never modified: a group's merged record is a copy
        of its primary, so per-database result lists keep what each database
        returned. Title matches are skipped between groups whose DOIs or
        PMIDs disagree.
        """
        stats = MergeStats(input_count=len(results))
        n = len(results)
        if n == 0:
            return [], stats

        uf = UnionFind(n)
        # identifiers of each group, keyed by the group's current root
        group_ids = [self._identifiers(r) for r in results]
        doi_to_idx: dict[str, int] = {}
        pmid_to_idx: dict[str, int] = {}
        title_to_idx: dict[str, int] = {}

        for i, result in enumerate(results):
            if result.doi:
                doi = normalize_doi(result.doi)
                if doi in doi_to_idx:
                    if self._join(uf, group_ids, i, doi_to_idx[doi]):
                        stats.dedup_by_doi += 1
                else:
                    doi_to_idx[doi] = i

            if result.pmid:
                if result.pmid in pmid_to_idx:
                    if self._join(uf, group_ids, i, pmid_to_idx[result.pmid]):
                        stats.dedup_by_pmid += 1
                else:
                    pmid_to_idx[result.pmid] = i

            title = normalize_title(result.title)
            if len(title) >= self._title_min_length:
                if title in title_to_idx:
                    other = title_to_idx[title]
                    if self._conflicting(group_ids[uf.find(i)], group_ids[uf.find(other)]):
                        logger.debug(f"Same title, different identifiers: {result.id} vs {results[other].id}")
                    elif self._join(uf, group_ids, i, other):
                        stats.dedup_by_title += 1
                else:
                    title_to_idx[title] = i

        unique: list[SearchResult] = []
        for members in uf.get_groups().values():
            if len(members) == 1:
                unique.append(results[members[0]])
                continue

            duplicates = [results[i] for i in members]
            primary = self._select_primary(duplicates)
            merged = primary.copy()
            for dup in duplicates:
                if dup is not primary:
                    merged.merge_from(dup)
            unique.append(merged)

        stats.unique_count = len(unique)
        return unique, stats

    @staticmethod
    def _identifiers(result: SearchResult) -> dict[str, str]:
        ids: dict[str, str] = {}
        if result.doi:
            ids["doi"] = normalize_doi(result.doi)
        if result.pmid:
            ids["pmid"] = result.pmid
        return ids

    @staticmethod
    def _conflicting(a: dict[str, str], b: dict[str, str]) -> bool:
        return any(key in b and b[key] != value for key, value in a.items())

    @staticmethod
    def _join(uf: UnionFind, group_ids: list[dict[str, str]], x: int, y: int) -> bool:
        rx, ry = uf.find(x), uf.find(y)
        if not uf.union(x, y):
            return False
        root = uf.find(x)
        absorbed = ry if root == rx else rx
        for key, value in group_ids[absorbed].items():
            group_ids[root].setdefault(key, value)
        return True

    @staticmethod
    def _select_primary(results: list[SearchResult]) -> SearchResult:
        """More identifiers first, then more complete metadata; ties keep the earliest."""
        return max(results, key=lambda r: (r.identifier_count, r.metadata_count))
