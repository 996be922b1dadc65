"""
Search models - the shapes shared by query builders, clients and the aggregator.

Architecture Decision:
    Plain dataclasses, no validation logic. Input validation happens at the
    HTTP boundary (pydantic schemas) and in the query builder.

Example:
    >>> query = SearchQuery(keywords=["diabetes", "metformin"], date_from="2020-01-01")
    >>> result = SearchResult(id="12345678", database="pubmed", title="...", pmid="12345678")
    >>> result.external_id
    '12345678'
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Any, Literal

BooleanOperator = Literal["AND", "OR"]

SUPPORTED_DATABASES: tuple[str, ...] = ("pubmed", "crossref", "arxiv", "doaj")

_DOI_PREFIXES = ("https://doi.org/", "http://doi.org/", "https://dx.doi.org/", "http://dx.doi.org/", "doi:")
_ARXIV_VERSION = re.compile(r"v\d+$")


def normalize_doi(doi: str | None) -> str:
    """Lowercase a DOI and strip resolver prefixes."""
    if not doi:
        return ""
    doi = doi.strip().lower()
    for prefix in _DOI_PREFIXES:
        if doi.startswith(prefix):
            doi = doi[len(prefix) :]
    return doi.strip()


def normalize_title(title: str | None) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    if not title:
        return ""
    title = re.sub(r"[^\w\s]", "", title.lower())
    return re.sub(r"\s+", " ", title).strip()


def strip_arxiv_version(arxiv_id: str) -> str:
    """'2301.12345v2' -> '2301.12345'."""
    return _ARXIV_VERSION.sub("", arxiv_id)


@dataclass
class FieldSearch:
    """Targeted search on a single bibliographic field."""

    title: str | None = None
    abstract: str | None = None
    author: str | None = None
    journal: str | None = None

    def is_empty(self) -> bool:
        return not any([self.title, self.abstract, self.author, self.journal])


@dataclass
class SearchQuery:
    """
    Structured research query, translated per database by the query builder.

    Dates are ISO strings (YYYY-MM-DD); either end may be open.
    """

    keywords: list[str] = field(default_factory=list)
    mesh_terms: list[str] = field(default_factory=list)
    date_from: str | None = None
    date_to: str | None = None
    study_types: list[str] = field(default_factory=list)
    languages: list[str] = field(default_factory=list)
    boolean_operator: BooleanOperator = "AND"
    field_search: FieldSearch = field(default_factory=FieldSearch)

    @property
    def has_date_range(self) -> bool:
        return bool(self.date_from or self.date_to)

    def clean_keywords(self) -> list[str]:
        """Keywords with surrounding whitespace and blanks removed."""
        return [k.strip() for k in self.keywords if k and k.strip()]

    def display_string(self) -> str:
        """Human readable form, used for search history."""
        return f" {self.boolean_operator} ".join(self.clean_keywords())

    def to_dict(self) -> dict[str, Any]:
        return {
            "keywords": self.keywords,
            "mesh_terms": self.mesh_terms,
            "date_from": self.date_from,
            "date_to": self.date_to,
            "study_types": self.study_types,
            "languages": self.languages,
            "boolean_operator": self.boolean_operator,
            "field_search": {
                "title": self.field_search.title,
                "abstract": self.field_search.abstract,
                "author": self.field_search.author,
                "journal": self.field_search.journal,
            },
        }


@dataclass
class SearchResult:
    """
    Normalized article record produced by one database.

    Ephemeral: not persisted until imported into a project.
    """

    id: str
    database: str
    title: str
    authors: list[str] = field(default_factory=list)
    abstract: str | None = None
    journal: str | None = None
    publication_date: str = ""
    doi: str | None = None
    pmid: str | None = None
    arxiv_id: str | None = None
    url: str = ""
    study_type: str | None = None
    keywords: list[str] = field(default_factory=list)
    citation_count: int | None = None
    sources: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.sources:
            self.sources = [self.database]

    @property
    def external_id(self) -> str:
        """Preferred identifier: DOI, then PMID, then database-scoped id."""
        if self.doi:
            return normalize_doi(self.doi)
        if self.pmid:
            return self.pmid
        return f"{self.database}:{self.id}"

    @property
    def identifier_count(self) -> int:
        return sum(1 for x in (self.doi, self.pmid, self.arxiv_id) if x)

    @property
    def metadata_count(self) -> int:
        return sum(1 for x in (self.abstract, self.journal, self.publication_date, self.authors) if x)

    @property
    def year(self) -> int | None:
        match = re.match(r"(\d{4})", self.publication_date or "")
        return int(match.group(1)) if match else None

    def copy(self) -> SearchResult:
        """Independent copy; list fields are not shared with the original."""
        return replace(
            self,
            authors=list(self.authors),
            keywords=list(self.keywords),
            sources=list(self.sources),
        )

    def merge_from(self, other: SearchResult) -> None:
        """
        Fill missing fields from a duplicate record of another database.

        Identifiers and bibliographic fields are only filled, never replaced.
        """
        if not self.doi and other.doi:
            self.doi = other.doi
        if not self.pmid and other.pmid:
            self.pmid = other.pmid
        if not self.arxiv_id and other.arxiv_id:
            self.arxiv_id = other.arxiv_id
        if not self.abstract and other.abstract:
            self.abstract = other.abstract
        if not self.journal and other.journal:
            self.journal = other.journal
        if not self.publication_date and other.publication_date:
            self.publication_date = other.publication_date
        if not self.authors and other.authors:
            self.authors = other.authors.copy()
        if not self.study_type and other.study_type:
            self.study_type = other.study_type
        if not self.url and other.url:
            self.url = other.url

        for kw in other.keywords:
            if kw not in self.keywords:
                self.keywords.append(kw)

        if (other.citation_count or 0) > (self.citation_count or 0):
            self.citation_count = other.citation_count

        for source in other.sources:
            if source not in self.sources:
                self.sources.append(source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "external_id": self.external_id,
            "database": self.database,
            "title": self.title,
            "authors": self.authors,
            "abstract": self.abstract,
            "journal": self.journal,
            "publication_date": self.publication_date,
            "doi": self.doi,
            "pmid": self.pmid,
            "arxiv_id": self.arxiv_id,
            "url": self.url,
            "study_type": self.study_type,
            "keywords": self.keywords,
            "citation_count": self.citation_count,
            "sources": self.sources,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SearchResult:
        return cls(
            id=str(data["id"]),
            database=data["database"],
            title=data.get("title") or "No title",
            authors=list(data.get("authors") or []),
            abstract=data.get("abstract"),
            journal=data.get("journal"),
            publication_date=data.get("publication_date") or "",
            doi=data.get("doi"),
            pmid=data.get("pmid"),
            arxiv_id=data.get("arxiv_id"),
            url=data.get("url") or "",
            study_type=data.get("study_type"),
            keywords=list(data.get("keywords") or []),
            citation_count=data.get("citation_count"),
            sources=list(data.get("sources") or []),
        )


@dataclass
class DatabaseError:
    """Inline error for one database in a multi-database search."""

    database: str
    message: str
    category: str = "upstream"

    def to_dict(self) -> dict[str, Any]:
        return {"database": self.database, "category": self.category, "message": self.message}


@dataclass
class DatabaseSearchResponse:
    """Results of a single database search."""

    database: str
    results: list[SearchResult] = field(default_factory=list)
    total_count: int = 0
    query: str = ""
    search_time_ms: float = 0.0
    error: DatabaseError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "query": self.query,
            "total_count": self.total_count,
            "returned": len(self.results),
            "search_time_ms": round(self.search_time_ms, 1),
            "results": [r.to_dict() for r in self.results],
            "error": self.error.to_dict() if self.error else None,
        }


@dataclass
class AggregatedSearchResponse:
    """Combined response of a multi-database search."""

    responses: list[DatabaseSearchResponse] = field(default_factory=list)
    results: list[SearchResult] = field(default_factory=list)
    duplicates_removed: int = 0
    search_time_ms: float = 0.0

    @property
    def total_count(self) -> int:
        return sum(r.total_count for r in self.responses)

    @property
    def succeeded(self) -> list[str]:
        return [r.database for r in self.responses if r.ok]

    @property
    def failed(self) -> list[str]:
        return [r.database for r in self.responses if not r.ok]

    @property
    def errors(self) -> list[DatabaseError]:
        return [r.error for r in self.responses if r.error is not None]

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_count": self.total_count,
            "total_results": len(self.results),
            "duplicates_removed": self.duplicates_removed,
            "search_time_ms": round(self.search_time_ms, 1),
            "succeeded": self.succeeded,
            "failed": self.failed,
            "errors": [e.to_dict() for e in self.errors],
            "databases": {r.database: r.to_dict() for r in self.responses},
            "results": [r.to_dict() for r in self.results],
        }


@dataclass
class DatabaseCount:
    """Estimated hit count for one database. count == -1 means the lookup failed."""

    database: str
    count: int
    estimated_time_ms: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "database": self.database,
            "count": self.count,
            "estimated_time_ms": self.estimated_time_ms,
            "error": self.error,
        }
