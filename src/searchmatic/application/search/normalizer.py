"""
Result normalizer - map raw database records onto SearchResult.

One mapper per database; `normalize(database, raw)` dispatches.
Each mapper accepts exactly what the matching client returns.
"""

from __future__ import annotations

import html
import logging
import re
from collections.abc import Callable
from typing import Any

from searchmatic.infrastructure.sources.crossref import CrossRefClient
from searchmatic.models.search import SUPPORTED_DATABASES, SearchResult, strip_arxiv_version
from searchmatic.shared.exceptions import UnsupportedDatabaseError

logger = logging.getLogger(__name__)

NO_TITLE = "No title"

_TAG_RE = re.compile(r"<[^>]+>")

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}  # fmt: skip

# Most specific publication type wins
PUBMED_STUDY_TYPES = (
    ("Meta-Analysis", "meta_analysis"),
    ("Systematic Review", "systematic_review"),
    ("Randomized Controlled Trial", "randomized_controlled_trial"),
    ("Clinical Trial", "clinical_trial"),
    ("Observational Study", "observational_study"),
    ("Case Reports", "case_report"),
    ("Review", "review"),
    ("Editorial", "editorial"),
    ("Letter", "letter"),
    ("Comment", "comment"),
    ("Preprint", "preprint"),
    ("Journal Article", "journal_article"),
)

CROSSREF_STUDY_TYPES = {
    "journal-article": "journal_article",
    "posted-content": "preprint",
    "book-chapter": "book_chapter",
    "proceedings-article": "conference_paper",
    "dissertation": "dissertation",
    "dataset": "dataset",
    "report": "report",
}


def strip_markup(text: str | None) -> str | None:
    """Remove JATS/HTML tags and entities, collapse whitespace."""
    if not text:
        return None
    text = html.unescape(_TAG_RE.sub(" ", text))
    text = " ".join(text.split())
    return text or None


def _format_date(year: int | str | None, month: int | str | None = None, day: int | str | None = None) -> str:
    """Partial ISO date: 'YYYY', 'YYYY-MM' or 'YYYY-MM-DD'."""
    if not year:
        return ""
    try:
        result = f"{int(year):04d}"
    except (TypeError, ValueError):
        return ""

    if month:
        month_str = str(month).strip()
        month_num = _MONTHS.get(month_str[:3].lower()) if not month_str.isdigit() else int(month_str)
        if month_num:
            result += f"-{month_num:02d}"
            if day and str(day).isdigit():
                result += f"-{int(day):02d}"
    return result


# ============================================================================
# Mappers
# ============================================================================


def normalize_pubmed(raw: dict[str, Any]) -> SearchResult:
    """Parsed Entrez record (see PubMedClient.fetch_details) -> SearchResult."""
    pmid = raw.get("pmid") or ""

    study_type = None
    pub_types = set(raw.get("publication_types") or [])
    for pub_type, mapped in PUBMED_STUDY_TYPES:
        if pub_type in pub_types:
            study_type = mapped
            break

    keywords = list(raw.get("keywords") or [])
    for term in raw.get("mesh_terms") or []:
        if term not in keywords:
            keywords.append(term)

    return SearchResult(
        id=pmid,
        database="pubmed",
        title=raw.get("title") or NO_TITLE,
        authors=list(raw.get("authors") or []),
        abstract=raw.get("abstract") or None,
        journal=raw.get("journal") or None,
        publication_date=_format_date(raw.get("year"), raw.get("month"), raw.get("day")),
        doi=raw.get("doi") or None,
        pmid=pmid or None,
        url=f"https://pubmed.ncbi.nlm.nih.gov/{pmid}/" if pmid else "",
        study_type=study_type,
        keywords=keywords,
    )


def normalize_crossref(raw: dict[str, Any]) -> SearchResult:
    """CrossRef work item -> SearchResult."""
    titles = raw.get("title") or []
    title = titles[0] if isinstance(titles, list) and titles else titles

    authors = []
    for author in raw.get("author") or []:
        name = " ".join(part for part in (author.get("given"), author.get("family")) if part)
        if not name:
            name = author.get("name", "")
        if name:
            authors.append(name)

    containers = raw.get("container-title") or []
    year, month, day = CrossRefClient.extract_publication_date(raw)
    doi = raw.get("DOI") or None

    return SearchResult(
        id=doi or raw.get("URL", ""),
        database="crossref",
        title=strip_markup(title) or NO_TITLE,
        authors=authors,
        abstract=strip_markup(raw.get("abstract")),
        journal=containers[0] if containers else None,
        publication_date=_format_date(year, month, day),
        doi=doi,
        url=raw.get("URL") or (f"https://doi.org/{doi}" if doi else ""),
        study_type=CROSSREF_STUDY_TYPES.get(raw.get("type", ""), raw.get("type") or None),
        keywords=list(raw.get("subject") or []),
        citation_count=raw.get("is-referenced-by-count"),
    )


def normalize_arxiv(raw: dict[str, Any]) -> SearchResult:
    """Parsed Atom entry (see ArXivClient.parse_feed) -> SearchResult."""
    arxiv_id = strip_arxiv_version(raw.get("id", ""))
    return SearchResult(
        id=arxiv_id,
        database="arxiv",
        title=raw.get("title") or NO_TITLE,
        authors=list(raw.get("authors") or []),
        abstract=raw.get("summary") or None,
        journal=raw.get("journal_ref") or None,
        publication_date=raw.get("published") or "",
        doi=raw.get("doi") or None,
        arxiv_id=arxiv_id or None,
        url=f"https://arxiv.org/abs/{arxiv_id}" if arxiv_id else raw.get("link", ""),
        study_type="preprint",
        keywords=list(raw.get("categories") or []),
    )


def normalize_doaj(raw: dict[str, Any]) -> SearchResult:
    """DOAJ article record -> SearchResult."""
    bibjson = raw.get("bibjson") or {}

    doi = None
    for identifier in bibjson.get("identifier") or []:
        if str(identifier.get("type", "")).lower() == "doi" and identifier.get("id"):
            doi = identifier["id"]
            break

    links = bibjson.get("link") or []
    url = links[0].get("url", "") if links else ""

    journal = (bibjson.get("journal") or {}).get("title")

    return SearchResult(
        id=str(raw.get("id", "")),
        database="doaj",
        title=bibjson.get("title") or NO_TITLE,
        authors=[a["name"] for a in bibjson.get("author") or [] if a.get("name")],
        abstract=strip_markup(bibjson.get("abstract")),
        journal=journal or None,
        publication_date=_format_date(bibjson.get("year"), bibjson.get("month")),
        doi=doi,
        url=url or (f"https://doi.org/{doi}" if doi else ""),
        study_type="journal_article",
        keywords=list(bibjson.get("keywords") or []),
    )


NORMALIZERS: dict[str, Callable[[dict[str, Any]], SearchResult]] = {
    "pubmed": normalize_pubmed,
    "crossref": normalize_crossref,
    "arxiv": normalize_arxiv,
    "doaj": normalize_doaj,
}


def normalize(database: str, raw: dict[str, Any]) -> SearchResult:
    mapper = NORMALIZERS.get(database)
    if mapper is None:
        raise UnsupportedDatabaseError(database, list(SUPPORTED_DATABASES))
    return mapper(raw)


def normalize_many(database: str, raw_items: list[dict[str, Any]]) -> list[SearchResult]:
    """Normalize a batch, dropping records that cannot be mapped."""
    results = []
    for raw in raw_items:
        try:
            results.append(normalize(database, raw))
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Skipping malformed {database} record: {e}")
    return results
