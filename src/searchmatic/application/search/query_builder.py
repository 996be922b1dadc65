"""
Query Builder - translate one SearchQuery into each database's native syntax.

Every builder is a pure function. The output is a NativeQuery: the query
string the client sends, plus extra request parameters for databases (CrossRef)
that express filters outside the query string.

Example:
    >>> q = SearchQuery(keywords=["asthma", "children"], date_from="2020-01-01")
    >>> build_query("pubmed", q).term
    '("asthma"[Title/Abstract] AND "children"[Title/Abstract]) AND ("2020/01/01"[Date - Publication] : "3000/12/31"[Date - Publication])'
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from searchmatic.models.search import SUPPORTED_DATABASES, SearchQuery
from searchmatic.shared.exceptions import InvalidQueryError, UnsupportedDatabaseError

logger = logging.getLogger(__name__)

PUBMED_MIN_DATE = "1800/01/01"
PUBMED_MAX_DATE = "3000/12/31"

PUBMED_STUDY_TYPES = {
    "randomized_controlled_trial": '"Randomized Controlled Trial"[pt]',
    "systematic_review": '"Systematic Review"[pt]',
    "meta_analysis": '"Meta-Analysis"[pt]',
    "clinical_trial": '"Clinical Trial"[pt]',
    "review": '"Review"[pt]',
    "observational_study": '"Observational Study"[pt]',
    "case_reports": '"Case Reports"[pt]',
    "case_control": '"Case-Control Studies"[MeSH Terms]',
    "cohort": '"Cohort Studies"[MeSH Terms]',
}

CROSSREF_STUDY_TYPES = {
    "journal_article": "journal-article",
    "preprint": "posted-content",
    "book_chapter": "book-chapter",
    "conference_paper": "proceedings-article",
    "dataset": "dataset",
    "dissertation": "dissertation",
    "report": "report",
}

PUBMED_LANGUAGES = {
    "english",
    "french",
    "german",
    "spanish",
    "italian",
    "portuguese",
    "dutch",
    "russian",
    "chinese",
    "japanese",
    "korean",
}


@dataclass
class NativeQuery:
    """A query in one database's own syntax."""

    database: str
    term: str
    params: dict[str, str] = field(default_factory=dict)


def _quote(value: str) -> str:
    return '"' + value.strip().replace('"', "") + '"'


def _group(parts: list[str], operator: str) -> str:
    if len(parts) == 1:
        return parts[0]
    return "(" + f" {operator} ".join(parts) + ")"


def _require_terms(query: SearchQuery) -> list[str]:
    keywords = query.clean_keywords()
    if not keywords and query.field_search.is_empty():
        raise InvalidQueryError("At least one keyword or field search is required")
    return keywords


def _compact_date(value: str) -> str:
    return value.replace("-", "")[:8]


# ============================================================================
# PubMed
# ============================================================================


def _pubmed_date(value: str | None, default: str) -> str:
    return value.replace("-", "/") if value else default


def build_pubmed_query(query: SearchQuery) -> NativeQuery:
    """
    E-utilities term: field-tagged groups, AND-joined.

    Keywords map to [Title/Abstract], MeSH terms to [MeSH Terms], study types
    to publication type tags and languages to [Language].
    """
    keywords = _require_terms(query)
    groups: list[str] = []

    if keywords:
        groups.append(
            _group([f"{_quote(kw)}[Title/Abstract]" for kw in keywords], query.boolean_operator)
        )

    mesh = [m for m in query.mesh_terms if m and m.strip()]
    if mesh:
        groups.append(_group([f"{_quote(m)}[MeSH Terms]" for m in mesh], "OR"))

    fs = query.field_search
    for value, tag in (
        (fs.title, "Title"),
        (fs.abstract, "Abstract"),
        (fs.author, "Author"),
        (fs.journal, "Journal"),
    ):
        if value and value.strip():
            groups.append(f"({value.strip()})[{tag}]")

    if query.has_date_range:
        start = _pubmed_date(query.date_from, PUBMED_MIN_DATE)
        end = _pubmed_date(query.date_to, PUBMED_MAX_DATE)
        groups.append(f'("{start}"[Date - Publication] : "{end}"[Date - Publication])')

    study_tags = []
    for study_type in query.study_types:
        tag = PUBMED_STUDY_TYPES.get(study_type)
        if tag is None:
            logger.warning(f"Ignoring unknown study type for PubMed: {study_type!r}")
            continue
        study_tags.append(tag)
    if study_tags:
        groups.append(_group(study_tags, "OR"))

    language_tags = []
    for language in query.languages:
        lang = language.strip().lower()
        if lang not in PUBMED_LANGUAGES:
            logger.warning(f"Ignoring unknown language: {language!r}")
            continue
        language_tags.append(f"{lang}[Language]")
    if language_tags:
        groups.append(_group(language_tags, "OR"))

    return NativeQuery("pubmed", " AND ".join(groups))


# ============================================================================
# CrossRef
# ============================================================================


def build_crossref_query(query: SearchQuery) -> NativeQuery:
    """
    Free-text `query` plus field queries and a `filter` parameter.

    CrossRef ranks free text and has no boolean syntax, so the operator word
    only joins the keywords.
    """
    keywords = _require_terms(query)
    params: dict[str, str] = {}

    fs = query.field_search
    if fs.title:
        params["query.title"] = fs.title.strip()
    if fs.author:
        params["query.author"] = fs.author.strip()
    if fs.journal:
        params["query.container-title"] = fs.journal.strip()

    # CrossRef has no abstract field query; fold it into the free text
    text_parts = list(keywords)
    if fs.abstract:
        text_parts.append(fs.abstract.strip())
    term = f" {query.boolean_operator} ".join(text_parts)

    filters = []
    if query.date_from:
        filters.append(f"from-pub-date:{query.date_from}")
    if query.date_to:
        filters.append(f"until-pub-date:{query.date_to}")
    for study_type in query.study_types:
        crossref_type = CROSSREF_STUDY_TYPES.get(study_type)
        if crossref_type is None:
            logger.debug(f"No CrossRef type for study type {study_type!r}")
            continue
        filters.append(f"type:{crossref_type}")
    if filters:
        params["filter"] = ",".join(filters)

    return NativeQuery("crossref", term, params)


# ============================================================================
# arXiv
# ============================================================================


def build_arxiv_query(query: SearchQuery) -> NativeQuery:
    """arXiv search_query with all:/ti:/abs:/au: prefixes and a submittedDate range."""
    keywords = _require_terms(query)
    groups: list[str] = []

    if keywords:
        groups.append(_group([f"all:{_quote(kw)}" for kw in keywords], query.boolean_operator))

    fs = query.field_search
    for value, prefix in ((fs.title, "ti"), (fs.abstract, "abs"), (fs.author, "au")):
        if value and value.strip():
            groups.append(f"{prefix}:{_quote(value)}")
    if fs.journal:
        logger.debug("arXiv has no journal field; journal search ignored")

    if query.has_date_range:
        start = _compact_date(query.date_from) if query.date_from else "19910101"
        end = _compact_date(query.date_to) if query.date_to else "30001231"
        groups.append(f"submittedDate:[{start}0000 TO {end}2359]")

    return NativeQuery("arxiv", " AND ".join(groups))


# ============================================================================
# DOAJ
# ============================================================================


def build_doaj_query(query: SearchQuery) -> NativeQuery:
    """Elasticsearch query-string over DOAJ's bibjson fields."""
    keywords = _require_terms(query)
    groups: list[str] = []

    if keywords:
        groups.append(_group([_quote(kw) for kw in keywords], query.boolean_operator))

    fs = query.field_search
    for value, path in (
        (fs.title, "bibjson.title"),
        (fs.abstract, "bibjson.abstract"),
        (fs.author, "bibjson.author.name"),
        (fs.journal, "bibjson.journal.title"),
    ):
        if value and value.strip():
            groups.append(f"{path}:{_quote(value)}")

    if query.has_date_range:
        start = query.date_from[:4] if query.date_from else "*"
        end = query.date_to[:4] if query.date_to else "*"
        groups.append(f"bibjson.year:[{start} TO {end}]")

    return NativeQuery("doaj", " AND ".join(groups))


QUERY_BUILDERS: dict[str, Callable[[SearchQuery], NativeQuery]] = {
    "pubmed": build_pubmed_query,
    "crossref": build_crossref_query,
    "arxiv": build_arxiv_query,
    "doaj": build_doaj_query,
}


def build_query(database: str, query: SearchQuery) -> NativeQuery:
    """Dispatch to the builder of one database."""
    builder = QUERY_BUILDERS.get(database)
    if builder is None:
        raise UnsupportedDatabaseError(database, list(SUPPORTED_DATABASES))
    return builder(query)
