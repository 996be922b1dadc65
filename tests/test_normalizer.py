"""Tests for mapping raw database records onto SearchResult."""

from __future__ import annotations

import pytest

from searchmatic.application.search.normalizer import (
    NO_TITLE,
    normalize,
    normalize_arxiv,
    normalize_crossref,
    normalize_doaj,
    normalize_many,
    normalize_pubmed,
    strip_markup,
)
from searchmatic.shared.exceptions import UnsupportedDatabaseError

# =============================================================================
# PubMed
# =============================================================================


class TestNormalizePubMed:
    def test_full_record(self):
        raw = {
            "pmid": "38000001",
            "title": "Metformin in older adults",
            "authors": ["Smith John", "Doe Jane"],
            "abstract": "We studied metformin.",
            "keywords": ["metformin"],
            "mesh_terms": ["Metformin", "Aged"],
            "doi": "10.1000/abc",
            "journal": "Diabetes Care",
            "year": "2023",
            "month": "May",
            "day": "7",
            "publication_types": ["Journal Article", "Randomized Controlled Trial"],
        }
        result = normalize_pubmed(raw)

        assert result.id == "38000001"
        assert result.pmid == "38000001"
        assert result.database == "pubmed"
        assert result.url == "https://pubmed.ncbi.nlm.nih.gov/38000001/"
        assert result.publication_date == "2023-05-07"
        assert result.study_type == "randomized_controlled_trial"
        assert result.keywords == ["metformin", "Metformin", "Aged"]
        assert result.sources == ["pubmed"]

    def test_partial_date_and_missing_fields(self):
        result = normalize_pubmed({"pmid": "1", "year": "2019", "month": "11"})
        assert result.title == NO_TITLE
        assert result.publication_date == "2019-11"
        assert result.abstract is None
        assert result.study_type is None

    def test_no_year_gives_empty_date(self):
        assert normalize_pubmed({"pmid": "1", "title": "x"}).publication_date == ""


# =============================================================================
# CrossRef
# =============================================================================


class TestNormalizeCrossRef:
    def test_work_item(self):
        raw = {
            "DOI": "10.1000/xyz",
            "title": ["<i>In vivo</i> effects of metformin"],
            "author": [{"given": "John", "family": "Smith"}, {"name": "WHO Consortium"}],
            "container-title": ["Diabetes Care"],
            "abstract": "<jats:p>Text &amp; more</jats:p>",
            "published-print": {"date-parts": [[2021, 3]]},
            "type": "posted-content",
            "is-referenced-by-count": 12,
            "URL": "https://doi.org/10.1000/xyz",
            "subject": ["Endocrinology"],
        }
        result = normalize_crossref(raw)

        assert result.id == "10.1000/xyz"
        assert result.title == "In vivo effects of metformin"
        assert result.authors == ["John Smith", "WHO Consortium"]
        assert result.abstract == "Text & more"
        assert result.journal == "Diabetes Care"
        assert result.publication_date == "2021-03"
        assert result.study_type == "preprint"
        assert result.citation_count == 12
        assert result.keywords == ["Endocrinology"]

    def test_online_date_used_when_print_missing(self):
        raw = {"DOI": "10.1/a", "title": ["T"], "published-online": {"date-parts": [[2020, 1, 2]]}}
        assert normalize_crossref(raw).publication_date == "2020-01-02"

    def test_url_falls_back_to_doi(self):
        result = normalize_crossref({"DOI": "10.1/a"})
        assert result.url == "https://doi.org/10.1/a"
        assert result.title == NO_TITLE


# =============================================================================
# arXiv / DOAJ
# =============================================================================


class TestNormalizeArXiv:
    def test_version_suffix_stripped(self):
        raw = {
            "id": "2301.12345v2",
            "title": "Graph networks",
            "summary": "Abstract.",
            "authors": ["Alice Chen"],
            "published": "2023-01-30",
            "categories": ["cs.LG"],
            "doi": None,
        }
        result = normalize_arxiv(raw)
        assert result.id == "2301.12345"
        assert result.arxiv_id == "2301.12345"
        assert result.url == "https://arxiv.org/abs/2301.12345"
        assert result.study_type == "preprint"
        assert result.doi is None


class TestNormalizeDOAJ:
    def test_bibjson_record(self):
        raw = {
            "id": "abc123",
            "bibjson": {
                "title": "Open access malaria vaccines",
                "author": [{"name": "Ana Silva"}, {"affiliation": "nowhere"}],
                "abstract": "<p>Malaria.</p>",
                "identifier": [{"type": "eissn", "id": "1234-5678"}, {"type": "doi", "id": "10.9/m"}],
                "journal": {"title": "Malaria Journal"},
                "link": [{"type": "fulltext", "url": "https://example.org/a"}],
                "year": "2020",
                "month": "4",
                "keywords": ["malaria"],
            },
        }
        result = normalize_doaj(raw)
        assert result.authors == ["Ana Silva"]
        assert result.doi == "10.9/m"
        assert result.abstract == "Malaria."
        assert result.journal == "Malaria Journal"
        assert result.url == "https://example.org/a"
        assert result.publication_date == "2020-04"


# =============================================================================
# Dispatch
# =============================================================================


class TestDispatch:
    def test_unknown_database(self):
        with pytest.raises(UnsupportedDatabaseError):
            normalize("scopus", {})

    def test_malformed_records_skipped(self):
        results = normalize_many("crossref", [{"DOI": "10.1/ok", "title": ["Fine"]}, {"author": ["bad"]}])
        assert [r.doi for r in results] == ["10.1/ok"]

    def test_strip_markup_empty(self):
        assert strip_markup(None) is None
        assert strip_markup("<p> </p>") is None
