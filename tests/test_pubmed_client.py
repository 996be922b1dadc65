"""
Tests for the Entrez-backed PubMed client.

Entrez.esearch / efetch / read are patched; no request reaches NCBI.
"""

from __future__ import annotations

import urllib.error
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from searchmatic.infrastructure.ncbi import PubMedClient, translate_entrez_error
from searchmatic.infrastructure.ncbi import base as ncbi_base
from searchmatic.shared.exceptions import (
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamAPIError,
)


class Tagged(str):
    """String carrying XML attributes, like Bio.Entrez.Parser.StringElement."""

    def __new__(cls, value, attributes):
        obj = super().__new__(cls, value)
        obj.attributes = attributes
        return obj


PUBMED_ARTICLE = {
    "MedlineCitation": {
        "PMID": "38000001",
        "Article": {
            "ArticleTitle": "Metformin and cardiovascular outcomes",
            "AuthorList": [
                {"LastName": "Smith", "ForeName": "John"},
                {"CollectiveName": "DIAB Study Group"},
            ],
            "Abstract": {"AbstractText": ["Background text.", "Results text."]},
            "Journal": {
                "Title": "Diabetes Care",
                "ISOAbbreviation": "Diabetes Care",
                "JournalIssue": {"Volume": "46", "Issue": "5", "PubDate": {"Year": "2023", "Month": "May"}},
            },
            "Pagination": {"MedlinePgn": "100-110"},
            "Language": ["eng"],
            "PublicationTypeList": ["Journal Article", "Randomized Controlled Trial"],
            "ELocationID": [],
        },
        "KeywordList": [["metformin", "CVD"]],
        "MeshHeadingList": [{"DescriptorName": "Metformin"}],
    },
    "PubmedData": {
        "ArticleIdList": [
            Tagged("38000001", {"IdType": "pubmed"}),
            Tagged("10.2337/dc23-0001", {"IdType": "doi"}),
            Tagged("PMC999", {"IdType": "pmc"}),
        ]
    },
}


@pytest.fixture
def client(monkeypatch):
    pubmed = PubMedClient(email="test@example.org")
    monkeypatch.setattr(ncbi_base._rate_limiter, "min_interval", 0)
    return pubmed


# =============================================================================
# Search
# =============================================================================


class TestPubMedSearch:
    """esearch + efetch flow."""

    async def test_search_fetches_details(self, client):
        read_results = [
            {"Count": "2", "IdList": ["38000001"], "QueryTranslation": "metformin[tiab]"},
            {"PubmedArticle": [PUBMED_ARTICLE]},
        ]
        with (
            patch("Bio.Entrez.esearch", return_value=MagicMock()) as esearch,
            patch("Bio.Entrez.efetch", return_value=MagicMock()) as efetch,
            patch("Bio.Entrez.read", side_effect=read_results),
        ):
            records, total = await client.search('"metformin"[Title/Abstract]', limit=5, offset=10)

        assert total == 2
        assert esearch.call_args.kwargs == {
            "db": "pubmed",
            "term": '"metformin"[Title/Abstract]',
            "retmax": 5,
            "retstart": 10,
            "sort": "relevance",
        }
        assert efetch.call_args.kwargs["id"] == "38000001"

        record = records[0]
        assert record["pmid"] == "38000001"
        assert record["authors"] == ["Smith John", "DIAB Study Group"]
        assert record["abstract"] == "Background text. Results text."
        assert record["doi"] == "10.2337/dc23-0001"
        assert record["keywords"] == ["metformin", "CVD"]
        assert record["mesh_terms"] == ["Metformin"]
        assert record["year"] == "2023"
        assert record["month"] == "May"
        assert "pmc_id" not in record

    async def test_only_requests_take_a_rate_limit_slot(self, client, monkeypatch):
        """esearch and efetch are throttled; parsing the replies is not."""
        acquire = AsyncMock()
        monkeypatch.setattr(ncbi_base._rate_limiter, "acquire", acquire)
        read_results = [{"Count": "1", "IdList": ["38000001"]}, {"PubmedArticle": [PUBMED_ARTICLE]}]
        with (
            patch("Bio.Entrez.esearch", return_value=MagicMock()),
            patch("Bio.Entrez.efetch", return_value=MagicMock()),
            patch("Bio.Entrez.read", side_effect=read_results) as read,
        ):
            await client.search("metformin")

        assert read.call_count == 2
        assert acquire.await_count == 2

    async def test_parse_failure_translated(self, client):
        with (
            patch("Bio.Entrez.esearch", return_value=MagicMock()),
            patch("Bio.Entrez.read", side_effect=ValueError("not XML")),
        ):
            with pytest.raises(ParseError):
                await client.count("asthma")

    async def test_no_ids_skips_efetch(self, client):
        with (
            patch("Bio.Entrez.esearch", return_value=MagicMock()),
            patch("Bio.Entrez.efetch") as efetch,
            patch("Bio.Entrez.read", return_value={"Count": "0", "IdList": []}),
        ):
            assert await client.search("nothing") == ([], 0)
        efetch.assert_not_called()

    async def test_count(self, client):
        with (
            patch("Bio.Entrez.esearch", return_value=MagicMock()) as esearch,
            patch("Bio.Entrez.read", return_value={"Count": "1234", "IdList": []}),
        ):
            assert await client.count("asthma") == 1234
        assert esearch.call_args.kwargs["retmax"] == 0

    async def test_malformed_article_skipped(self, client):
        with (
            patch("Bio.Entrez.efetch", return_value=MagicMock()),
            patch("Bio.Entrez.read", return_value={"PubmedArticle": [{"PubmedData": {}}, PUBMED_ARTICLE]}),
        ):
            records = await client.fetch_details(["1", "38000001"])
        assert [r["pmid"] for r in records] == ["38000001"]

    async def test_http_error_translated(self, client):
        error = urllib.error.HTTPError("https://eutils", 429, "Too Many Requests", {}, None)
        with patch("Bio.Entrez.esearch", side_effect=error):
            with pytest.raises(RateLimitError):
                await client.search("asthma")


# =============================================================================
# Error translation
# =============================================================================


class TestTranslateEntrezError:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (urllib.error.HTTPError("u", 503, "Unavailable", {}, None), ServiceUnavailableError),
            (urllib.error.HTTPError("u", 400, "Bad Request", {}, None), UpstreamAPIError),
            (urllib.error.URLError("dns failure"), NetworkError),
            (TimeoutError("slow"), NetworkError),
            (ValueError("bad xml"), ParseError),
            (RuntimeError("Search Backend failed"), UpstreamAPIError),
        ],
    )
    def test_mapping(self, error, expected):
        assert isinstance(translate_entrez_error(error), expected)

    def test_unknown_error_returned_unchanged(self):
        error = KeyError("x")
        assert translate_entrez_error(error) is error

    def test_api_key_shortens_interval(self):
        PubMedClient(email="a@b.c", api_key="secret")
        assert ncbi_base._rate_limiter.min_interval == ncbi_base.INTERVAL_WITH_KEY
        PubMedClient(email="a@b.c")
        assert ncbi_base._rate_limiter.min_interval == ncbi_base.INTERVAL_WITHOUT_KEY
