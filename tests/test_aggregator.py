"""
Tests for SearchAggregator - concurrent search, failure isolation and counts.
"""

from __future__ import annotations

import pytest

from searchmatic.application.search.aggregator import SearchAggregator, estimate_search_time
from searchmatic.models.search import SearchQuery
from searchmatic.shared.exceptions import (
    InvalidParameterError,
    InvalidQueryError,
    RateLimitError,
    ServiceUnavailableError,
    UnsupportedDatabaseError,
)

PUBMED_RAW = {
    "pmid": "38000001",
    "title": "Metformin and cardiovascular outcomes",
    "authors": ["Smith John"],
    "doi": "10.1000/met.1",
    "journal": "Diabetes Care",
    "year": "2023",
    "month": "May",
    "publication_types": ["Randomized Controlled Trial"],
}

CROSSREF_RAW = {
    "DOI": "10.1000/MET.1",
    "title": ["Metformin and cardiovascular outcomes"],
    "author": [{"given": "John", "family": "Smith"}],
    "container-title": ["Diabetes Care"],
    "published-print": {"date-parts": [[2023, 5, 1]]},
    "type": "journal-article",
    "is-referenced-by-count": 7,
}

ARXIV_RAW = {
    "id": "2301.00001v1",
    "title": "A preprint about something else entirely",
    "authors": ["Alice Chen"],
    "published": "2023-01-02",
}


@pytest.fixture
def query() -> SearchQuery:
    return SearchQuery(keywords=["metformin", "cardiovascular"], date_from="2020-01-01")


# =============================================================================
# Database selection
# =============================================================================


class TestValidateDatabases:
    def test_none_means_all_configured(self, fake_client):
        aggregator = SearchAggregator({"arxiv": fake_client(), "pubmed": fake_client()})
        assert aggregator.validate_databases(None) == ["pubmed", "arxiv"]

    def test_names_normalized_and_deduplicated(self, fake_client):
        aggregator = SearchAggregator({"pubmed": fake_client(), "doaj": fake_client()})
        assert aggregator.validate_databases([" PubMed", "doaj", "pubmed"]) == ["pubmed", "doaj"]

    def test_unknown_database(self, fake_client):
        aggregator = SearchAggregator({"pubmed": fake_client()})
        with pytest.raises(UnsupportedDatabaseError):
            aggregator.validate_databases(["pubmed", "scopus"])

    def test_empty_list(self, fake_client):
        aggregator = SearchAggregator({"pubmed": fake_client()})
        with pytest.raises(InvalidParameterError):
            aggregator.validate_databases([])


# =============================================================================
# Multi-database search
# =============================================================================


class TestSearch:
    async def test_results_merged_across_databases(self, fake_client, query):
        aggregator = SearchAggregator(
            {
                "pubmed": fake_client([PUBMED_RAW], total=120),
                "crossref": fake_client([CROSSREF_RAW], total=3400),
                "arxiv": fake_client([ARXIV_RAW], total=5),
            }
        )

        response = await aggregator.search(query)

        assert response.succeeded == ["pubmed", "crossref", "arxiv"]
        assert response.failed == []
        assert response.total_count == 3525
        assert response.duplicates_removed == 1
        assert len(response.results) == 2

        merged = response.results[0]
        assert merged.database == "pubmed"
        assert merged.sources == ["pubmed", "crossref"]
        assert merged.citation_count == 7

    async def test_per_database_results_keep_their_own_sources(self, fake_client, query):
        aggregator = SearchAggregator(
            {
                "pubmed": fake_client([PUBMED_RAW], total=1),
                "crossref": fake_client([CROSSREF_RAW], total=1),
            }
        )

        body = (await aggregator.search(query)).to_dict()

        assert body["results"][0]["sources"] == ["pubmed", "crossref"]
        pubmed_view = body["databases"]["pubmed"]["results"][0]
        assert pubmed_view["sources"] == ["pubmed"]
        assert pubmed_view["citation_count"] is None
        assert body["databases"]["crossref"]["results"][0]["sources"] == ["crossref"]

    async def test_failing_database_does_not_block_others(self, fake_client, query):
        aggregator = SearchAggregator(
            {
                "pubmed": fake_client([PUBMED_RAW], total=1),
                "crossref": fake_client(error=ServiceUnavailableError("HTTP 503", service="crossref")),
                "doaj": fake_client(error=RateLimitError(database="doaj")),
            }
        )

        response = await aggregator.search(query)

        assert response.succeeded == ["pubmed"]
        assert response.failed == ["crossref", "doaj"]
        assert [r.pmid for r in response.results] == ["38000001"]
        assert [e.database for e in response.errors] == ["crossref", "doaj"]
        assert all(e.category == "upstream" for e in response.errors)

        body = response.to_dict()
        assert body["databases"]["crossref"]["error"]["message"] == "crossref: HTTP 503"
        assert body["databases"]["crossref"]["query"]

    async def test_unexpected_exception_reported_inline(self, fake_client, query):
        aggregator = SearchAggregator(
            {"pubmed": fake_client([PUBMED_RAW], total=1), "arxiv": fake_client(error=RuntimeError("boom"))}
        )
        response = await aggregator.search(query)
        assert response.errors[0].message == "Unexpected error: boom"

    async def test_invalid_query_raises_before_any_request(self, fake_client):
        pubmed = fake_client([PUBMED_RAW], total=1)
        aggregator = SearchAggregator({"pubmed": pubmed})

        with pytest.raises(InvalidQueryError):
            await aggregator.search(SearchQuery(keywords=["  "]))
        pubmed.search.assert_not_called()

    async def test_native_query_and_params_passed_to_clients(self, fake_client, query):
        pubmed = fake_client([], total=0)
        crossref = fake_client([], total=0)
        aggregator = SearchAggregator({"pubmed": pubmed, "crossref": crossref})

        await aggregator.search(query, limit=500)

        pubmed_call = pubmed.search.call_args
        assert '"metformin"[Title/Abstract]' in pubmed_call.args[0]
        assert pubmed_call.kwargs["limit"] == 200
        assert "params" not in pubmed_call.kwargs

        crossref_call = crossref.search.call_args
        assert crossref_call.args[0] == "metformin AND cardiovascular"
        assert crossref_call.kwargs["params"] == {"filter": "from-pub-date:2020-01-01"}

    async def test_search_database_propagates_errors(self, fake_client, query):
        aggregator = SearchAggregator({"doaj": fake_client(error=RateLimitError(database="doaj"))})
        with pytest.raises(RateLimitError):
            await aggregator.search_database("doaj", query)


# =============================================================================
# Counts
# =============================================================================


class TestResultCounts:
    async def test_counts_with_failure(self, fake_client, query):
        aggregator = SearchAggregator(
            {
                "pubmed": fake_client(total=1500),
                "crossref": fake_client(error=ServiceUnavailableError(service="crossref")),
            }
        )

        counts = await aggregator.get_result_counts(query)

        assert [c.database for c in counts] == ["pubmed", "crossref"]
        assert counts[0].count == 1500
        assert counts[0].estimated_time_ms == 1100
        assert counts[1].count == -1
        assert counts[1].estimated_time_ms == 0
        assert "crossref" in counts[1].error

    def test_estimate_is_capped(self):
        assert estimate_search_time("crossref", 0) == 500
        assert estimate_search_time("crossref", 10_000_000) == 1500
        assert estimate_search_time("other", 0) == 1000


async def test_close_closes_every_client(fake_client):
    clients = {"pubmed": fake_client(), "arxiv": fake_client()}
    await SearchAggregator(clients).close()
    for client in clients.values():
        client.close.assert_awaited_once()
