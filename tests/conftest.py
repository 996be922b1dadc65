"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from unittest.mock import AsyncMock

import httpx
import pytest

from searchmatic.infrastructure.persistence import Database, ProjectRepository, UserRepository
from searchmatic.models.search import SearchResult

# ============================================================
# HTTP mocking
# ============================================================


def json_transport(payload: object, status_code: int = 200, seen: list[httpx.Request] | None = None):
    """MockTransport answering every request with one JSON body."""

    def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        return httpx.Response(status_code, content=json.dumps(payload), headers={"Content-Type": "application/json"})

    return httpx.MockTransport(handler)


@pytest.fixture
def make_transport() -> Callable[..., httpx.MockTransport]:
    return json_transport


# ============================================================
# Search results
# ============================================================


@pytest.fixture
def pubmed_result() -> SearchResult:
    return SearchResult(
        id="12345678",
        database="pubmed",
        title="Metformin and cardiovascular outcomes in type 2 diabetes",
        authors=["Smith John", "Doe Jane"],
        abstract="Background: ...",
        journal="Diabetes Care",
        publication_date="2023-05-01",
        doi="10.1000/dc.2023.001",
        pmid="12345678",
        url="https://pubmed.ncbi.nlm.nih.gov/12345678/",
        study_type="randomized_controlled_trial",
    )


@pytest.fixture
def crossref_result() -> SearchResult:
    return SearchResult(
        id="10.1000/DC.2023.001",
        database="crossref",
        title="Metformin and Cardiovascular Outcomes in Type 2 Diabetes",
        authors=["John Smith", "Jane Doe"],
        journal="Diabetes Care",
        publication_date="2023-05",
        doi="https://doi.org/10.1000/DC.2023.001",
        url="https://doi.org/10.1000/dc.2023.001",
        citation_count=42,
    )


@pytest.fixture
def arxiv_result() -> SearchResult:
    return SearchResult(
        id="2301.00001",
        database="arxiv",
        title="Graph neural networks for molecule property prediction",
        authors=["Alice Chen"],
        abstract="We propose ...",
        publication_date="2023-01-02",
        arxiv_id="2301.00001",
        url="https://arxiv.org/abs/2301.00001",
        study_type="preprint",
    )


# ============================================================
# Clients
# ============================================================


@pytest.fixture
def fake_client() -> Callable[..., AsyncMock]:
    """AsyncMock standing in for a database client."""

    def _make(items: list[dict] | None = None, total: int = 0, error: Exception | None = None) -> AsyncMock:
        client = AsyncMock()
        if error is not None:
            client.search.side_effect = error
            client.count.side_effect = error
        else:
            client.search.return_value = (items or [], total)
            client.count.return_value = total
        return client

    return _make


# ============================================================
# Database
# ============================================================


@pytest.fixture
def database() -> Database:
    db = Database("sqlite://")
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def user_token(database: Database) -> tuple[int, str]:
    with database.session() as session:
        user, token = UserRepository(session).create("reviewer@example.org")
        return user.id, token


@pytest.fixture
def project_id(database: Database, user_token: tuple[int, str]) -> int:
    user_id, _ = user_token
    with database.session() as session:
        return ProjectRepository(session).create(owner_id=user_id, title="Metformin review").id
