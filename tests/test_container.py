"""Tests for DI container wiring."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from dependency_injector import providers

from searchmatic.application.search import SearchAggregator
from searchmatic.config import load_settings
from searchmatic.container import ApplicationContainer
from searchmatic.infrastructure.ncbi import PubMedClient
from searchmatic.infrastructure.persistence import Database
from searchmatic.infrastructure.sources import ArXivClient, CrossRefClient, DOAJClient

# ============================================================================
# DI Container Tests
# ============================================================================


@pytest.fixture
def container() -> ApplicationContainer:
    container = ApplicationContainer()
    container.config.from_dict(
        load_settings({"SEARCHMATIC_DATABASE_URL": "sqlite://", "CROSSREF_EMAIL": "lab@example.org"})
    )
    return container


class TestApplicationContainer:
    """Test the DI container manages services correctly."""

    def test_config_values(self, container) -> None:
        assert container.config.database_url() == "sqlite://"
        assert container.config.crossref_email() == "lab@example.org"

    async def test_aggregator_has_every_database(self, container) -> None:
        aggregator = container.aggregator()
        assert isinstance(aggregator, SearchAggregator)
        assert aggregator.databases == ["pubmed", "crossref", "arxiv", "doaj"]
        await aggregator.close()

    async def test_clients_are_singletons(self, container) -> None:
        """The aggregator shares the container's client instances."""
        assert container.pubmed_client() is container.pubmed_client()
        assert isinstance(container.pubmed_client(), PubMedClient)
        assert isinstance(container.crossref_client(), CrossRefClient)
        assert isinstance(container.arxiv_client(), ArXivClient)
        assert isinstance(container.doaj_client(), DOAJClient)
        assert container.crossref_client()._email == "lab@example.org"
        await container.aggregator().close()

    def test_database_singleton(self, container) -> None:
        database = container.database()
        assert isinstance(database, Database)
        assert database is container.database()
        database.dispose()

    def test_override_provider(self, container) -> None:
        """Container supports provider overriding for tests."""
        fake = MagicMock()
        container.aggregator.override(providers.Object(fake))
        try:
            assert container.aggregator() is fake
        finally:
            container.aggregator.reset_override()
