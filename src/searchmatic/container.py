"""
Application DI Container (dependency-injector).

Centralizes creation of the database, the four database clients and the
search aggregator.

Usage::

    from searchmatic.config import load_settings
    from searchmatic.container import ApplicationContainer

    container = ApplicationContainer()
    container.config.from_dict(load_settings())

    aggregator = container.aggregator()
    database = container.database()

    # In tests - override any provider:
    container.aggregator.override(providers.Object(fake_aggregator))
"""

from __future__ import annotations

import logging

from dependency_injector import containers, providers

logger = logging.getLogger(__name__)


def _create_database(url: str) -> object:
    from searchmatic.infrastructure.persistence import Database

    return Database(url)


def _create_pubmed_client(email: str, api_key: str | None) -> object:
    from searchmatic.infrastructure.ncbi import PubMedClient

    return PubMedClient(email=email, api_key=api_key or None)


def _create_crossref_client(email: str, timeout: float) -> object:
    from searchmatic.infrastructure.sources import CrossRefClient

    return CrossRefClient(email=email, timeout=timeout)


def _create_arxiv_client(email: str, timeout: float) -> object:
    from searchmatic.infrastructure.sources import ArXivClient

    return ArXivClient(email=email, timeout=timeout)


def _create_doaj_client(email: str, timeout: float) -> object:
    from searchmatic.infrastructure.sources import DOAJClient

    return DOAJClient(email=email, timeout=timeout)


def _create_aggregator(clients: dict) -> object:
    from searchmatic.application.search import SearchAggregator

    return SearchAggregator(clients)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for Searchmatic.

    - ``database``: engine + session factory
    - ``pubmed_client`` / ``crossref_client`` / ``arxiv_client`` / ``doaj_client``
    - ``aggregator``: concurrent multi-database search over those clients
    """

    config = providers.Configuration()

    database = providers.Singleton(_create_database, url=config.database_url)

    pubmed_client = providers.Singleton(
        _create_pubmed_client,
        email=config.ncbi_email,
        api_key=config.ncbi_api_key,
    )

    crossref_client = providers.Singleton(
        _create_crossref_client,
        email=config.crossref_email,
        timeout=config.http_timeout,
    )

    arxiv_client = providers.Singleton(
        _create_arxiv_client,
        email=config.crossref_email,
        timeout=config.http_timeout,
    )

    doaj_client = providers.Singleton(
        _create_doaj_client,
        email=config.crossref_email,
        timeout=config.http_timeout,
    )

    aggregator = providers.Singleton(
        _create_aggregator,
        clients=providers.Dict(
            pubmed=pubmed_client,
            crossref=crossref_client,
            arxiv=arxiv_client,
            doaj=doaj_client,
        ),
    )


__all__ = ["ApplicationContainer"]
