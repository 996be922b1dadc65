"""
SearchAggregator - concurrent multi-database search.

Flow for one search:
    SearchQuery -> build_query (per database) -> client.search
                -> normalize -> ResultMerger -> AggregatedSearchResponse

Architecture Decision:
    Clients raise typed exceptions and never retry. The aggregator is the
    single place where a failure becomes an inline DatabaseError, so one
    database going down never fails the whole search.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Protocol

from searchmatic.application.search.normalizer import normalize_many
from searchmatic.application.search.query_builder import NativeQuery, build_query
from searchmatic.application.search.result_merger import ResultMerger
from searchmatic.models.search import (
    SUPPORTED_DATABASES,
    AggregatedSearchResponse,
    DatabaseCount,
    DatabaseError,
    DatabaseSearchResponse,
    SearchQuery,
)
from searchmatic.shared.async_utils import gather_settled
from searchmatic.shared.exceptions import (
    ErrorCategory,
    InvalidParameterError,
    SearchmaticError,
    UnsupportedDatabaseError,
)

logger = logging.getLogger(__name__)

MAX_LIMIT = 200

# Milliseconds, before scaling by result volume
BASE_SEARCH_TIME_MS = {
    "pubmed": 800,
    "crossref": 500,
    "arxiv": 600,
    "doaj": 700,
}
DEFAULT_BASE_TIME_MS = 1000


class SearchClient(Protocol):
    """What the aggregator needs from a database client."""

    async def search(self, term: str, limit: int = ..., offset: int = ..., **filters: Any) -> tuple[list[dict], int]: ...

    async def count(self, term: str, **filters: Any) -> int: ...


def estimate_search_time(database: str, count: int) -> int:
    """Rough wall time of a full search, scaled by hit count (capped at 5x)."""
    base = BASE_SEARCH_TIME_MS.get(database, DEFAULT_BASE_TIME_MS)
    return round(base + min(count / 1000, 5) * 200)


def _filters(native: NativeQuery) -> dict[str, Any]:
    return {"params": native.params} if native.params else {}


def _as_database_error(database: str, error: Exception) -> DatabaseError:
    if isinstance(error, SearchmaticError):
        category = "validation" if error.category is ErrorCategory.VALIDATION else "upstream"
        return DatabaseError(database=database, message=str(error), category=category)
    return DatabaseError(database=database, message=f"Unexpected error: {error}", category="upstream")


class SearchAggregator:
    """
    Searches several academic databases at once.

    Usage:
        aggregator = SearchAggregator({"pubmed": PubMedClient(), "crossref": CrossRefClient()})
        response = await aggregator.search(SearchQuery(keywords=["asthma"]), ["pubmed", "crossref"])
    """

    def __init__(self, clients: dict[str, SearchClient], merger: ResultMerger | None = None):
        self._clients = clients
        self._merger = merger or ResultMerger()

    @property
    def databases(self) -> list[str]:
        return [db for db in SUPPORTED_DATABASES if db in self._clients]

    def _client(self, database: str) -> SearchClient:
        client = self._clients.get(database)
        if client is None:
            raise UnsupportedDatabaseError(database, self.databases)
        return client

    def validate_databases(self, databases: list[str] | None) -> list[str]:
        """Deduplicate and check database names; None means every configured database."""
        if databases is None:
            return self.databases
        selected: list[str] = []
        for database in databases:
            name = database.strip().lower()
            self._client(name)
            if name not in selected:
                selected.append(name)
        if not selected:
            raise InvalidParameterError("databases", databases, f"at least one of {', '.join(self.databases)}")
        return selected

    # =========================================================================
    # Search
    # =========================================================================

    async def search_database(
        self,
        database: str,
        query: SearchQuery,
        limit: int = 20,
        offset: int = 0,
    ) -> DatabaseSearchResponse:
        """
        Search one database. Errors propagate to the caller.

        Raises:
            UnsupportedDatabaseError: No client for this database
            InvalidQueryError: Query has nothing to search for
            APIError: Any upstream failure
        """
        client = self._client(database)
        native = build_query(database, query)
        return await self._run_search(database, client, native, limit, offset)

    async def _run_search(
        self,
        database: str,
        client: SearchClient,
        native: NativeQuery,
        limit: int,
        offset: int,
    ) -> DatabaseSearchResponse:
        limit = max(1, min(limit, MAX_LIMIT))
        logger.info(f"[{database}] search started: {native.term!r} limit={limit} offset={offset}")
        start_time = time.perf_counter()

        try:
            raw_items, total = await client.search(native.term, limit=limit, offset=offset, **_filters(native))
        except Exception as e:
            elapsed_ms = (time.perf_counter() - start_time) * 1000
            logger.warning(f"[{database}] search failed after {elapsed_ms:.0f}ms: {e}")
            raise

        results = normalize_many(database, raw_items)
        elapsed_ms = (time.perf_counter() - start_time) * 1000
        logger.info(f"[{database}] search finished: {len(results)} of {total} results in {elapsed_ms:.0f}ms")

        return DatabaseSearchResponse(
            database=database,
            results=results,
            total_count=total,
            query=native.term,
            search_time_ms=elapsed_ms,
        )

    async def search(
        self,
        query: SearchQuery,
        databases: list[str] | None = None,
        limit: int = 20,
    ) -> AggregatedSearchResponse:
        """
        Search several databases concurrently and merge the results.

        Invalid input (unknown database, empty query) raises before any request
        is made. Upstream failures are reported per database in the response.
        """
        selected = self.validate_databases(databases)
        natives = {db: build_query(db, query) for db in selected}

        start_time = time.perf_counter()
        outcomes = await gather_settled(
            *(self._run_search(db, self._clients[db], natives[db], limit, 0) for db in selected)
        )

        responses: list[DatabaseSearchResponse] = []
        for database, outcome in zip(selected, outcomes, strict=True):
            if isinstance(outcome, Exception):
                responses.append(
                    DatabaseSearchResponse(
                        database=database,
                        query=natives[database].term,
                        error=_as_database_error(database, outcome),
                    )
                )
            else:
                responses.append(outcome)

        combined = [result for response in responses for result in response.results]
        merged, stats = self._merger.merge(combined)
        elapsed_ms = (time.perf_counter() - start_time) * 1000

        failed = [r.database for r in responses if not r.ok]
        if failed:
            logger.warning(f"Search completed with failures in: {', '.join(failed)}")
        logger.info(
            f"Aggregated search: {len(combined)} results from {len(selected)} databases, "
            f"{stats.duplicates_removed} duplicates removed, {elapsed_ms:.0f}ms"
        )

        return AggregatedSearchResponse(
            responses=responses,
            results=merged,
            duplicates_removed=stats.duplicates_removed,
            search_time_ms=elapsed_ms,
        )

    # =========================================================================
    # Counts
    # =========================================================================

    async def _count(self, database: str, native: NativeQuery) -> int:
        return await self._clients[database].count(native.term, **_filters(native))

    async def get_result_counts(
        self,
        query: SearchQuery,
        databases: list[str] | None = None,
    ) -> list[DatabaseCount]:
        """Hit count per database; count is -1 where the lookup failed."""
        selected = self.validate_databases(databases)
        natives = {db: build_query(db, query) for db in selected}

        outcomes = await gather_settled(*(self._count(db, natives[db]) for db in selected))

        counts: list[DatabaseCount] = []
        for database, outcome in zip(selected, outcomes, strict=True):
            if isinstance(outcome, Exception):
                logger.warning(f"[{database}] count failed: {outcome}")
                counts.append(DatabaseCount(database=database, count=-1, error=str(outcome)))
            else:
                counts.append(
                    DatabaseCount(
                        database=database,
                        count=outcome,
                        estimated_time_ms=estimate_search_time(database, outcome),
                    )
                )
        return counts

    async def close(self) -> None:
        """Close every client's connection pool."""
        for client in self._clients.values():
            close = getattr(client, "close", None)
            if close is not None:
                await close()
