"""
DOAJ (Directory of Open Access Journals) API Integration

Searches article metadata of fully open access journals.

API Documentation: https://doaj.org/api/docs

Notes:
- The query goes in the URL path and uses Elasticsearch query-string syntax
- pageSize must be between 1 and 100
- Rate limit: 2 requests/second per IP, bursts are queued server-side
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import TYPE_CHECKING, Any

from searchmatic.infrastructure.sources.base_client import (
    DEFAULT_CONTACT_EMAIL,
    BaseAPIClient,
    polite_user_agent,
)

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

DOAJ_API_BASE = "https://doaj.org/api"
MAX_PAGE_SIZE = 100


class DOAJClient(BaseAPIClient):
    """
    Client for the DOAJ article search API.

    Usage:
        client = DOAJClient()
        records, total = await client.search('"open science" AND "peer review"', limit=20)
    """

    _service_name = "doaj"

    def __init__(
        self,
        email: str | None = None,
        timeout: float = 30.0,
        min_interval: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            base_url=DOAJ_API_BASE,
            timeout=timeout,
            min_interval=min_interval,
            headers={
                "User-Agent": polite_user_agent(email or DEFAULT_CONTACT_EMAIL),
                "Accept": "application/json",
            },
            transport=transport,
        )

    @staticmethod
    def _search_path(term: str) -> str:
        return f"/search/articles/{urllib.parse.quote(term, safe='')}"

    async def search(
        self,
        term: str,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Search DOAJ articles.

        DOAJ paginates by page number. Pages of size `limit` (at most 100)
        are fetched until the window [offset, offset + limit) is covered, so
        an offset that is not a multiple of the page size costs one extra
        request.

        Returns:
            Tuple of (article records, total)
        """
        page_size = max(1, min(limit, MAX_PAGE_SIZE))
        position, end = offset, offset + limit
        records: list[dict[str, Any]] = []
        total = 0

        while position < end:
            page = position // page_size + 1
            logger.info(f"DOAJ search: {term} page={page} pageSize={page_size}")
            data = await self._make_request(
                self._search_path(term),
                params={"page": page, "pageSize": page_size},
            )
            total = int(data.get("total", 0) or 0)
            batch = data.get("results", []) or []
            skip = position - (page - 1) * page_size
            records.extend(batch[skip : skip + end - position])

            position = page * page_size
            if len(batch) < page_size or position >= total:
                break

        return records, total

    async def count(self, term: str) -> int:
        """Total hits for a query (DOAJ rejects pageSize=0, so one record is fetched)."""
        data = await self._make_request(
            self._search_path(term),
            params={"page": 1, "pageSize": 1},
        )
        return int(data.get("total", 0) or 0)
