"""
CrossRef API Integration

Searches CrossRef's metadata API, the DOI registration agency's index of
scholarly works.

API Documentation: https://api.crossref.org/swagger-ui/index.html

Rate Limits:
- Polite pool (with email): ~50 req/sec
- Anonymous: ~1 req/sec (strongly discouraged)

Best Practices:
- Always include email in User-Agent (polite pool)
- Use mailto: parameter for higher rate limits
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from searchmatic.infrastructure.sources.base_client import (
    DEFAULT_CONTACT_EMAIL,
    BaseAPIClient,
    polite_user_agent,
)
from searchmatic.shared.exceptions import ParseError

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

CROSSREF_API_BASE = "https://api.crossref.org"

# Fields needed by the normalizer; keeps responses small
SELECT_FIELDS = (
    "DOI,title,author,published-print,published-online,published,created,"
    "container-title,abstract,URL,type,is-referenced-by-count,subject"
)


class CrossRefClient(BaseAPIClient):
    """
    CrossRef API client for work search.

    Usage:
        client = CrossRefClient(email="your@email.com")
        items, total = await client.search("machine learning healthcare", limit=10)
        total = await client.count("machine learning healthcare")

    Note:
        Always provide your email for access to the "polite pool" with
        higher rate limits. Without email, requests are severely throttled.
    """

    _service_name = "crossref"

    def __init__(
        self,
        email: str | None = None,
        timeout: float = 30.0,
        min_interval: float = 0.05,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize CrossRef client.

        Args:
            email: Contact email for polite pool access (strongly recommended)
            timeout: Request timeout in seconds
            min_interval: Minimum seconds between requests
            transport: Optional httpx transport
        """
        self._email = email or DEFAULT_CONTACT_EMAIL
        super().__init__(
            base_url=CROSSREF_API_BASE,
            timeout=timeout,
            min_interval=min_interval,
            headers={
                "User-Agent": polite_user_agent(self._email),
                "Accept": "application/json",
            },
            transport=transport,
        )

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Any:
        """Extract 'message' key from CrossRef JSON responses."""
        data = super()._parse_response(response, expect_json)
        if not isinstance(data, dict):
            raise ParseError("Unexpected response shape", source=self._service_name)
        return data.get("message", data)

    def _params(self, term: str, extra: dict[str, str] | None) -> dict[str, str]:
        params: dict[str, str] = {"mailto": self._email}
        if term:
            params["query"] = term
        if extra:
            params.update(extra)
        return params

    async def search(
        self,
        term: str,
        limit: int = 20,
        offset: int = 0,
        params: dict[str, str] | None = None,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Search for works in CrossRef.

        Args:
            term: Free-text query (searches title, author, etc.)
            limit: Maximum results (max 1000)
            offset: Results offset for pagination
            params: Extra parameters from the query builder
                    (e.g. {"filter": "from-pub-date:2020-01-01"})

        Returns:
            Tuple of (work items, total-results)
        """
        query_params = self._params(term, params)
        query_params.update(
            {
                "rows": str(min(limit, 1000)),
                "offset": str(offset),
                "select": SELECT_FIELDS,
            }
        )

        logger.info(f"CrossRef search: {term!r} rows={limit} offset={offset}")
        data = await self._make_request("/works", params=query_params)
        return data.get("items", []) or [], int(data.get("total-results", 0) or 0)

    async def count(self, term: str, params: dict[str, str] | None = None) -> int:
        """Total hits for a query without fetching any works."""
        query_params = self._params(term, params)
        query_params["rows"] = "0"
        data = await self._make_request("/works", params=query_params)
        return int(data.get("total-results", 0) or 0)

    @staticmethod
    def extract_publication_date(
        work: dict[str, Any],
    ) -> tuple[int | None, int | None, int | None]:
        """
        Extract publication date from CrossRef work.

        CrossRef has multiple date fields with different granularity.
        Priority: published-print > published-online > published > created

        Returns:
            Tuple of (year, month, day) - components may be None
        """
        for date_field in ("published-print", "published-online", "published", "created"):
            if date_field in work:
                date_parts = work[date_field].get("date-parts", [[]])
                if date_parts and date_parts[0] and date_parts[0][0] is not None:
                    parts = date_parts[0]
                    year = parts[0] if len(parts) >= 1 else None
                    month = parts[1] if len(parts) >= 2 else None
                    day = parts[2] if len(parts) >= 3 else None
                    return (year, month, day)

        return (None, None, None)
