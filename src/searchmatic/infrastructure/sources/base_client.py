"""
Base API Client - Common HTTP request pattern for the academic database clients.

Provides:
- httpx.AsyncClient management with polite User-Agent headers
- Fixed minimum interval between sequential requests
- Consistent mapping of HTTP failures onto typed exceptions

Each request is attempted once. A failed request raises, and the aggregator
turns the exception into an inline per-database error.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from typing_extensions import Self

from searchmatic.shared.async_utils import IntervalRateLimiter
from searchmatic.shared.exceptions import (
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamAPIError,
)

logger = logging.getLogger(__name__)

DEFAULT_CONTACT_EMAIL = "support@searchmatic.ai"
USER_AGENT = "Searchmatic/1.0"


def polite_user_agent(email: str) -> str:
    """User-Agent string asked for by CrossRef/arXiv etiquette guidelines."""
    return f"{USER_AGENT} (mailto:{email}) - Academic Literature Review Tool"


class BaseAPIClient:
    """
    Base class for external API clients.

    Subclasses set `_service_name` and call `_make_request()`; they can
    override `_parse_response()` for service-specific extraction.

    Example:
        class MyClient(BaseAPIClient):
            _service_name = "myapi"

            def __init__(self):
                super().__init__(base_url="https://api.example.com", min_interval=0.1)

            async def get_item(self, item_id: str) -> dict:
                return await self._make_request(f"/items/{item_id}")
    """

    _service_name: str = "api"

    def __init__(
        self,
        base_url: str = "",
        timeout: float = 30.0,
        min_interval: float = 0.1,
        headers: dict[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize base client.

        Args:
            base_url: Base URL for the API (optional, can pass full URLs)
            timeout: Request timeout in seconds
            min_interval: Minimum seconds between requests (rate limiting)
            headers: Default headers for all requests
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._rate_limiter = IntervalRateLimiter(min_interval=min_interval)
        self._client = httpx.AsyncClient(
            timeout=self._timeout,
            headers=headers or {},
            transport=transport,
            limits=httpx.Limits(
                max_connections=10,
                max_keepalive_connections=5,
                keepalive_expiry=30.0,
            ),
        )

    def _build_url(self, url: str) -> str:
        """Build full URL from path or full URL."""
        if url.startswith(("http://", "https://")):
            return url
        return f"{self._base_url}{url}"

    async def _make_request(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        expect_json: bool = True,
    ) -> Any:
        """
        Make a rate-limited GET request.

        Returns:
            Parsed JSON (or text when expect_json is False)

        Raises:
            RateLimitError: HTTP 429
            ServiceUnavailableError: HTTP 5xx
            UpstreamAPIError: any other non-success status
            NetworkError: connection failures and timeouts
            ParseError: body is not valid JSON
        """
        full_url = self._build_url(url)
        await self._rate_limiter.acquire()

        try:
            response = await self._client.get(full_url, params=params)
        except httpx.TimeoutException as e:
            logger.warning(f"{self._service_name} request timed out after {self._timeout}s")
            raise NetworkError(
                f"Request timeout after {self._timeout}s",
                database=self._service_name,
            ) from e
        except httpx.RequestError as e:
            logger.warning(f"{self._service_name} request failed: {e}")
            raise NetworkError(f"Connection failed: {e}", database=self._service_name) from e

        self._raise_for_status(response)
        return self._parse_response(response, expect_json)

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Map non-success statuses onto the exception hierarchy."""
        status = response.status_code
        if status < 400:
            return

        logger.error(f"{self._service_name} HTTP error {status}: {response.reason_phrase}")
        if status == 429:
            raise RateLimitError(
                f"Rate limited by {self._service_name}",
                retry_after=self._get_retry_after(response),
                database=self._service_name,
            )
        if status >= 500:
            raise ServiceUnavailableError(
                f"HTTP {status}: {response.reason_phrase}",
                service=self._service_name,
            )
        raise UpstreamAPIError(
            f"{self._service_name} API error: {status} {response.reason_phrase}",
            status_code=status,
            database=self._service_name,
        )

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Any:
        """Parse response body. Override for custom extraction logic."""
        if not expect_json:
            return response.text
        try:
            return response.json()
        except ValueError as e:
            raise ParseError("Invalid JSON response", source=self._service_name) from e

    @staticmethod
    def _get_retry_after(response: httpx.Response) -> float | None:
        """Retry-After header in seconds, if the server sent a numeric one."""
        try:
            value = response.headers.get("Retry-After")
            return float(value) if value is not None else None
        except (ValueError, TypeError):
            return None

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.aclose()

    async def __aenter__(self) -> Self:
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.close()
