"""
Entrez Base Module - Configuration and Shared Utilities

Provides base class with Entrez configuration and common functionality.
Includes rate limiting to respect NCBI API limits.
"""

from __future__ import annotations

import asyncio
import logging
import urllib.error
from http.client import HTTPException

from Bio import Entrez
from Bio.Entrez.Parser import CorruptedXMLError, NotXMLError
from Bio.Entrez.Parser import ValidationError as EntrezValidationError

from searchmatic.shared.async_utils import IntervalRateLimiter
from searchmatic.shared.exceptions import (
    NetworkError,
    ParseError,
    RateLimitError,
    ServiceUnavailableError,
    UpstreamAPIError,
)

logger = logging.getLogger(__name__)

SERVICE_NAME = "pubmed"

# ~3 requests/second without an API key, 10/second with one
INTERVAL_WITHOUT_KEY = 0.34
INTERVAL_WITH_KEY = 0.1

# Shared by every EntrezBase instance: the NCBI limit is per client IP
_rate_limiter = IntervalRateLimiter(min_interval=INTERVAL_WITHOUT_KEY)


def translate_entrez_error(error: Exception) -> Exception:
    """Map urllib / Biopython failures onto the Searchmatic exception hierarchy."""
    if isinstance(error, urllib.error.HTTPError):
        if error.code == 429:
            return RateLimitError("Rate limited by NCBI E-utilities", database=SERVICE_NAME)
        if error.code >= 500:
            return ServiceUnavailableError(f"HTTP {error.code}: {error.reason}", service=SERVICE_NAME)
        return UpstreamAPIError(
            f"PubMed API error: {error.code} {error.reason}",
            status_code=error.code,
            database=SERVICE_NAME,
        )
    if isinstance(error, (urllib.error.URLError, HTTPException, TimeoutError, ConnectionError)):
        return NetworkError(f"Connection failed: {error}", database=SERVICE_NAME)
    if isinstance(error, (EntrezValidationError, CorruptedXMLError, NotXMLError, ValueError)):
        return ParseError(str(error), source=SERVICE_NAME)
    if isinstance(error, RuntimeError):
        # Entrez.read raises RuntimeError for <ERROR> elements in the reply
        return UpstreamAPIError(f"PubMed error: {error}", database=SERVICE_NAME)
    return error


class EntrezBase:
    """
    Base class for Entrez API interactions.

    Handles configuration and provides shared utilities for all Entrez operations.

    Attributes:
        email: Email address required by NCBI Entrez API.
        api_key: Optional NCBI API key for higher rate limits.
    """

    def __init__(self, email: str = "support@searchmatic.ai", api_key: str | None = None):
        """
        Initialize Entrez configuration.

        Args:
            email: Email address required by NCBI Entrez API.
            api_key: Optional NCBI API key for higher rate limits (10/sec vs 3/sec).
        """
        Entrez.email = email  # type: ignore[assignment]
        Entrez.tool = "searchmatic"  # type: ignore[assignment]
        if api_key:
            Entrez.api_key = api_key  # type: ignore[assignment]
            _rate_limiter.min_interval = INTERVAL_WITH_KEY
        else:
            _rate_limiter.min_interval = INTERVAL_WITHOUT_KEY

        # One attempt only; failures surface as inline per-database errors
        Entrez.max_tries = 1

        self._email = email
        self._api_key = api_key

    async def _rate_limited_call(self, func, *args, **kwargs):
        """Execute a blocking Entrez request in a worker thread, rate limited."""
        await _rate_limiter.acquire()
        return await self._in_thread(func, *args, **kwargs)

    async def _read(self, handle):
        """Parse an Entrez reply in a worker thread; no NCBI request is made."""
        return await self._in_thread(Entrez.read, handle)

    async def _in_thread(self, func, *args, **kwargs):
        try:
            return await asyncio.to_thread(func, *args, **kwargs)
        except Exception as e:
            translated = translate_entrez_error(e)
            if translated is e:
                raise
            logger.warning(f"Entrez call {getattr(func, '__name__', func)} failed: {e}")
            raise translated from e

    @property
    def email(self) -> str:
        """Get configured email."""
        return self._email

    @property
    def api_key(self) -> str | None:
        """Get configured API key."""
        return self._api_key
