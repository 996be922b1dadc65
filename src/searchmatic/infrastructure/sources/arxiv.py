"""
arXiv API Integration

Searches the arXiv preprint server through its Atom query API.

API Documentation: https://info.arxiv.org/help/api/user-manual.html

Rate Limits:
- No more than one request every three seconds (arXiv API terms of use)
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

import defusedxml.ElementTree as ET  # Security: prevent XML attacks

from searchmatic.infrastructure.sources.base_client import (
    DEFAULT_CONTACT_EMAIL,
    BaseAPIClient,
    polite_user_agent,
)
from searchmatic.shared.exceptions import ParseError

if TYPE_CHECKING:
    import httpx

logger = logging.getLogger(__name__)

ARXIV_API_URL = "https://export.arxiv.org/api/query"

NAMESPACES = {
    "atom": "http://www.w3.org/2005/Atom",
    "arxiv": "http://arxiv.org/schemas/atom",
    "opensearch": "http://a9.com/-/spec/opensearch/1.1/",
}


def _text(entry: Any, path: str) -> str:
    elem = entry.find(path, NAMESPACES)
    if elem is None or not elem.text:
        return ""
    return " ".join(elem.text.split())


class ArXivClient(BaseAPIClient):
    """
    Client for the arXiv Atom API.

    Usage:
        client = ArXivClient()
        entries, total = await client.search('all:"graph neural network"', limit=10)
    """

    _service_name = "arxiv"

    def __init__(
        self,
        email: str | None = None,
        timeout: float = 30.0,
        min_interval: float = 3.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        super().__init__(
            timeout=timeout,
            min_interval=min_interval,
            headers={"User-Agent": polite_user_agent(email or DEFAULT_CONTACT_EMAIL)},
            transport=transport,
        )

    async def search(
        self,
        term: str,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Search arXiv.

        Args:
            term: Native arXiv search_query (e.g. 'all:"covid" AND ti:"vaccine"')
            limit: Maximum results (arXiv caps a page at 2000)
            offset: Start index for pagination

        Returns:
            Tuple of (entry dicts, opensearch:totalResults)
        """
        params = {
            "search_query": term,
            "start": offset,
            "max_results": min(limit, 2000),
            "sortBy": "relevance",
            "sortOrder": "descending",
        }

        logger.info(f"arXiv search: {term}")
        xml_text = await self._make_request(ARXIV_API_URL, params=params, expect_json=False)
        return self.parse_feed(xml_text)

    async def count(self, term: str) -> int:
        """Total hits for a query without fetching entries."""
        params = {"search_query": term, "start": 0, "max_results": 0}
        xml_text = await self._make_request(ARXIV_API_URL, params=params, expect_json=False)
        _, total = self.parse_feed(xml_text)
        return total

    def parse_feed(self, xml_text: str) -> tuple[list[dict[str, Any]], int]:
        """Parse an Atom response into entry dicts and the total hit count."""
        try:
            root = ET.fromstring(xml_text)
        except ET.ParseError as e:
            raise ParseError(f"Invalid Atom feed: {e}", source=self._service_name) from e

        total_text = _text(root, "opensearch:totalResults")
        total = int(total_text) if total_text.isdigit() else 0

        entries = []
        for entry in root.findall("atom:entry", NAMESPACES):
            parsed = self._parse_entry(entry)
            if parsed is not None:
                entries.append(parsed)

        return entries, total

    def _parse_entry(self, entry: Any) -> dict[str, Any] | None:
        # arXiv signals query errors as a single entry whose id is the error URL
        entry_id = _text(entry, "atom:id")
        match = re.search(r"arxiv\.org/abs/(.+)", entry_id)
        if not match:
            logger.warning(f"Skipping arXiv entry without abs id: {entry_id!r}")
            return None

        authors = []
        for author in entry.findall("atom:author", NAMESPACES):
            name = _text(author, "atom:name")
            if name:
                authors.append(name)

        categories = [cat.get("term") for cat in entry.findall("atom:category", NAMESPACES) if cat.get("term")]

        abs_url = None
        for link in entry.findall("atom:link", NAMESPACES):
            if link.get("rel") == "alternate":
                abs_url = link.get("href")
                break

        return {
            "id": match.group(1),
            "title": _text(entry, "atom:title"),
            "summary": _text(entry, "atom:summary"),
            "authors": authors,
            "published": _text(entry, "atom:published")[:10],
            "categories": categories,
            "doi": _text(entry, "arxiv:doi") or None,
            "journal_ref": _text(entry, "arxiv:journal_ref") or None,
            "link": abs_url or f"https://arxiv.org/abs/{match.group(1)}",
        }
