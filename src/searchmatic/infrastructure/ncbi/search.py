"""
Entrez Search Module - PubMed search and record parsing.

Provides search and fetch operations using esearch and efetch.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from Bio import Entrez

from .base import EntrezBase

logger = logging.getLogger(__name__)


class SearchMixin:
    """
    Mixin providing core PubMed search functionality.

    Methods:
        search: Run esearch + efetch for a native PubMed term
        count: Total hit count for a term
        fetch_details: Fetch parsed article records by PMID
    """

    async def search(
        self,
        term: str,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """
        Search PubMed with an already translated query term.

        Args:
            term: Native PubMed query (see application.search.query_builder).
            limit: Maximum number of records to return.
            offset: retstart for pagination.

        Returns:
            Tuple of (parsed article dicts, total count reported by esearch).
        """
        id_list, total_count = await self._search_ids(term, limit, offset)
        if not id_list:
            return [], total_count
        return await self.fetch_details(id_list), total_count

    async def count(self, term: str) -> int:
        """Number of PubMed records matching a term."""
        _, total = await self._search_ids(term, 0, 0)
        return total

    async def _search_ids(self, term: str, retmax: int, retstart: int) -> tuple[list[str], int]:
        """
        Search for PubMed IDs.

        Returns:
            Tuple of (id_list, total_count) where total_count is the total number
            of articles matching the query in PubMed (not limited by retmax).
        """
        handle = await self._rate_limited_call(
            Entrez.esearch,
            db="pubmed",
            term=term,
            retmax=retmax,
            retstart=retstart,
            sort="relevance",
        )
        try:
            record = await self._read(handle)
        finally:
            handle.close()

        # NCBI reports query translation problems as warnings, not errors
        warning_list = record.get("WarningList", {})
        if warning_list:
            for warn_type, warn_msgs in warning_list.items():
                if isinstance(warn_msgs, list) and warn_msgs:
                    logger.warning(f"NCBI {warn_type}: {warn_msgs}")

        logger.debug(f"NCBI query translation: {record.get('QueryTranslation', '')}")

        total_count = int(record.get("Count", 0))
        return list(record.get("IdList", [])), total_count

    async def fetch_details(self, id_list: list[str]) -> list[dict[str, Any]]:
        """
        Fetch complete details for a list of PMIDs.

        Returns:
            List of dictionaries with pmid, title, authors, abstract, journal,
            year/month/day, doi, keywords, mesh_terms
            and publication_types.
        """
        if not id_list:
            return []

        handle = await self._rate_limited_call(Entrez.efetch, db="pubmed", id=",".join(id_list), retmode="xml")
        try:
            papers = await self._read(handle)
        finally:
            handle.close()

        results = []
        for article in papers.get("PubmedArticle", []):
            try:
                results.append(self._parse_pubmed_article(article))
            except (KeyError, TypeError) as e:
                logger.warning(f"Skipping malformed PubMed record: {e}")
        return results

    def _parse_pubmed_article(self, article: dict) -> dict[str, Any]:
        """Parse a single PubMed article record into a structured dictionary."""
        medline_citation = article["MedlineCitation"]
        article_data = medline_citation["Article"]
        pubmed_data = article.get("PubmedData", {})

        return {
            "pmid": str(medline_citation.get("PMID", "")),
            "title": str(article_data.get("ArticleTitle", "")),
            "authors": self._extract_authors(article_data),
            "abstract": self._extract_abstract(article_data),
            "keywords": self._extract_keywords(medline_citation),
            "mesh_terms": self._extract_mesh_terms(medline_citation),
            "doi": self._extract_doi(pubmed_data, article_data),
            "publication_types": [str(pt) for pt in article_data.get("PublicationTypeList", [])],
            **self._extract_journal_info(article_data),
        }

    def _extract_authors(self, article_data: dict) -> list[str]:
        authors = []
        for author in article_data.get("AuthorList", []):
            if "LastName" in author:
                authors.append(f"{author['LastName']} {author.get('ForeName', '')}".strip())
            elif "CollectiveName" in author:
                authors.append(str(author["CollectiveName"]))
        return authors

    def _extract_abstract(self, article_data: dict) -> str:
        if "Abstract" in article_data and "AbstractText" in article_data["Abstract"]:
            abstract_parts = article_data["Abstract"]["AbstractText"]
            if isinstance(abstract_parts, list):
                return " ".join(str(part) for part in abstract_parts)
            return str(abstract_parts)
        return ""

    def _extract_journal_info(self, article_data: dict) -> dict[str, str]:
        journal_data = article_data.get("Journal", {})
        pub_date = journal_data.get("JournalIssue", {}).get("PubDate", {})

        year = str(pub_date.get("Year", ""))
        if not year and "MedlineDate" in pub_date:
            year_match = re.search(r"(\d{4})", str(pub_date["MedlineDate"]))
            if year_match:
                year = year_match.group(1)

        return {
            "journal": str(journal_data.get("Title", "")),
            "year": year,
            "month": str(pub_date.get("Month", "")),
            "day": str(pub_date.get("Day", "")),
        }

    def _extract_doi(self, pubmed_data: dict, article_data: dict) -> str:
        """DOI from ArticleIdList, falling back to ELocationID."""
        for aid in pubmed_data.get("ArticleIdList", []):
            if getattr(aid, "attributes", {}).get("IdType") == "doi":
                return str(aid)

        for eloc in article_data.get("ELocationID", []):
            if getattr(eloc, "attributes", {}).get("EIdType") == "doi":
                return str(eloc)
        return ""

    def _extract_keywords(self, medline_citation: dict) -> list[str]:
        keywords = []
        for kw_list in medline_citation.get("KeywordList", []):
            keywords.extend(str(kw) for kw in kw_list)
        return keywords

    def _extract_mesh_terms(self, medline_citation: dict) -> list[str]:
        mesh_terms = []
        for mesh in medline_citation.get("MeshHeadingList", []):
            if "DescriptorName" in mesh:
                mesh_terms.append(str(mesh["DescriptorName"]))
        return mesh_terms


class PubMedClient(SearchMixin, EntrezBase):
    """
    PubMed client built on Biopython's Entrez module.

    Usage:
        client = PubMedClient(email="you@example.org")
        records, total = await client.search('"asthma"[Title/Abstract]', limit=10)
    """

    _service_name = "pubmed"

    async def close(self) -> None:
        """Entrez opens a connection per call; nothing to release."""
