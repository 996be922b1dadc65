"""
Searchmatic - multi-database literature search for systematic reviews.

Searches PubMed, CrossRef, arXiv and DOAJ concurrently, normalizes and merges
their records, and stores imported results per review project.

Usage:
    from searchmatic.application.search import SearchAggregator
    from searchmatic.models import SearchQuery

    response = await aggregator.search(SearchQuery(keywords=["asthma"]), ["pubmed", "doaj"])
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
