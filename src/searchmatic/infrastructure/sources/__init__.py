"""
HTTP clients for the academic databases searched besides PubMed.
"""

from .arxiv import ArXivClient
from .base_client import BaseAPIClient
from .crossref import CrossRefClient
from .doaj import DOAJClient

__all__ = ["ArXivClient", "BaseAPIClient", "CrossRefClient", "DOAJClient"]
