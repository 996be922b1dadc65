"""
NCBI Entrez access for PubMed search.
"""

from .base import EntrezBase, translate_entrez_error
from .search import PubMedClient, SearchMixin

__all__ = ["EntrezBase", "PubMedClient", "SearchMixin", "translate_entrez_error"]
