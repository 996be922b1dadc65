"""
Infrastructure Layer - external databases and persistence.

Contains:
- ncbi: PubMed via Biopython Entrez
- sources: httpx clients for CrossRef, arXiv and DOAJ
- persistence: SQLAlchemy models, session management and repositories
"""
