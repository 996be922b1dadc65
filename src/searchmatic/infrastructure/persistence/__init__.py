"""
Relational persistence (SQLAlchemy).
"""

from .database import DEFAULT_DATABASE_URL, Database, create_db_engine
from .models import Article, Base, Conversation, Message, Project, Protocol, SearchHistory, User
from .repositories import (
    ArticleRepository,
    ConversationRepository,
    ImportStats,
    ProjectRepository,
    ProtocolRepository,
    SearchHistoryRepository,
    UserRepository,
    compute_dedup_hash,
    hash_token,
)

__all__ = [
    "DEFAULT_DATABASE_URL",
    "Article",
    "ArticleRepository",
    "Base",
    "Conversation",
    "ConversationRepository",
    "Database",
    "ImportStats",
    "Message",
    "Project",
    "ProjectRepository",
    "Protocol",
    "ProtocolRepository",
    "SearchHistory",
    "SearchHistoryRepository",
    "User",
    "UserRepository",
    "compute_dedup_hash",
    "create_db_engine",
    "hash_token",
]
