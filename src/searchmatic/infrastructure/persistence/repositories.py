"""
Repositories - the only code that issues queries.

Each repository wraps one Session; the caller owns the transaction
(see Database.session). Ownership checks live here so that every path to a
project's data goes through them.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from typing import Any

from sqlalchemy import insert, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from searchmatic.models.search import SearchResult, normalize_doi
from searchmatic.shared.exceptions import (
    AuthenticationError,
    InvalidParameterError,
    NotFoundError,
    ProjectAccessError,
)

from .models import (
    ARTICLE_STATUSES,
    MESSAGE_ROLES,
    PROJECT_STATUSES,
    PROTOCOL_FRAMEWORKS,
    REVIEW_TYPES,
    Article,
    Conversation,
    Message,
    Project,
    Protocol,
    SearchHistory,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


def _require_choice(name: str, value: str, choices: tuple[str, ...]) -> None:
    if value not in choices:
        raise InvalidParameterError(name, value, f"one of {', '.join(choices)}")


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def compute_dedup_hash(result: SearchResult) -> str:
    """SHA-256 of the strongest identifier: DOI, then PMID, then database:id."""
    doi = normalize_doi(result.doi)
    if doi:
        key = f"doi:{doi}"
    elif result.pmid:
        key = f"pmid:{result.pmid}"
    else:
        key = f"{result.database}:{result.id}"
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


# =============================================================================
# Users
# =============================================================================


class UserRepository:
    def __init__(self, session: Session):
        self._session = session

    def create(self, email: str) -> tuple[User, str]:
        """Create a user and return it with its plaintext token (never stored)."""
        email = email.strip().lower()
        existing = self._session.scalar(select(User).where(User.email == email))
        if existing is not None:
            raise InvalidParameterError("email", email, "an email without an account")

        token = secrets.token_urlsafe(32)
        user = User(email=email, token_hash=hash_token(token))
        self._session.add(user)
        self._session.flush()
        logger.info(f"Created user {user.id} ({email})")
        return user, token

    def authenticate(self, token: str | None) -> User:
        if not token:
            raise AuthenticationError()
        user = self._session.scalar(select(User).where(User.token_hash == hash_token(token)))
        if user is None:
            raise AuthenticationError()
        return user


# =============================================================================
# Projects
# =============================================================================


class ProjectRepository:
    UPDATABLE_FIELDS = ("title", "description", "review_type", "status")

    def __init__(self, session: Session):
        self._session = session

    def create(
        self,
        owner_id: int,
        title: str,
        description: str | None = None,
        review_type: str = "systematic_review",
        status: str = "draft",
    ) -> Project:
        _require_choice("review_type", review_type, REVIEW_TYPES)
        _require_choice("status", status, PROJECT_STATUSES)
        self._check_title_free(owner_id, title)

        project = Project(
            user_id=owner_id,
            title=title,
            description=description,
            review_type=review_type,
            status=status,
        )
        self._session.add(project)
        self._session.flush()
        return project

    def _check_title_free(self, owner_id: int, title: str, exclude_id: int | None = None) -> None:
        stmt = select(Project.id).where(Project.user_id == owner_id, Project.title == title)
        if exclude_id is not None:
            stmt = stmt.where(Project.id != exclude_id)
        if self._session.scalar(stmt) is not None:
            raise InvalidParameterError("title", title, "a title not used by another of your projects")

    def list_for_owner(self, owner_id: int) -> list[Project]:
        stmt = select(Project).where(Project.user_id == owner_id).order_by(Project.updated_at.desc(), Project.id.desc())
        return list(self._session.scalars(stmt))

    def get_owned(self, project_id: int, owner_id: int) -> Project:
        """Raises ProjectAccessError for unknown projects and other users' projects alike."""
        project = self._session.get(Project, project_id)
        if project is None or project.user_id != owner_id:
            raise ProjectAccessError(project_id)
        return project

    def update(self, project: Project, **fields: Any) -> Project:
        for name, value in fields.items():
            if name not in self.UPDATABLE_FIELDS or value is None:
                continue
            if name == "review_type":
                _require_choice(name, value, REVIEW_TYPES)
            elif name == "status":
                _require_choice(name, value, PROJECT_STATUSES)
            elif name == "title":
                self._check_title_free(project.user_id, value, exclude_id=project.id)
            setattr(project, name, value)
        self._session.flush()
        return project

    def delete(self, project: Project) -> None:
        self._session.delete(project)
        self._session.flush()


# =============================================================================
# Protocols
# =============================================================================


class ProtocolRepository:
    def __init__(self, session: Session):
        self._session = session

    def get(self, project_id: int) -> Protocol | None:
        return self._session.scalar(select(Protocol).where(Protocol.project_id == project_id))

    def upsert(
        self,
        project_id: int,
        research_question: str,
        framework: str = "pico",
        elements: dict[str, Any] | None = None,
        inclusion_criteria: list[str] | None = None,
        exclusion_criteria: list[str] | None = None,
    ) -> Protocol:
        """Create the project's protocol or replace its contents."""
        _require_choice("framework", framework, PROTOCOL_FRAMEWORKS)

        protocol = self.get(project_id)
        if protocol is None:
            protocol = Protocol(project_id=project_id)
            self._session.add(protocol)

        protocol.research_question = research_question
        protocol.framework = framework
        protocol.elements = elements or {}
        protocol.inclusion_criteria = inclusion_criteria or []
        protocol.exclusion_criteria = exclusion_criteria or []
        self._session.flush()
        return protocol


# =============================================================================
# Articles
# =============================================================================


@dataclass
class ImportStats:
    inserted: int = 0
    skipped: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.skipped

    def to_dict(self) -> dict[str, int]:
        return {"inserted": self.inserted, "skipped": self.skipped, "total": self.total}


class ArticleRepository:
    def __init__(self, session: Session):
        self._session = session

    def _insert_ignoring_conflicts(self, row: dict[str, Any]) -> int:
        """Insert one row; returns 0 when (project_id, dedup_hash) already exists."""
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            stmt = postgresql.insert(Article.__table__).values(**row).on_conflict_do_nothing(
                index_elements=["project_id", "dedup_hash"]
            )
        elif dialect == "sqlite":
            stmt = sqlite.insert(Article.__table__).values(**row).on_conflict_do_nothing(
                index_elements=["project_id", "dedup_hash"]
            )
        else:
            # Rows were pre-filtered against existing hashes
            stmt = insert(Article.__table__).values(**row)
        return self._session.execute(stmt).rowcount

    @staticmethod
    def _row(project_id: int, result: SearchResult, dedup_hash: str) -> dict[str, Any]:
        """Column-keyed values for a core insert into the articles table."""
        now = utcnow()
        return {
            "project_id": project_id,
            "source_database": result.database,
            "external_id": result.external_id,
            "dedup_hash": dedup_hash,
            "title": result.title,
            "authors": list(result.authors),
            "abstract": result.abstract,
            "journal": result.journal,
            "publication_date": result.publication_date or None,
            "doi": result.doi,
            "pmid": result.pmid,
            "url": result.url or None,
            "metadata": {
                "arxiv_id": result.arxiv_id,
                "study_type": result.study_type,
                "keywords": result.keywords,
                "citation_count": result.citation_count,
                "sources": result.sources,
            },
            "status": "pending",
            "created_at": now,
            "updated_at": now,
        }

    def import_results(self, project_id: int, results: list[SearchResult]) -> ImportStats:
        """
        Insert results whose dedup_hash is new for the project.

        Repeats inside the batch and identifiers already imported are skipped,
        so importing the same DOI twice never creates a second row.
        """
        stats = ImportStats()
        if not results:
            return stats

        hashed = [(compute_dedup_hash(r), r) for r in results]
        existing = set(
            self._session.scalars(
                select(Article.dedup_hash).where(
                    Article.project_id == project_id,
                    Article.dedup_hash.in_([h for h, _ in hashed]),
                )
            )
        )

        seen: set[str] = set()
        for dedup_hash, result in hashed:
            if dedup_hash in existing or dedup_hash in seen:
                stats.skipped += 1
                continue
            seen.add(dedup_hash)
            if self._insert_ignoring_conflicts(self._row(project_id, result, dedup_hash)):
                stats.inserted += 1
            else:
                stats.skipped += 1

        self._session.flush()
        logger.info(f"Imported into project {project_id}: {stats.inserted} new, {stats.skipped} skipped")
        return stats

    def list(
        self,
        project_id: int,
        status: str | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Article]:
        stmt = select(Article).where(Article.project_id == project_id)
        if status is not None:
            _require_choice("status", status, ARTICLE_STATUSES)
            stmt = stmt.where(Article.status == status)
        stmt = stmt.order_by(Article.id).offset(offset)
        if limit is not None:
            stmt = stmt.limit(limit)
        return list(self._session.scalars(stmt))

    def get_owned(self, article_id: int, owner_id: int) -> Article:
        article = self._session.get(Article, article_id)
        if article is None:
            raise NotFoundError("Article", article_id)
        if article.project.user_id != owner_id:
            raise ProjectAccessError(article.project_id)
        return article

    def update_status(self, article: Article, status: str) -> Article:
        _require_choice("status", status, ARTICLE_STATUSES)
        article.status = status
        if status != "duplicate":
            article.duplicate_of = None
            article.similarity_score = None
        self._session.flush()
        return article

    def delete(self, article: Article) -> None:
        self._session.delete(article)
        self._session.flush()

    def candidates_for_duplicate_check(self, project_id: int) -> list[Article]:
        """Articles not yet marked as duplicates, oldest first."""
        stmt = (
            select(Article)
            .where(
                Article.project_id == project_id,
                Article.duplicate_of.is_(None),
                Article.status != "duplicate",
            )
            .order_by(Article.id)
        )
        return list(self._session.scalars(stmt))

    def mark_duplicate(self, article: Article, primary_id: int, similarity_score: float) -> None:
        article.status = "duplicate"
        article.duplicate_of = primary_id
        article.similarity_score = similarity_score

    def count_by_status(self, project_id: int) -> dict[str, int]:
        counts = dict.fromkeys(ARTICLE_STATUSES, 0)
        for article_status in self._session.scalars(select(Article.status).where(Article.project_id == project_id)):
            counts[article_status] = counts.get(article_status, 0) + 1
        return counts


# =============================================================================
# Conversations
# =============================================================================


class ConversationRepository:
    def __init__(self, session: Session):
        self._session = session

    def create(self, project_id: int, title: str | None = None) -> Conversation:
        conversation = Conversation(project_id=project_id, title=title or "New conversation")
        self._session.add(conversation)
        self._session.flush()
        return conversation

    def list(self, project_id: int) -> list[Conversation]:
        stmt = select(Conversation).where(Conversation.project_id == project_id).order_by(Conversation.id)
        return list(self._session.scalars(stmt))

    def get_owned(self, conversation_id: int, owner_id: int) -> Conversation:
        conversation = self._session.get(Conversation, conversation_id)
        if conversation is None:
            raise NotFoundError("Conversation", conversation_id)
        if conversation.project.user_id != owner_id:
            raise ProjectAccessError(conversation.project_id)
        return conversation

    def add_message(self, conversation: Conversation, role: str, content: str) -> Message:
        _require_choice("role", role, MESSAGE_ROLES)
        message = Message(conversation_id=conversation.id, role=role, content=content)
        self._session.add(message)
        self._session.flush()
        return message

    def list_messages(self, conversation_id: int) -> list[Message]:
        stmt = select(Message).where(Message.conversation_id == conversation_id).order_by(Message.id)
        return list(self._session.scalars(stmt))


# =============================================================================
# Search history
# =============================================================================


class SearchHistoryRepository:
    def __init__(self, session: Session):
        self._session = session

    def record(
        self,
        project_id: int,
        databases: list[str],
        query_string: str,
        query_params: dict[str, Any],
        result_count: int,
    ) -> SearchHistory:
        entry = SearchHistory(
            project_id=project_id,
            databases=databases,
            query_string=query_string,
            query_params=query_params,
            result_count=result_count,
        )
        self._session.add(entry)
        self._session.flush()
        return entry

    def list(self, project_id: int) -> list[SearchHistory]:
        stmt = (
            select(SearchHistory)
            .where(SearchHistory.project_id == project_id)
            .order_by(SearchHistory.executed_at.desc(), SearchHistory.id.desc())
        )
        return list(self._session.scalars(stmt))
