"""
ORM models for projects and the articles imported into them.

Everything is project scoped. Articles carry a dedup_hash derived from their
best external identifier; (project_id, dedup_hash) is unique, so the same
work is never stored twice in one project.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()

ARTICLE_STATUSES = ("pending", "included", "excluded", "duplicate")
PROJECT_STATUSES = ("draft", "active", "completed", "archived")
REVIEW_TYPES = ("systematic_review", "scoping_review", "meta_analysis", "rapid_review", "narrative_review")
PROTOCOL_FRAMEWORKS = ("pico", "spider", "other")
MESSAGE_ROLES = ("user", "assistant", "system")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


class User(Base):
    """API user. Only a SHA-256 hash of the bearer token is stored."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=False, unique=True)
    token_hash = Column(String(64), nullable=False, unique=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    projects = relationship("Project", back_populates="owner", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "email": self.email, "created_at": _iso(self.created_at)}


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (UniqueConstraint("user_id", "title", name="uq_projects_owner_title"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False)
    description = Column(Text, nullable=True)
    review_type = Column(String(32), nullable=False, default="systematic_review")
    status = Column(String(16), nullable=False, default="draft")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    owner = relationship("User", back_populates="projects")
    protocol = relationship("Protocol", back_populates="project", uselist=False, cascade="all, delete-orphan")
    articles = relationship("Article", back_populates="project", cascade="all, delete-orphan")
    conversations = relationship("Conversation", back_populates="project", cascade="all, delete-orphan")
    searches = relationship("SearchHistory", back_populates="project", cascade="all, delete-orphan")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "review_type": self.review_type,
            "status": self.status,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Protocol(Base):
    """Review protocol; one per project."""

    __tablename__ = "protocols"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
    research_question = Column(Text, nullable=False)
    framework = Column(String(16), nullable=False, default="pico")
    elements = Column(JSON, nullable=False, default=dict)
    inclusion_criteria = Column(JSON, nullable=False, default=list)
    exclusion_criteria = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", back_populates="protocol")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "research_question": self.research_question,
            "framework": self.framework,
            "elements": self.elements or {},
            "inclusion_criteria": self.inclusion_criteria or [],
            "exclusion_criteria": self.exclusion_criteria or [],
            "updated_at": _iso(self.updated_at),
        }


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    title = Column(String(500), nullable=False, default="New conversation")
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", back_populates="conversations")
    messages = relationship(
        "Message",
        back_populates="conversation",
        cascade="all, delete-orphan",
        order_by="Message.id",
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "title": self.title,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    conversation_id = Column(Integer, ForeignKey("conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    conversation = relationship("Conversation", back_populates="messages")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "conversation_id": self.conversation_id,
            "role": self.role,
            "content": self.content,
            "created_at": _iso(self.created_at),
        }


class Article(Base):
    """An imported search result under screening."""

    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("project_id", "dedup_hash", name="uq_articles_project_dedup"),
        Index("ix_articles_project_status", "project_id", "status"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False)
    source_database = Column(String(32), nullable=False)
    external_id = Column(String(255), nullable=False)
    dedup_hash = Column(String(64), nullable=False)
    title = Column(Text, nullable=False)
    authors = Column(JSON, nullable=False, default=list)
    abstract = Column(Text, nullable=True)
    journal = Column(String(500), nullable=True)
    publication_date = Column(String(32), nullable=True)
    doi = Column(String(255), nullable=True)
    pmid = Column(String(32), nullable=True)
    url = Column(Text, nullable=True)
    # "metadata" is reserved on declarative classes
    extra_metadata = Column("metadata", JSON, nullable=False, default=dict)
    status = Column(String(16), nullable=False, default="pending")
    duplicate_of = Column(Integer, ForeignKey("articles.id", ondelete="SET NULL"), nullable=True)
    similarity_score = Column(Float, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    project = relationship("Project", back_populates="articles")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "source_database": self.source_database,
            "external_id": self.external_id,
            "title": self.title,
            "authors": self.authors or [],
            "abstract": self.abstract,
            "journal": self.journal,
            "publication_date": self.publication_date,
            "doi": self.doi,
            "pmid": self.pmid,
            "url": self.url,
            "metadata": self.extra_metadata or {},
            "status": self.status,
            "duplicate_of": self.duplicate_of,
            "similarity_score": self.similarity_score,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class SearchHistory(Base):
    """One executed search, kept for reporting (PRISMA counts)."""

    __tablename__ = "search_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    databases = Column(JSON, nullable=False, default=list)
    query_string = Column(Text, nullable=False)
    query_params = Column(JSON, nullable=False, default=dict)
    result_count = Column(Integer, nullable=False, default=0)
    executed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    project = relationship("Project", back_populates="searches")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "databases": self.databases or [],
            "query_string": self.query_string,
            "query_params": self.query_params or {},
            "result_count": self.result_count,
            "executed_at": _iso(self.executed_at),
        }
