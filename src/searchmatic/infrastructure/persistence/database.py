"""
Engine and session management.

SQLite by default; any SQLAlchemy URL works (PostgreSQL in production).
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite:///searchmatic.db"


def normalize_database_url(url: str) -> str:
    # SQLAlchemy does not recognise the postgres:// scheme
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def create_db_engine(url: str = DEFAULT_DATABASE_URL, echo: bool = False) -> Engine:
    """
    Build an engine for a database URL.

    In-memory SQLite ("sqlite://") uses a StaticPool so every session sees the
    same database; all SQLite connections may cross threads because the API
    runs blocking work in worker threads.
    """
    url = normalize_database_url(url)
    if url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(url, echo=echo, **kwargs)

        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, _record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

        return engine

    return create_engine(url, echo=echo, pool_pre_ping=True)


class Database:
    """
    Owns the engine and session factory.

    Usage:
        db = Database("sqlite://")
        db.init_db()
        with db.session() as session:
            ...
    """

    def __init__(self, url: str = DEFAULT_DATABASE_URL, echo: bool = False):
        self.url = normalize_database_url(url)
        self.engine = create_db_engine(self.url, echo=echo)
        self._session_factory = sessionmaker(bind=self.engine, autocommit=False, autoflush=False, expire_on_commit=False)

    def init_db(self) -> None:
        """Create missing tables; existing tables are left alone."""
        Base.metadata.create_all(bind=self.engine)
        logger.info(f"Database initialised at {self.engine.url.render_as_string(hide_password=True)}")

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on any error."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
