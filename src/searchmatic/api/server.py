"""
HTTP API Server.

JSON over HTTP for projects, multi-database search, article import,
screening and duplicate detection. Every route except /health needs
``Authorization: Bearer <token>`` (tokens come from ``searchmatic create-user``).

Errors share one body shape::

    {"error": "...", "category": "validation", "timestamp": "..."}
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from fastapi import Depends, FastAPI, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from searchmatic import __version__
from searchmatic.application.screening import DuplicateDetector
from searchmatic.config import load_settings
from searchmatic.container import ApplicationContainer
from searchmatic.infrastructure.persistence import (
    ArticleRepository,
    ConversationRepository,
    Database,
    ProjectRepository,
    ProtocolRepository,
    SearchHistoryRepository,
    UserRepository,
)
from searchmatic.models.search import SearchQuery, SearchResult
from searchmatic.shared.exceptions import AuthenticationError, ErrorCategory, SearchmaticError

from .schemas import (
    ArticleStatusUpdate,
    ConversationCreate,
    CountsRequest,
    DuplicateDetectionRequest,
    ImportRequest,
    MessageCreate,
    ProjectCreate,
    ProjectUpdate,
    ProtocolUpsert,
    SearchRequest,
)

logger = logging.getLogger(__name__)

STATUS_BY_CATEGORY = {
    ErrorCategory.AUTHENTICATION: 401,
    ErrorCategory.ACCESS: 403,
    ErrorCategory.VALIDATION: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.UPSTREAM: 502,
    ErrorCategory.CONFIGURATION: 500,
}

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class CurrentUser:
    id: int
    email: str


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _error_response(status_code: int, body: dict[str, Any]) -> JSONResponse:
    body["timestamp"] = _timestamp()
    headers = {"WWW-Authenticate": "Bearer"} if status_code == 401 else None
    return JSONResponse(status_code=status_code, content=body, headers=headers)


# =============================================================================
# Dependencies
# =============================================================================


def get_container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def get_database(request: Request) -> Database:
    return get_container(request).database()


def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    database: Database = Depends(get_database),
) -> CurrentUser:
    if credentials is None:
        raise AuthenticationError()
    with database.session() as session:
        user = UserRepository(session).authenticate(credentials.credentials)
        return CurrentUser(id=user.id, email=user.email)


# =============================================================================
# Blocking helpers for the async search routes
# =============================================================================


def _check_project_owner(database: Database, project_id: int, user_id: int) -> None:
    with database.session() as session:
        ProjectRepository(session).get_owned(project_id, user_id)


def _record_search(
    database: Database,
    project_id: int,
    query: SearchQuery,
    databases: list[str],
    results: list[SearchResult],
    import_results: bool,
) -> dict[str, Any]:
    with database.session() as session:
        history = SearchHistoryRepository(session).record(
            project_id=project_id,
            databases=databases,
            query_string=query.display_string(),
            query_params=query.to_dict(),
            result_count=len(results),
        )
        outcome: dict[str, Any] = {"search_id": history.id}
        if import_results:
            outcome["import"] = ArticleRepository(session).import_results(project_id, results).to_dict()
        return outcome


# =============================================================================
# App factory
# =============================================================================


def _make_lifespan(container: ApplicationContainer):
    @asynccontextmanager
    async def _lifespan(app: FastAPI):
        """Create tables on startup; close database clients on shutdown."""
        container.database().init_db()
        logger.info("Lifecycle: startup - database ready")
        try:
            yield
        finally:
            await container.aggregator().close()
            logger.info("Lifecycle: shutdown - HTTP clients closed")

    return _lifespan


def create_app(
    container: ApplicationContainer | None = None,
    settings: dict[str, Any] | None = None,
) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        container: Pre-configured container (tests override providers on it).
        settings: Settings dict when no container is given; defaults to the environment.
    """
    if container is None:
        container = ApplicationContainer()
        container.config.from_dict(settings or load_settings())

    app = FastAPI(
        title="Searchmatic API",
        description="Multi-database literature search for systematic reviews.",
        version=__version__,
        lifespan=_make_lifespan(container),
    )
    app.state.container = container

    origins = container.config.cors_origins() or ["*"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)
    _register_routes(app)
    return app


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(SearchmaticError)
    async def _searchmatic_error(request: Request, exc: SearchmaticError) -> JSONResponse:
        status_code = STATUS_BY_CATEGORY.get(exc.category, 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
        return _error_response(status_code, exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"loc": list(err.get("loc", ())), "message": err.get("msg", "")}
            for err in exc.errors()
        ]
        return _error_response(
            400,
            {"error": "Invalid request body", "category": ErrorCategory.VALIDATION.value, "details": details},
        )

    @app.exception_handler(Exception)
    async def _unexpected_error(request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return _error_response(500, {"error": "Internal server error", "category": "internal"})


def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "ok", "service": "searchmatic", "version": __version__}

    # ── Projects ────────────────────────────────────────────────────────

    @app.get("/api/projects")
    def list_projects(
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            projects = ProjectRepository(session).list_for_owner(user.id)
            return {"projects": [p.to_dict() for p in projects]}

    @app.post("/api/projects", status_code=201)
    def create_project(
        body: ProjectCreate,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).create(owner_id=user.id, **body.model_dump())
            logger.info(f"User {user.id} created project {project.id}")
            return project.to_dict()

    @app.get("/api/projects/{project_id}")
    def get_project(
        project_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            result = project.to_dict()
            result["protocol"] = project.protocol.to_dict() if project.protocol else None
            result["article_counts"] = ArticleRepository(session).count_by_status(project.id)
            return result

    @app.patch("/api/projects/{project_id}")
    def update_project(
        project_id: int,
        body: ProjectUpdate,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            repo = ProjectRepository(session)
            project = repo.update(repo.get_owned(project_id, user.id), **body.model_dump(exclude_unset=True))
            return project.to_dict()

    @app.delete("/api/projects/{project_id}", status_code=204)
    def delete_project(
        project_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> Response:
        with database.session() as session:
            repo = ProjectRepository(session)
            repo.delete(repo.get_owned(project_id, user.id))
        logger.info(f"User {user.id} deleted project {project_id}")
        return Response(status_code=204)

    @app.put("/api/projects/{project_id}/protocol")
    def upsert_protocol(
        project_id: int,
        body: ProtocolUpsert,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            protocol = ProtocolRepository(session).upsert(project.id, **body.model_dump())
            return protocol.to_dict()

    # ── Search ──────────────────────────────────────────────────────────

    @app.post("/api/search")
    async def search(
        body: SearchRequest,
        request: Request,
        user: CurrentUser = Depends(get_current_user),
    ) -> dict[str, Any]:
        container = get_container(request)
        database = container.database()
        aggregator = container.aggregator()

        if body.project_id is not None:
            await asyncio.to_thread(_check_project_owner, database, body.project_id, user.id)

        query = body.to_query()
        response = await aggregator.search(query, body.databases, body.limit)
        payload = response.to_dict()

        if body.project_id is not None:
            databases = [r.database for r in response.responses]
            payload.update(
                await asyncio.to_thread(
                    _record_search,
                    database,
                    body.project_id,
                    query,
                    databases,
                    response.results,
                    body.import_results,
                )
            )
        return payload

    @app.post("/api/search/counts")
    async def search_counts(
        body: CountsRequest,
        request: Request,
        user: CurrentUser = Depends(get_current_user),
    ) -> dict[str, Any]:
        counts = await get_container(request).aggregator().get_result_counts(body.to_query(), body.databases)
        return {"counts": [c.to_dict() for c in counts]}

    # ── Articles ────────────────────────────────────────────────────────

    @app.post("/api/projects/{project_id}/articles/import")
    def import_articles(
        project_id: int,
        body: ImportRequest,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            stats = ArticleRepository(session).import_results(project.id, [r.to_result() for r in body.results])
            return stats.to_dict()

    @app.get("/api/projects/{project_id}/articles")
    def list_articles(
        project_id: int,
        status: str | None = Query(default=None),
        limit: int | None = Query(default=None, ge=1, le=1000),
        offset: int = Query(default=0, ge=0),
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            articles = ArticleRepository(session).list(project.id, status=status, limit=limit, offset=offset)
            return {"articles": [a.to_dict() for a in articles], "count": len(articles)}

    @app.patch("/api/articles/{article_id}")
    def update_article_status(
        article_id: int,
        body: ArticleStatusUpdate,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            repo = ArticleRepository(session)
            article = repo.update_status(repo.get_owned(article_id, user.id), body.status)
            return article.to_dict()

    @app.delete("/api/articles/{article_id}", status_code=204)
    def delete_article(
        article_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> Response:
        with database.session() as session:
            repo = ArticleRepository(session)
            repo.delete(repo.get_owned(article_id, user.id))
        return Response(status_code=204)

    @app.post("/api/projects/{project_id}/duplicates")
    def detect_duplicates(
        project_id: int,
        body: DuplicateDetectionRequest,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            repo = ArticleRepository(session)
            candidates = repo.candidates_for_duplicate_check(project.id)

            result: dict[str, Any] = {
                "duplicate_groups": [],
                "total_duplicates": 0,
                "threshold": body.threshold,
                "auto_merged": False,
                "merged_count": 0,
            }
            if len(candidates) < 2:
                result["message"] = "Not enough articles to check for duplicates"
                return result

            groups = DuplicateDetector(body.threshold).detect(candidates)
            result["duplicate_groups"] = [g.to_dict() for g in groups]
            result["total_duplicates"] = sum(len(g.duplicates) for g in groups)

            if body.auto_merge:
                for group in groups:
                    for duplicate in group.duplicates:
                        repo.mark_duplicate(duplicate, group.primary.id, group.similarity_score)
                result["auto_merged"] = True
                result["merged_count"] = result["total_duplicates"]

            logger.info(
                f"Duplicate check on project {project.id}: {len(groups)} groups, "
                f"{result['total_duplicates']} duplicates (auto_merge={body.auto_merge})"
            )
            return result

    @app.get("/api/projects/{project_id}/searches")
    def list_searches(
        project_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            return {"searches": [s.to_dict() for s in SearchHistoryRepository(session).list(project.id)]}

    # ── Conversations ───────────────────────────────────────────────────

    @app.get("/api/projects/{project_id}/conversations")
    def list_conversations(
        project_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            return {"conversations": [c.to_dict() for c in ConversationRepository(session).list(project.id)]}

    @app.post("/api/projects/{project_id}/conversations", status_code=201)
    def create_conversation(
        project_id: int,
        body: ConversationCreate,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            project = ProjectRepository(session).get_owned(project_id, user.id)
            return ConversationRepository(session).create(project.id, body.title).to_dict()

    @app.get("/api/conversations/{conversation_id}/messages")
    def list_messages(
        conversation_id: int,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            repo = ConversationRepository(session)
            conversation = repo.get_owned(conversation_id, user.id)
            return {"messages": [m.to_dict() for m in repo.list_messages(conversation.id)]}

    @app.post("/api/conversations/{conversation_id}/messages", status_code=201)
    def add_message(
        conversation_id: int,
        body: MessageCreate,
        user: CurrentUser = Depends(get_current_user),
        database: Database = Depends(get_database),
    ) -> dict[str, Any]:
        with database.session() as session:
            repo = ConversationRepository(session)
            conversation = repo.get_owned(conversation_id, user.id)
            return repo.add_message(conversation, body.role, body.content).to_dict()
