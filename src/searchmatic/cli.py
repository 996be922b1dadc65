"""
Command line entry point.

Usage:
    searchmatic serve [--host HOST] [--port PORT]
    searchmatic init-db
    searchmatic create-user EMAIL
    searchmatic search KEYWORD [KEYWORD ...] [--databases pubmed crossref] [--limit N]

Settings come from the environment (see searchmatic.config); flags override them.
"""

from __future__ import annotations

import argparse
import asyncio
import datetime
import json
import logging
import sys
from typing import Any

from searchmatic import __version__
from searchmatic.config import load_settings, parse_log_level
from searchmatic.container import ApplicationContainer
from searchmatic.infrastructure.persistence import UserRepository
from searchmatic.models.search import SUPPORTED_DATABASES, FieldSearch, SearchQuery
from searchmatic.shared.exceptions import SearchmaticError

logger = logging.getLogger(__name__)


def _iso_date(value: str) -> str:
    try:
        return datetime.date.fromisoformat(value).isoformat()
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a YYYY-MM-DD date: {value!r}") from None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="searchmatic",
        description="Multi-database literature search service",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--database-url", help="SQLAlchemy database URL")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Run the HTTP API with uvicorn")
    serve.add_argument("--host", help="Host to bind to")
    serve.add_argument("--port", type=int, help="Port to bind to")

    subparsers.add_parser("init-db", help="Create database tables")

    create_user = subparsers.add_parser("create-user", help="Create a user and print its API token")
    create_user.add_argument("email")

    search = subparsers.add_parser("search", help="Run one multi-database search and print JSON")
    search.add_argument("keywords", nargs="*", help="Search keywords")
    search.add_argument(
        "--databases",
        nargs="+",
        default=None,
        help=f"Databases to search (default: all of {', '.join(SUPPORTED_DATABASES)})",
    )
    search.add_argument("--operator", choices=["AND", "OR"], default="AND")
    search.add_argument("--mesh", nargs="+", default=[], help="MeSH terms (PubMed only)")
    search.add_argument("--date-from", type=_iso_date, help="YYYY-MM-DD")
    search.add_argument("--date-to", type=_iso_date, help="YYYY-MM-DD")
    search.add_argument("--study-types", nargs="+", default=[])
    search.add_argument("--languages", nargs="+", default=[])
    search.add_argument("--title", help="Title field search")
    search.add_argument("--author", help="Author field search")
    search.add_argument("--journal", help="Journal field search")
    search.add_argument("--limit", type=int, default=20)
    search.add_argument("--counts", action="store_true", help="Only report hit counts")

    return parser


def _settings(args: argparse.Namespace) -> dict[str, Any]:
    settings = load_settings()
    if args.database_url:
        settings["database_url"] = args.database_url
    if args.log_level:
        settings["log_level"] = parse_log_level(args.log_level, source="--log-level")
    if getattr(args, "host", None):
        settings["api_host"] = args.host
    if getattr(args, "port", None):
        settings["api_port"] = args.port
    return settings


def _cmd_serve(container: ApplicationContainer, settings: dict[str, Any]) -> int:
    import uvicorn

    from searchmatic.api import create_app

    app = create_app(container=container)
    logger.info(f"Starting Searchmatic API on {settings['api_host']}:{settings['api_port']}")
    uvicorn.run(
        app,
        host=settings["api_host"],
        port=settings["api_port"],
        log_level=settings["log_level"].lower(),
    )
    return 0


def _cmd_init_db(container: ApplicationContainer) -> int:
    container.database().init_db()
    return 0


def _cmd_create_user(container: ApplicationContainer, email: str) -> int:
    database = container.database()
    database.init_db()
    with database.session() as session:
        user, token = UserRepository(session).create(email)
        user_id = user.id
    print(f"Created user {user_id} <{email}>")
    print(f"API token (shown once): {token}")
    return 0


async def _run_search(container: ApplicationContainer, args: argparse.Namespace) -> dict[str, Any]:
    query = SearchQuery(
        keywords=args.keywords,
        mesh_terms=args.mesh,
        date_from=args.date_from,
        date_to=args.date_to,
        study_types=args.study_types,
        languages=args.languages,
        boolean_operator=args.operator,
        field_search=FieldSearch(title=args.title, author=args.author, journal=args.journal),
    )
    aggregator = container.aggregator()
    try:
        if args.counts:
            counts = await aggregator.get_result_counts(query, args.databases)
            return {"counts": [c.to_dict() for c in counts]}
        response = await aggregator.search(query, args.databases, args.limit)
        return response.to_dict()
    finally:
        await aggregator.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = _settings(args)
    except SearchmaticError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings["log_level"],
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    container = ApplicationContainer()
    container.config.from_dict(settings)

    try:
        if args.command == "serve":
            return _cmd_serve(container, settings)
        if args.command == "init-db":
            return _cmd_init_db(container)
        if args.command == "create-user":
            return _cmd_create_user(container, args.email)
        if args.command == "search":
            print(json.dumps(asyncio.run(_run_search(container, args)), indent=2, ensure_ascii=False))
            return 0
    except SearchmaticError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
