"""
Tests for the persistence layer on in-memory SQLite.
"""

from __future__ import annotations

import pytest

from searchmatic.infrastructure.persistence import (
    ArticleRepository,
    ConversationRepository,
    ProjectRepository,
    ProtocolRepository,
    SearchHistoryRepository,
    UserRepository,
)
from searchmatic.infrastructure.persistence.database import normalize_database_url
from searchmatic.infrastructure.persistence.repositories import compute_dedup_hash, hash_token
from searchmatic.models.search import SearchResult
from searchmatic.shared.exceptions import (
    AuthenticationError,
    InvalidParameterError,
    NotFoundError,
    ProjectAccessError,
)


@pytest.fixture
def other_user_id(database) -> int:
    with database.session() as session:
        user, _ = UserRepository(session).create("someone.else@example.org")
        return user.id


# =============================================================================
# Users
# =============================================================================


class TestUsers:
    def test_token_authenticates(self, database, user_token):
        user_id, token = user_token
        with database.session() as session:
            assert UserRepository(session).authenticate(token).id == user_id

    def test_only_token_hash_stored(self, database, user_token):
        user_id, token = user_token
        with database.session() as session:
            user = UserRepository(session).authenticate(token)
            assert user.token_hash == hash_token(token)
            assert user.token_hash != token

    @pytest.mark.parametrize("token", [None, "", "not-a-token"])
    def test_bad_token(self, database, user_token, token):
        with database.session() as session, pytest.raises(AuthenticationError):
            UserRepository(session).authenticate(token)

    def test_duplicate_email(self, database, user_token):
        with database.session() as session, pytest.raises(InvalidParameterError):
            UserRepository(session).create("Reviewer@Example.org ")


# =============================================================================
# Projects
# =============================================================================


class TestProjects:
    def test_owner_only(self, database, project_id, user_token, other_user_id):
        user_id, _ = user_token
        with database.session() as session:
            repo = ProjectRepository(session)
            assert repo.get_owned(project_id, user_id).title == "Metformin review"
            with pytest.raises(ProjectAccessError):
                repo.get_owned(project_id, other_user_id)
            with pytest.raises(ProjectAccessError):
                repo.get_owned(9999, user_id)

    def test_title_unique_per_owner(self, database, project_id, user_token, other_user_id):
        user_id, _ = user_token
        with database.session() as session:
            repo = ProjectRepository(session)
            with pytest.raises(InvalidParameterError):
                repo.create(owner_id=user_id, title="Metformin review")
            assert repo.create(owner_id=other_user_id, title="Metformin review").id != project_id

    def test_update_validates(self, database, project_id, user_token):
        user_id, _ = user_token
        with database.session() as session:
            repo = ProjectRepository(session)
            project = repo.get_owned(project_id, user_id)
            repo.update(project, status="active", description="Updated", owner_id=42)
            assert project.status == "active"
            assert project.user_id == user_id
            with pytest.raises(InvalidParameterError):
                repo.update(project, review_type="vibes")

    def test_list_for_owner(self, database, project_id, user_token, other_user_id):
        user_id, _ = user_token
        with database.session() as session:
            repo = ProjectRepository(session)
            assert [p.id for p in repo.list_for_owner(user_id)] == [project_id]
            assert repo.list_for_owner(other_user_id) == []

    def test_protocol_upsert(self, database, project_id):
        with database.session() as session:
            repo = ProtocolRepository(session)
            first = repo.upsert(project_id, "Does metformin reduce CV events?", elements={"P": "adults"})
            second = repo.upsert(project_id, "Revised question", framework="spider")
            assert first.id == second.id
            assert second.to_dict()["elements"] == {}
            assert second.framework == "spider"


# =============================================================================
# Articles
# =============================================================================


class TestArticleImport:
    def test_same_doi_imported_once(self, database, project_id, pubmed_result, crossref_result):
        with database.session() as session:
            stats = ArticleRepository(session).import_results(project_id, [pubmed_result, crossref_result])
        assert stats.to_dict() == {"inserted": 1, "skipped": 1, "total": 2}

        with database.session() as session:
            again = ArticleRepository(session).import_results(project_id, [crossref_result])
            assert again.inserted == 0
            assert len(ArticleRepository(session).list(project_id)) == 1

    def test_insert_conflict_ignored(self, database, project_id, arxiv_result):
        with database.session() as session:
            repo = ArticleRepository(session)
            row = repo._row(project_id, arxiv_result, compute_dedup_hash(arxiv_result))
            assert repo._insert_ignoring_conflicts(row) == 1
            assert repo._insert_ignoring_conflicts(row) == 0

    def test_stored_fields(self, database, project_id, arxiv_result):
        with database.session() as session:
            ArticleRepository(session).import_results(project_id, [arxiv_result])
            article = ArticleRepository(session).list(project_id)[0].to_dict()
        assert article["status"] == "pending"
        assert article["external_id"] == "arxiv:2301.00001"
        assert article["metadata"]["arxiv_id"] == "2301.00001"
        assert article["metadata"]["sources"] == ["arxiv"]

    def test_dedup_hash_prefers_doi(self, pubmed_result, crossref_result):
        assert compute_dedup_hash(pubmed_result) == compute_dedup_hash(crossref_result)
        no_doi = SearchResult(id="1", database="pubmed", title="t", pmid="1")
        assert compute_dedup_hash(no_doi) != compute_dedup_hash(
            SearchResult(id="1", database="doaj", title="t")
        )


class TestArticleAccess:
    def test_status_update_and_counts(self, database, project_id, user_token, pubmed_result, arxiv_result):
        user_id, _ = user_token
        with database.session() as session:
            repo = ArticleRepository(session)
            repo.import_results(project_id, [pubmed_result, arxiv_result])
            first, second = repo.list(project_id)

            repo.mark_duplicate(second, first.id, 0.91)
            session.flush()
            assert [a.id for a in repo.candidates_for_duplicate_check(project_id)] == [first.id]

            repo.update_status(repo.get_owned(second.id, user_id), "included")
            assert second.duplicate_of is None
            assert second.similarity_score is None
            assert repo.count_by_status(project_id) == {
                "pending": 1,
                "included": 1,
                "excluded": 0,
                "duplicate": 0,
            }
            assert [a.id for a in repo.list(project_id, status="included")] == [second.id]

    def test_invalid_status(self, database, project_id):
        with database.session() as session, pytest.raises(InvalidParameterError):
            ArticleRepository(session).list(project_id, status="maybe")

    def test_other_users_article(self, database, project_id, other_user_id, arxiv_result):
        with database.session() as session:
            repo = ArticleRepository(session)
            repo.import_results(project_id, [arxiv_result])
            article_id = repo.list(project_id)[0].id
            with pytest.raises(ProjectAccessError):
                repo.get_owned(article_id, other_user_id)
            with pytest.raises(NotFoundError):
                repo.get_owned(article_id + 100, other_user_id)

    def test_project_delete_cascades(self, database, project_id, user_token, arxiv_result):
        user_id, _ = user_token
        with database.session() as session:
            ArticleRepository(session).import_results(project_id, [arxiv_result])
        with database.session() as session:
            repo = ProjectRepository(session)
            repo.delete(repo.get_owned(project_id, user_id))
        with database.session() as session:
            assert ArticleRepository(session).list(project_id) == []


# =============================================================================
# Conversations / history
# =============================================================================


class TestConversations:
    def test_messages_in_order(self, database, project_id, user_token, other_user_id):
        user_id, _ = user_token
        with database.session() as session:
            repo = ConversationRepository(session)
            conversation = repo.create(project_id)
            assert conversation.title == "New conversation"
            repo.add_message(conversation, "user", "Which trials are missing?")
            repo.add_message(conversation, "assistant", "Try CrossRef.")
            assert [m.role for m in repo.list_messages(conversation.id)] == ["user", "assistant"]

            assert repo.get_owned(conversation.id, user_id) is conversation
            with pytest.raises(ProjectAccessError):
                repo.get_owned(conversation.id, other_user_id)
            with pytest.raises(InvalidParameterError):
                repo.add_message(conversation, "robot", "beep")


class TestSearchHistory:
    def test_record_and_list(self, database, project_id):
        with database.session() as session:
            repo = SearchHistoryRepository(session)
            repo.record(project_id, ["pubmed"], "asthma", {"keywords": ["asthma"]}, 12)
            entries = repo.list(project_id)
            assert entries[0].to_dict()["result_count"] == 12
            assert entries[0].databases == ["pubmed"]


def test_postgres_scheme_normalized():
    assert normalize_database_url("postgres://u:p@h/db") == "postgresql://u:p@h/db"
    assert normalize_database_url("sqlite://") == "sqlite://"
