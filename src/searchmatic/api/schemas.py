"""
Request bodies for the HTTP API (pydantic).

Responses are plain dicts built from the models' to_dict(); only input is
validated here.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

from searchmatic.models.search import FieldSearch, SearchQuery, SearchResult


class FieldSearchModel(BaseModel):
    title: str | None = None
    abstract: str | None = None
    author: str | None = None
    journal: str | None = None


class SearchQueryModel(BaseModel):
    keywords: list[str] = Field(default_factory=list)
    mesh_terms: list[str] = Field(default_factory=list)
    date_from: date | None = None
    date_to: date | None = None
    study_types: list[str] = Field(default_factory=list)
    languages: list[str] = Field(default_factory=list)
    boolean_operator: Literal["AND", "OR"] = "AND"
    field_search: FieldSearchModel | None = None
    databases: list[str] | None = None

    @model_validator(mode="after")
    def _check_date_range(self) -> SearchQueryModel:
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    def to_query(self) -> SearchQuery:
        fs = self.field_search or FieldSearchModel()
        return SearchQuery(
            keywords=self.keywords,
            mesh_terms=self.mesh_terms,
            date_from=self.date_from.isoformat() if self.date_from else None,
            date_to=self.date_to.isoformat() if self.date_to else None,
            study_types=self.study_types,
            languages=self.languages,
            boolean_operator=self.boolean_operator,
            field_search=FieldSearch(**fs.model_dump()),
        )


class SearchRequest(SearchQueryModel):
    limit: int = Field(default=20, ge=1, le=200)
    project_id: int | None = None
    import_results: bool = False

    @model_validator(mode="after")
    def _import_needs_project(self) -> SearchRequest:
        if self.import_results and self.project_id is None:
            raise ValueError("import_results requires project_id")
        return self


class CountsRequest(SearchQueryModel):
    pass


class ProjectCreate(BaseModel):
    title: str = Field(min_length=1, max_length=500)
    description: str | None = None
    review_type: str = "systematic_review"
    status: str = "draft"


class ProjectUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=500)
    description: str | None = None
    review_type: str | None = None
    status: str | None = None


class ProtocolUpsert(BaseModel):
    research_question: str = Field(min_length=1)
    framework: Literal["pico", "spider", "other"] = "pico"
    elements: dict[str, Any] = Field(default_factory=dict)
    inclusion_criteria: list[str] = Field(default_factory=list)
    exclusion_criteria: list[str] = Field(default_factory=list)


class SearchResultModel(BaseModel):
    """A SearchResult as returned by POST /api/search."""

    id: str
    database: str
    title: str = "No title"
    authors: list[str] = Field(default_factory=list)
    abstract: str | None = None
    journal: str | None = None
    publication_date: str = ""
    doi: str | None = None
    pmid: str | None = None
    arxiv_id: str | None = None
    url: str = ""
    study_type: str | None = None
    keywords: list[str] = Field(default_factory=list)
    citation_count: int | None = None
    sources: list[str] = Field(default_factory=list)

    def to_result(self) -> SearchResult:
        return SearchResult.from_dict(self.model_dump())


class ImportRequest(BaseModel):
    results: list[SearchResultModel]


class ArticleStatusUpdate(BaseModel):
    status: Literal["pending", "included", "excluded", "duplicate"]


class DuplicateDetectionRequest(BaseModel):
    threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    auto_merge: bool = False


class ConversationCreate(BaseModel):
    title: str | None = Field(default=None, max_length=500)


class MessageCreate(BaseModel):
    role: Literal["user", "assistant", "system"] = "user"
    content: str = Field(min_length=1)
