"""
Exception hierarchy for Searchmatic.

Every error surfaced to a caller falls in one of a handful of categories,
which the HTTP layer maps straight to a status code.

Exception Hierarchy:
    SearchmaticError (base)
    ├── AuthenticationError
    ├── AccessError
    │   └── ProjectAccessError
    ├── APIError                      (upstream database failures)
    │   ├── UpstreamAPIError
    │   ├── RateLimitError
    │   ├── NetworkError
    │   ├── ServiceUnavailableError
    │   └── ParseError
    ├── ValidationError
    │   ├── InvalidQueryError
    │   ├── InvalidParameterError
    │   └── UnsupportedDatabaseError
    ├── NotFoundError
    └── ConfigurationError
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(Enum):
    """Categories for error classification."""

    AUTHENTICATION = "authentication"
    ACCESS = "access"
    VALIDATION = "validation"
    UPSTREAM = "upstream"
    NOT_FOUND = "not_found"
    CONFIGURATION = "config"


@dataclass(frozen=True, slots=True)
class ErrorContext:
    """Extra details attached to an error."""

    operation: str | None = None
    database: str | None = None
    input_value: Any = None
    suggestion: str | None = None
    retry_after: float | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class SearchmaticError(Exception):
    """
    Base exception for all Searchmatic errors.

    Carries a category (used for HTTP status mapping) and an ErrorContext.
    """

    category: ErrorCategory = ErrorCategory.UPSTREAM

    def __init__(
        self,
        message: str,
        *,
        context: ErrorContext | None = None,
        category: ErrorCategory | None = None,
    ) -> None:
        super().__init__(message)
        self.context = context or ErrorContext()
        if category is not None:
            self.category = category

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "error": str(self),
            "category": self.category.value,
        }
        if self.context.database:
            result["database"] = self.context.database
        if self.context.suggestion:
            result["suggestion"] = self.context.suggestion
        if self.context.retry_after:
            result["retry_after_seconds"] = self.context.retry_after
        return result


class AuthenticationError(SearchmaticError):
    """Missing, malformed or unknown bearer token."""

    category = ErrorCategory.AUTHENTICATION

    def __init__(self, message: str = "Unauthorized", *, context: ErrorContext | None = None) -> None:
        super().__init__(message, context=context)


class AccessError(SearchmaticError):
    """The authenticated user may not touch the requested resource."""

    category = ErrorCategory.ACCESS


class ProjectAccessError(AccessError):
    """Raised when a project does not exist or belongs to another user."""

    def __init__(self, project_id: int | str, *, context: ErrorContext | None = None) -> None:
        super().__init__("Project not found or access denied", context=context)
        self.project_id = project_id


# =============================================================================
# Upstream (external database) errors
# =============================================================================


class APIError(SearchmaticError):
    """Base class for failures talking to an external academic database."""

    category = ErrorCategory.UPSTREAM


class UpstreamAPIError(APIError):
    """Non-success HTTP status that is neither a rate limit nor a 5xx."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        database: str | None = None,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(message, context=context or ErrorContext(database=database))
        self.status_code = status_code


class RateLimitError(APIError):
    """Raised when the external database answers HTTP 429."""

    def __init__(
        self,
        message: str = "API rate limit exceeded",
        *,
        retry_after: float | None = None,
        database: str | None = None,
    ) -> None:
        ctx = ErrorContext(
            database=database,
            retry_after=retry_after,
            suggestion="Wait and repeat the search",
        )
        super().__init__(message, context=ctx)


class NetworkError(APIError):
    """Raised for connection failures and timeouts."""

    def __init__(
        self,
        message: str = "Network connection failed",
        *,
        database: str | None = None,
    ) -> None:
        super().__init__(message, context=ErrorContext(database=database))


class ServiceUnavailableError(APIError):
    """Raised when the external service answers with a 5xx status."""

    def __init__(
        self,
        message: str = "Service temporarily unavailable",
        *,
        service: str = "upstream",
    ) -> None:
        super().__init__(f"{service}: {message}", context=ErrorContext(database=service))


class ParseError(APIError):
    """Raised when a response body cannot be decoded."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        full_msg = f"Parse error: {message}"
        if source:
            full_msg = f"Parse error ({source}): {message}"
        super().__init__(full_msg, context=ErrorContext(database=source))


# =============================================================================
# Validation errors
# =============================================================================


class ValidationError(SearchmaticError):
    """Base class for invalid input."""

    category = ErrorCategory.VALIDATION


class InvalidQueryError(ValidationError):
    """Raised when a search query cannot be translated."""

    def __init__(
        self,
        reason: str = "Query needs at least one keyword or field search",
        *,
        context: ErrorContext | None = None,
    ) -> None:
        super().__init__(f"Invalid query: {reason}", context=context)


class InvalidParameterError(ValidationError):
    """Raised when a parameter value is invalid."""

    def __init__(self, param_name: str, value: Any, expected: str) -> None:
        ctx = ErrorContext(input_value=value, suggestion=f"Expected {expected}")
        super().__init__(
            f"Invalid parameter '{param_name}': {value!r} (expected {expected})",
            context=ctx,
        )
        self.param_name = param_name


class UnsupportedDatabaseError(ValidationError):
    """Raised for a database identifier with no client behind it."""

    def __init__(self, database: str, supported: list[str] | tuple[str, ...]) -> None:
        ctx = ErrorContext(
            database=database,
            input_value=database,
            suggestion=f"Use one of: {', '.join(supported)}",
        )
        super().__init__(f"Unsupported database: {database}", context=ctx)


# =============================================================================
# Data / configuration errors
# =============================================================================


class NotFoundError(SearchmaticError):
    """Raised when a requested record does not exist."""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, resource: str, identifier: int | str | None = None) -> None:
        msg = f"{resource} not found"
        if identifier is not None:
            msg = f"{resource} not found: {identifier}"
        super().__init__(msg, context=ErrorContext(input_value=identifier))


class ConfigurationError(SearchmaticError):
    """Raised for invalid settings."""

    category = ErrorCategory.CONFIGURATION
