"""
Shared building blocks for Searchmatic.

Provides:
- Unified exception hierarchy
- Async utilities for upstream API calls
"""

from .async_utils import IntervalRateLimiter, gather_settled
from .exceptions import (
    AccessError,
    APIError,
    AuthenticationError,
    ConfigurationError,
    ErrorCategory,
    ErrorContext,
    InvalidParameterError,
    InvalidQueryError,
    NetworkError,
    NotFoundError,
    ParseError,
    ProjectAccessError,
    RateLimitError,
    SearchmaticError,
    ServiceUnavailableError,
    UnsupportedDatabaseError,
    UpstreamAPIError,
    ValidationError,
)

__all__ = [
    "IntervalRateLimiter",
    "gather_settled",
    "AccessError",
    "APIError",
    "AuthenticationError",
    "ConfigurationError",
    "ErrorCategory",
    "ErrorContext",
    "InvalidParameterError",
    "InvalidQueryError",
    "NetworkError",
    "NotFoundError",
    "ParseError",
    "ProjectAccessError",
    "RateLimitError",
    "SearchmaticError",
    "ServiceUnavailableError",
    "UnsupportedDatabaseError",
    "UpstreamAPIError",
    "ValidationError",
]
