"""Datto RMM API modules.

This package provides the core API client and the resource wrappers built
on it.

Classes:
    TokenProvider: Exchanges API key/secret for a bearer token
    RMMClient: HTTP client with cursor pagination and rate-limit retry
    AccountAPI: Account-wide collections (devices, sites, users, alerts)
    SiteAPI: Site reads and site-variable writes
    DeviceAPI: Device reads, UDF writes, quick jobs, software audits
    JobAPI: Job status and output

Exceptions:
    RMMError: Base exception for all client errors
    ConfigurationError: Missing or invalid configuration
    AuthError / TokenFetchError: Credential exchange failed
    TokenExpiredError: 401 during a fetch
    RateLimitError: Still rate limited after the retry policy was exhausted
    NotFoundError: 404
    NetworkError: Transport failures
    ResponseDecodeError: Malformed response body or pagination envelope

Resilience:
    RetryPolicy: Bound on rate-limit retries
    retry_async: Fixed-delay retry state machine
"""
from .account import AccountAPI
from .auth import AccessToken, TokenProvider, authenticate
from .client import RMMClient, fetch_all
from .devices import DeviceAPI
from .error_sanitizer import ErrorSanitizer, sanitize_error_message
from .exceptions import (
    APIError,
    AuthenticationError,
    AuthError,
    ConfigurationError,
    ConnectionError,
    ErrorCollector,
    ForbiddenError,
    InvalidCredentialsError,
    NetworkError,
    NotFoundError,
    PartialFetchError,
    RateLimitError,
    ResponseDecodeError,
    RMMError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    TokenFetchError,
    ValidationError,
)
from .jobs import JobAPI
from .pagination import Page, ResourceRequest, extract_page_cursor
from .resilience import (
    DEFAULT_RETRY_POLICY,
    RetryPolicy,
    RetryState,
    retry_async,
    run_concurrent_tasks,
)
from .sites import SiteAPI
from .transport import DEFAULT_API_URL

__all__ = [
    # Auth
    "TokenProvider",
    "AccessToken",
    "authenticate",
    # Client
    "RMMClient",
    "fetch_all",
    "Page",
    "ResourceRequest",
    "extract_page_cursor",
    "DEFAULT_API_URL",
    # Resources
    "AccountAPI",
    "SiteAPI",
    "DeviceAPI",
    "JobAPI",
    # Exceptions
    "RMMError",
    "ConfigurationError",
    "AuthenticationError",
    "TokenFetchError",
    "AuthError",
    "InvalidCredentialsError",
    "TokenExpiredError",
    "APIError",
    "RateLimitError",
    "ForbiddenError",
    "NotFoundError",
    "ValidationError",
    "ServerError",
    "NetworkError",
    "ConnectionError",
    "TimeoutError",
    "ResponseDecodeError",
    "PartialFetchError",
    "ErrorCollector",
    # Resilience
    "RetryPolicy",
    "RetryState",
    "DEFAULT_RETRY_POLICY",
    "retry_async",
    "run_concurrent_tasks",
    # Sanitization
    "ErrorSanitizer",
    "sanitize_error_message",
]
