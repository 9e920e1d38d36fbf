#!/usr/bin/env python3
"""Exception Hierarchy for the Datto RMM API client.

Every failure the client can produce is a typed exception, so callers can
tell a rate limit from an expired token from a missing device without
comparing strings.

Each class carries its machine-readable ``code`` and its default
``recoverable`` flag as class attributes; constructors only add the
context that class knows about to ``details``.

Exception Hierarchy:
    RMMError (base)
    ├── ConfigurationError (unrecoverable - fix config)
    ├── AuthenticationError
    │   ├── TokenFetchError (alias: AuthError)
    │   │   └── InvalidCredentialsError
    │   └── TokenExpiredError
    ├── APIError
    │   ├── RateLimitError
    │   ├── ForbiddenError
    │   ├── NotFoundError
    │   ├── ValidationError
    │   └── ServerError
    ├── NetworkError
    │   ├── ConnectionError
    │   └── TimeoutError
    ├── ResponseDecodeError
    └── PartialFetchError
"""
from datetime import datetime, timezone
from typing import Any, Optional


def _merge(details: Optional[dict[str, Any]], **extra: Any) -> dict[str, Any]:
    """Copy ``details`` and add every ``extra`` value that is set."""
    merged = dict(details or {})
    merged.update({key: value for key, value in extra.items() if value})
    return merged


class RMMError(Exception):
    """Base exception for all Datto RMM client errors.

    Attributes:
        message: Human-readable error description
        code: Machine-readable error code (e.g., "TOKEN_EXPIRED");
            defaults to the upper-cased class name
        details: Additional context as a dictionary
        timestamp: When the error occurred
        cause: The original exception that caused this error
        recoverable: Whether this error might be recoverable with retry
    """

    code: Optional[str] = None
    recoverable = False

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        recoverable: Optional[bool] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code or type(self).code or type(self).__name__.upper()
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.cause = cause
        if recoverable is not None:
            self.recoverable = recoverable

        if cause:
            self.__cause__ = cause

    def __str__(self) -> str:
        text = f"[{self.code}] {self.message}"
        if self.details:
            text += " (" + ", ".join(f"{k}={v}" for k, v in self.details.items()) + ")"
        return text

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "details": self.details,
            "timestamp": self.timestamp.isoformat(),
            "recoverable": self.recoverable,
            "cause": str(self.cause) if self.cause else None,
        }


class ConfigurationError(RMMError):
    """Raised when configuration is missing or invalid."""

    code = "CONFIGURATION_ERROR"

    def __init__(self, message: str, missing_keys: Optional[list[str]] = None, details=None, **kwargs):
        super().__init__(message, details=_merge(details, missing_keys=missing_keys), **kwargs)


# ============================================
# Authentication
# ============================================

class AuthenticationError(RMMError):
    """Base class for authentication-related errors."""


class TokenFetchError(AuthenticationError):
    """Raised when the credential exchange for a bearer token fails.

    Fatal for the operation that asked for the token; never retried.
    """

    code = "TOKEN_FETCH_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None, details=None, **kwargs):
        super().__init__(message, details=_merge(details, status_code=status_code), **kwargs)
        self.status_code = status_code


class InvalidCredentialsError(TokenFetchError):
    """Raised when the API key/secret pair is rejected (HTTP 400/401)."""

    code = "INVALID_CREDENTIALS"

    def __init__(self, message: str = "Invalid API credentials", **kwargs):
        super().__init__(message, **kwargs)


class TokenExpiredError(AuthenticationError):
    """Raised on HTTP 401 mid-fetch. The caller must re-authenticate."""

    code = "TOKEN_EXPIRED"

    def __init__(self, message: str = "Access token expired or invalid", **kwargs):
        super().__init__(message, **kwargs)


# Name used throughout the docs for a failed credential exchange
AuthError = TokenFetchError


# ============================================
# HTTP status errors
# ============================================

class APIError(RMMError):
    """A non-2xx response from a REST endpoint.

    Attributes:
        status_code: HTTP status code
        endpoint: API path that was called
        method: HTTP method
        response_body: Raw response body; ``details`` keeps the first 500 chars
    """

    def __init__(
        self,
        message: str,
        status_code: int,
        endpoint: Optional[str] = None,
        response_body: Optional[str] = None,
        method: str = "GET",
        details=None,
        **kwargs,
    ):
        kwargs.setdefault("code", self.code or f"API_ERROR_{status_code}")
        kwargs.setdefault("recoverable", self.recoverable or status_code == 429)
        details = _merge(
            details,
            status_code=status_code,
            endpoint=endpoint,
            method=method,
            response_body=response_body[:500] if response_body else None,
        )
        super().__init__(message, details=details, **kwargs)
        self.status_code = status_code
        self.endpoint = endpoint
        self.response_body = response_body
        self.method = method


class RateLimitError(APIError):
    """HTTP 429, or a 403 whose body carries a rate-limit marker.

    Attributes:
        retry_after: Seconds from a Retry-After header, if any (informational;
            the retry loop always waits its fixed delay)
        secondary: True when the signal came from a 403 response
        attempts: Attempts made before this error was surfaced
    """

    code = "RATE_LIMIT_EXCEEDED"
    recoverable = True

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        retry_after: Optional[float] = None,
        secondary: bool = False,
        details=None,
        **kwargs,
    ):
        kwargs.setdefault("status_code", 403 if secondary else 429)
        details = _merge(details, retry_after_seconds=retry_after, secondary=secondary)
        super().__init__(message, details=details, **kwargs)
        self.retry_after = retry_after
        self.secondary = secondary
        self.attempts = 1


class ForbiddenError(APIError):
    """HTTP 403 that is a genuine authorization failure."""

    code = "FORBIDDEN"

    def __init__(self, message: str = "Access forbidden", **kwargs):
        kwargs.setdefault("status_code", 403)
        super().__init__(message, **kwargs)


class NotFoundError(APIError):
    """HTTP 404. The multi-device audit skips these; everything else treats them as fatal."""

    code = "NOT_FOUND"

    def __init__(self, resource_type: str, resource_id: Optional[str] = None, details=None, **kwargs):
        message = f"{resource_type} '{resource_id}' not found" if resource_id else f"{resource_type} not found"
        kwargs.setdefault("status_code", 404)
        details = _merge(details, resource_type=resource_type, resource_id=resource_id)
        super().__init__(message, details=details, **kwargs)
        self.resource_type = resource_type
        self.resource_id = resource_id


class ValidationError(APIError):
    """HTTP 400/422, or a write rejected client-side before it is sent."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, details=None, **kwargs):
        kwargs.setdefault("status_code", 400)
        super().__init__(message, details=_merge(details, field=field), **kwargs)
        self.field = field


class ServerError(APIError):
    """HTTP 5xx. Not retried."""

    code = "SERVER_ERROR"

    def __init__(self, message: str = "Server error", **kwargs):
        kwargs.setdefault("status_code", 500)
        super().__init__(message, **kwargs)


# ============================================
# Transport and protocol errors
# ============================================

class NetworkError(RMMError):
    """Transport failure (DNS, TLS, refused or dropped connection)."""


class ConnectionError(NetworkError):
    """The server could not be reached."""

    code = "CONNECTION_ERROR"

    def __init__(self, message: str = "Failed to connect to server", host: Optional[str] = None, details=None, **kwargs):
        super().__init__(message, details=_merge(details, host=host), **kwargs)


class TimeoutError(NetworkError):
    """The request did not complete within the client timeout."""

    code = "TIMEOUT_ERROR"

    def __init__(self, message: str = "Request timed out", timeout_seconds: Optional[float] = None, details=None, **kwargs):
        super().__init__(message, details=_merge(details, timeout_seconds=timeout_seconds), **kwargs)


class ResponseDecodeError(RMMError):
    """A 2xx response that is not the JSON envelope we expect: undecodable
    bytes, invalid JSON, a malformed ``pageDetails`` or a bad page cursor."""

    code = "RESPONSE_DECODE_ERROR"

    def __init__(self, message: str = "Malformed API response", endpoint: Optional[str] = None, details=None, **kwargs):
        super().__init__(message, details=_merge(details, endpoint=endpoint), **kwargs)


# ============================================
# Multi-item fetches
# ============================================

class PartialFetchError(RMMError):
    """A multi-item fetch finished with some items skipped.

    Attributes:
        succeeded: Number of items fetched
        failed: Number of items skipped
        errors: The individual errors
    """

    code = "PARTIAL_FETCH_ERROR"
    recoverable = True

    def __init__(
        self,
        message: str,
        succeeded: int = 0,
        failed: int = 0,
        errors: Optional[list[Exception]] = None,
        details=None,
        **kwargs,
    ):
        details = dict(details or {}, succeeded=succeeded, failed=failed)
        if errors:
            details["sample_errors"] = [str(e)[:100] for e in errors[:5]]
        super().__init__(message, details=details, **kwargs)
        self.succeeded = succeeded
        self.failed = failed
        self.errors = errors or []


class ErrorCollector:
    """Collect per-item errors so a loop can keep going and report at the end.

    Example:
        skipped = ErrorCollector()
        for uid in device_uids:
            try:
                results[uid] = await devices.get_software(uid)
            except NotFoundError as e:
                skipped.add(e)

        if skipped.has_errors():
            raise skipped.to_exception(succeeded=len(results))
    """

    def __init__(self, max_errors: int = 100):
        self.errors: list[Exception] = []
        self.max_errors = max_errors

    def add(self, error: Exception) -> None:
        if len(self.errors) < self.max_errors:
            self.errors.append(error)

    def has_errors(self) -> bool:
        return bool(self.errors)

    def count(self) -> int:
        return len(self.errors)

    def to_exception(self, succeeded: int = 0) -> PartialFetchError:
        """Convert collected errors to a PartialFetchError."""
        if not self.errors:
            raise ValueError("No errors to convert")

        return PartialFetchError(
            message=f"{len(self.errors)} item(s) skipped during fetch",
            succeeded=succeeded,
            failed=len(self.errors),
            errors=list(self.errors),
        )


__all__ = [
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
]
