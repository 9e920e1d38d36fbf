#!/usr/bin/env python3
"""HTTP Client for the Datto RMM REST API.

This module provides the client every resource wrapper is built on. It
handles the common concerns of talking to the API:

    - Bearer token authentication (the token is supplied by the caller)
    - Rate limit handling: 429, and 403 carrying a rate-limit marker, are
      retried after a fixed delay under a bounded RetryPolicy
    - Cursor pagination via ``pageDetails.nextPageUrl``
    - Connection pooling via a shared aiohttp session
    - Typed exceptions for every failure

Design Philosophy:
    This client knows HOW to talk to Datto RMM, but not WHAT to fetch.
    It has no knowledge of devices, sites or jobs; that knowledge belongs in
    the resource classes (AccountAPI, SiteAPI, DeviceAPI, JobAPI).

    The client never refreshes the token. A 401 aborts the operation with
    TokenExpiredError and the caller re-authenticates.

Usage:
    token = await TokenProvider().authenticate()
    async with RMMClient(token) as client:
        # Single request
        account = await client.get("/v2/account")

        # Paginated fetch (memory efficient)
        async for devices in client.paginate("/v2/account/devices", items_key="devices"):
            for device in devices:
                process(device)

        # Fetch everything (convenience)
        sites = await client.fetch_all("/v2/account/sites", items_key="sites")
"""
import asyncio
import json
import logging
import os
from typing import Any, AsyncIterator, Optional

import aiohttp

from .exceptions import (
    APIError,
    ConfigurationError,
    ConnectionError,
    ForbiddenError,
    NetworkError,
    NotFoundError,
    RateLimitError,
    ResponseDecodeError,
    ServerError,
    TimeoutError,
    TokenExpiredError,
    ValidationError,
)
from .pagination import CURSOR_PARAM, Page, ResourceRequest
from .resilience import RetryPolicy, retry_async
from .transport import (
    DEFAULT_API_URL,
    DEFAULT_CONNECT_TIMEOUT_SECONDS,
    DEFAULT_TIMEOUT_SECONDS,
    create_ssl_context,
    normalize_api_url,
)

logger = logging.getLogger(__name__)

# A 403 is only treated as rate limiting when its body says so
SECONDARY_RATE_LIMIT_MARKERS = ("rate limit", "too many requests")


class RMMClient:
    """Async HTTP client for the Datto RMM API.

    Use as an async context manager so the session is always closed:

        async with RMMClient(token) as client:
            data = await client.get("/v2/account")

    Attributes:
        base_url: Platform base URL (e.g., "https://pinotage-api.centrastage.net")
        retry_policy: Bound on rate-limit retries
        secondary_rate_limit_markers: Lower-case substrings that turn a 403
            into a retryable rate limit
    """

    def __init__(
        self,
        token: str,
        base_url: Optional[str] = None,
        retry_policy: Optional[RetryPolicy] = None,
        secondary_rate_limit_markers: Optional[tuple[str, ...]] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initialize the RMMClient.

        Args:
            token: Bearer token from TokenProvider.authenticate()
            base_url: API base URL. Falls back to DRMM_API_URL, then the vendor default.
            retry_policy: Rate-limit retry bound (default: 10 attempts, 60s apart)
            secondary_rate_limit_markers: Override SECONDARY_RATE_LIMIT_MARKERS;
                pass an empty tuple to make every 403 fatal
            timeout: Total timeout per request in seconds

        Raises:
            ConfigurationError: If no token is given.
        """
        if not token:
            raise ConfigurationError(
                "A bearer token is required. Obtain one with TokenProvider.authenticate().",
                missing_keys=["token"],
            )

        self._token = token
        self.base_url = normalize_api_url(base_url or os.getenv("DRMM_API_URL") or DEFAULT_API_URL)
        self.retry_policy = retry_policy or RetryPolicy()
        self.secondary_rate_limit_markers = tuple(
            m.lower() for m in (
                SECONDARY_RATE_LIMIT_MARKERS
                if secondary_rate_limit_markers is None
                else secondary_rate_limit_markers
            )
        )
        self.timeout = timeout

        # Session is created in __aenter__, closed in __aexit__
        self._session: Optional[aiohttp.ClientSession] = None

    def __repr__(self) -> str:
        return f"RMMClient(base_url={self.base_url!r})"

    # ----------------------------------------
    # Context Manager Protocol
    # ----------------------------------------

    async def __aenter__(self) -> "RMMClient":
        """Enter async context: create the HTTP session."""
        self._session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(
                limit=10,
                limit_per_host=10,
                ssl=create_ssl_context(),
            ),
            timeout=aiohttp.ClientTimeout(
                total=self.timeout,
                connect=DEFAULT_CONNECT_TIMEOUT_SECONDS,
            ),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Exit async context: close the HTTP session."""
        if self._session:
            await self._session.close()
            self._session = None

    # ----------------------------------------
    # Low-Level Request Methods
    # ----------------------------------------

    def resource_request(self, endpoint: str) -> ResourceRequest:
        """Build the immutable request description for ``endpoint``."""
        return ResourceRequest(base_url=self.base_url, resource_path=endpoint, token=self._token)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make a single HTTP request (no retry logic).

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            endpoint: API path below ``/api`` (e.g., "/v2/account/devices")
            params: Query parameters
            json_body: JSON request body (for POST/PUT)

        Returns:
            Parsed JSON response; ``{}`` for an empty 2xx body

        Raises:
            APIError: If response status is not 2xx (typed subclass)
            ResponseDecodeError: If a 2xx body is not valid JSON
            RuntimeError: If called outside of async context manager
            ConnectionError: If connection to server fails
            TimeoutError: If request times out
        """
        if not self._session:
            raise RuntimeError(
                "RMMClient must be used as async context manager: "
                "async with RMMClient(...) as client:"
            )

        request = self.resource_request(endpoint)
        query = f" {params}" if params else ""
        logger.debug(f"{method} {request.url}{query}")

        try:
            async with self._session.request(
                method=method,
                url=request.url,
                headers=request.headers,
                params=params,
                json=json_body,
            ) as response:
                if response.status >= 400:
                    # Error bodies are only quoted; the status decides the exception
                    body = await response.text(errors="replace")
                    raise self._create_api_error(
                        status=response.status,
                        method=method,
                        endpoint=endpoint,
                        response_body=body,
                        headers=response.headers,
                    )

                try:
                    body = await response.text()
                except (UnicodeDecodeError, LookupError) as e:
                    raise ResponseDecodeError(
                        f"{method} {endpoint} returned a body that could not be decoded: {e}",
                        endpoint=endpoint,
                        cause=e,
                    ) from e

                logger.debug(
                    f"{method} {endpoint} -> HTTP {response.status}, {len(body):,} bytes"
                )

        except aiohttp.ClientConnectionError as e:
            raise ConnectionError(
                f"Failed to connect to {self.base_url}",
                host=self.base_url,
                cause=e,
            ) from e

        except asyncio.TimeoutError as e:
            raise TimeoutError(
                f"Request to {endpoint} timed out",
                timeout_seconds=self.timeout,
                cause=e,
            ) from e

        except aiohttp.ClientError as e:
            raise NetworkError(
                f"Network error during {method} {endpoint}: {e}",
                cause=e,
            ) from e

        if not body.strip():
            return {}

        try:
            return json.loads(body)
        except ValueError as e:
            raise ResponseDecodeError(
                f"{method} {endpoint} returned a body that is not valid JSON",
                endpoint=endpoint,
                cause=e,
            ) from e

    def _create_api_error(
        self,
        status: int,
        method: str,
        endpoint: str,
        response_body: str,
        headers: Optional[Any] = None,
    ) -> APIError:
        """Create appropriate APIError subclass based on status code."""
        if status == 401:
            return TokenExpiredError(
                "Access token expired or invalid",
                details={"endpoint": endpoint},
            )

        if status == 403:
            body = (response_body or "").lower()
            if any(marker in body for marker in self.secondary_rate_limit_markers):
                return RateLimitError(
                    f"Secondary rate limit hit for {endpoint}",
                    secondary=True,
                    endpoint=endpoint,
                    method=method,
                    response_body=response_body,
                )
            return ForbiddenError(
                f"Access to {method} {endpoint} is forbidden",
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 404:
            return NotFoundError(
                resource_type="Resource",
                resource_id=endpoint,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 429:
            return RateLimitError(
                f"Rate limit exceeded for {endpoint}",
                retry_after=_retry_after_seconds(headers),
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status == 400 or status == 422:
            return ValidationError(
                f"Validation failed for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        if status >= 500:
            return ServerError(
                f"Server error ({status}) for {method} {endpoint}",
                status_code=status,
                endpoint=endpoint,
                method=method,
                response_body=response_body,
            )

        return APIError(
            f"{method} {endpoint} failed",
            status_code=status,
            endpoint=endpoint,
            method=method,
            response_body=response_body,
        )

    async def _request_with_retry(
        self,
        method: str,
        endpoint: str,
        params: Optional[dict] = None,
        json_body: Optional[Any] = None,
    ) -> Any:
        """Make an HTTP request, retrying only while it is rate limited.

        Raises:
            RateLimitError: If still rate limited when the policy is exhausted
            TokenExpiredError: On 401
            APIError / NetworkError / ResponseDecodeError: Immediately
        """
        return await retry_async(
            self._request,
            method,
            endpoint,
            params,
            json_body,
            policy=self.retry_policy,
            description=f"{method} {endpoint}",
        )

    # ----------------------------------------
    # High-Level Request Methods
    # ----------------------------------------

    async def get(
        self,
        endpoint: str,
        params: Optional[dict] = None,
    ) -> Any:
        """Make a GET request.

        Args:
            endpoint: API path (e.g., "/v2/device/{uid}")
            params: Query parameters (None values are dropped)

        Returns:
            Parsed JSON response
        """
        return await self._request_with_retry("GET", endpoint, params=_clean_params(params))

    async def post(
        self,
        endpoint: str,
        json_body: Optional[Any] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make a POST request with a JSON body."""
        return await self._request_with_retry(
            "POST", endpoint, params=_clean_params(params), json_body=json_body
        )

    async def put(
        self,
        endpoint: str,
        json_body: Optional[Any] = None,
        params: Optional[dict] = None,
    ) -> Any:
        """Make a PUT request with a JSON body."""
        return await self._request_with_retry(
            "PUT", endpoint, params=_clean_params(params), json_body=json_body
        )

    # ----------------------------------------
    # Pagination Methods (Cursor-based)
    # ----------------------------------------

    async def paginate(
        self,
        endpoint: str,
        items_key: Optional[str] = None,
        params: Optional[dict] = None,
        max_pages: Optional[int] = None,
    ) -> AsyncIterator[list[dict]]:
        """Iterate through a paginated collection one page at a time.

        Pages are requested strictly in order: each request needs the
        cursor from the previous response.

        Args:
            endpoint: API path of the collection (e.g., "/v2/account/devices")
            items_key: Collection field in the response (e.g., "devices");
                auto-detected when omitted
            params: Additional query parameters (e.g., filterId)
            max_pages: Safety limit on pages fetched (None = no limit)

        Yields:
            List of items from each non-empty page

        Raises:
            TokenExpiredError: On 401 at any page; nothing more is yielded
            ResponseDecodeError: If the envelope or cursor is malformed

        Example:
            async for devices in client.paginate("/v2/account/devices", "devices"):
                for device in devices:
                    print(device["hostname"])
        """
        params = _clean_params(params) or {}
        params.pop(CURSOR_PARAM, None)

        pages_fetched = 0
        total_items = 0

        while True:
            data = await self._request_with_retry("GET", endpoint, params=dict(params) or None)
            try:
                page = Page.from_response(data, items_key=items_key, endpoint=endpoint)
                cursor = page.cursor
            except ResponseDecodeError as e:
                logger.error(f"{endpoint} page {pages_fetched + 1}: {e}")
                raise

            pages_fetched += 1
            total_items += len(page.items)

            if pages_fetched == 1 and page.page_details.get("totalCount") is not None:
                logger.info(f"Paginating {endpoint}: {page.page_details['totalCount']:,} total items")
            logger.info(
                f"{endpoint} page {pages_fetched}: {len(page.items):,} "
                f"{page.items_key or 'items'} ({total_items:,} so far)"
            )

            if page.items:
                yield page.items

            if cursor is None:
                break

            if cursor == params.get(CURSOR_PARAM):
                error = ResponseDecodeError(
                    f"{endpoint} returned the same page cursor twice ({cursor})",
                    endpoint=endpoint,
                )
                logger.error(str(error))
                raise error

            if max_pages and pages_fetched >= max_pages:
                logger.warning(f"Reached max_pages limit ({max_pages}) for {endpoint}")
                break

            params[CURSOR_PARAM] = cursor

        logger.info(f"Pagination complete: {total_items:,} items in {pages_fetched} pages from {endpoint}")

    async def fetch_all(
        self,
        endpoint: str,
        items_key: Optional[str] = None,
        params: Optional[dict] = None,
        max_pages: Optional[int] = None,
    ) -> list[dict]:
        """Fetch all items from a paginated endpoint.

        Items are concatenated in page order. If any page fails, the error
        propagates and the items already fetched are discarded.

        Returns:
            List of all items across all pages
        """
        all_items = []
        async for page in self.paginate(endpoint, items_key, params, max_pages):
            all_items.extend(page)
        return all_items


def _clean_params(params: Optional[dict]) -> Optional[dict]:
    if not params:
        return None
    return {k: v for k, v in params.items() if v is not None}


def _retry_after_seconds(headers: Optional[Any]) -> Optional[float]:
    if not headers:
        return None
    value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


async def fetch_all(
    resource_path: str,
    token: str,
    api_url: Optional[str] = None,
    items_key: Optional[str] = None,
    params: Optional[dict] = None,
    retry_policy: Optional[RetryPolicy] = None,
) -> list[dict]:
    """Open a client, fetch every page of one collection and close it.

    Example:
        devices = await fetch_all("/v2/account/devices", token, items_key="devices")
    """
    async with RMMClient(token, base_url=api_url, retry_policy=retry_policy) as client:
        return await client.fetch_all(resource_path, items_key=items_key, params=params)
