#!/usr/bin/env python3
"""Bearer Token Acquisition for the Datto RMM API.

The API uses the OAuth2 password grant: the account's API key and secret are
sent as username/password to ``/auth/oauth/token``, authenticated with the
vendor's fixed public client identity, and an ``access_token`` comes back.

Features:
    - One POST per call; no caching and no retry (a failed exchange is not
      transient, the caller decides what to do)
    - Typed errors: InvalidCredentialsError for rejected credentials,
      TokenFetchError (AuthError) for everything else
    - TLS 1.2 only

Security Notes:
    - The API secret is never logged and never included in an error message;
      response bodies quoted in errors are sanitized with the secret registered
    - Token identity in logs is a SHA-256 prefix, never the token itself

Example:
    >>> provider = TokenProvider(api_key="KEY", api_secret="SECRET")
    >>> token = await provider.authenticate()
"""
import asyncio
import hashlib
import json
import logging
import os
from dataclasses import dataclass, field
from typing import Optional

import aiohttp

from .error_sanitizer import ErrorSanitizer
from .exceptions import (
    ConfigurationError,
    InvalidCredentialsError,
    TokenFetchError,
)
from .transport import DEFAULT_API_URL, create_ssl_context, normalize_api_url

logger = logging.getLogger(__name__)

TOKEN_ENDPOINT = "/auth/oauth/token"

# Fixed client identity every Datto RMM API integration authenticates with
PUBLIC_CLIENT_ID = "public-client"
PUBLIC_CLIENT_SECRET = "public"


@dataclass
class AccessToken:
    """Bearer token returned by the token endpoint.

    Attributes:
        access_token: The bearer token string.
        token_type: Token type reported by the server, normally "bearer".
        expires_in: Lifetime in seconds if the server reports one.
        scope: Granted scope, if reported.
    """
    access_token: str = field(repr=False)
    token_type: Optional[str] = "bearer"
    expires_in: Optional[int] = None
    scope: Optional[str] = None

    @property
    def token_id(self) -> str:
        """Safe identifier for logging (SHA-256 hash, first 8 chars)."""
        return hashlib.sha256(self.access_token.encode()).hexdigest()[:8]


def _mask(value: str) -> str:
    return f"{value[:4]}..." if len(value) > 4 else "***"


class TokenProvider:
    """Exchanges API credentials for a bearer token.

    Attributes:
        api_key: API key (from env: DRMM_API_KEY).
        api_url: Platform base URL (from env: DRMM_API_URL, else the vendor default).
        timeout: Seconds before the token request is abandoned.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.api_key = api_key or os.getenv("DRMM_API_KEY")
        self._api_secret = api_secret or os.getenv("DRMM_API_SECRET")
        self.api_url = normalize_api_url(api_url or os.getenv("DRMM_API_URL") or DEFAULT_API_URL)
        self.timeout = timeout

        if not self.api_key or not self._api_secret:
            missing = []
            if not self.api_key:
                missing.append("DRMM_API_KEY")
            if not self._api_secret:
                missing.append("DRMM_API_SECRET")
            raise ConfigurationError(
                f"Missing API credentials: {', '.join(missing)}",
                missing_keys=missing,
            )

        self._sanitizer = ErrorSanitizer()
        self._sanitizer.add_secret(self._api_secret)

    def __repr__(self) -> str:
        return f"TokenProvider(api_url={self.api_url!r}, api_key={_mask(self.api_key)!r})"

    @property
    def token_url(self) -> str:
        return f"{self.api_url}{TOKEN_ENDPOINT}"

    async def authenticate(self) -> str:
        """Fetch a new bearer token.

        Returns:
            str: The access token string

        Raises:
            InvalidCredentialsError: If the key/secret pair is rejected
            TokenFetchError: On any other failure
        """
        token = await self.fetch_token()
        return token.access_token

    async def fetch_token(self) -> AccessToken:
        """POST the password grant and decode the token response."""
        payload = {
            "grant_type": "password",
            "username": self.api_key,
            "password": self._api_secret,
        }
        headers = {
            "Authorization": aiohttp.BasicAuth(PUBLIC_CLIENT_ID, PUBLIC_CLIENT_SECRET).encode(),
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        }

        logger.info(f"Requesting access token from {self.token_url} (api key {_mask(self.api_key)})")

        try:
            async with aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as session:
                async with session.post(
                    self.token_url,
                    data=payload,
                    headers=headers,
                    ssl=create_ssl_context(),
                ) as response:
                    body = await self._read_body(response)
                    token = self._parse_response(response.status, body)

        except aiohttp.ClientConnectionError as e:
            error = TokenFetchError(
                f"Failed to connect to token endpoint {self.token_url}: {self._safe(str(e))}",
                cause=e,
            )
            logger.error(str(error))
            raise error from e

        except asyncio.TimeoutError as e:
            error = TokenFetchError(
                f"Token request timed out after {self.timeout:g}s",
                cause=e,
            )
            logger.error(str(error))
            raise error from e

        except aiohttp.ClientError as e:
            error = TokenFetchError(
                f"Network error fetching token: {self._safe(str(e))}",
                cause=e,
            )
            logger.error(str(error))
            raise error from e

        logger.info(f"Access token obtained (id={token.token_id})")
        return token

    async def _read_body(self, response: aiohttp.ClientResponse) -> str:
        """Decode the response body. Error bodies are only quoted, so bad bytes are replaced."""
        if not 200 <= response.status < 300:
            return await response.text(errors="replace")

        try:
            return await response.text()
        except (UnicodeDecodeError, LookupError) as e:
            error = TokenFetchError(
                "Token response body could not be decoded",
                status_code=response.status,
                cause=e,
            )
            logger.error(str(error))
            raise error from e

    def _parse_response(self, status: int, body: str) -> AccessToken:
        """Turn the token endpoint's response into an AccessToken or a typed error."""
        # Redact before truncating so a secret cut at the boundary cannot leak a prefix
        if status in (400, 401):
            error = InvalidCredentialsError(
                f"Token endpoint rejected the API credentials (HTTP {status})",
                status_code=status,
                details={"response": self._safe(body)[:200]},
            )
            logger.error(str(error))
            raise error

        if not 200 <= status < 300:
            error = TokenFetchError(
                f"Token endpoint returned HTTP {status}",
                status_code=status,
                details={"response": self._safe(body)[:200]},
            )
            logger.error(str(error))
            raise error

        try:
            data = json.loads(body)
        except ValueError as e:
            error = TokenFetchError(
                "Token response is not valid JSON",
                status_code=status,
                cause=e,
            )
            logger.error(str(error))
            raise error from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            keys = list(data.keys()) if isinstance(data, dict) else []
            error = TokenFetchError(
                "Token response missing access_token",
                status_code=status,
                details={"response_keys": keys},
            )
            logger.error(str(error))
            raise error

        return AccessToken(
            access_token=access_token,
            token_type=data.get("token_type", "bearer"),
            expires_in=data.get("expires_in"),
            scope=data.get("scope"),
        )

    def _safe(self, text: str) -> str:
        return self._sanitizer.sanitize(text).sanitized_message if text else ""


async def authenticate(
    api_key: Optional[str] = None,
    api_secret: Optional[str] = None,
    api_url: Optional[str] = None,
) -> str:
    """Exchange credentials for a bearer token in one call.

    Example:
        token = await authenticate("KEY", "SECRET")
    """
    return await TokenProvider(api_key, api_secret, api_url).authenticate()
