"""
Error Message Sanitization.

Error messages built from HTTP responses can carry credentials back out,
for example when the token endpoint echoes the submitted form. Everything that
leaves the library as text (CLI output, exception messages that include
response bodies) passes through this module first.

Usage Examples
--------------

Basic Usage:
    from dattormm.api.error_sanitizer import sanitize_error_message

    try:
        await client.get("/v2/account/devices")
    except RMMError as e:
        print(sanitize_error_message(str(e)), file=sys.stderr)

Redacting a Known Secret:
    sanitizer = ErrorSanitizer()
    sanitizer.add_secret(api_secret)
    safe = sanitizer.sanitize(response_text).sanitized_message

What Gets Sanitized
-------------------
1. Authentication:
   - Bearer tokens: Bearer eyJhbG... -> Bearer [REDACTED]
   - Basic credentials: Basic cHVibGlj... -> Basic [REDACTED]
   - access_token / refresh_token values in JSON or form bodies
2. Credentials:
   - password=... form fields and "password": "..." JSON members
   - api key / api secret assignments
   - literal secrets registered with add_secret()
3. JWT-shaped strings
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional


@dataclass
class SanitizationResult:
    """Result of error message sanitization.

    Attributes:
        sanitized_message: Sanitized error message (safe to show or log)
        redaction_count: Number of redactions made
        original_length: Length of original message
        sanitized_length: Length of sanitized message
    """

    sanitized_message: str
    redaction_count: int
    original_length: int
    sanitized_length: int

    @property
    def was_sanitized(self) -> bool:
        return self.redaction_count > 0


class ErrorSanitizer:
    """Sanitizer for error messages and response bodies.

    Attributes:
        patterns: List of (regex_pattern, replacement) tuples
        max_message_length: Maximum length of sanitized messages
    """

    # Order matters - more specific patterns should come first
    DEFAULT_PATTERNS: list[tuple[str, str]] = [
        # Authorization header values
        (r'bearer\s+[A-Za-z0-9_\-\.~+/]{8,}=*', 'Bearer [REDACTED]'),
        (r'basic\s+[A-Za-z0-9+/]{8,}=*', 'Basic [REDACTED]'),

        # JSON members: "access_token": "..."
        (r'"(access_token|refresh_token|password|api_secret|apiSecretKey)"\s*:\s*"[^"]*"', r'"\1": "[REDACTED]"'),

        # Form / query assignments
        (r'access[-_]?token[=:\s]+[^\s\n,;&]+', 'access_token=[REDACTED]'),
        (r'refresh[-_]?token[=:\s]+[^\s\n,;&]+', 'refresh_token=[REDACTED]'),
        (r'password[=:\s]+[^\s\n,;&]+', 'password=[REDACTED]'),
        (r'api[-_]?secret[=:\s]+[^\s\n,;&]+', 'api_secret=[REDACTED]'),
        (r'api[-_]?key[=:\s]+[^\s\n,;&]+', 'api_key=[REDACTED]'),

        # JWT tokens (three base64 segments separated by dots)
        (r'\beyJ[A-Za-z0-9_-]*\.eyJ[A-Za-z0-9_-]*\.[A-Za-z0-9_-]+\b', '[JWT_REDACTED]'),
    ]

    def __init__(
        self,
        patterns: Optional[list[tuple[str, str]]] = None,
        max_message_length: int = 500,
    ):
        self.patterns = list(patterns or self.DEFAULT_PATTERNS)
        self.max_message_length = max_message_length
        self._compiled_patterns = [
            (re.compile(pattern, re.IGNORECASE), replacement)
            for pattern, replacement in self.patterns
        ]

    def sanitize(self, message: str, error_type: Optional[str] = None) -> SanitizationResult:
        """Sanitize a message for safe display.

        Args:
            message: Raw error message
            error_type: Optional error type/category prefix

        Returns:
            SanitizationResult with sanitized message
        """
        if not message:
            return SanitizationResult(
                sanitized_message="An error occurred",
                redaction_count=0,
                original_length=0,
                sanitized_length=17,
            )

        original_length = len(message)
        sanitized = message
        redaction_count = 0

        for pattern, replacement in self._compiled_patterns:
            sanitized, matches = pattern.subn(replacement, sanitized)
            redaction_count += matches

        if len(sanitized) > self.max_message_length:
            sanitized = sanitized[: self.max_message_length] + "... [TRUNCATED]"

        if not sanitized.strip():
            sanitized = "An error occurred"

        if error_type and not sanitized.startswith(error_type):
            sanitized = f"{error_type}: {sanitized}"

        return SanitizationResult(
            sanitized_message=sanitized,
            redaction_count=redaction_count,
            original_length=original_length,
            sanitized_length=len(sanitized),
        )

    def add_pattern(self, pattern: str, replacement: str) -> None:
        """Add a custom sanitization pattern."""
        self.patterns.append((pattern, replacement))
        self._compiled_patterns.append(
            (re.compile(pattern, re.IGNORECASE), replacement)
        )

    def add_secret(self, secret: Optional[str]) -> None:
        """Redact every literal occurrence of ``secret``.

        Literal secrets are checked before the generic patterns so a secret
        that happens to look like something else is still fully removed.
        """
        if not secret:
            return
        pattern = re.escape(secret)
        self.patterns.insert(0, (pattern, "[REDACTED]"))
        self._compiled_patterns.insert(0, (re.compile(pattern), "[REDACTED]"))

    def is_safe(self, message: str) -> bool:
        """Check if message contains any patterns that would be sanitized."""
        for pattern, _ in self._compiled_patterns:
            if pattern.search(message):
                return False
        return True


_default_sanitizer: Optional[ErrorSanitizer] = None


def get_sanitizer() -> ErrorSanitizer:
    """Get the default error sanitizer instance."""
    global _default_sanitizer
    if _default_sanitizer is None:
        _default_sanitizer = ErrorSanitizer()
    return _default_sanitizer


def sanitize_error_message(
    message: str,
    error_type: Optional[str] = None,
) -> str:
    """Convenience function to sanitize error messages.

    Example:
        >>> sanitize_error_message("HTTP 400: password=hunter2")
        'HTTP 400: password=[REDACTED]'
    """
    return get_sanitizer().sanitize(message, error_type).sanitized_message
