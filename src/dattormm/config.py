"""Configuration loaded from environment variables (and a .env file)."""
import os
from typing import Optional

from dotenv import load_dotenv

from .api.exceptions import ConfigurationError
from .api.resilience import RetryPolicy
from .api.transport import DEFAULT_API_URL, normalize_api_url

load_dotenv()


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


def _env_number(name: str, default: str, cast):
    raw = os.getenv(name, default)
    try:
        return cast(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}", cause=e) from e


class RMMSettings:
    """Settings for the CLI and other composition roots.

    Environment variables:
        DRMM_API_KEY, DRMM_API_SECRET: API credentials
        DRMM_API_URL: Platform URL (default: the vendor's pinotage platform)
        DRMM_MAX_RETRIES: Attempts per rate-limited request, 0 = unbounded (default 10)
        DRMM_RETRY_DELAY: Seconds between rate-limit retries (default 60)
        DRMM_LOG_FILE: Also write log records to this file
        DRMM_EVENT_LOG: Also send log records to the OS event log / syslog
        DRMM_VERBOSE: Log at DEBUG level
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_url: Optional[str] = None,
        max_retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        log_file: Optional[str] = None,
        event_log: Optional[bool] = None,
        verbose: Optional[bool] = None,
    ):
        self.api_key = api_key or os.getenv("DRMM_API_KEY")
        self.api_secret = api_secret or os.getenv("DRMM_API_SECRET")
        self.api_url = normalize_api_url(api_url or os.getenv("DRMM_API_URL") or DEFAULT_API_URL)
        self.max_retries = (
            max_retries if max_retries is not None
            else _env_number("DRMM_MAX_RETRIES", "10", int)
        )
        self.retry_delay = (
            retry_delay if retry_delay is not None
            else _env_number("DRMM_RETRY_DELAY", "60", float)
        )
        self.log_file = log_file or os.getenv("DRMM_LOG_FILE") or None
        self.event_log = event_log if event_log is not None else _env_bool("DRMM_EVENT_LOG")
        self.verbose = verbose if verbose is not None else _env_bool("DRMM_VERBOSE")

        if self.max_retries < 0:
            raise ConfigurationError("DRMM_MAX_RETRIES must not be negative")
        if self.retry_delay < 0:
            raise ConfigurationError("DRMM_RETRY_DELAY must not be negative")

    def require_credentials(self) -> None:
        """Raise ConfigurationError naming whichever credential is missing."""
        missing = []
        if not self.api_key:
            missing.append("DRMM_API_KEY")
        if not self.api_secret:
            missing.append("DRMM_API_SECRET")
        if missing:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing)}",
                missing_keys=missing,
            )

    def retry_policy(self) -> RetryPolicy:
        if self.max_retries == 0:
            return RetryPolicy.unbounded(delay=self.retry_delay)
        return RetryPolicy(max_attempts=self.max_retries, delay=self.retry_delay)

    def __repr__(self):
        return (
            f"RMMSettings("
            f"api_url={self.api_url!r}, "
            f"api_key={'set' if self.api_key else 'missing'}, "
            f"api_secret={'set' if self.api_secret else 'missing'}, "
            f"max_retries={self.max_retries}, "
            f"retry_delay={self.retry_delay:g}s, "
            f"log_file={self.log_file!r}, "
            f"event_log={self.event_log}, "
            f"verbose={self.verbose})"
        )
