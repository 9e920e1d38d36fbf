#!/usr/bin/env python3
"""Retry and concurrency helpers for the Datto RMM API client.

The API signals "slow down" with HTTP 429 (and, on some deployments, a 403
whose body says so). Those responses are the only ones retried: the request
is repeated after a fixed pause until it succeeds or the retry policy's bound
is reached. Every other failure is terminal for the request.

State machine for one request:
    ATTEMPTING -> SUCCEEDED     on 2xx
    ATTEMPTING -> BACKOFF       on RateLimitError (429 / 403 secondary)
    BACKOFF    -> ATTEMPTING    after RetryPolicy.delay seconds
    ATTEMPTING -> FAILED_AUTH   on TokenExpiredError (401)
    ATTEMPTING -> FAILED_FATAL  on anything else, or when the policy is exhausted

Example:
    policy = RetryPolicy(max_attempts=5, delay=60.0)
    data = await retry_async(session_get, "/v2/account/sites", policy=policy)
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from .exceptions import NotFoundError, RateLimitError, TokenExpiredError

logger = logging.getLogger(__name__)

T = TypeVar("T")


# ============================================
# Retry Policy
# ============================================

@dataclass(frozen=True)
class RetryPolicy:
    """Bound on how long a rate-limited request keeps retrying.

    Attributes:
        max_attempts: Total attempts including the first one (None = unbounded)
        delay: Fixed pause in seconds between attempts
        max_duration: Give up once another backoff would exceed this many
            seconds since the first attempt (None = no time bound)
    """
    max_attempts: Optional[int] = 10
    delay: float = 60.0
    max_duration: Optional[float] = None

    def __post_init__(self):
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1 (or None for unbounded)")
        if self.delay < 0:
            raise ValueError("delay must not be negative")

    @classmethod
    def unbounded(cls, delay: float = 60.0) -> "RetryPolicy":
        """Retry rate-limited requests forever, like the vendor's own tooling."""
        return cls(max_attempts=None, delay=delay)

    def allows_retry(self, attempt: int, elapsed: float) -> bool:
        """Whether another attempt may follow ``attempt`` after ``elapsed`` seconds."""
        if self.max_attempts is not None and attempt >= self.max_attempts:
            return False
        if self.max_duration is not None and elapsed + self.delay > self.max_duration:
            return False
        return True

    @property
    def attempts_label(self) -> str:
        return str(self.max_attempts) if self.max_attempts is not None else "unbounded"


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryState(Enum):
    """States of a single retried request."""
    ATTEMPTING = "attempting"
    BACKOFF = "backoff"
    SUCCEEDED = "succeeded"
    FAILED_FATAL = "failed_fatal"
    FAILED_AUTH = "failed_auth"


# ============================================
# Retry
# ============================================

async def retry_async(
    func: Callable[..., Awaitable[T]],
    *args,
    policy: Optional[RetryPolicy] = None,
    description: str = "request",
    on_transition: Optional[Callable[[RetryState, RetryState, int], None]] = None,
    **kwargs,
) -> T:
    """Call ``func`` and retry it with a fixed delay while it is rate limited.

    Args:
        func: Async function performing exactly one attempt
        *args: Arguments to pass to func
        policy: Retry bound (defaults to 10 attempts, 60s apart)
        description: Short label used in log messages (e.g. "GET /v2/account/sites")
        on_transition: Optional callback(old_state, new_state, attempt)
        **kwargs: Keyword arguments to pass to func

    Returns:
        Result from func

    Raises:
        RateLimitError: If the policy is exhausted (``attempts`` is set on it)
        TokenExpiredError: Immediately on 401
        Exception: Any other error from func, immediately
    """
    policy = policy or DEFAULT_RETRY_POLICY
    state = RetryState.ATTEMPTING
    started = time.monotonic()
    attempt = 0

    def transition(new_state: RetryState) -> None:
        nonlocal state
        logger.debug(f"{description}: {state.value} -> {new_state.value} (attempt {attempt})")
        if on_transition:
            on_transition(state, new_state, attempt)
        state = new_state

    while True:
        attempt += 1
        try:
            result = await func(*args, **kwargs)

        except RateLimitError as e:
            e.attempts = attempt
            e.details["attempts"] = attempt
            kind = "secondary rate limit (403)" if e.secondary else "rate limited (429)"

            if not policy.allows_retry(attempt, time.monotonic() - started):
                transition(RetryState.FAILED_FATAL)
                logger.error(
                    f"{description}: {kind}, giving up after {attempt} attempt(s)"
                )
                raise

            transition(RetryState.BACKOFF)
            logger.warning(
                f"{description}: {kind}, waiting {policy.delay:g}s before retry "
                f"(attempt {attempt}/{policy.attempts_label})"
            )
            await asyncio.sleep(policy.delay)
            transition(RetryState.ATTEMPTING)
            continue

        except TokenExpiredError as e:
            transition(RetryState.FAILED_AUTH)
            logger.error(f"{description}: {e.message}; re-authentication required")
            raise

        except Exception as e:
            transition(RetryState.FAILED_FATAL)
            # 404s are often skipped by the caller's loop, so they stay below ERROR
            level = logging.WARNING if isinstance(e, NotFoundError) else logging.ERROR
            logger.log(level, f"{description} failed: {e}")
            raise

        transition(RetryState.SUCCEEDED)
        return result


# ============================================
# Concurrent Processing
# ============================================

async def run_concurrent_tasks(
    tasks_dict: dict[str, Callable[[], Awaitable[T]]],
) -> dict[str, T | Exception]:
    """Run independent named fetches concurrently.

    Pagination within one resource stays sequential; this only overlaps
    separate resources (e.g. devices and sites).

    Args:
        tasks_dict: Dict mapping task names to async callables

    Returns:
        Dict mapping task names to results or exceptions

    Example:
        results = await run_concurrent_tasks({
            "devices": account.get_devices,
            "sites": account.get_sites,
        })
        if isinstance(results["sites"], Exception):
            logger.error(f"Site fetch failed: {results['sites']}")
    """
    async def execute_named(name: str, func: Callable[[], Awaitable[T]]) -> tuple[str, Any]:
        try:
            return (name, await func())
        except Exception as e:
            return (name, e)

    outcomes = await asyncio.gather(
        *[execute_named(name, func) for name, func in tasks_dict.items()]
    )
    return dict(outcomes)


__all__ = [
    "RetryPolicy",
    "RetryState",
    "DEFAULT_RETRY_POLICY",
    "retry_async",
    "run_concurrent_tasks",
]
