"""Retry with exponential backoff and cooperative cancellation.

Every outbound call the engine makes (search providers, planner LLM calls)
goes through ``with_retry``. A single ``CancellationToken`` is threaded through
an invocation; it is checked before every attempt and raced against every
backoff sleep so a cancel never waits out a delay.

Example:
    >>> token = CancellationToken()
    >>> result = await with_retry(
    ...     lambda: client.search("elden ring bosses", params),
    ...     context="Scout search (overview)",
    ...     token=token,
    ... )
"""

from __future__ import annotations

import asyncio
import random
import re
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import httpx
import openai
import structlog

from .config import settings
from .exceptions import NonRetryableError, OperationCancelledError

logger = structlog.get_logger(__name__)

T = TypeVar("T")

SleepFunc = Callable[[float, "CancellationToken | None"], Awaitable[None]]

_RETRYABLE_PATTERNS: tuple[re.Pattern[str], ...] = (
    # Rate limiting
    re.compile(r"rate.?limit|\b429\b|too many requests"),
    # Network failures
    re.compile(r"network|econnreset|etimedout|socket hang up|connection (reset|refused|error)"),
    # Server errors
    re.compile(r"\b50[0234]\b|internal server error|service unavailable|bad gateway"),
    # Provider overload
    re.compile(r"overloaded|capacity|temporarily"),
    # Structured generation produced output that failed validation
    re.compile(r"schema|parse|json"),
)


class CancellationToken:
    """Cooperative cancellation signal shared by one invocation.

    Example:
        >>> token = CancellationToken()
        >>> token.cancel("user aborted")
        >>> token.is_cancelled
        True
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str | None = None) -> None:
        """Trigger cancellation. Idempotent; the first reason wins."""
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    def raise_if_cancelled(self, context: str) -> None:
        """Raise OperationCancelledError if the token has been triggered."""
        if self._event.is_set():
            raise OperationCancelledError(f"{context} was cancelled")

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait until cancelled or ``timeout`` elapses.

        Returns:
            True if the token was cancelled, False on timeout
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            return False
        return True


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for ``with_retry``.

    Attributes:
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry (seconds)
        max_delay: Cap for any single delay (seconds)
        backoff_multiplier: Exponential growth factor per attempt
        jitter: Relative jitter (0.25 = +/-25%)
    """

    max_retries: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    backoff_multiplier: float = 2.0
    jitter: float = 0.25

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            initial_delay=settings.RETRY_INITIAL_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            jitter=settings.RETRY_JITTER,
        )


def calculate_backoff_delay(attempt: int, policy: RetryPolicy) -> float:
    """Delay before retry number ``attempt`` (0-based), capped and jittered."""
    base = min(policy.initial_delay * (policy.backoff_multiplier**attempt), policy.max_delay)
    if policy.jitter:
        base *= 1.0 + random.uniform(-policy.jitter, policy.jitter)
    return max(0.0, base)


def is_retryable_error(error: BaseException) -> bool:
    """Classify an error as transient (retry) or permanent (surface now).

    Timeouts are not retried: a provider that timed out once is likely to do
    so again and the invocation already has a latency budget.
    """
    if isinstance(error, (OperationCancelledError, NonRetryableError)):
        return False
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException, openai.APITimeoutError)):
        return False

    status_code = getattr(error, "status_code", None)
    if isinstance(status_code, int):
        return status_code == 429 or status_code >= 500

    if isinstance(error, (httpx.TransportError, ConnectionError, openai.APIConnectionError)):
        return True

    message = str(error).lower()
    return any(pattern.search(message) for pattern in _RETRYABLE_PATTERNS)


async def backoff_sleep(delay: float, token: CancellationToken | None) -> None:
    """Sleep for ``delay`` seconds, waking early if ``token`` is cancelled."""
    if token is None:
        await asyncio.sleep(delay)
        return
    await token.wait(delay)


def with_retry(
    func: Callable[[], Awaitable[T]],
    *,
    context: str,
    token: CancellationToken | None = None,
    policy: RetryPolicy | None = None,
    sleep: SleepFunc | None = None,
) -> Awaitable[T]:
    """Run ``func`` with retries on transient failures.

    The token is checked here, before any coroutine is created, so a
    pre-cancelled invocation raises at the call site and ``func`` never runs.

    Args:
        func: Zero-argument async callable performing one attempt
        context: Human-readable operation name used in logs and errors
        token: Optional cancellation token
        policy: Backoff policy (defaults to settings)
        sleep: Backoff sleep implementation (patched in tests)

    Returns:
        Awaitable resolving to the first successful result

    Raises:
        OperationCancelledError: If the token is cancelled before or between attempts
        Exception: The last error when it is not retryable or retries are exhausted
    """
    if token is not None:
        token.raise_if_cancelled(context)
    return _retry_loop(
        func,
        context=context,
        token=token,
        policy=policy or RetryPolicy.from_settings(),
        sleep=sleep or backoff_sleep,
    )


async def _retry_loop(
    func: Callable[[], Awaitable[T]],
    *,
    context: str,
    token: CancellationToken | None,
    policy: RetryPolicy,
    sleep: SleepFunc,
) -> T:
    attempts = policy.max_retries + 1

    for attempt in range(attempts):
        if token is not None:
            token.raise_if_cancelled(context)

        try:
            return await func()
        except Exception as e:
            if token is not None:
                token.raise_if_cancelled(context)

            if not is_retryable_error(e):
                raise

            if attempt >= attempts - 1:
                logger.error(
                    "retry_exhausted",
                    context=context,
                    attempts=attempts,
                    error=str(e)[:200],
                )
                raise

            delay = calculate_backoff_delay(attempt, policy)
            logger.warning(
                "retry_scheduled",
                context=context,
                attempt=attempt + 1,
                max_attempts=attempts,
                delay=round(delay, 2),
                error=str(e)[:200],
            )
            await sleep(delay, token)
            if token is not None:
                token.raise_if_cancelled(context)

    # Unreachable: the loop either returns or raises
    raise RuntimeError(f"{context}: retry loop exited without result")


def create_retry_wrapper(
    context: str,
    token: CancellationToken | None = None,
    policy: RetryPolicy | None = None,
) -> Callable[[Callable[[], Awaitable[Any]]], Awaitable[Any]]:
    """Bind context, token and policy once for repeated ``with_retry`` calls.

    Example:
        >>> retry = create_retry_wrapper("Planner LLM", token=token)
        >>> plan = await retry(lambda: client.generate_object(...))
    """

    def wrapper(func: Callable[[], Awaitable[Any]]) -> Awaitable[Any]:
        return with_retry(func, context=context, token=token, policy=policy)

    return wrapper
