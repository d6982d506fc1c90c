"""Retry eligibility and exponential backoff with jitter.

Only idempotent methods are retried, and only when the failure is in the
server-side (5xx) bucket. Everything else fails on the first attempt.
"""

import asyncio
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from structlog.typing import FilteringBoundLogger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
)

from tweek_auth.core.logging import component_logger
from tweek_auth.exceptions import ClassifiedError, ErrorKind


T = TypeVar("T")

RETRY_BACKOFF_BASE = 2
IDEMPOTENT_METHODS = frozenset({"GET", "DELETE"})


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and backoff shape. Delays are in seconds."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 10.0
    jitter_factor: float = 0.1

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.initial_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")


DEFAULT_RETRY_POLICY = RetryPolicy()


def is_idempotent_method(method: str) -> bool:
    """Check whether ``method`` is safe to repeat (reads and deletes)."""
    return method.upper() in IDEMPOTENT_METHODS


def is_retryable(method: str, status: int) -> bool:
    """Decide retry eligibility from the method and HTTP status alone."""
    return is_idempotent_method(method) and 500 <= status < 600


def should_retry(method: str, error: BaseException) -> bool:
    """Decide retry eligibility for a raised error."""
    if not isinstance(error, ClassifiedError):
        return False
    return is_idempotent_method(method) and error.kind is ErrorKind.UNAVAILABLE


def backoff_delay(attempt: int, policy: RetryPolicy = DEFAULT_RETRY_POLICY) -> float:
    """Pre-jitter delay after the ``attempt``-th failure (1-based)."""
    exponential = policy.initial_delay * RETRY_BACKOFF_BASE ** (attempt - 1)
    return min(exponential, policy.max_delay)


def compute_retry_delay(
    attempt: int,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    rng: Callable[[], float] = random.random,
) -> float:
    """Backoff delay perturbed by up to +/- half the jitter span, never negative."""
    capped = backoff_delay(attempt, policy)
    jitter = capped * policy.jitter_factor * (rng() - 0.5)
    return max(0.0, capped + jitter)


async def call_with_retry(
    operation: Callable[[], Awaitable[T]],
    method: str,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    *,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    rng: Callable[[], float] = random.random,
    logger: FilteringBoundLogger | None = None,
) -> T:
    """Run ``operation`` until it succeeds or a terminal failure occurs.

    Args:
        operation: Zero-argument coroutine factory, invoked once per attempt
        method: HTTP method, used to decide retry eligibility
        policy: Retry budget and backoff shape
        sleep: Awaitable sleep used between attempts
        rng: Source of uniform [0, 1) values for jitter
        logger: Injected logger

    Returns:
        The first successful result

    Raises:
        ClassifiedError: The terminal error, or the last one once attempts run out

    """
    log = component_logger("retry", logger)
    normalized_method = method.upper()

    def wait_for_attempt(retry_state: RetryCallState) -> float:
        return compute_retry_delay(retry_state.attempt_number, policy, rng)

    def log_before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        log.warning(
            "http_retry_scheduled",
            method=normalized_method,
            attempt=retry_state.attempt_number + 1,
            max_attempts=policy.max_attempts,
            delay_seconds=retry_state.next_action.sleep
            if retry_state.next_action
            else 0,
            error_kind=error.kind.value if isinstance(error, ClassifiedError) else None,
        )

    retrying = AsyncRetrying(
        sleep=sleep,
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_for_attempt,
        retry=retry_if_exception(lambda exc: should_retry(normalized_method, exc)),
        before_sleep=log_before_sleep,
        reraise=True,
    )

    async for attempt in retrying:
        with attempt:
            return await operation()

    raise RuntimeError("retry loop finished without an outcome")  # pragma: no cover
