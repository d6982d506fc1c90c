"""Resilient HTTP execution for the Tweek API."""

from tweek_auth.http.client import HttpResponse, ResilientHttpClient
from tweek_auth.http.errors import classify_response, parse_retry_after
from tweek_auth.http.retry import (
    RetryPolicy,
    backoff_delay,
    call_with_retry,
    compute_retry_delay,
    is_idempotent_method,
    is_retryable,
    should_retry,
)


__all__ = [
    "HttpResponse",
    "ResilientHttpClient",
    "RetryPolicy",
    "backoff_delay",
    "call_with_retry",
    "classify_response",
    "compute_retry_delay",
    "is_idempotent_method",
    "is_retryable",
    "parse_retry_after",
    "should_retry",
]
