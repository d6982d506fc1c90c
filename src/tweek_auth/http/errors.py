"""Turning HTTP responses into classified errors."""

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import httpx
import orjson

from tweek_auth.core.logging import redact_sensitive
from tweek_auth.exceptions import ClassifiedError, ErrorKind, kind_for_status


MAX_EXCERPT_LENGTH = 200


def parse_retry_after(value: str | None, now: datetime | None = None) -> int | None:
    """Parse a ``Retry-After`` header into milliseconds.

    Accepts delta-seconds or an HTTP-date. Absent or unparseable values yield
    ``None``; dates in the past yield ``0``.
    """
    if value is None:
        return None
    text = value.strip()
    if not text:
        return None
    if text.isdigit():
        # isdigit() also admits non-ASCII digits such as superscripts.
        if not text.isascii():
            return None
        try:
            return int(text) * 1000
        except ValueError:
            return None
    try:
        retry_at = parsedate_to_datetime(text)
    except (TypeError, ValueError, IndexError, OverflowError):
        return None
    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=UTC)
    current = now or datetime.now(UTC)
    delta_ms = int((retry_at - current).total_seconds() * 1000)
    return max(0, delta_ms)


def response_excerpt(response: httpx.Response, limit: int = MAX_EXCERPT_LENGTH) -> str:
    """Short diagnostic excerpt of a response body with secrets masked."""
    try:
        text = response.text
    except (httpx.ResponseNotRead, UnicodeDecodeError):
        return ""
    if not text:
        return ""
    try:
        document = orjson.loads(text)
    except orjson.JSONDecodeError:
        excerpt = text
    else:
        excerpt = orjson.dumps(redact_sensitive(document)).decode()
    if len(excerpt) > limit:
        return f"{excerpt[:limit]}..."
    return excerpt


def classify_response(
    response: httpx.Response,
    *,
    operation: str,
    kind: ErrorKind | None = None,
) -> ClassifiedError:
    """Build the error for a non-2xx response.

    Args:
        response: The failed response
        operation: Short description used in the message
        kind: Override for the status-derived kind

    """
    status = response.status_code
    resolved = kind or kind_for_status(status)
    retry_after_ms = None
    if resolved is ErrorKind.RATE_LIMITED:
        retry_after_ms = parse_retry_after(response.headers.get("retry-after"))
    reason = response.reason_phrase or ""
    return ClassifiedError(
        resolved,
        f"{operation} failed with status {status} {reason}".rstrip(),
        status_code=status,
        retry_after_ms=retry_after_ms,
        details={"status": status, "body": response_excerpt(response)},
    )


__all__ = [
    "MAX_EXCERPT_LENGTH",
    "classify_response",
    "parse_retry_after",
    "response_excerpt",
]
