"""Tests for response classification helpers."""

from datetime import UTC, datetime, timedelta
from email.utils import format_datetime

import httpx
import pytest

from tweek_auth.exceptions import ErrorKind
from tweek_auth.http.errors import (
    MAX_EXCERPT_LENGTH,
    classify_response,
    parse_retry_after,
    response_excerpt,
)


class TestParseRetryAfter:
    """Retry-After header parsing."""

    def test_delta_seconds(self) -> None:
        assert parse_retry_after("120") == 120_000
        assert parse_retry_after(" 0 ") == 0

    def test_absent_or_garbage(self) -> None:
        assert parse_retry_after(None) is None
        assert parse_retry_after("") is None
        assert parse_retry_after("soon") is None

    @pytest.mark.parametrize("value", ["²", "１２", "9" * 5000])
    def test_digits_int_cannot_parse(self, value: str) -> None:
        assert parse_retry_after(value) is None

    def test_http_date(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        header = format_datetime(now + timedelta(seconds=30), usegmt=True)

        assert parse_retry_after(header, now=now) == 30_000

    def test_past_http_date_is_zero(self) -> None:
        now = datetime(2026, 1, 1, 12, 0, 0, tzinfo=UTC)
        header = format_datetime(now - timedelta(minutes=5), usegmt=True)

        assert parse_retry_after(header, now=now) == 0


class TestClassifyResponse:
    """Building classified errors from failed responses."""

    @pytest.mark.parametrize(
        ("status", "kind"),
        [
            (401, ErrorKind.UNAUTHORIZED),
            (404, ErrorKind.NOT_FOUND),
            (400, ErrorKind.INVALID_ARGUMENT),
            (503, ErrorKind.UNAVAILABLE),
            (418, ErrorKind.UNKNOWN),
        ],
    )
    def test_kind_follows_status(self, status: int, kind: ErrorKind) -> None:
        error = classify_response(httpx.Response(status), operation="GET /x")

        assert error.kind is kind
        assert error.status_code == status
        assert error.details["status"] == status
        assert error.retry_after_ms is None

    def test_rate_limited_reads_retry_after(self) -> None:
        response = httpx.Response(429, headers={"Retry-After": "120"})
        error = classify_response(response, operation="GET /x")

        assert error.kind is ErrorKind.RATE_LIMITED
        assert error.retry_after_ms == 120_000

    def test_rate_limited_with_latin1_header(self) -> None:
        response = httpx.Response(429, headers=[(b"retry-after", b"\xb2")])
        error = classify_response(response, operation="GET /x")

        assert error.kind is ErrorKind.RATE_LIMITED
        assert error.retry_after_ms is None

    def test_rate_limited_without_header(self) -> None:
        error = classify_response(httpx.Response(429), operation="GET /x")
        assert error.retry_after_ms is None

    def test_kind_override(self) -> None:
        error = classify_response(
            httpx.Response(500), operation="POST /refresh", kind=ErrorKind.NETWORK
        )

        assert error.kind is ErrorKind.NETWORK
        assert error.status_code == 500

    def test_message_mentions_operation_and_status(self) -> None:
        error = classify_response(httpx.Response(404), operation="GET /tasks")

        assert "GET /tasks" in error.message
        assert "404" in error.message


class TestResponseExcerpt:
    """Diagnostic excerpts of response bodies."""

    def test_json_secrets_are_masked(self) -> None:
        response = httpx.Response(
            400, json={"error": "bad", "refreshToken": "leaky-value"}
        )
        excerpt = response_excerpt(response)

        assert "leaky-value" not in excerpt
        assert "[REDACTED]" in excerpt
        assert "bad" in excerpt

    def test_long_bodies_truncated(self) -> None:
        response = httpx.Response(500, text="x" * 1000)
        excerpt = response_excerpt(response)

        assert excerpt.endswith("...")
        assert len(excerpt) == MAX_EXCERPT_LENGTH + 3

    def test_empty_body(self) -> None:
        assert response_excerpt(httpx.Response(500)) == ""
