"""Resilient request executor for the Tweek API.

Wraps ``httpx.AsyncClient`` with per-attempt timeouts, header redaction in
logs, retry with backoff for idempotent requests, and classification of every
failure into a ``ClassifiedError``.
"""

import asyncio
import math
import random
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from types import TracebackType
from typing import TYPE_CHECKING, Any

import httpx
from structlog.typing import FilteringBoundLogger

from tweek_auth.core.logging import component_logger, redact_headers
from tweek_auth.exceptions import ClassifiedError, ErrorKind
from tweek_auth.http.errors import classify_response
from tweek_auth.http.retry import RetryPolicy, call_with_retry


if TYPE_CHECKING:
    from tweek_auth.config.settings import TweekSettings


USER_AGENT = "tweek-auth/0.1.0"
SUPPORTED_METHODS = frozenset({"GET", "POST", "PUT", "PATCH", "DELETE"})

TokenProvider = Callable[[], Awaitable[str]]


@dataclass(frozen=True)
class HttpResponse:
    """Successful response: status, headers and decoded body."""

    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


class ResilientHttpClient:
    """HTTP client with timeout, retry and structured error handling.

    Authorization comes from a token set with ``set_authorization_token`` or,
    when configured, from ``token_provider`` (typically
    ``AuthManager.get_valid_token``), awaited once per request.
    """

    def __init__(
        self,
        settings: "TweekSettings",
        *,
        token_provider: TokenProvider | None = None,
        retry_policy: RetryPolicy | None = None,
        http_client: httpx.AsyncClient | None = None,
        logger: FilteringBoundLogger | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        rng: Callable[[], float] = random.random,
    ) -> None:
        """Initialize the executor.

        Args:
            settings: Application settings
            token_provider: Coroutine returning a valid access token
            retry_policy: Retry budget; defaults to the settings' policy
            http_client: Optional shared httpx client
            logger: Injected logger
            sleep: Awaitable sleep used between retries
            rng: Jitter source

        """
        self.base_url = settings.api_base
        self._api_key = settings.api_key
        self._timeout = settings.request_timeout
        self._token_provider = token_provider
        self._auth_token: str | None = None
        self.retry_policy = retry_policy or settings.retry_policy
        self._logger = component_logger("http_client", logger)
        self._sleep = sleep
        self._rng = rng
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def __aenter__(self) -> "ResilientHttpClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def set_authorization_token(self, token: str | None) -> None:
        """Set the bearer token attached to subsequent requests."""
        self._auth_token = token or None

    async def execute(
        self,
        method: str,
        path: str,
        body: str | dict[str, Any] | list[Any] | None = None,
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> HttpResponse:
        """Perform a request, retrying transient failures of idempotent methods.

        Args:
            method: One of GET, POST, PUT, PATCH, DELETE
            path: Path relative to the configured API base
            body: JSON-serializable object, or a pre-encoded string
            headers: Extra headers; they override the defaults
            timeout: Per-attempt timeout in seconds

        Returns:
            The successful response

        Raises:
            ClassifiedError: Validation, transport or HTTP status failure

        """
        normalized_method = self._validate_method(method)
        url = self._build_url(path)
        attempt_timeout = self._validate_timeout(timeout)
        request_headers = await self._build_headers(headers)
        content, json_body = self._encode_body(body)

        started = time.monotonic()
        self._logger.info(
            "http_request",
            method=normalized_method,
            path=path,
            headers=redact_headers(request_headers),
        )

        async def attempt() -> HttpResponse:
            return await self._send_once(
                normalized_method,
                url,
                path,
                request_headers,
                content,
                json_body,
                attempt_timeout,
                started,
            )

        return await call_with_retry(
            attempt,
            normalized_method,
            self.retry_policy,
            sleep=self._sleep,
            rng=self._rng,
            logger=self._logger,
        )

    async def get(
        self, path: str, headers: dict[str, str] | None = None, *, timeout: float | None = None
    ) -> HttpResponse:
        return await self.execute("GET", path, headers=headers, timeout=timeout)

    async def post(
        self,
        path: str,
        body: str | dict[str, Any] | list[Any] | None = None,
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> HttpResponse:
        return await self.execute("POST", path, body, headers, timeout=timeout)

    async def put(
        self,
        path: str,
        body: str | dict[str, Any] | list[Any] | None = None,
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> HttpResponse:
        return await self.execute("PUT", path, body, headers, timeout=timeout)

    async def patch(
        self,
        path: str,
        body: str | dict[str, Any] | list[Any] | None = None,
        headers: dict[str, str] | None = None,
        *,
        timeout: float | None = None,
    ) -> HttpResponse:
        return await self.execute("PATCH", path, body, headers, timeout=timeout)

    async def delete(
        self, path: str, headers: dict[str, str] | None = None, *, timeout: float | None = None
    ) -> HttpResponse:
        return await self.execute("DELETE", path, headers=headers, timeout=timeout)

    async def _send_once(
        self,
        method: str,
        url: str,
        path: str,
        headers: httpx.Headers,
        content: str | None,
        json_body: Any,
        timeout: float,
        started: float,
    ) -> HttpResponse:
        try:
            async with asyncio.timeout(timeout):
                response = await self._client.request(
                    method, url, headers=headers, content=content, json=json_body
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            self._logger.error(
                "http_request_timeout",
                method=method,
                path=path,
                duration_ms=_elapsed_ms(started),
            )
            raise ClassifiedError(
                ErrorKind.NETWORK,
                f"{method} {path} timed out after {timeout}s",
                details={"reason": "timeout"},
            ) from e
        except httpx.HTTPError as e:
            self._logger.error(
                "http_request_transport_error",
                method=method,
                path=path,
                error=type(e).__name__,
            )
            raise ClassifiedError(
                ErrorKind.NETWORK,
                f"{method} {path} failed: {type(e).__name__}",
                details={"reason": "transport"},
            ) from e

        self._logger.info(
            "http_response",
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=_elapsed_ms(started),
        )

        if not response.is_success:
            raise classify_response(response, operation=f"{method} {path}")

        return HttpResponse(
            status=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
        )

    @staticmethod
    def _validate_method(method: str) -> str:
        normalized = method.upper() if isinstance(method, str) else ""
        if normalized not in SUPPORTED_METHODS:
            raise ClassifiedError(
                ErrorKind.INVALID_ARGUMENT,
                f"Unsupported HTTP method: {method!r}",
            )
        return normalized

    def _build_url(self, path: str) -> str:
        if not isinstance(path, str) or not path.strip():
            raise ClassifiedError(
                ErrorKind.INVALID_ARGUMENT, "Path must be a non-empty string"
            )
        base = httpx.URL(self.base_url + "/")
        try:
            url = base.join(path.lstrip("/"))
        except httpx.InvalidURL as e:
            raise ClassifiedError(
                ErrorKind.INVALID_ARGUMENT, f"Invalid URL for path {path!r}"
            ) from e
        # Credentials are only ever sent to the configured API host.
        if url.host != base.host or url.scheme != base.scheme:
            raise ClassifiedError(
                ErrorKind.INVALID_ARGUMENT,
                f"Path {path!r} resolves outside the API base",
            )
        return str(url)

    def _validate_timeout(self, timeout: float | None) -> float:
        if timeout is None:
            return self._timeout
        if (
            isinstance(timeout, bool)
            or not isinstance(timeout, int | float)
            or not math.isfinite(timeout)
            or timeout < 0
        ):
            raise ClassifiedError(
                ErrorKind.INVALID_ARGUMENT,
                "Timeout must be a non-negative finite number",
            )
        return float(timeout)

    async def _build_headers(self, extra: dict[str, str] | None) -> httpx.Headers:
        headers = httpx.Headers(
            {
                "x-api-key": self._api_key.get_secret_value(),
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        token = self._auth_token
        if self._token_provider is not None:
            token = await self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            # Case-insensitive: a caller's "authorization" replaces the default.
            headers.update(extra)
        return headers

    @staticmethod
    def _encode_body(body: Any) -> tuple[str | None, Any]:
        if body is None:
            return None, None
        if isinstance(body, str):
            return body, None
        return None, body


def _decode_body(response: httpx.Response) -> Any:
    content_type = response.headers.get("content-type", "")
    if "application/json" in content_type:
        try:
            return response.json()
        except ValueError as e:
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                "Response declared JSON but could not be decoded",
                status_code=response.status_code,
            ) from e
    return response.text


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


__all__ = ["HttpResponse", "ResilientHttpClient", "SUPPORTED_METHODS", "TokenProvider"]
