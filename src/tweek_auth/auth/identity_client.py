"""Identity exchange client for the Tweek identity endpoints.

Exchanges user credentials or a refresh token for an access token. Every call
runs under an explicit timeout and every failure leaves as a
``ClassifiedError``.
"""

import asyncio
from types import TracebackType
from typing import Any

import httpx
from structlog.typing import FilteringBoundLogger

from tweek_auth.auth.models import CredentialPair, RefreshedToken, now_ms
from tweek_auth.config.settings import TweekSettings
from tweek_auth.core.logging import component_logger
from tweek_auth.exceptions import ClassifiedError, ErrorKind
from tweek_auth.http.errors import classify_response


DEFAULT_TOKEN_EXPIRY_SECONDS = 3600


class IdentityClient:
    """Client for ``/identity/sign-in`` and ``/identity/refresh``.

    Supports connection pooling by reusing a shared ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        settings: TweekSettings,
        http_client: httpx.AsyncClient | None = None,
        *,
        logger: FilteringBoundLogger | None = None,
    ) -> None:
        """Initialize the identity client.

        Args:
            settings: Application settings
            http_client: Optional shared httpx client for connection pooling
            logger: Injected logger

        """
        self.base_url = f"{settings.api_base}/identity"
        self._api_key = settings.api_key
        self._timeout = settings.request_timeout
        self._logger = component_logger("identity_client", logger)
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient()

    async def __aenter__(self) -> "IdentityClient":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        return {
            "content-type": "application/json",
            "accept": "application/json",
            "x-api-key": self._api_key.get_secret_value(),
        }

    async def exchange_credentials(self, identifier: str, secret: str) -> CredentialPair:
        """Sign in with an email and password.

        Args:
            identifier: Account email
            secret: Account password; used for this request only

        Returns:
            A full credential pair

        Raises:
            ClassifiedError: ``UNAUTHORIZED``, ``RATE_LIMITED``, ``NETWORK`` or
                ``INTERNAL``

        """
        body = await self._post(
            "sign-in", {"email": identifier, "password": secret}, operation="Identity sign-in"
        )
        access_token = self._require_str(body, "idToken", "Identity sign-in")
        refresh_token = self._require_str(body, "refreshToken", "Identity sign-in")
        expires_at = self._expires_at(body)
        self._logger.info("identity_sign_in_succeeded", expires_at=expires_at)
        return CredentialPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
        )

    async def refresh(self, refresh_token: str) -> RefreshedToken:
        """Exchange a refresh token for a new access token.

        The refresh token is not rotated; callers keep the one they sent.

        Raises:
            ClassifiedError: ``UNAUTHORIZED``, ``RATE_LIMITED``, ``NETWORK`` or
                ``INTERNAL``

        """
        body = await self._post(
            "refresh", {"refreshToken": refresh_token}, operation="Identity refresh"
        )
        access_token = self._require_str(body, "idToken", "Identity refresh")
        expires_at = self._expires_at(body)
        self._logger.info("identity_refresh_succeeded", expires_at=expires_at)
        return RefreshedToken(access_token=access_token, expires_at=expires_at)

    async def _post(
        self, endpoint: str, payload: dict[str, Any], *, operation: str
    ) -> dict[str, Any]:
        url = f"{self.base_url}/{endpoint}"
        try:
            async with asyncio.timeout(self._timeout):
                response = await self._client.post(
                    url, headers=self._headers(), json=payload
                )
        except (TimeoutError, httpx.TimeoutException) as e:
            self._logger.error(
                "identity_request_timeout", endpoint=endpoint, timeout=self._timeout
            )
            raise ClassifiedError(
                ErrorKind.NETWORK,
                f"{operation} timed out after {self._timeout}s",
                details={"reason": "timeout", "endpoint": endpoint},
            ) from e
        except httpx.HTTPError as e:
            self._logger.error(
                "identity_request_failed", endpoint=endpoint, error=type(e).__name__
            )
            raise ClassifiedError(
                ErrorKind.NETWORK,
                f"{operation} failed: {type(e).__name__}",
                details={"reason": "transport", "endpoint": endpoint},
            ) from e

        if not response.is_success:
            raise self._classify_failure(response, operation)

        try:
            body = response.json()
        except ValueError as e:
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                f"{operation} returned a malformed response",
                status_code=response.status_code,
            ) from e
        if not isinstance(body, dict):
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                f"{operation} returned a malformed response",
                status_code=response.status_code,
            )
        return body

    def _classify_failure(self, response: httpx.Response, operation: str) -> ClassifiedError:
        status = response.status_code
        if status in (401, 403):
            kind = ErrorKind.UNAUTHORIZED
        elif status == 429:
            kind = ErrorKind.RATE_LIMITED
        else:
            kind = ErrorKind.NETWORK
        error = classify_response(response, operation=operation, kind=kind)
        self._logger.error(
            "identity_request_rejected",
            operation=operation,
            status_code=status,
            error_kind=kind.value,
            retry_after_ms=error.retry_after_ms,
            response_preview=error.details.get("body"),
        )
        return error

    @staticmethod
    def _require_str(body: dict[str, Any], key: str, operation: str) -> str:
        value = body.get(key)
        if not isinstance(value, str) or not value:
            raise ClassifiedError(
                ErrorKind.INTERNAL,
                f"{operation} response is missing '{key}'",
            )
        return value

    def _expires_at(self, body: dict[str, Any]) -> int:
        expires_in = body.get("expiresIn")
        if isinstance(expires_in, bool) or not isinstance(expires_in, int | float):
            self._logger.warning(
                "identity_expiry_missing", default_seconds=DEFAULT_TOKEN_EXPIRY_SECONDS
            )
            expires_in = DEFAULT_TOKEN_EXPIRY_SECONDS
        return now_ms() + int(expires_in * 1000)


__all__ = ["DEFAULT_TOKEN_EXPIRY_SECONDS", "IdentityClient"]
