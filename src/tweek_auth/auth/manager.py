"""Auth manager: token cache, expiry tracking and proactive refresh."""

import asyncio
import contextlib
from collections.abc import Callable

from structlog.typing import FilteringBoundLogger

from tweek_auth.auth.identity_client import IdentityClient
from tweek_auth.auth.models import CredentialPair, is_expiring_soon, now_ms
from tweek_auth.auth.storage import TokenStore
from tweek_auth.config.settings import TweekSettings
from tweek_auth.core.logging import component_logger
from tweek_auth.exceptions import ClassifiedError


class AuthManager:
    """Hands out valid access tokens.

    Features:
    - Caches the credential pair in memory, loading it lazily from the store
    - Refreshes when the access token is within the buffer window of expiry
    - Serializes concurrent refreshes behind a single lock
    - Persists every refresh before returning the new token
    - Runs a best-effort refresh at startup as a tracked background task
    """

    def __init__(
        self,
        settings: TweekSettings,
        *,
        token_store: TokenStore | None = None,
        identity_client: IdentityClient | None = None,
        logger: FilteringBoundLogger | None = None,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        """Initialize the auth manager.

        Args:
            settings: Application settings
            token_store: Store override; built from settings when omitted
            identity_client: Client override; built from settings when omitted
            logger: Injected logger, shared with owned collaborators
            clock: Returns the current time as epoch milliseconds

        """
        self._logger = component_logger("auth_manager", logger)
        self.refresh_buffer_seconds = settings.token_refresh_buffer_sec
        self._store = token_store or TokenStore(
            settings.tokens_path,
            settings.encryption_key_value(),
            logger=logger,
        )
        self._owns_identity_client = identity_client is None
        self._identity = identity_client or IdentityClient(settings, logger=logger)
        self._clock = clock

        self._cached: CredentialPair | None = None
        self._refresh_lock = asyncio.Lock()
        self._refresh_generation = 0
        self._startup_refresh: asyncio.Task[None] | None = None

    @property
    def cached_credentials(self) -> CredentialPair | None:
        return self._cached

    @property
    def startup_refresh_task(self) -> asyncio.Task[None] | None:
        return self._startup_refresh

    def is_expiring_soon(self, pair: CredentialPair) -> bool:
        return is_expiring_soon(pair, self.refresh_buffer_seconds, self._clock())

    async def initialize(self) -> None:
        """Load persisted credentials and kick off a refresh if one is due.

        Store errors propagate. A failed startup refresh is only logged: the
        current token may still have runway, and ``get_valid_token`` retries
        on demand.
        """
        self._cached = self._store.read()
        if not self.is_expiring_soon(self._cached):
            self._logger.info(
                "auth_initialized",
                expires_in=self._cached.expires_in_seconds(self._clock()),
            )
            return

        self._logger.info("auth_startup_refresh_scheduled")
        task = asyncio.create_task(
            self._refresh_if_needed(), name="tweek-auth-startup-refresh"
        )
        task.add_done_callback(self._on_startup_refresh_done)
        self._startup_refresh = task

    def _on_startup_refresh_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        kind = error.kind.value if isinstance(error, ClassifiedError) else None
        self._logger.warning(
            "auth_startup_refresh_failed",
            error_kind=kind,
            error=str(error),
        )

    async def get_valid_token(self) -> str:
        """Return an access token that is not about to expire.

        Raises:
            ClassifiedError: From the store or from the refresh exchange

        """
        if self._cached is None:
            self._cached = self._store.read()
        if self.is_expiring_soon(self._cached):
            await self._refresh_if_needed()
        return self._cached.access_token

    async def _refresh_if_needed(self) -> None:
        generation = self._refresh_generation
        async with self._refresh_lock:
            # A refresh that finished while this caller waited counts as its own,
            # even if the new token already sits inside the buffer window.
            if self._refresh_generation != generation:
                return
            if self._cached is not None and not self.is_expiring_soon(self._cached):
                return
            await self._refresh()

    async def _refresh(self) -> None:
        current = self._cached if self._cached is not None else self._store.read()
        refreshed = await self._identity.refresh(current.refresh_token)
        updated = current.with_refreshed(refreshed)
        self._store.write(updated)
        self._cached = updated
        self._refresh_generation += 1
        self._logger.info(
            "token_refresh_succeeded",
            expires_in=updated.expires_in_seconds(self._clock()),
        )

    async def aclose(self) -> None:
        """Cancel a pending startup refresh and release owned resources."""
        task = self._startup_refresh
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if self._owns_identity_client:
            await self._identity.aclose()


__all__ = ["AuthManager"]
