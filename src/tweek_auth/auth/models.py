"""Credential models for the token lifecycle."""

import time
from datetime import UTC, datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Current wall-clock time as epoch milliseconds."""
    return int(time.time() * 1000)


class CredentialPair(BaseModel):
    """Access token, refresh token and the access token's expiry.

    ``expires_at`` is epoch milliseconds and describes the access token only;
    the refresh token carries no expiry of its own.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    access_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("accessToken", "idToken", "access_token"),
        serialization_alias="accessToken",
    )
    refresh_token: str = Field(
        min_length=1,
        validation_alias=AliasChoices("refreshToken", "refresh_token"),
        serialization_alias="refreshToken",
    )
    expires_at: int = Field(
        validation_alias=AliasChoices("expiresAt", "expires_at"),
        serialization_alias="expiresAt",
    )

    def __repr__(self) -> str:
        return f"CredentialPair(expires_at={self.expires_at})"

    __str__ = __repr__

    @property
    def expires_at_datetime(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at / 1000, tz=UTC)

    def expires_in_seconds(self, now: int | None = None) -> int:
        """Seconds until the access token expires (negative once expired)."""
        current = now_ms() if now is None else now
        return (self.expires_at - current) // 1000

    def with_refreshed(self, refreshed: "RefreshedToken") -> "CredentialPair":
        """Apply a refresh result, keeping the original refresh token."""
        return self.model_copy(
            update={
                "access_token": refreshed.access_token,
                "expires_at": refreshed.expires_at,
            }
        )

    def to_storage_dict(self) -> dict[str, str | int]:
        return self.model_dump(by_alias=True)


class RefreshedToken(BaseModel):
    """Result of a refresh exchange: a new access token and its expiry."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(min_length=1)
    expires_at: int

    def __repr__(self) -> str:
        return f"RefreshedToken(expires_at={self.expires_at})"

    __str__ = __repr__


def is_expiring_soon(
    pair: CredentialPair, buffer_seconds: int, now: int | None = None
) -> bool:
    """Check whether ``pair`` expires within the buffer window.

    The boundary is inclusive: a token expiring exactly at
    ``now + buffer_seconds`` is treated as expiring soon.
    """
    current = now_ms() if now is None else now
    return pair.expires_at <= current + buffer_seconds * 1000


__all__ = [
    "CredentialPair",
    "RefreshedToken",
    "is_expiring_soon",
    "now_ms",
]
