"""Error taxonomy shared by every layer of tweek-auth.

Every failure that crosses a component boundary is a ``ClassifiedError``.
Callers branch on ``error.kind`` rather than on exception subclasses.
Foreign exceptions are chained with ``raise ... from exc``.
"""

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Failure kinds surfaced to callers."""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    INVALID_ARGUMENT = "invalid_argument"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    NETWORK = "network"
    FORMAT_UNSUPPORTED = "format_unsupported"
    PATH_INVALID = "path_invalid"
    INTERNAL = "internal"
    UNKNOWN = "unknown"


class ClassifiedError(Exception):
    """A failure tagged with its ``ErrorKind``.

    Carries optional HTTP status, a parsed retry-after hint in milliseconds,
    and structured diagnostic details. Details must never contain secrets.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        status_code: int | None = None,
        retry_after_ms: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code
        self.retry_after_ms = retry_after_ms
        self.details = details or {}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, "
            f"message={self.message!r}, status_code={self.status_code!r})"
        )


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""

    pass


def kind_for_status(status: int) -> ErrorKind:
    """Map an HTTP status code to its error kind.

    Total and deterministic: every status lands in exactly one bucket.
    """
    if status in (401, 403):
        return ErrorKind.UNAUTHORIZED
    if status == 404:
        return ErrorKind.NOT_FOUND
    if status == 400:
        return ErrorKind.INVALID_ARGUMENT
    if status == 429:
        return ErrorKind.RATE_LIMITED
    if 500 <= status < 600:
        return ErrorKind.UNAVAILABLE
    return ErrorKind.UNKNOWN


def describe_error(error: ClassifiedError) -> str:
    """Render user-facing guidance for a classified error."""
    match error.kind:
        case ErrorKind.UNAUTHORIZED:
            return "Invalid credentials. Sign in again or check the refresh token."
        case ErrorKind.RATE_LIMITED:
            if error.retry_after_ms is not None:
                wait_seconds = max(1, round(error.retry_after_ms / 1000))
                return f"Rate limited. Try again later (in about {wait_seconds}s)."
            return "Rate limited. Try again later."
        case ErrorKind.NETWORK:
            return "Network error. Check connectivity and try again."
        case _:
            return f"{error.kind.value}: {error.message}"


__all__ = [
    "ClassifiedError",
    "ConfigurationError",
    "ErrorKind",
    "describe_error",
    "kind_for_status",
]
