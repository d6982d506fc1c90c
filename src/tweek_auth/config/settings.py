"""Settings for the Tweek API trust boundary."""

from pathlib import Path
from typing import Any

from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tweek_auth.exceptions import ConfigurationError
from tweek_auth.http.retry import DEFAULT_RETRY_POLICY, RetryPolicy


__all__ = [
    "DEFAULT_API_BASE",
    "DEFAULT_TOKENS_PATH",
    "RetrySettings",
    "TweekSettings",
    "get_settings",
]

DEFAULT_API_BASE = "https://tweek.so/api/v1"
DEFAULT_TOKENS_PATH = "~/.config/tweek/tokens.json"
DEFAULT_REQUEST_TIMEOUT_MS = 10_000
DEFAULT_REFRESH_BUFFER_SEC = 120


def _non_negative_int_or(value: Any, fallback: int) -> int:
    """Parse ``value`` as a non-negative integer, falling back on garbage."""
    if value is None:
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")) or number < 0:
        return fallback
    return int(number)


def _number_in_range_or(
    value: Any, fallback: float, minimum: float, maximum: float | None = None
) -> float:
    """Parse ``value`` as a number within bounds, falling back otherwise."""
    if value is None or isinstance(value, bool):
        return fallback
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    if number < minimum or (maximum is not None and number > maximum):
        return fallback
    return number


class RetrySettings(BaseSettings):
    """Retry/backoff configuration for idempotent requests."""

    model_config = SettingsConfigDict(
        env_prefix="TWEEK_RETRY_",
        case_sensitive=False,
        extra="ignore",
    )

    max_attempts: int = Field(default=3, ge=1, le=10)
    initial_delay: float = Field(
        default=1.0, ge=0, description="Delay before the first retry, in seconds"
    )
    max_delay: float = Field(
        default=10.0, ge=0, description="Upper bound for the pre-jitter delay"
    )
    jitter_factor: float = Field(default=0.1, ge=0, le=1)

    @field_validator("max_attempts", mode="before")
    @classmethod
    def coerce_max_attempts(cls, v: Any) -> int:
        return int(_number_in_range_or(v, DEFAULT_RETRY_POLICY.max_attempts, 1, 10))

    @field_validator("initial_delay", mode="before")
    @classmethod
    def coerce_initial_delay(cls, v: Any) -> float:
        return _number_in_range_or(v, DEFAULT_RETRY_POLICY.initial_delay, 0)

    @field_validator("max_delay", mode="before")
    @classmethod
    def coerce_max_delay(cls, v: Any) -> float:
        return _number_in_range_or(v, DEFAULT_RETRY_POLICY.max_delay, 0)

    @field_validator("jitter_factor", mode="before")
    @classmethod
    def coerce_jitter_factor(cls, v: Any) -> float:
        return _number_in_range_or(v, DEFAULT_RETRY_POLICY.jitter_factor, 0, 1)

    def to_policy(self) -> RetryPolicy:
        """Build the immutable policy consumed by the retry engine."""
        return RetryPolicy(
            max_attempts=self.max_attempts,
            initial_delay=self.initial_delay,
            max_delay=max(self.max_delay, self.initial_delay),
            jitter_factor=self.jitter_factor,
        )


class TweekSettings(BaseSettings):
    """Configuration consumed by the auth and HTTP layers.

    Values come from ``TWEEK_*`` environment variables or a ``.env`` file.
    Numeric values that fail to parse fall back to their defaults; a missing
    or blank API key is a hard error.
    """

    model_config = SettingsConfigDict(
        env_prefix="TWEEK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    api_base: str = Field(default=DEFAULT_API_BASE)
    api_key: SecretStr
    tokens_path: Path = Field(default=Path(DEFAULT_TOKENS_PATH))
    request_timeout_ms: int = Field(default=DEFAULT_REQUEST_TIMEOUT_MS)
    token_refresh_buffer_sec: int = Field(default=DEFAULT_REFRESH_BUFFER_SEC)
    encryption_key: SecretStr | None = None

    retry: RetrySettings = Field(default_factory=RetrySettings)

    @field_validator("api_base", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("api_key", mode="after")
    @classmethod
    def require_api_key(cls, v: SecretStr) -> SecretStr:
        if not v.get_secret_value().strip():
            raise ValueError("TWEEK_API_KEY must not be empty")
        return v

    @field_validator("tokens_path", mode="after")
    @classmethod
    def expand_tokens_path(cls, v: Path) -> Path:
        return v.expanduser().absolute()

    @field_validator("request_timeout_ms", mode="before")
    @classmethod
    def coerce_timeout(cls, v: Any) -> int:
        return _non_negative_int_or(v, DEFAULT_REQUEST_TIMEOUT_MS)

    @field_validator("token_refresh_buffer_sec", mode="before")
    @classmethod
    def coerce_refresh_buffer(cls, v: Any) -> int:
        return _non_negative_int_or(v, DEFAULT_REFRESH_BUFFER_SEC)

    @field_validator("encryption_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        if isinstance(v, SecretStr):
            v = v.get_secret_value()
        if v is None:
            return None
        stripped = str(v).strip()
        return stripped or None

    @property
    def request_timeout(self) -> float:
        """Per-request timeout in seconds."""
        return self.request_timeout_ms / 1000

    @property
    def retry_policy(self) -> RetryPolicy:
        return self.retry.to_policy()

    def encryption_key_value(self) -> str | None:
        """Reveal the encryption key material for the token codec."""
        if self.encryption_key is None:
            return None
        return self.encryption_key.get_secret_value()


def get_settings(**overrides: Any) -> TweekSettings:
    """Load settings from the environment, applying keyword overrides.

    Raises:
        ConfigurationError: If required values are missing or invalid

    """
    try:
        return TweekSettings(**overrides)
    except ValidationError as e:
        fields = ", ".join(
            ".".join(str(part) for part in err["loc"]) or "settings"
            for err in e.errors()
        )
        raise ConfigurationError(f"Invalid configuration: {fields}") from e
