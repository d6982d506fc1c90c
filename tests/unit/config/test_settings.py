"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from tweek_auth.config.settings import (
    DEFAULT_API_BASE,
    DEFAULT_REFRESH_BUFFER_SEC,
    DEFAULT_REQUEST_TIMEOUT_MS,
    TweekSettings,
    get_settings,
)
from tweek_auth.exceptions import ConfigurationError
from tweek_auth.http.retry import RetryPolicy


@pytest.fixture(autouse=True)
def no_dotenv(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Run from an empty directory so a local .env file is never read."""
    monkeypatch.chdir(tmp_path)


class TestDefaults:
    """Values applied when only the API key is set."""

    def test_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")

        settings = get_settings()

        assert settings.api_base == DEFAULT_API_BASE
        assert settings.request_timeout_ms == DEFAULT_REQUEST_TIMEOUT_MS
        assert settings.request_timeout == 10.0
        assert settings.token_refresh_buffer_sec == DEFAULT_REFRESH_BUFFER_SEC
        assert settings.encryption_key is None
        assert settings.encryption_key_value() is None
        assert settings.tokens_path == Path.home() / ".config" / "tweek" / "tokens.json"
        assert settings.retry_policy == RetryPolicy()

    def test_api_key_is_secret(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "do-not-print")

        settings = get_settings()

        assert "do-not-print" not in repr(settings)
        assert settings.api_key.get_secret_value() == "do-not-print"


class TestApiKey:
    """The API key is mandatory."""

    def test_missing(self) -> None:
        with pytest.raises(ConfigurationError) as exc_info:
            get_settings()

        assert "api_key" in str(exc_info.value)

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank(self, monkeypatch: pytest.MonkeyPatch, value: str) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", value)

        with pytest.raises(ConfigurationError):
            get_settings()


class TestOverrides:
    """Values read from the environment."""

    def test_api_base_trailing_slash_stripped(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_API_BASE", "https://staging.tweek.test/api/v1/")

        assert get_settings().api_base == "https://staging.tweek.test/api/v1"

    def test_tokens_path_expanded(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_TOKENS_PATH", "~/custom/tokens.json")

        assert get_settings().tokens_path == Path.home() / "custom" / "tokens.json"

    def test_numeric_values(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_REQUEST_TIMEOUT_MS", "2500")
        monkeypatch.setenv("TWEEK_TOKEN_REFRESH_BUFFER_SEC", "30")

        settings = get_settings()

        assert settings.request_timeout_ms == 2500
        assert settings.request_timeout == 2.5
        assert settings.token_refresh_buffer_sec == 30

    @pytest.mark.parametrize("value", ["abc", "-5", "nan", "inf"])
    def test_invalid_numbers_fall_back(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_REQUEST_TIMEOUT_MS", value)
        monkeypatch.setenv("TWEEK_TOKEN_REFRESH_BUFFER_SEC", value)

        settings = get_settings()

        assert settings.request_timeout_ms == DEFAULT_REQUEST_TIMEOUT_MS
        assert settings.token_refresh_buffer_sec == DEFAULT_REFRESH_BUFFER_SEC

    @pytest.mark.parametrize("value", ["", "   "])
    def test_blank_encryption_key_disables_encryption(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_ENCRYPTION_KEY", value)

        assert get_settings().encryption_key_value() is None

    def test_encryption_key_trimmed(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_ENCRYPTION_KEY", "  material  ")

        assert get_settings().encryption_key_value() == "material"

    def test_nested_retry_settings(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv("TWEEK_RETRY__MAX_ATTEMPTS", "5")
        monkeypatch.setenv("TWEEK_RETRY__INITIAL_DELAY", "0.5")

        policy = get_settings().retry_policy

        assert policy.max_attempts == 5
        assert policy.initial_delay == 0.5

    @pytest.mark.parametrize(
        ("name", "value"),
        [
            ("MAX_ATTEMPTS", "0"),
            ("MAX_ATTEMPTS", "11"),
            ("MAX_ATTEMPTS", "many"),
            ("INITIAL_DELAY", "-1"),
            ("MAX_DELAY", "nan"),
            ("JITTER_FACTOR", "5"),
        ],
    )
    def test_out_of_range_retry_values_fall_back(
        self, monkeypatch: pytest.MonkeyPatch, name: str, value: str
    ) -> None:
        monkeypatch.setenv("TWEEK_API_KEY", "key")
        monkeypatch.setenv(f"TWEEK_RETRY__{name}", value)

        policy = get_settings().retry_policy

        assert policy.max_attempts == 3
        assert policy.initial_delay == 1.0
        assert policy.max_delay == 10.0
        assert policy.jitter_factor == 0.1

    def test_keyword_overrides(self) -> None:
        settings = get_settings(api_key="inline", request_timeout_ms=500)

        assert settings.api_key.get_secret_value() == "inline"
        assert settings.request_timeout == 0.5

    def test_constructed_directly(self, tmp_path: Path) -> None:
        settings = TweekSettings(api_key="key", tokens_path=tmp_path / "t.json")

        assert settings.tokens_path == tmp_path / "t.json"
