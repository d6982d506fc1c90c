"""Shared fixtures for tweek-auth tests."""

import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
import structlog

from tweek_auth.auth.models import CredentialPair, now_ms
from tweek_auth.config.settings import TweekSettings


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Strip TWEEK_* variables and reset structlog around every test."""
    for name in list(os.environ):
        if name.upper().startswith("TWEEK_"):
            monkeypatch.delenv(name, raising=False)
    structlog.reset_defaults()
    yield
    structlog.reset_defaults()


@pytest.fixture
def tokens_path(tmp_path: Path) -> Path:
    return tmp_path / "config" / "tokens.json"


@pytest.fixture
def make_settings(tokens_path: Path) -> Callable[..., TweekSettings]:
    """Build settings pointing at a temporary token file."""

    def _make(**overrides: Any) -> TweekSettings:
        values: dict[str, Any] = {
            "api_base": "https://api.test/v1",
            "api_key": "test-api-key",
            "tokens_path": tokens_path,
            "request_timeout_ms": 2000,
            "token_refresh_buffer_sec": 60,
        }
        values.update(overrides)
        return TweekSettings(**values)

    return _make


@pytest.fixture
def settings(make_settings: Callable[..., TweekSettings]) -> TweekSettings:
    return make_settings()


@pytest.fixture
def make_pair() -> Callable[..., CredentialPair]:
    """Build a credential pair expiring ``expires_in`` seconds from now."""

    def _make(
        expires_in: int = 3600,
        access_token: str = "access-token-1",
        refresh_token: str = "refresh-token-1",
    ) -> CredentialPair:
        return CredentialPair(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=now_ms() + expires_in * 1000,
        )

    return _make
