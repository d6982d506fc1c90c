"""Tests for log redaction and logger setup."""

from unittest.mock import MagicMock

import structlog
from structlog.testing import capture_logs

from tweek_auth.core.logging import (
    REDACTED,
    component_logger,
    configure_logging,
    redact_headers,
    redact_sensitive,
    redact_sensitive_fields,
)


class TestRedactHeaders:
    """Header masking."""

    def test_sensitive_headers_masked(self) -> None:
        headers = {
            "Authorization": "Bearer abc",
            "x-api-key": "key",
            "Cookie": "session=1",
            "X-Auth-Token": "t",
            "Content-Type": "application/json",
        }

        redacted = redact_headers(headers)

        assert redacted["Authorization"] == REDACTED
        assert redacted["x-api-key"] == REDACTED
        assert redacted["Cookie"] == REDACTED
        assert redacted["X-Auth-Token"] == REDACTED
        assert redacted["Content-Type"] == "application/json"

    def test_original_untouched(self) -> None:
        headers = {"authorization": "Bearer abc"}
        redact_headers(headers)
        assert headers["authorization"] == "Bearer abc"


class TestRedactSensitive:
    """Recursive masking of structured values."""

    def test_nested_mappings_and_lists(self) -> None:
        value = {
            "user": {"email": "me@example.com", "password": "pw"},
            "tokens": [{"refreshToken": "r"}, {"access_token": "a"}],
            "count": 2,
        }

        redacted = redact_sensitive(value)

        assert redacted["user"] == {"email": "me@example.com", "password": REDACTED}
        assert redacted["tokens"] == [
            {"refreshToken": REDACTED},
            {"access_token": REDACTED},
        ]
        assert redacted["count"] == 2

    def test_list_of_mappings(self) -> None:
        redacted = redact_sensitive([{"idToken": "x"}, {"name": "ok"}])
        assert redacted == [{"idToken": REDACTED}, {"name": "ok"}]

    def test_key_matching_ignores_case_and_separators(self) -> None:
        redacted = redact_sensitive(
            {"API_KEY": "1", "Refresh-Token": "2", "EncryptionKey": "3"}
        )
        assert set(redacted.values()) == {REDACTED}

    def test_scalars_pass_through(self) -> None:
        assert redact_sensitive("plain") == "plain"
        assert redact_sensitive(None) is None


class TestProcessor:
    """structlog processor behaviour."""

    def test_masks_top_level_and_nested(self) -> None:
        event = {
            "event": "token_refresh_succeeded",
            "refresh_token": "r",
            "payload": {"password": "pw", "email": "e"},
        }

        result = redact_sensitive_fields(None, "info", event)

        assert result["event"] == "token_refresh_succeeded"
        assert result["refresh_token"] == REDACTED
        assert result["payload"] == {"password": REDACTED, "email": "e"}

    def test_configured_pipeline_masks_output(self, capsys) -> None:  # type: ignore[no-untyped-def]
        configure_logging("INFO", json_logs=True)
        log = structlog.get_logger("tweek_auth")

        log.info("signin", password="hunter2", email="me@example.com")

        err = capsys.readouterr().err
        assert "hunter2" not in err
        assert REDACTED in err
        assert "me@example.com" in err

    def test_level_filtering(self, capsys) -> None:  # type: ignore[no-untyped-def]
        configure_logging("WARNING")
        log = structlog.get_logger("tweek_auth")

        log.info("quiet_event")
        log.warning("loud_event")

        err = capsys.readouterr().err
        assert "quiet_event" not in err
        assert "loud_event" in err


class TestComponentLogger:
    """Logger injection."""

    def test_injected_logger_returned(self) -> None:
        injected = MagicMock()
        assert component_logger("anything", injected) is injected

    def test_default_logger_bound_with_component(self) -> None:
        with capture_logs() as logs:
            component_logger("token_store").info("hello")

        assert logs[0]["component"] == "token_store"
        assert logs[0]["event"] == "hello"
