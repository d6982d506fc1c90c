"""Structured logging setup with secret redaction.

Components receive a logger through their constructor. When none is given
they bind their own ``component`` name onto a structlog logger.
"""

import logging
import sys
from collections.abc import Mapping, MutableMapping
from typing import Any

import structlog
from structlog.typing import FilteringBoundLogger


REDACTED = "[REDACTED]"

SENSITIVE_HEADERS = frozenset(
    {
        "authorization",
        "x-api-key",
        "cookie",
        "x-auth-token",
    }
)

# Compared after lower-casing and stripping "-" and "_".
_SENSITIVE_KEYS = frozenset(
    {
        "password",
        "token",
        "apikey",
        "secret",
        "authorization",
        "xapikey",
        "cookie",
        "xauthtoken",
        "accesstoken",
        "refreshtoken",
        "idtoken",
        "encryptionkey",
    }
)


def is_sensitive_key(key: str) -> bool:
    """Check whether a mapping key names a secret value."""
    normalized = key.lower().replace("-", "").replace("_", "")
    return normalized in _SENSITIVE_KEYS


def redact_sensitive(value: Any) -> Any:
    """Recursively replace values stored under sensitive keys."""
    if isinstance(value, Mapping):
        return {
            key: REDACTED
            if isinstance(key, str) and is_sensitive_key(key)
            else redact_sensitive(val)
            for key, val in value.items()
        }
    if isinstance(value, list | tuple):
        return [redact_sensitive(item) for item in value]
    return value


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    """Return a copy of ``headers`` safe for logging."""
    return {
        key: REDACTED if key.lower() in SENSITIVE_HEADERS else value
        for key, value in headers.items()
    }


def redact_sensitive_fields(
    logger: Any, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """structlog processor masking secrets in every event."""
    for key in list(event_dict):
        if key == "event":
            continue
        if is_sensitive_key(key):
            event_dict[key] = REDACTED
        else:
            event_dict[key] = redact_sensitive(event_dict[key])
    return event_dict


def configure_logging(level: str = "INFO", json_logs: bool = False) -> None:
    """Install the structlog processor chain.

    Args:
        level: Minimum log level name
        json_logs: Render JSON lines instead of the console format

    """
    renderer: Any = (
        structlog.processors.JSONRenderer()
        if json_logs
        else structlog.dev.ConsoleRenderer(colors=False)
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            redact_sensitive_fields,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            logging.getLevelName(level.upper())
        ),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def component_logger(
    component: str, logger: FilteringBoundLogger | None = None
) -> FilteringBoundLogger:
    """Return the injected logger, or a fresh one bound to ``component``."""
    if logger is not None:
        return logger
    bound: FilteringBoundLogger = structlog.get_logger("tweek_auth").bind(
        component=component
    )
    return bound


__all__ = [
    "REDACTED",
    "SENSITIVE_HEADERS",
    "component_logger",
    "configure_logging",
    "is_sensitive_key",
    "redact_headers",
    "redact_sensitive",
    "redact_sensitive_fields",
]
