"""Core utilities shared across tweek-auth."""

from tweek_auth.core.logging import (
    component_logger,
    configure_logging,
    redact_headers,
    redact_sensitive,
)


__all__ = [
    "component_logger",
    "configure_logging",
    "redact_headers",
    "redact_sensitive",
]
