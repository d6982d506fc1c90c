"""Configuration module for tweek-auth."""

from tweek_auth.exceptions import ConfigurationError

from .settings import RetrySettings, TweekSettings, get_settings


__all__ = [
    "ConfigurationError",
    "RetrySettings",
    "TweekSettings",
    "get_settings",
]
