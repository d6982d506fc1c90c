"""Credential exchange, token storage and token lifecycle."""

from tweek_auth.auth.identity_client import IdentityClient
from tweek_auth.auth.manager import AuthManager
from tweek_auth.auth.models import CredentialPair, RefreshedToken, is_expiring_soon
from tweek_auth.auth.storage import TokenStore


__all__ = [
    "AuthManager",
    "CredentialPair",
    "IdentityClient",
    "RefreshedToken",
    "TokenStore",
    "is_expiring_soon",
]
