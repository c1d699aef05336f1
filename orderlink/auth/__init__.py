"""
Handshake authentication: token verification, current-token registry
and principal resolution.
"""

from .principal import AdminScope, Principal, Role, SUPER_ADMIN
from .tokens import TokenError, TokenKind, TokenManager
from .token_cache import TokenCache, token_key
from .authenticator import ConnectionAuthenticator, Handshake

__all__ = [
    "AdminScope",
    "Principal",
    "Role",
    "SUPER_ADMIN",
    "TokenError",
    "TokenKind",
    "TokenManager",
    "TokenCache",
    "token_key",
    "ConnectionAuthenticator",
    "Handshake",
]
