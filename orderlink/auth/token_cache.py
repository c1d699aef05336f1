"""
Current-token registry.

Each subject has at most one valid token, stored under
``{kind}_token:{subject}``. Logging out (or logging in elsewhere)
replaces or deletes the entry, which revokes every other token for that
subject even though they still verify cryptographically.
"""

from __future__ import annotations

import hmac
import logging
from typing import Optional

from orderlink.cache import CacheService
from .tokens import TokenKind

logger = logging.getLogger("orderlink.auth.token_cache")


def token_key(kind: TokenKind, subject: str) -> str:
    return f"{kind.value}_token:{subject}"


class TokenCache:

    def __init__(self, cache: CacheService):
        self.cache = cache

    async def remember(self, kind: TokenKind, subject: str, token: str, ttl: int) -> bool:
        """Make ``token`` the single current token for ``subject``."""
        return await self.cache.set(token_key(kind, subject), token, ttl=ttl)

    async def current(self, kind: TokenKind, subject: str) -> Optional[str]:
        value = await self.cache.get(token_key(kind, subject))
        return value if isinstance(value, str) else None

    async def is_current(self, kind: TokenKind, subject: str, token: str) -> bool:
        """
        True only if ``token`` is the stored current token.

        A cache failure reads as "no current token": the handshake is
        refused rather than trusting an unverifiable credential.
        """
        stored = await self.current(kind, subject)
        if stored is None:
            return False
        return hmac.compare_digest(stored.encode("utf-8"), token.encode("utf-8"))

    async def revoke(self, kind: TokenKind, subject: str) -> bool:
        removed = await self.cache.delete(token_key(kind, subject))
        if removed:
            logger.info(f"Revoked {kind.value} token for {subject}")
        return removed
