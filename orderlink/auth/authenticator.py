"""
Connection authenticator.

Turns the credential presented on a socket handshake into a
``Principal``, or raises ``AuthenticationFault`` with a reason the
client can show. The handshake is refused before the socket is
accepted, so no room is ever joined by an unauthenticated peer.

Verification runs in two explicit steps:

1. cryptographic: signature, expiry and token kind (``TokenManager``)
2. server-side: the token must be the subject's current token in the
   cache (``TokenCache``), which is how logout and forced sign-out work
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from orderlink.faults import AuthenticationFault, Fault
from orderlink.stores.base import UserDirectory
from .principal import AdminScope, Principal, Role, SUPER_ADMIN
from .token_cache import TokenCache
from .tokens import TokenError, TokenKind, TokenManager

logger = logging.getLogger("orderlink.auth")

TOKEN_NOT_PROVIDED = "Token not provided"
INVALID_AUTH_TOKEN = "Invalid authorization token"
INVALID_OR_EXPIRED = "Invalid or expired token"
WRONG_TOKEN_KIND = "You are not authorized to perform this action"
USER_NOT_FOUND = "User not found"
ACCOUNT_BLOCKED = "Your account has been blocked. Please contact support"
ACCOUNT_DEACTIVATED = "This account has been deactivated by the owner"
INVALID_ADMIN_TOKEN = "Invalid admin token"
AUTHENTICATION_ERROR = "Authentication error"


@dataclass
class Handshake:
    """Credential material extracted from the websocket upgrade request."""
    token: Optional[str] = None
    admin: bool = False
    headers: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(
        cls,
        headers: Dict[str, str],
        query_params: Dict[str, Any],
        admin_flag: str = "x-iadmin-access",
    ) -> "Handshake":
        """
        Collect the credential from, in order: ``Authorization`` header,
        ``token`` query parameter, JSON ``auth`` query parameter
        (``{"token": ..., "x-iadmin-access": "true"}``).
        """
        auth: Dict[str, Any] = {}
        raw_auth = query_params.get("auth")
        if raw_auth:
            try:
                parsed = json.loads(raw_auth)
                if isinstance(parsed, dict):
                    auth = parsed
            except json.JSONDecodeError:
                logger.debug("Ignoring non-JSON auth query parameter")

        token = (
            headers.get("authorization")
            or query_params.get("token")
            or auth.get("token")
        )

        flag = headers.get(admin_flag)
        if flag is None:
            flag = query_params.get(admin_flag)
        if flag is None:
            flag = auth.get(admin_flag)

        return cls(
            token=token if isinstance(token, str) else None,
            admin=str(flag).lower() == "true",
            headers=headers,
        )


class ConnectionAuthenticator:
    """
    Resolves a handshake to a ``Principal``.

    Args:
        tokens: Signature / expiry verification
        token_cache: Current-token registry
        users: User and admin lookups
        scheme: Required credential scheme prefix
        super_admin_email: Admin auth key that grants super-admin scope
    """

    def __init__(
        self,
        tokens: TokenManager,
        token_cache: TokenCache,
        users: UserDirectory,
        *,
        scheme: str = "Bearer",
        super_admin_email: str = "",
    ):
        self.tokens = tokens
        self.token_cache = token_cache
        self.users = users
        self.scheme = scheme
        self.super_admin_email = super_admin_email

    async def authenticate(self, handshake: Handshake) -> tuple[Principal, str]:
        """
        Returns:
            (principal, raw token)

        Raises:
            AuthenticationFault: Handshake must be refused
        """
        token = self._extract_token(handshake.token)

        try:
            if handshake.admin:
                principal = await self._authenticate_admin(token)
            else:
                principal = await self._authenticate_user(token)
        except AuthenticationFault:
            raise
        except Fault as e:
            logger.error(f"Authentication lookup failed: {e}")
            raise AuthenticationFault(AUTHENTICATION_ERROR) from e
        except Exception as e:
            logger.error(f"Unexpected authentication error: {e}", exc_info=True)
            raise AuthenticationFault(AUTHENTICATION_ERROR) from e

        return principal, token

    def _extract_token(self, raw: Optional[str]) -> str:
        if raw is None or not raw.strip():
            raise AuthenticationFault(TOKEN_NOT_PROVIDED)

        parts = raw.strip().split(None, 1)
        if len(parts) != 2 or parts[0].lower() != self.scheme.lower() or not parts[1].strip():
            raise AuthenticationFault(INVALID_AUTH_TOKEN)
        return parts[1].strip()

    def _verify(self, token: str, kind: TokenKind) -> Dict[str, Any]:
        try:
            return self.tokens.verify(token, kind)
        except TokenError as e:
            logger.info(f"Rejected {kind.value} token: {e}")
            if e.reason == TokenError.WRONG_KIND:
                raise AuthenticationFault(WRONG_TOKEN_KIND) from e
            raise AuthenticationFault(INVALID_OR_EXPIRED) from e

    async def _authenticate_user(self, token: str) -> Principal:
        claims = self._verify(token, TokenKind.ACCESS)
        user_id = claims["sub"]

        if not await self.token_cache.is_current(TokenKind.ACCESS, user_id, token):
            raise AuthenticationFault(INVALID_OR_EXPIRED)

        user = await self.users.get_user(user_id)
        if user is None:
            raise AuthenticationFault(USER_NOT_FOUND)
        if user.blocked:
            raise AuthenticationFault(ACCOUNT_BLOCKED)
        if user.deactivated:
            raise AuthenticationFault(ACCOUNT_DEACTIVATED)

        role = Role.AGENT if user.role == Role.AGENT.value else Role.CUSTOMER
        return Principal(
            id=user.id,
            role=role,
            display_name=user.display_name or user.id,
        )

    async def _authenticate_admin(self, token: str) -> Principal:
        claims = self._verify(token, TokenKind.ADMIN)
        auth_key = claims["sub"]

        if not await self.token_cache.is_current(TokenKind.ADMIN, auth_key, token):
            raise AuthenticationFault(INVALID_OR_EXPIRED)

        if self.super_admin_email and auth_key == self.super_admin_email:
            return Principal(
                id=auth_key,
                role=Role.ADMIN,
                display_name="Super Admin",
                admin_scope=AdminScope(admin_type=SUPER_ADMIN),
            )

        admin = await self.users.get_admin(auth_key)
        if admin is None:
            raise AuthenticationFault(INVALID_ADMIN_TOKEN)

        return Principal(
            id=auth_key,
            role=Role.ADMIN,
            display_name=admin.name or admin.email,
            admin_scope=AdminScope(
                admin_type=admin.admin_type,
                supermarket_id=admin.supermarket_id,
            ),
        )
