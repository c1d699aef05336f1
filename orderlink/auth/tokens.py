"""
Token signing and verification.

Compact JWS tokens (``header.payload.signature``) signed with HS256.
Ordinary users and admins are signed with different secrets, and each
token carries its kind in the ``typ`` claim so an access token can never
pass as an admin token or the reverse.

Verification here is purely cryptographic (signature, expiry, kind).
Server-side revocation is a separate check, see ``TokenCache``.
"""

from __future__ import annotations

import base64
import json
import secrets
import time
from enum import Enum
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac


class TokenKind(str, Enum):
    ACCESS = "access"
    ADMIN = "admin"


class TokenError(ValueError):
    """Token rejected. ``reason`` is one of the class-level reason constants."""

    MALFORMED = "malformed"
    SIGNATURE = "signature"
    EXPIRED = "expired"
    NOT_YET_VALID = "not_yet_valid"
    WRONG_KIND = "wrong_kind"

    def __init__(self, reason: str, detail: str = ""):
        self.reason = reason
        super().__init__(detail or reason)


class TokenManager:
    """
    Issues and verifies HS256 tokens.

    Example:
        tokens = TokenManager(access_secret="...", admin_secret="...")
        token = tokens.issue(TokenKind.ACCESS, "user-1")
        claims = tokens.verify(token, TokenKind.ACCESS)
        claims["sub"]  # "user-1"
    """

    ALGORITHM = "HS256"

    def __init__(
        self,
        access_secret: str,
        admin_secret: str,
        *,
        access_ttl: int = 30 * 24 * 3600,
        admin_ttl: int = 7 * 24 * 3600,
        leeway: int = 0,
        issuer: str = "orderlink",
    ):
        if not access_secret or not admin_secret:
            raise ValueError("Both access and admin secrets are required")
        self._secrets = {
            TokenKind.ACCESS: access_secret.encode("utf-8"),
            TokenKind.ADMIN: admin_secret.encode("utf-8"),
        }
        self._ttls = {TokenKind.ACCESS: access_ttl, TokenKind.ADMIN: admin_ttl}
        self.leeway = leeway
        self.issuer = issuer

    @classmethod
    def from_config(cls, config) -> "TokenManager":
        """Build from an ``AuthConfig``."""
        return cls(
            config.access_secret,
            config.admin_secret,
            access_ttl=config.access_token_ttl,
            admin_ttl=config.admin_token_ttl,
            leeway=config.leeway,
        )

    def ttl_for(self, kind: TokenKind) -> int:
        return self._ttls[kind]

    def issue(
        self,
        kind: TokenKind,
        subject: str,
        *,
        ttl: Optional[int] = None,
        claims: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Sign a token for ``subject`` (user id, or admin auth key)."""
        now = int(time.time())
        payload = {
            **(claims or {}),
            "iss": self.issuer,
            "sub": str(subject),
            "typ": kind.value,
            "iat": now,
            "nbf": now,
            "exp": now + (ttl if ttl is not None else self._ttls[kind]),
            "jti": secrets.token_urlsafe(12),
        }
        return self._sign_token(payload, self._secrets[kind])

    def issue_access_token(self, user_id: str, **kwargs) -> str:
        return self.issue(TokenKind.ACCESS, user_id, **kwargs)

    def issue_admin_token(self, auth_key: str, **kwargs) -> str:
        return self.issue(TokenKind.ADMIN, auth_key, **kwargs)

    def verify(self, token: str, kind: TokenKind) -> Dict[str, Any]:
        """
        Validate and decode a token of the expected kind.

        Checks, in order: format, signature, kind, not-before, expiry.

        Raises:
            TokenError: Invalid token
        """
        try:
            header_b64, payload_b64, signature_b64 = token.split(".")
        except ValueError:
            raise TokenError(TokenError.MALFORMED, "Malformed token: expected 3 parts")

        try:
            header = self._base64_decode_json(header_b64)
            signature = self._base64_decode(signature_b64)
        except (ValueError, TypeError):
            raise TokenError(TokenError.MALFORMED, "Malformed token encoding")

        if header.get("alg") != self.ALGORITHM:
            raise TokenError(TokenError.MALFORMED, f"Unsupported algorithm: {header.get('alg')}")

        message = f"{header_b64}.{payload_b64}".encode()
        if not self._verify_signature(message, signature, self._secrets[kind]):
            # Signed with the other secret means the caller used the wrong path
            other = TokenKind.ADMIN if kind == TokenKind.ACCESS else TokenKind.ACCESS
            if self._verify_signature(message, signature, self._secrets[other]):
                raise TokenError(TokenError.WRONG_KIND, f"Expected {kind.value} token")
            raise TokenError(TokenError.SIGNATURE, "Invalid signature")

        try:
            payload = self._base64_decode_json(payload_b64)
        except (ValueError, TypeError):
            raise TokenError(TokenError.MALFORMED, "Malformed payload")

        if payload.get("typ") != kind.value:
            raise TokenError(TokenError.WRONG_KIND, f"Expected {kind.value} token")

        now = int(time.time())
        if "nbf" in payload and now + self.leeway < payload["nbf"]:
            raise TokenError(TokenError.NOT_YET_VALID, "Token not yet valid")
        if "exp" in payload and now - self.leeway >= payload["exp"]:
            raise TokenError(TokenError.EXPIRED, "Token expired")

        if not payload.get("sub"):
            raise TokenError(TokenError.MALFORMED, "Missing subject")

        return payload

    def _sign_token(self, payload: Dict[str, Any], secret: bytes) -> str:
        header = {"alg": self.ALGORITHM, "typ": "JWT"}
        header_b64 = self._base64_encode_json(header)
        payload_b64 = self._base64_encode_json(payload)
        message = f"{header_b64}.{payload_b64}".encode()
        signature_b64 = self._base64_encode(self._create_signature(message, secret))
        return f"{header_b64}.{payload_b64}.{signature_b64}"

    def _create_signature(self, message: bytes, secret: bytes) -> bytes:
        h = hmac.HMAC(secret, hashes.SHA256())
        h.update(message)
        return h.finalize()

    def _verify_signature(self, message: bytes, signature: bytes, secret: bytes) -> bool:
        h = hmac.HMAC(secret, hashes.SHA256())
        h.update(message)
        try:
            h.verify(signature)
        except InvalidSignature:
            return False
        return True

    def _base64_encode(self, data: bytes) -> str:
        """URL-safe base64 encode."""
        return base64.urlsafe_b64encode(data).rstrip(b"=").decode()

    def _base64_decode(self, data: str) -> bytes:
        """URL-safe base64 decode."""
        padding = 4 - (len(data) % 4)
        if padding != 4:
            data += "=" * padding
        return base64.urlsafe_b64decode(data)

    def _base64_encode_json(self, data: dict) -> str:
        json_bytes = json.dumps(data, separators=(",", ":")).encode()
        return self._base64_encode(json_bytes)

    def _base64_decode_json(self, data: str) -> dict:
        value = json.loads(self._base64_decode(data))
        if not isinstance(value, dict):
            raise ValueError("Expected a JSON object")
        return value
