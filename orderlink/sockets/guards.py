"""
Socket Guards - handshake and per-message checks.

Guards run after the handshake authenticated the principal and before
the connection is accepted, or before each handler.
"""

from __future__ import annotations

from typing import Iterable, Optional, TYPE_CHECKING
import logging

if TYPE_CHECKING:
    from orderlink.auth import Principal
    from .connection import Connection, ConnectionScope
    from .envelope import MessageEnvelope

from .faults import WS_ORIGIN_NOT_ALLOWED

logger = logging.getLogger("orderlink.sockets.guards")


class SocketGuard:
    """
    Base class for socket guards.

    Raise a Fault to reject. The handshake variant closes the socket;
    the message variant turns into a caller ``error`` event.
    """

    async def check_handshake(
        self,
        scope: ConnectionScope,
        principal: Optional[Principal],
    ) -> bool:
        return True

    async def check_message(
        self,
        conn: Connection,
        envelope: MessageEnvelope,
    ) -> bool:
        return True


class OriginGuard(SocketGuard):
    """
    Rejects handshakes whose ``Origin`` header is not whitelisted.

    A missing ``Origin`` header (non-browser clients) is allowed. ``*``
    in the whitelist allows everything.
    """

    def __init__(self, allowed_origins: Iterable[str]):
        self.allowed_origins = {o.rstrip("/") for o in allowed_origins}

    async def check_handshake(
        self,
        scope: ConnectionScope,
        principal: Optional[Principal],
    ) -> bool:
        origin = scope.headers.get("origin", "")
        if not origin or "*" in self.allowed_origins:
            return True
        if origin.rstrip("/") not in self.allowed_origins:
            logger.warning(f"Origin {origin} rejected on {scope.path}")
            raise WS_ORIGIN_NOT_ALLOWED(origin)
        return True
