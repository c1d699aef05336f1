"""
Chat activation state.

A chat is live while ``chat:active:{order_id}`` exists in the cache.
Activation is last-write-wins: writing again replaces the record and
restarts the TTL. Expiry is the only way back to inactive.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from orderlink.cache import CacheService
from .models import ChatActivationRecord

logger = logging.getLogger("orderlink.chat.activation")

DEFAULT_ACTIVATION_TTL = 24 * 3600


def activation_key(order_id: Any) -> str:
    return f"chat:active:{order_id}"


class ChatActivationStore:

    def __init__(self, cache: CacheService, ttl: int = DEFAULT_ACTIVATION_TTL):
        self.cache = cache
        self.ttl = ttl

    async def activate(self, order_id: str, activated_by: Dict[str, Any]) -> bool:
        """
        Mark the chat live on behalf of ``activated_by`` (``{id, type, name}``).

        Returns False when the cache write failed. Never raises.
        """
        record = ChatActivationRecord(order_id=str(order_id), activated_by=dict(activated_by))
        stored = await self.cache.set(activation_key(order_id), record.to_cache(), ttl=self.ttl)
        if stored:
            logger.info(f"Chat activated for order {order_id} by {activated_by.get('id')}")
        else:
            logger.error(f"Could not activate chat for order {order_id}")
        return stored

    async def is_active(self, order_id: str) -> bool:
        # A cache failure reads as inactive
        return await self.cache.exists(activation_key(order_id))

    async def get_activation(self, order_id: str) -> Optional[ChatActivationRecord]:
        data = await self.cache.get(activation_key(order_id))
        if not isinstance(data, dict):
            return None
        return ChatActivationRecord.from_cache(str(order_id), data)
