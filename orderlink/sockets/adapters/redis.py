"""
Redis Adapter - multi-worker socket adapter using Redis.

Uses Redis pub/sub for message fanout and sorted sets for room
membership, so rooms span every worker behind the load balancer.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Dict, Optional, Set
import asyncio
import json
import logging
import os
import time

from .base import RoomInfo, SendCallback
from ..envelope import JSONCodec, MessageEnvelope
from ..faults import WS_ADAPTER_UNAVAILABLE, WS_PUBLISH_FAILED

logger = logging.getLogger("orderlink.sockets.adapters.redis")


class RedisAdapter:
    """
    Redis-backed adapter for multi-worker deployments.

    Uses:
    - A pattern subscription on ``{prefix}room:*`` for fanout
    - Sorted sets for cluster-wide room membership
    - Hash for connection metadata

    Every worker receives every room message and delivers it to the
    members connected locally.

    Example:
        adapter = RedisAdapter(redis_url="redis://localhost:6379")
        await adapter.initialize()
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        *,
        prefix: str = "orderlink:ws:",
        worker_id: Optional[str] = None,
        connection_ttl: int = 300,
        client: Any = None,
        reconnect_delay: float = 0.5,
        max_reconnect_delay: float = 30.0,
    ):
        """
        Args:
            redis_url: Redis connection URL (default: env REDIS_URL)
            prefix: Key prefix for Redis keys and channels
            worker_id: Worker identifier (default: hostname + PID)
            connection_ttl: Connection TTL in seconds
            client: Pre-built ``redis.asyncio`` client
            reconnect_delay: First backoff after a pub/sub failure
            max_reconnect_delay: Backoff ceiling
        """
        self.redis_url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379")
        self.prefix = prefix
        self.worker_id = worker_id or f"{os.uname().nodename}:{os.getpid()}"
        self.connection_ttl = connection_ttl
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay

        self._redis = client
        self._pubsub = None
        self._subscriber_task: Optional[asyncio.Task] = None
        self._send_callbacks: Dict[str, Dict[str, SendCallback]] = defaultdict(dict)
        # Members connected to this worker: {namespace: {room: set(connection_ids)}}
        self._local_rooms: Dict[str, Dict[str, Set[str]]] = defaultdict(lambda: defaultdict(set))
        self._codec = JSONCodec()

    async def initialize(self) -> None:
        """Connect and start the pub/sub listener."""
        if self._redis is None:
            import redis.asyncio as aioredis

            self._redis = aioredis.from_url(self.redis_url, decode_responses=False)

        try:
            await self._redis.ping()
            self._pubsub = self._redis.pubsub()
            await self._pubsub.psubscribe(f"{self.prefix}room:*")
        except Exception as e:
            raise WS_ADAPTER_UNAVAILABLE("redis", str(e)) from e

        self._subscriber_task = asyncio.get_running_loop().create_task(self._subscriber_loop())
        logger.info(f"RedisAdapter initialized (worker: {self.worker_id})")

    async def shutdown(self) -> None:
        if self._subscriber_task:
            self._subscriber_task.cancel()
            try:
                await self._subscriber_task
            except asyncio.CancelledError:
                pass
            self._subscriber_task = None

        if self._pubsub:
            await self._pubsub.punsubscribe()
            await self._pubsub.aclose()
            self._pubsub = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        self._local_rooms.clear()
        self._send_callbacks.clear()
        logger.info("RedisAdapter shut down")

    def register_send_callback(self, namespace: str, connection_id: str, callback: SendCallback):
        self._send_callbacks[namespace][connection_id] = callback

    def unregister_send_callback(self, namespace: str, connection_id: str):
        self._send_callbacks[namespace].pop(connection_id, None)

    async def _subscriber_loop(self):
        """
        Listen for Redis pub/sub messages.

        A failed listener is resubscribed with exponential backoff; only
        cancellation ends the loop.
        """
        delay = self.reconnect_delay
        while True:
            try:
                async for message in self._pubsub.listen():
                    delay = self.reconnect_delay
                    if message["type"] == "pmessage":
                        await self._handle_pubsub_message(message)
                logger.warning("Pub/sub stream ended, resubscribing")
            except asyncio.CancelledError:
                return
            except Exception as e:
                logger.error(f"Subscriber loop error: {e}, resubscribing in {delay:.1f}s")

            try:
                await asyncio.sleep(delay)
                await self._resubscribe()
            except asyncio.CancelledError:
                return
            except Exception as e:
                logger.error(f"Resubscribe failed: {e}")
            delay = min(delay * 2, self.max_reconnect_delay)

    async def _resubscribe(self):
        old = self._pubsub
        self._pubsub = self._redis.pubsub()
        await self._pubsub.psubscribe(f"{self.prefix}room:*")
        if old is not None:
            try:
                await old.aclose()
            except Exception as e:
                logger.debug(f"Closing stale pub/sub failed: {e}")
        logger.info(f"Resubscribed to {self.prefix}room:* (worker: {self.worker_id})")

    async def _handle_pubsub_message(self, message: dict):
        """Deliver one published room message to local members."""
        try:
            data = json.loads(message["data"])
            namespace = data["namespace"]
            room = data["room"]
            envelope = MessageEnvelope.from_dict(data["envelope"])
            exclude_connection = data.get("exclude_connection")
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed pub/sub message: {e}")
            return

        recipients = set(self._local_rooms[namespace].get(room, set()))
        if exclude_connection:
            recipients.discard(exclude_connection)
        if not recipients:
            return

        encoded = self._codec.encode(envelope)
        callbacks = self._send_callbacks[namespace]
        targets = [(cid, callbacks[cid]) for cid in recipients if cid in callbacks]
        results = await asyncio.gather(*(cb(encoded) for _, cb in targets), return_exceptions=True)
        for (cid, _), result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Delivery to {cid} failed: {result}")

    async def publish(
        self,
        namespace: str,
        room: str,
        envelope: MessageEnvelope,
        exclude_connection: Optional[str] = None,
    ) -> None:
        """Publish message to room via Redis pub/sub."""
        channel = f"{self.prefix}room:{namespace}:{room}"
        message = json.dumps({
            "namespace": namespace,
            "room": room,
            "envelope": envelope.to_dict(),
            "exclude_connection": exclude_connection,
        }, default=str)

        try:
            await self._redis.publish(channel, message)
        except Exception as e:
            raise WS_PUBLISH_FAILED(str(e)) from e

    def _members_key(self, namespace: str, room: str) -> str:
        return f"{self.prefix}members:{namespace}:{room}"

    async def join_room(self, namespace: str, room: str, connection_id: str) -> None:
        self._local_rooms[namespace][room].add(connection_id)

        key = self._members_key(namespace, room)
        await self._redis.zadd(key, {connection_id: time.time()})
        await self._redis.expire(key, self.connection_ttl * 2)

    async def leave_room(self, namespace: str, room: str, connection_id: str) -> None:
        local = self._local_rooms[namespace]
        if room in local:
            local[room].discard(connection_id)
            if not local[room]:
                del local[room]

        await self._redis.zrem(self._members_key(namespace, room), connection_id)

    async def get_room_members(self, namespace: str, room: str) -> Set[str]:
        """Connection IDs in room across all workers."""
        members = await self._redis.zrange(self._members_key(namespace, room), 0, -1)
        return set(m.decode("utf-8") if isinstance(m, bytes) else m for m in members)

    async def get_room_info(self, namespace: str, room: str) -> Optional[RoomInfo]:
        members = await self.get_room_members(namespace, room)
        if not members:
            return None
        return RoomInfo(
            namespace=namespace,
            room=room,
            member_count=len(members),
            members=members,
        )

    async def register_connection(self, namespace: str, connection_id: str, worker_id: str) -> None:
        key = f"{self.prefix}connections:{namespace}"
        await self._redis.hset(
            key,
            connection_id,
            json.dumps({"worker_id": worker_id, "timestamp": time.time()}),
        )
        await self._redis.expire(key, self.connection_ttl)

    async def unregister_connection(self, namespace: str, connection_id: str) -> None:
        await self._redis.hdel(f"{self.prefix}connections:{namespace}", connection_id)

        local = self._local_rooms[namespace]
        for room in [r for r, members in local.items() if connection_id in members]:
            await self.leave_room(namespace, room, connection_id)

    async def get_connection_count(self, namespace: str) -> int:
        return await self._redis.hlen(f"{self.prefix}connections:{namespace}")
