"""
Tests for the socket layer.

Covers:
- Envelope parsing and the JSON codec
- Middleware chain, payload validation and rate limiting
- Origin guard
- In-memory and Redis adapters
- RoomBroadcaster
- SocketRuntime handshake, dispatch and error reporting
"""

import asyncio
import json
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from orderlink.auth import Principal, Role
from orderlink.faults import AuthenticationFault, AuthorizationFault, InfrastructureFault
from orderlink.sockets import (
    Connection,
    ConnectionScope,
    Event,
    InMemoryAdapter,
    JSONCodec,
    LoggingMiddleware,
    MessageEnvelope,
    MessageType,
    MessageValidationMiddleware,
    MiddlewareChain,
    OnConnect,
    OnDisconnect,
    OriginGuard,
    RateLimitMiddleware,
    RedisAdapter,
    RoomBroadcaster,
    Socket,
    SocketController,
    SocketFault,
    SocketRuntime,
    Subscribe,
    normalize_namespace,
)
from orderlink.testing import WebSocketTestClient


# ============================================================================
# Envelope / codec
# ============================================================================


class TestEnvelope:
    def test_to_dict(self):
        env = MessageEnvelope(type=MessageType.EVENT, event="new-message", payload={"a": 1})
        data = env.to_dict()
        assert data["type"] == "event"
        assert data["event"] == "new-message"
        assert data["payload"] == {"a": 1}
        assert data["ack"] is False
        assert "ts" in data["meta"]

    def test_data_shorthand(self):
        env = MessageEnvelope.from_dict({"event": "join-order-chat", "data": "O1"})
        assert env.payload == "O1"
        assert env.type == MessageType.EVENT

    def test_payload_preferred_over_data(self):
        env = MessageEnvelope.from_dict({"event": "e", "payload": 1, "data": 2})
        assert env.payload == 1

    @pytest.mark.parametrize("data", [[], {"payload": 1}, {"event": 5}, {"event": "e", "type": "bogus"}])
    def test_invalid(self, data):
        with pytest.raises(SocketFault) as exc:
            MessageEnvelope.from_dict(data)
        assert exc.value.code == "WS_MESSAGE_INVALID"
        assert exc.value.public is True


class TestJSONCodec:
    def test_encode_is_text(self):
        text = JSONCodec().encode(MessageEnvelope(type=MessageType.EVENT, event="e", payload=None))
        assert json.loads(text)["event"] == "e"

    def test_decode_bytes(self):
        env = JSONCodec().decode(b'{"event": "typing", "data": {"orderId": "O1"}}')
        assert env.payload == {"orderId": "O1"}

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", b"\xff\xfe"])
    def test_decode_invalid(self, raw):
        with pytest.raises(SocketFault) as exc:
            JSONCodec().decode(raw)
        assert exc.value.message.startswith("Invalid message format")


# ============================================================================
# Middleware
# ============================================================================


def fake_conn(principal_id="C1", namespace="/socket"):
    principal = Principal(id=principal_id, role=Role.CUSTOMER, display_name="x")
    return SimpleNamespace(principal=principal, connection_id="conn-1", namespace=namespace)


def envelope(event="typing", payload=None):
    return MessageEnvelope(type=MessageType.EVENT, event=event, payload=payload)


async def passthrough(conn, env):
    return "handled"


class TestMiddlewareChain:
    @pytest.mark.asyncio
    async def test_runs_in_order(self):
        calls = []

        def tagging(tag):
            async def middleware(conn, env, next):
                calls.append(tag)
                return await next(conn, env)
            return middleware

        chain = MiddlewareChain()
        chain.add(tagging("first"))
        chain.add(tagging("second"))
        chain.add(LoggingMiddleware(log_payloads=True))
        result = await chain.build(passthrough)(fake_conn(), envelope())
        assert result == "handled"
        assert calls == ["first", "second"]


class TestMessageValidation:
    @pytest.mark.asyncio
    async def test_small_payload(self):
        mw = MessageValidationMiddleware(max_payload_size=100)
        assert await mw(fake_conn(), envelope(payload="ok"), passthrough) == "handled"

    @pytest.mark.asyncio
    async def test_large_payload(self):
        mw = MessageValidationMiddleware(max_payload_size=10)
        with pytest.raises(SocketFault) as exc:
            await mw(fake_conn(), envelope(payload="x" * 50), passthrough)
        assert exc.value.code == "WS_PAYLOAD_TOO_LARGE"


class TestRateLimit:
    @pytest.mark.asyncio
    async def test_limit(self, cache):
        mw = RateLimitMiddleware(cache, max_events=2, window_seconds=60)
        conn = fake_conn()
        await mw(conn, envelope(), passthrough)
        await mw(conn, envelope(), passthrough)
        with pytest.raises(SocketFault) as exc:
            await mw(conn, envelope(), passthrough)
        assert exc.value.code == "WS_RATE_LIMIT_EXCEEDED"
        assert exc.value.message == "Too many requests"

    @pytest.mark.asyncio
    async def test_counts_per_principal(self, cache):
        mw = RateLimitMiddleware(cache, max_events=1, window_seconds=60)
        await mw(fake_conn("C1"), envelope(), passthrough)
        assert await mw(fake_conn("C2"), envelope(), passthrough) == "handled"

    @pytest.mark.asyncio
    async def test_key_shape(self, cache, cache_backend):
        mw = RateLimitMiddleware(cache, max_events=5, window_seconds=60)
        await mw(fake_conn(namespace="/location-socket"), envelope(), passthrough)
        (key,) = list(cache_backend.store)
        assert key.startswith("rate-limit:location-socket:C1:")
        assert cache_backend.get_ttl(key) is not None

    @pytest.mark.asyncio
    async def test_fails_open(self, cache, cache_backend):
        cache_backend.fail_on("increment")
        mw = RateLimitMiddleware(cache, max_events=1, window_seconds=60)
        for _ in range(3):
            assert await mw(fake_conn(), envelope(), passthrough) == "handled"


# ============================================================================
# Guards
# ============================================================================


def scope_with(headers):
    return ConnectionScope(namespace="/socket", path="/socket", query_params={}, headers=headers)


class TestOriginGuard:
    @pytest.mark.asyncio
    async def test_allowed(self):
        guard = OriginGuard(["https://app.example.com/"])
        assert await guard.check_handshake(scope_with({"origin": "https://app.example.com"}), None)

    @pytest.mark.asyncio
    async def test_missing_origin_allowed(self):
        assert await OriginGuard(["https://app.example.com"]).check_handshake(scope_with({}), None)

    @pytest.mark.asyncio
    async def test_wildcard(self):
        assert await OriginGuard(["*"]).check_handshake(scope_with({"origin": "https://x"}), None)

    @pytest.mark.asyncio
    async def test_rejected(self):
        with pytest.raises(SocketFault) as exc:
            await OriginGuard(["https://a"]).check_handshake(scope_with({"origin": "https://b"}), None)
        assert exc.value.metadata["ws_close_code"] == 4403


# ============================================================================
# Adapters
# ============================================================================


class Inbox:
    def __init__(self):
        self.frames = []

    async def __call__(self, data):
        self.frames.append(json.loads(data))


class TestInMemoryAdapter:
    @pytest.mark.asyncio
    async def test_publish_excludes_sender(self):
        adapter = InMemoryAdapter()
        a, b = Inbox(), Inbox()
        adapter.register_send_callback("/socket", "a", a)
        adapter.register_send_callback("/socket", "b", b)
        await adapter.join_room("/socket", "order:O1", "a")
        await adapter.join_room("/socket", "order:O1", "b")

        await adapter.publish("/socket", "order:O1", envelope("user-typing"), exclude_connection="a")
        assert a.frames == []
        assert b.frames[0]["event"] == "user-typing"

    @pytest.mark.asyncio
    async def test_namespaces_are_isolated(self):
        adapter = InMemoryAdapter()
        inbox = Inbox()
        adapter.register_send_callback("/socket", "a", inbox)
        await adapter.join_room("/socket", "order:O1", "a")
        await adapter.publish("/location-socket", "order:O1", envelope())
        assert inbox.frames == []

    @pytest.mark.asyncio
    async def test_failed_delivery_does_not_raise(self):
        adapter = InMemoryAdapter()
        good = Inbox()

        async def broken(data):
            raise ConnectionError("gone")

        adapter.register_send_callback("/socket", "bad", broken)
        adapter.register_send_callback("/socket", "good", good)
        await adapter.join_room("/socket", "r", "bad")
        await adapter.join_room("/socket", "r", "good")
        await adapter.publish("/socket", "r", envelope())
        assert len(good.frames) == 1

    @pytest.mark.asyncio
    async def test_unregister_leaves_rooms(self):
        adapter = InMemoryAdapter()
        await adapter.register_connection("/socket", "a", "w1")
        await adapter.join_room("/socket", "order:O1", "a")
        await adapter.join_room("/socket", "order:O2", "a")
        assert await adapter.get_connection_count("/socket") == 1

        await adapter.unregister_connection("/socket", "a")
        assert await adapter.list_rooms("/socket") == set()
        assert await adapter.get_room_info("/socket", "order:O1") is None
        assert await adapter.get_connection_count("/socket") == 0


class FlakyPubSub:
    """Pub/sub whose first ``listen()`` fails like a dropped connection."""

    def __init__(self, messages):
        self.messages = messages
        self.listen_calls = 0
        self.psubscribe = AsyncMock()
        self.punsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        self.listen_calls += 1
        if self.listen_calls == 1:
            raise ConnectionError("connection reset by peer")
        for message in self.messages:
            yield message
        await asyncio.Event().wait()


class TestRedisAdapter:
    def _adapter(self):
        client = MagicMock()
        for name in ("ping", "publish", "zadd", "zrem", "expire", "hset", "hdel", "hlen"):
            setattr(client, name, AsyncMock())
        client.zrange = AsyncMock(return_value=[b"a", "b"])
        return RedisAdapter(client=client, worker_id="w1"), client

    @pytest.mark.asyncio
    async def test_initialize_failure(self):
        adapter, client = self._adapter()
        client.ping.side_effect = ConnectionError("refused")
        with pytest.raises(SocketFault) as exc:
            await adapter.initialize()
        assert exc.value.code == "WS_ADAPTER_UNAVAILABLE"

    @pytest.mark.asyncio
    async def test_publish_channel(self):
        adapter, client = self._adapter()
        await adapter.publish("/socket", "order:O1", envelope("new-message"), exclude_connection="a")
        channel, message = client.publish.await_args.args
        assert channel == "orderlink:ws:room:/socket:order:O1"
        data = json.loads(message)
        assert data["room"] == "order:O1"
        assert data["exclude_connection"] == "a"
        assert data["envelope"]["event"] == "new-message"

    @pytest.mark.asyncio
    async def test_publish_failure(self):
        adapter, client = self._adapter()
        client.publish.side_effect = ConnectionError("down")
        with pytest.raises(SocketFault) as exc:
            await adapter.publish("/socket", "r", envelope())
        assert exc.value.code == "WS_PUBLISH_FAILED"

    @pytest.mark.asyncio
    async def test_pubsub_delivers_to_local_members(self):
        adapter, client = self._adapter()
        a, b = Inbox(), Inbox()
        adapter.register_send_callback("/socket", "a", a)
        adapter.register_send_callback("/socket", "b", b)
        await adapter.join_room("/socket", "order:O1", "a")
        await adapter.join_room("/socket", "order:O1", "b")
        client.zadd.assert_awaited()

        await adapter._handle_pubsub_message({
            "type": "pmessage",
            "data": json.dumps({
                "namespace": "/socket",
                "room": "order:O1",
                "envelope": envelope("user-joined").to_dict(),
                "exclude_connection": "b",
            }),
        })
        assert a.frames[0]["event"] == "user-joined"
        assert b.frames == []

    @pytest.mark.asyncio
    async def test_malformed_pubsub_message_dropped(self):
        adapter, _ = self._adapter()
        await adapter._handle_pubsub_message({"type": "pmessage", "data": "{}"})

    @pytest.mark.asyncio
    async def test_subscriber_resubscribes_after_listen_error(self):
        adapter, client = self._adapter()
        adapter.reconnect_delay = 0.01
        client.aclose = AsyncMock()
        pubsub = FlakyPubSub([{
            "type": "pmessage",
            "data": json.dumps({
                "namespace": "/socket",
                "room": "order:O1",
                "envelope": envelope("new-message", {"id": "M1"}).to_dict(),
            }),
        }])
        client.pubsub = MagicMock(return_value=pubsub)
        inbox = Inbox()
        adapter.register_send_callback("/socket", "a", inbox)
        await adapter.join_room("/socket", "order:O1", "a")

        await adapter.initialize()
        for _ in range(200):
            if inbox.frames:
                break
            await asyncio.sleep(0.01)

        assert pubsub.listen_calls == 2
        assert pubsub.psubscribe.await_count == 2
        assert inbox.frames[0]["event"] == "new-message"
        assert not adapter._subscriber_task.done()

        await adapter.shutdown()
        assert adapter._subscriber_task is None

    @pytest.mark.asyncio
    async def test_room_members(self):
        adapter, _ = self._adapter()
        assert await adapter.get_room_members("/socket", "order:O1") == {"a", "b"}
        info = await adapter.get_room_info("/socket", "order:O1")
        assert info.member_count == 2

    @pytest.mark.asyncio
    async def test_unregister_leaves_local_rooms(self):
        adapter, client = self._adapter()
        await adapter.join_room("/socket", "order:O1", "a")
        await adapter.unregister_connection("/socket", "a")
        client.zrem.assert_awaited_once_with("orderlink:ws:members:/socket:order:O1", "a")
        assert dict(adapter._local_rooms["/socket"]) == {}


class TestRoomBroadcaster:
    @pytest.mark.asyncio
    async def test_emit(self):
        adapter = InMemoryAdapter()
        inbox = Inbox()
        adapter.register_send_callback("/socket", "a", inbox)
        await adapter.join_room("/socket", "order:O1", "a")
        assert await RoomBroadcaster(adapter, "/socket").emit_to_room("order:O1", "new-message", {"id": "M1"})
        assert inbox.frames[0]["payload"] == {"id": "M1"}

    @pytest.mark.asyncio
    async def test_adapter_failure_returns_false(self):
        adapter = MagicMock()
        adapter.publish = AsyncMock(side_effect=ConnectionError("down"))
        assert await RoomBroadcaster(adapter, "/socket").emit_to_room("r", "e", None) is False


# ============================================================================
# Runtime
# ============================================================================


class StubAuthenticator:
    """Accepts ``Bearer <user id>``."""

    async def authenticate(self, handshake):
        if not handshake.token:
            raise AuthenticationFault("Token not provided")
        user_id = handshake.token.split()[-1]
        return Principal(id=user_id, role=Role.CUSTOMER, display_name=user_id), user_id


@Socket("/echo")
class EchoSocket(SocketController):
    def __init__(self):
        self.disconnects = []

    @OnConnect()
    async def on_connect(self, conn: Connection):
        await conn.send_event("hello", {"userId": conn.principal.id})

    @OnDisconnect()
    async def on_disconnect(self, conn: Connection, reason):
        self.disconnects.append(conn.principal.id)

    @Event("echo", error_message="Echo failed")
    async def echo(self, conn: Connection, payload):
        await conn.send_event("echo", payload)

    @Event("boom", error_message="Boom failed")
    async def boom(self, conn: Connection, payload):
        raise RuntimeError("unexpected")

    @Event("deny", error_message="Deny failed")
    async def deny(self, conn: Connection, payload):
        raise AuthorizationFault()

    @Event("private", error_message="Private failed")
    async def private(self, conn: Connection, payload):
        raise InfrastructureFault("cache", "set", "connection refused")

    @Subscribe("join", error_message="Join failed")
    async def join(self, conn: Connection, payload):
        await conn.join(payload)
        await self.publish_room(payload, "joined", {"userId": conn.principal.id},
                                exclude_connection=conn.connection_id)


def make_runtime(**register_kwargs):
    runtime = SocketRuntime(StubAuthenticator(), InMemoryAdapter())
    controller = EchoSocket()
    runtime.register(controller, **register_kwargs)
    return runtime, controller


def bearer(user_id):
    return [("authorization", f"Bearer {user_id}")]


class TestSocketRouter:
    def test_normalize(self):
        assert normalize_namespace("socket/") == "/socket"
        assert normalize_namespace("/socket") == "/socket"

    def test_register_requires_decorator(self):
        class Plain(SocketController):
            pass

        with pytest.raises(TypeError):
            SocketRuntime(StubAuthenticator()).register(Plain())

    def test_duplicate_event(self):
        @Socket("/dup")
        class Dup(SocketController):
            @Event("x")
            async def one(self, conn, payload):
                pass

            @Event("x")
            async def two(self, conn, payload):
                pass

        with pytest.raises(ValueError):
            SocketRuntime(StubAuthenticator()).register(Dup())

    def test_path_override(self):
        runtime, controller = make_runtime(path="/custom/")
        assert controller.namespace == "/custom"
        assert runtime.router.match("/custom") is not None


class TestSocketRuntime:
    @pytest.mark.asyncio
    async def test_unknown_path(self):
        runtime, _ = make_runtime()
        ws = WebSocketTestClient(runtime.handle_websocket)
        event = await ws.connect("/nowhere", expect_accept=False)
        assert event == {"type": "websocket.close", "code": 1003, "reason": "No matching socket namespace"}

    @pytest.mark.asyncio
    async def test_handshake_rejected(self):
        runtime, _ = make_runtime()
        ws = WebSocketTestClient(runtime.handle_websocket)
        event = await ws.connect("/echo", expect_accept=False)
        assert event["type"] == "websocket.close"
        assert event["code"] == 4401
        assert event["reason"] == "Token not provided"

    @pytest.mark.asyncio
    async def test_origin_rejected(self):
        runtime, _ = make_runtime(guards=[OriginGuard(["https://app"])])
        ws = WebSocketTestClient(runtime.handle_websocket)
        event = await ws.connect("/echo", bearer("C1") + [("origin", "https://evil")], expect_accept=False)
        assert event["code"] == 4403

    @pytest.mark.asyncio
    async def test_connect_and_echo(self):
        runtime, controller = make_runtime()
        async with WebSocketTestClient(runtime.handle_websocket) as ws:
            await ws.connect("/echo", bearer("C1"))
            assert await ws.receive_event("hello") == {"userId": "C1"}
            await ws.send_json({"event": "echo", "data": "O1"})
            assert await ws.receive_event("echo") == "O1"
        assert controller.disconnects == ["C1"]
        assert runtime.connections == {}

    @pytest.mark.asyncio
    async def test_frames_handled_in_order(self):
        runtime, _ = make_runtime()
        async with WebSocketTestClient(runtime.handle_websocket) as ws:
            await ws.connect("/echo", bearer("C1"))
            await ws.receive_event("hello")
            for i in range(5):
                await ws.emit("echo", i)
            assert [await ws.receive_event("echo") for _ in range(5)] == [0, 1, 2, 3, 4]

    @pytest.mark.asyncio
    async def test_error_reporting(self):
        runtime, _ = make_runtime()
        async with WebSocketTestClient(runtime.handle_websocket) as ws:
            await ws.connect("/echo", bearer("C1"))
            await ws.receive_event("hello")

            await ws.send_text("not json")
            assert (await ws.receive_event("error"))["message"].startswith("Invalid message format")

            await ws.emit("nope")
            assert await ws.receive_event("error") == {"message": "Unsupported event type: nope"}

            await ws.emit("boom")
            assert await ws.receive_event("error") == {"message": "Boom failed"}

            await ws.emit("deny")
            assert await ws.receive_event("error") == {
                "message": "You are not authorized to perform this action"
            }

            await ws.emit("private")
            assert await ws.receive_event("error") == {"message": "Private failed"}

            # Still serving after every failure
            await ws.emit("echo", "alive")
            assert await ws.receive_event("echo") == "alive"

    @pytest.mark.asyncio
    async def test_oversized_frame(self):
        runtime, _ = make_runtime(max_message_size=64)
        async with WebSocketTestClient(runtime.handle_websocket) as ws:
            await ws.connect("/echo", bearer("C1"))
            await ws.receive_event("hello")
            await ws.emit("echo", "x" * 100)
            assert (await ws.receive_event("error"))["message"].startswith("Payload too large")

    @pytest.mark.asyncio
    async def test_room_fanout(self):
        runtime, _ = make_runtime()
        a = WebSocketTestClient(runtime.handle_websocket)
        b = WebSocketTestClient(runtime.handle_websocket)
        await a.connect("/echo", bearer("C1"))
        await b.connect("/echo", bearer("A1"))
        await a.receive_event("hello")
        await b.receive_event("hello")

        await a.emit("join", "order:O1")
        await asyncio.sleep(0.05)
        await b.emit("join", "order:O1")

        assert await a.receive_event("joined") == {"userId": "A1"}
        assert [f for f in await b.drain() if f["event"] == "joined"] == []
        await a.close()
        await b.close()
        assert await runtime.adapter.get_room_info("/echo", "order:O1") is None

    @pytest.mark.asyncio
    async def test_shutdown_closes_connections(self):
        runtime, controller = make_runtime()
        await runtime.initialize()
        ws = WebSocketTestClient(runtime.handle_websocket)
        await ws.connect("/echo", bearer("C1"))
        await ws.receive_event("hello")

        await runtime.shutdown()
        event = await ws.receive()
        assert event["type"] == "websocket.close"
        assert event["code"] == 1001
        assert controller.disconnects == ["C1"]
        await ws.close()
