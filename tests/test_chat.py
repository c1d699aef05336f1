"""
Tests for the chat core.

Covers:
- ChatActivationStore
- NotificationFanout and message previews
- ChatService authorization, messaging, read state and unread counts
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from orderlink.chat.activation import ChatActivationStore, activation_key
from orderlink.chat.models import NotificationKind
from orderlink.chat.notifications import NotificationFanout, message_preview
from orderlink.chat.service import ChatService
from orderlink.sockets.broadcaster import RoomBroadcaster
from orderlink.faults import (
    AuthorizationFault,
    InfrastructureFault,
    InvalidStateFault,
    NotFoundFault,
)


# ============================================================================
# Activation
# ============================================================================


class TestChatActivationStore:
    @pytest.mark.asyncio
    async def test_activate(self, activation, cache_backend):
        by = {"id": "C1", "type": "customer", "name": "Ada Obi"}
        assert await activation.activate("O1", by) is True
        assert await activation.is_active("O1")
        record = await activation.get_activation("O1")
        assert record.activated_by == by
        assert cache_backend.get_ttl(activation_key("O1")) is not None

    @pytest.mark.asyncio
    async def test_inactive_by_default(self, activation):
        assert not await activation.is_active("O1")
        assert await activation.get_activation("O1") is None

    @pytest.mark.asyncio
    async def test_last_write_wins(self, activation):
        await activation.activate("O1", {"id": "C1"})
        await activation.activate("O1", {"id": "A1"})
        assert (await activation.get_activation("O1")).activated_by == {"id": "A1"}

    @pytest.mark.asyncio
    async def test_expiry(self, activation, cache_backend):
        await activation.activate("O1", {"id": "C1"})
        cache_backend.expire_now(activation_key("O1"))
        assert not await activation.is_active("O1")

    @pytest.mark.asyncio
    async def test_cache_failure(self, activation, cache_backend):
        await activation.activate("O1", {"id": "C1"})
        cache_backend.fail_on()
        assert not await activation.is_active("O1")
        assert await activation.activate("O1", {"id": "C1"}) is False

    def test_custom_ttl(self, cache):
        assert ChatActivationStore(cache, ttl=60).ttl == 60


# ============================================================================
# Notifications
# ============================================================================


class TestMessagePreview:
    def test_short_body_unchanged(self):
        assert message_preview("hello") == "hello"
        assert message_preview("x" * 50) == "x" * 50

    def test_long_body_truncated(self):
        preview = message_preview("x" * 51)
        assert preview == "x" * 47 + "..."
        assert len(preview) == 50

    def test_none(self):
        assert message_preview(None) == ""


class TestNotificationFanout:
    @pytest.mark.asyncio
    async def test_recipients_exclude_actor(self, fanout):
        assert await fanout.recipients("O1", "C1") == [("A1", "agent")]
        assert await fanout.recipients("O1", "A1") == [("C1", "customer")]
        assert await fanout.recipients("O1", "ADM1") == [("C1", "customer"), ("A1", "agent")]

    @pytest.mark.asyncio
    async def test_missing_order(self, fanout):
        assert await fanout.recipients("O404", "C1") == []

    @pytest.mark.asyncio
    async def test_message_sent(self, fanout, stores, customer):
        wire = {
            "id": "M1",
            "message": "y" * 80,
            "sender": {"firstName": "Ada", "lastName": "Obi"},
        }
        assert await fanout.message_sent("O1", customer, wire) == 1
        (note,) = stores.notifications.for_user("A1")
        assert note.kind == NotificationKind.CHAT_MESSAGE_RECEIVED
        assert note.heading == "New message from Ada Obi"
        assert note.body == "y" * 47 + "..."
        assert note.metadata["messageId"] == "M1"
        assert note.metadata["recipientType"] == "agent"
        assert note.resource == "O1"

    @pytest.mark.asyncio
    async def test_sender_name_falls_back(self, fanout, stores, admin):
        await fanout.message_sent("O1", admin, {"id": "M2", "message": "hi", "sender": None})
        assert stores.notifications.for_user("C1")[0].heading == "New message from Super Admin"

    @pytest.mark.asyncio
    async def test_chat_activated(self, fanout, stores, agent):
        await fanout.chat_activated("O1", agent)
        (note,) = stores.notifications.for_user("C1")
        assert note.kind == NotificationKind.CHAT_ACTIVATED
        assert note.body == "Chat for order O1 has been activated by Tunde Bello"

    @pytest.mark.asyncio
    async def test_user_left(self, fanout, stores, customer):
        await fanout.user_left("O1", customer)
        (note,) = stores.notifications.for_user("A1")
        assert note.body == "Ada Obi (user) has left the chat for order O1"

    @pytest.mark.asyncio
    async def test_sink_failure_is_swallowed(self, stores, customer):
        class BrokenSink:
            async def create_notifications(self, notifications):
                raise RuntimeError("db down")

            async def mark_read(self, user_id, kind, resource):
                raise RuntimeError("db down")

        fanout = NotificationFanout(stores.orders, BrokenSink())
        assert await fanout.chat_activated("O1", customer) == 0
        assert await fanout.mark_chat_read("C1", "O1") == 0

    @pytest.mark.asyncio
    async def test_mark_chat_read(self, fanout, stores, agent):
        await fanout.message_sent("O1", agent, {"id": "M1", "message": "hi"})
        assert await fanout.mark_chat_read("C1", "O1") == 1
        assert stores.notifications.for_user("C1")[0].read is True


# ============================================================================
# ChatService
# ============================================================================


class TestChatAuthorization:
    @pytest.mark.asyncio
    async def test_participants(self, chat, customer, agent, admin):
        for principal in (customer, agent, admin):
            await chat.check_participant(principal, "O1")

    @pytest.mark.asyncio
    async def test_outsider(self, chat, outsider):
        with pytest.raises(AuthorizationFault):
            await chat.check_participant(outsider, "O1")
        assert await chat.is_participant(outsider, "O1") is False

    @pytest.mark.asyncio
    async def test_missing_order(self, chat, customer, admin):
        with pytest.raises(NotFoundFault) as exc:
            await chat.check_participant(customer, "O404")
        assert exc.value.message == "Order not found"
        await chat.check_participant(admin, "O404")


class TestSendMessage:
    @pytest.mark.asyncio
    async def test_requires_active_chat(self, chat, stores, customer):
        with pytest.raises(InvalidStateFault) as exc:
            await chat.send_message(customer, "O1", "hello")
        assert exc.value.message == "Chat is not active for this order"
        assert stores.messages.messages == []

    @pytest.mark.asyncio
    async def test_send(self, chat, stores, broadcaster, customer):
        await chat.activate_chat(customer, "O1")
        broadcaster.clear()

        wire = await chat.send_message(customer, "O1", "hello")
        assert wire["orderId"] == "O1"
        assert wire["senderType"] == "user"
        assert wire["message"] == "hello"
        assert wire["isRead"] is False
        assert wire["sender"] == {
            "id": "C1", "firstName": "Ada", "lastName": "Obi", "displayImage": None,
        }
        (event,) = broadcaster.events_named("new-message")
        assert event.room == "order:O1"
        assert event.exclude_connection is None
        assert len(stores.notifications.for_user("A1")) == 2

    @pytest.mark.asyncio
    async def test_outsider_rejected(self, chat, stores, broadcaster, customer, outsider):
        await chat.activate_chat(customer, "O1")
        with pytest.raises(AuthorizationFault):
            await chat.send_message(outsider, "O1", "let me in")
        assert stores.messages.messages == []
        assert broadcaster.events_named("new-message") == []
        assert stores.notifications.for_user("C1") == []

    @pytest.mark.asyncio
    async def test_broadcast_failure_keeps_message(self, stores, activation, fanout, customer):
        adapter = MagicMock()
        adapter.publish = AsyncMock(side_effect=ConnectionError("redis down"))
        chat = ChatService(
            stores.messages,
            stores.orders,
            activation,
            fanout,
            RoomBroadcaster(adapter, "/socket"),
        )
        await chat.activate_chat(customer, "O1")

        wire = await chat.send_message(customer, "O1", "still saved")
        assert wire["message"] == "still saved"
        assert [m.body for m in stores.messages.messages] == ["still saved"]
        assert len(stores.notifications.for_user("A1")) == 2

    @pytest.mark.asyncio
    async def test_empty_message(self, chat, customer):
        await chat.activate_chat(customer, "O1")
        with pytest.raises(InvalidStateFault) as exc:
            await chat.send_message(customer, "O1", "   ")
        assert exc.value.message == "Message content is required"

    @pytest.mark.asyncio
    async def test_image_only(self, chat, customer):
        await chat.activate_chat(customer, "O1")
        wire = await chat.send_message(customer, "O1", None, image_url="https://img/1.png")
        assert wire["message"] == ""
        assert wire["imageUrl"] == "https://img/1.png"

    @pytest.mark.asyncio
    async def test_admin_message_has_no_sender(self, chat, admin):
        await chat.activate_chat(admin, "O1")
        wire = await chat.send_message(admin, "O1", "support here")
        assert wire["senderType"] == "admin"
        assert wire["sender"] is None

    @pytest.mark.asyncio
    async def test_persistence_failure(self, chat, stores, customer):
        await chat.activate_chat(customer, "O1")

        async def broken(message):
            raise RuntimeError("disk full")

        stores.messages.create_with_sender = broken
        with pytest.raises(InfrastructureFault) as exc:
            await chat.send_message(customer, "O1", "hello")
        assert exc.value.public is False


class TestReadState:
    async def _conversation(self, chat, customer, agent):
        await chat.activate_chat(customer, "O1")
        await chat.send_message(agent, "O1", "on my way")
        await chat.send_message(agent, "O1", "at the gate")
        await chat.send_message(customer, "O1", "coming")

    @pytest.mark.asyncio
    async def test_history_oldest_first(self, chat, customer, agent):
        await self._conversation(chat, customer, agent)
        history = await chat.get_messages_by_order("O1")
        assert [m["message"] for m in history] == ["on my way", "at the gate", "coming"]

    @pytest.mark.asyncio
    async def test_mark_read(self, chat, stores, customer, agent):
        await self._conversation(chat, customer, agent)
        assert await chat.mark_messages_as_read("O1", "C1") == 2
        assert await chat.mark_messages_as_read("O1", "C1") == 0
        assert all(n.read for n in stores.notifications.for_user("C1")
                   if n.kind == NotificationKind.CHAT_MESSAGE_RECEIVED)

    @pytest.mark.asyncio
    async def test_unread_counts(self, chat, customer, agent):
        await self._conversation(chat, customer, agent)
        counts = await chat.get_unread_count("C1")
        assert counts.to_wire() == {"total": 2, "byOrder": {"O1": 2}}
        assert (await chat.get_unread_count("C1", "O1")).to_wire() == {"total": 2}
        assert (await chat.get_unread_count("C1", "O2")).to_wire() == {"total": 0}
        assert (await chat.get_unread_count("A1")).to_wire() == {"total": 1, "byOrder": {"O1": 1}}

    @pytest.mark.asyncio
    async def test_unread_without_orders(self, chat):
        assert (await chat.get_unread_count("A2")).to_wire() == {"total": 0, "byOrder": {}}


class TestActivation:
    @pytest.mark.asyncio
    async def test_activate_chat_broadcasts(self, chat, stores, broadcaster, agent):
        assert await chat.activate_chat(agent, "O1") is True
        (event,) = broadcaster.events_named("chat-activated")
        assert event.room == "order:O1"
        assert event.payload == {
            "orderId": "O1",
            "activatedBy": {"id": "A1", "type": "agent", "name": "Tunde Bello"},
        }
        assert stores.notifications.for_user("C1")[0].kind == NotificationKind.CHAT_ACTIVATED

    @pytest.mark.asyncio
    async def test_activation_failure(self, chat, broadcaster, cache_backend, agent):
        cache_backend.fail_on("set")
        assert await chat.activate_chat(agent, "O1") is False
        assert broadcaster.emitted == []

    @pytest.mark.asyncio
    async def test_ensure_active(self, chat, broadcaster, customer):
        assert await chat.ensure_active(customer, "O1") is True
        assert await chat.ensure_active(customer, "O1") is False
        assert len(broadcaster.events_named("chat-activated")) == 1

    @pytest.mark.asyncio
    async def test_user_left(self, chat, stores, agent):
        assert await chat.user_left(agent, "O1") == 1
        assert stores.notifications.for_user("C1")[0].kind == NotificationKind.USER_LEFT_CHAT
