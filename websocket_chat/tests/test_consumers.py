from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.conf import settings
from django.core.cache import cache
from django.test import TransactionTestCase, override_settings

from conversations.services import ConversationService
from dmessages.models import Message
from marketchat.identity import create_chat_session
from users.models import User
from websocket_chat.dispatch import dispatch_effects
from websocket_chat.presence import presence
from websocket_chat.routing import websocket_application


async def receive_event(communicator, event, timeout=2, **match):
    """Receive frames until one of type ``event`` whose data contains ``match`` arrives."""
    while True:
        frame = await communicator.receive_json_from(timeout=timeout)
        if frame["type"] != event:
            continue
        if all(frame["data"].get(k) == v for k, v in match.items()):
            return frame["data"]


async def pending_events(communicator):
    events = []
    while not await communicator.receive_nothing(timeout=0.2):
        events.append((await communicator.receive_json_from())["type"])
    return events


class ChatConsumerTestCase(TransactionTestCase):
    def setUp(self):
        async_to_sync(get_channel_layer().flush)()
        presence.clear()
        cache.clear()

        User.objects.create(user_id="u1", user_name="Client One", user_type="client")
        User.objects.create(user_id="u2", user_name="Client Two", user_type="client")
        User.objects.create(user_id="v1", user_name="Vendor One", user_type="vendor")
        User.objects.create(user_id="a1", user_name="Admin", user_type="admin")
        self.sessions = {uid: create_chat_session(uid) for uid in ("u1", "u2", "v1", "a1")}
        self.key = ConversationService.find_or_create("u1", "v1").result.conversation_id

    def tearDown(self):
        presence.clear()

    def communicator(self, user_id):
        return WebsocketCommunicator(websocket_application(), f"/ws/chat/?session={self.sessions[user_id]}")

    async def open(self, user_id):
        communicator = self.communicator(user_id)
        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        await receive_event(communicator, "connected")
        return communicator

    async def join(self, communicator, conversation_id=None):
        await communicator.send_json_to({
            "type": "join_conversation_room",
            "conversationId": conversation_id or self.key,
        })
        return await receive_event(communicator, "conversation_joined")


class HandshakeTest(ChatConsumerTestCase):
    async def test_connect_with_session_query(self):
        communicator = self.communicator("u1")

        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        data = await receive_event(communicator, "connected")
        self.assertEqual(data["room"], "user_u1")
        self.assertEqual(data["identity"]["id"], "u1")
        self.assertEqual(data["identity"]["role"], "user")
        self.assertTrue(presence.is_online("u1"))

        await communicator.disconnect()
        self.assertFalse(presence.is_online("u1"))

    async def test_connect_with_session_cookie(self):
        cookie = f"{settings.SESSION_COOKIE_NAME}={self.sessions['v1']}".encode()
        communicator = WebsocketCommunicator(websocket_application(), "/ws/chat/", headers=[(b"cookie", cookie)])

        connected, _ = await communicator.connect()
        self.assertTrue(connected)
        data = await receive_event(communicator, "connected")
        self.assertEqual(data["room"], "vendor_v1")

        await communicator.disconnect()

    async def test_missing_credential_is_refused(self):
        communicator = WebsocketCommunicator(websocket_application(), "/ws/chat/")

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_unknown_session_is_refused(self):
        communicator = WebsocketCommunicator(websocket_application(), "/ws/chat/?session=bogus")

        connected, code = await communicator.connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)

    async def test_admin_is_refused(self):
        connected, code = await self.communicator("a1").connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4001)
        self.assertFalse(presence.is_online("a1"))

    @override_settings(WEBSOCKET_RATE_LIMIT=1)
    async def test_handshakes_are_rate_limited(self):
        first = await self.open("u1")

        connected, code = await self.communicator("u1").connect()

        self.assertFalse(connected)
        self.assertEqual(code, 4029)
        await first.disconnect()


class RoomMembershipTest(ChatConsumerTestCase):
    async def test_join_is_idempotent(self):
        communicator = await self.open("u1")

        self.assertEqual(await self.join(communicator), {"conversationId": self.key})
        self.assertEqual(await self.join(communicator), {"conversationId": self.key})

        await communicator.send_json_to({"type": "leave_conversation_room", "conversationId": self.key})
        self.assertEqual(await receive_event(communicator, "conversation_left"), {"conversationId": self.key})
        await communicator.disconnect()

    async def test_join_and_leave_are_announced_to_the_room(self):
        user = await self.open("u1")
        vendor = await self.open("v1")
        await self.join(user)

        await self.join(vendor)
        joined = await receive_event(user, "userJoinedChat")
        self.assertEqual(joined["userId"], "v1")
        self.assertEqual(joined["userName"], "Vendor One")
        self.assertEqual(joined["chatId"], self.key)

        await self.join(vendor)
        self.assertNotIn("userJoinedChat", await pending_events(user))

        await vendor.send_json_to({"type": "leave_conversation_room", "conversationId": self.key})
        await receive_event(vendor, "conversation_left")
        left = await receive_event(user, "userLeftChat")
        self.assertEqual(left["userId"], "v1")
        await user.disconnect()
        await vendor.disconnect()

    async def test_outsider_cannot_join(self):
        communicator = await self.open("u2")

        await communicator.send_json_to({"type": "join_conversation_room", "conversationId": self.key})
        error = await receive_event(communicator, "error")

        self.assertEqual(error["error"], "forbidden")
        await communicator.disconnect()

    async def test_unknown_conversation(self):
        communicator = await self.open("u1")

        await communicator.send_json_to({"type": "join_conversation_room", "conversationId": "v9_u9"})
        error = await receive_event(communicator, "error")

        self.assertEqual(error["error"], "not_found")
        await communicator.disconnect()

    async def test_identity_connected_only_for_self(self):
        communicator = await self.open("u1")

        await communicator.send_json_to({"type": "user_connected", "userId": "u1"})
        self.assertEqual((await receive_event(communicator, "connected"))["room"], "user_u1")

        await communicator.send_json_to({"type": "vendor_connected", "vendorId": "v1"})
        self.assertEqual((await receive_event(communicator, "error"))["error"], "forbidden")
        await communicator.disconnect()

    async def test_new_conversation_reaches_every_device(self):
        phone = await self.open("u2")
        laptop = await self.open("u2")

        outcome = await database_sync_to_async(ConversationService.find_or_create)("u2", "v1")
        await dispatch_effects(outcome.effects)

        for communicator in (phone, laptop):
            data = await receive_event(communicator, "new_conversation")
            self.assertEqual(data["conversationId"], "v1_u2")
            await communicator.disconnect()


class MessagingTest(ChatConsumerTestCase):
    async def test_send_message(self):
        user = await self.open("u1")
        vendor = await self.open("v1")
        await self.join(user)
        await self.join(vendor)

        await user.send_json_to({
            "type": "send_message",
            "tempId": "tmp-1",
            "conversationId": self.key,
            "senderId": "u1",
            "receiverId": "v1",
            "message": "Hi",
        })

        ack = await receive_event(user, "messageSent")
        self.assertEqual(ack["tempId"], "tmp-1")
        self.assertEqual(ack["message"]["message"], "Hi")

        received = await receive_event(vendor, "receive_message")
        self.assertEqual(received["id"], ack["message"]["id"])
        new_message = await receive_event(vendor, "newMessage")
        self.assertEqual(new_message["conversation"]["unreadCount"], 2)

        self.assertEqual(await database_sync_to_async(Message.objects.count)(), 2)
        await user.disconnect()
        await vendor.disconnect()

    async def test_vendor_room_hears_messages_without_joining(self):
        user = await self.open("u1")
        vendor = await self.open("v1")

        await user.send_json_to({
            "type": "send_message", "conversationId": self.key, "senderId": "u1", "receiverId": "v1", "message": "Hi",
        })

        new_message = await receive_event(vendor, "newMessage")
        self.assertEqual(new_message["message"]["senderId"], "u1")
        await user.disconnect()
        await vendor.disconnect()

    async def test_rejected_message_reports_temp_id(self):
        user = await self.open("u1")

        await user.send_json_to({
            "type": "send_message", "tempId": "tmp-2", "conversationId": self.key,
            "senderId": "u1", "receiverId": "v1", "message": "  ",
        })
        error = await receive_event(user, "messageError")
        self.assertEqual(error["tempId"], "tmp-2")
        self.assertEqual(error["error"], "invalid_request")

        await user.send_json_to({
            "type": "send_message", "tempId": "tmp-3", "conversationId": self.key,
            "senderId": "v1", "receiverId": "u1", "message": "spoofed",
        })
        error = await receive_event(user, "messageError")
        self.assertEqual(error["tempId"], "tmp-3")
        self.assertEqual(error["error"], "forbidden")

        self.assertEqual(await database_sync_to_async(Message.objects.count)(), 1)
        await user.disconnect()

    async def test_blocked_conversation_rejects_messages(self):
        await database_sync_to_async(ConversationService.block)(self.key, "v1", "vendor")
        user = await self.open("u1")

        await user.send_json_to({
            "type": "send_message", "tempId": "tmp-4", "conversationId": self.key,
            "senderId": "u1", "receiverId": "v1", "message": "Hi",
        })
        error = await receive_event(user, "messageError")

        self.assertEqual(error["error"], "forbidden")
        await user.disconnect()

    async def test_reset_unread_count(self):
        vendor = await self.open("v1")

        await vendor.send_json_to({"type": "reset_unread_count", "conversationId": self.key, "userId": "v1"})
        data = await receive_event(vendor, "unread_count_updated")

        self.assertEqual(data["conversationId"], self.key)
        self.assertEqual(data["unreadCount"], 0)

        await vendor.send_json_to({"type": "reset_unread_count", "conversationId": self.key, "userId": "u1"})
        self.assertEqual((await receive_event(vendor, "error"))["error"], "forbidden")
        await vendor.disconnect()

    async def test_mark_message_read(self):
        message_id = await database_sync_to_async(
            lambda: Message.objects.filter(conversation_id=self.key).first().pk
        )()
        user = await self.open("u1")
        vendor = await self.open("v1")
        await self.join(vendor)

        await user.send_json_to({"type": "mark_message_read", "messageId": message_id})
        data = await receive_event(vendor, "messageRead")

        self.assertEqual(data["messageId"], message_id)
        self.assertEqual(data["readBy"], "u1")
        await user.disconnect()
        await vendor.disconnect()

    async def test_identity_with_unsafe_id_receives_messages(self):
        await database_sync_to_async(User.objects.create)(
            user_id="auth0|c1", user_name="Client Auth", user_type="client",
        )
        session = await database_sync_to_async(create_chat_session)("auth0|c1")
        outcome = await database_sync_to_async(ConversationService.find_or_create)("auth0|c1", "v1")
        key = outcome.result.conversation_id

        client = WebsocketCommunicator(websocket_application(), f"/ws/chat/?session={session}")
        connected, _ = await client.connect()
        self.assertTrue(connected)
        self.assertTrue((await receive_event(client, "connected"))["room"].startswith("user.h"))
        await self.join(client, key)
        vendor = await self.open("v1")

        await vendor.send_json_to({
            "type": "send_message", "conversationId": key, "senderId": "v1", "receiverId": "auth0|c1", "message": "Hi",
        })

        self.assertEqual((await receive_event(client, "receive_message"))["message"], "Hi")
        new_message = await receive_event(client, "newMessage")
        self.assertEqual(new_message["conversation"]["unreadCount"], 1)
        await client.disconnect()
        await vendor.disconnect()


class TypingAndPresenceTest(ChatConsumerTestCase):
    async def test_typing_is_relayed_to_the_other_participant(self):
        user = await self.open("u1")
        vendor = await self.open("v1")
        await self.join(user)
        await self.join(vendor)

        await user.send_json_to({"type": "startTyping", "chatId": self.key})
        typing = await receive_event(vendor, "userTyping")
        self.assertEqual(typing, {"userId": "u1", "userName": "Client One", "chatId": self.key, "isTyping": True})
        self.assertNotIn("userTyping", await pending_events(user))

        await user.send_json_to({"type": "stopTyping", "chatId": self.key})
        self.assertFalse((await receive_event(vendor, "userTyping", isTyping=False))["isTyping"])

        await user.disconnect()
        await vendor.disconnect()

    async def test_typing_stops_when_the_typist_disconnects(self):
        user = await self.open("u1")
        vendor = await self.open("v1")
        await self.join(user)
        await self.join(vendor)

        await user.send_json_to({"type": "startTyping", "chatId": self.key})
        await receive_event(vendor, "userTyping")
        await user.disconnect()

        self.assertFalse((await receive_event(vendor, "userTyping", isTyping=False))["isTyping"])
        status = await receive_event(vendor, "userStatusChanged", userId="u1", status="offline")
        self.assertEqual(status["userId"], "u1")
        self.assertEqual(status["status"], "offline")
        await vendor.disconnect()

    async def test_typing_requires_joined_room(self):
        user = await self.open("u1")

        await user.send_json_to({"type": "startTyping", "chatId": self.key})

        self.assertEqual((await receive_event(user, "error"))["error"], "forbidden")
        await user.disconnect()

    async def test_status_change_on_connect(self):
        vendor = await self.open("v1")
        await self.join(vendor)

        user = await self.open("u1")
        status = await receive_event(vendor, "userStatusChanged", userId="u1")

        self.assertEqual(status["userType"], "user")
        self.assertEqual(status["status"], "online")
        self.assertEqual(status["chatId"], self.key)
        await user.disconnect()
        await vendor.disconnect()

    async def test_get_online_users(self):
        user = await self.open("u1")
        vendor = await self.open("v1")

        await user.send_json_to({"type": "get_online_users"})
        data = await receive_event(user, "onlineUsers")

        self.assertEqual([u["userId"] for u in data["users"]], ["v1"])
        await user.disconnect()
        await vendor.disconnect()


class ProtocolErrorsTest(ChatConsumerTestCase):
    async def test_heartbeat(self):
        user = await self.open("u1")

        await user.send_json_to({"type": "heartbeat"})

        self.assertIn("timestamp", await receive_event(user, "heartbeat_response"))
        await user.disconnect()

    async def test_unknown_type(self):
        user = await self.open("u1")

        await user.send_json_to({"type": "dance"})
        error = await receive_event(user, "error")

        self.assertEqual(error["message"], "Unknown message type")
        await user.disconnect()

    async def test_invalid_json(self):
        user = await self.open("u1")

        await user.send_to(text_data="{not json")
        self.assertEqual((await receive_event(user, "error"))["message"], "Invalid JSON format")

        await user.send_json_to(["a", "list"])
        self.assertEqual((await receive_event(user, "error"))["message"], "Expected a JSON object")
        await user.disconnect()

    @override_settings(WEBSOCKET_MAX_MESSAGE_SIZE=64)
    async def test_oversized_frame(self):
        user = await self.open("u1")

        await user.send_json_to({"type": "heartbeat", "padding": "x" * 100})

        self.assertEqual((await receive_event(user, "error"))["message"], "Message too large")
        await user.disconnect()

    @override_settings(WEBSOCKET_HEARTBEAT_INTERVAL=0.1, WEBSOCKET_CONNECTION_TIMEOUT=0)
    async def test_idle_connection_is_closed(self):
        user = await self.open("u1")

        while True:
            output = await user.receive_output(timeout=2)
            if output["type"] == "websocket.close":
                break

        self.assertEqual(output["code"], 4008)
        await user.disconnect()
