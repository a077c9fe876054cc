import asyncio
import json
import logging

from channels.db import database_sync_to_async
from channels.generic.websocket import AsyncWebsocketConsumer
from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.utils import timezone

from conversations.models import ConversationParticipant
from conversations.services import ConversationService
from dmessages.serializers import MarkReadSerializer, MessageSerializer, SendMessageSerializer
from dmessages.services import MessageService
from marketchat.exceptions import ChatError, Forbidden, InvalidRequest
from marketchat.roles import ParticipantRole
from .dispatch import dispatch_effects
from .middleware import CLOSE_UNAUTHENTICATED
from .presence import presence
from .protocol import (
    STATUS_OFFLINE,
    STATUS_ONLINE,
    ConnectionState,
    membership_effect,
    status_effects,
    typing_effect,
)
from .rooms import conversation_room, room_for

logger = logging.getLogger(__name__)

CLOSE_IDLE = 4008


class ChatConsumer(AsyncWebsocketConsumer):
    """
    One authenticated chat connection.

    The connection joins its identity room on connect and any number of
    conversation rooms on request. Events from one connection are handled one
    at a time; server events arrive through ``relay_event``.
    """

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.state = ConnectionState.CONNECTING
        self.identity = None
        self.identity_room = None
        self.conversation_rooms = set()
        self.typing_in = set()
        self.heartbeat_task = None
        self.last_activity = None

    async def connect(self):
        """Accept an authenticated handshake and join the identity room"""
        self.state = ConnectionState.AUTHENTICATING
        self.identity = self.scope.get('identity')
        if self.identity is None or not self.identity.can_chat:
            self.state = ConnectionState.DISCONNECTED
            await self.close(code=CLOSE_UNAUTHENTICATED)
            return

        await self.accept()

        self.identity_room = room_for(self.identity.entity_kind, self.identity.identity_id)
        await self.channel_layer.group_add(self.identity_room.name, self.channel_name)
        self.state = ConnectionState.JOINED
        self.last_activity = timezone.now()
        logger.info("%s connected on %s", self.identity_room, self.channel_name)

        came_online = presence.connect(self.identity, self.channel_name)
        self.heartbeat_task = asyncio.create_task(self.heartbeat_loop())

        await self.send_event('connected', {
            'identity': self.identity.as_dict(),
            'room': self.identity_room.name,
        })

        if came_online:
            await self.broadcast_status(STATUS_ONLINE)

    async def disconnect(self, code):
        """Drop typing state, room memberships and presence; nothing persisted changes"""
        if self.heartbeat_task:
            self.heartbeat_task.cancel()

        if self.state is not ConnectionState.JOINED:
            self.state = ConnectionState.DISCONNECTED
            return

        if self.typing_in:
            await dispatch_effects([
                typing_effect(self.identity, conversation_id, False, self.channel_name)
                for conversation_id in sorted(self.typing_in)
            ])
            self.typing_in.clear()

        for conversation_id in list(self.conversation_rooms):
            await self.channel_layer.group_discard(conversation_room(conversation_id).name, self.channel_name)
        self.conversation_rooms.clear()
        await self.channel_layer.group_discard(self.identity_room.name, self.channel_name)

        went_offline = presence.disconnect(self.identity.identity_id, self.channel_name)
        self.state = ConnectionState.DISCONNECTED
        logger.info("%s disconnected (code=%s)", self.identity_room, code)

        if went_offline:
            await self.broadcast_status(STATUS_OFFLINE)

    async def receive(self, text_data=None, bytes_data=None):
        """Handle incoming WebSocket messages"""
        max_size = self.scope.get('max_message_size', settings.WEBSOCKET_MAX_MESSAGE_SIZE)
        if text_data is None:
            await self.send_error("Binary frames are not supported", InvalidRequest.code)
            return
        if len(text_data) > max_size:
            await self.send_error("Message too large", InvalidRequest.code)
            return

        try:
            data = json.loads(text_data)
        except json.JSONDecodeError:
            await self.send_error("Invalid JSON format", InvalidRequest.code)
            return
        if not isinstance(data, dict):
            await self.send_error("Expected a JSON object", InvalidRequest.code)
            return

        self.last_activity = timezone.now()
        presence.touch(self.identity.identity_id)
        message_type = data.get('type')

        try:
            if message_type == 'join_conversation_room':
                await self.handle_join_conversation_room(data)
            elif message_type == 'leave_conversation_room':
                await self.handle_leave_conversation_room(data)
            elif message_type in ('user_connected', 'vendor_connected'):
                await self.handle_identity_connected(message_type, data)
            elif message_type == 'send_message':
                await self.handle_send_message(data)
            elif message_type == 'reset_unread_count':
                await self.handle_reset_unread_count(data)
            elif message_type == 'mark_message_read':
                await self.handle_mark_message_read(data)
            elif message_type == 'startTyping':
                await self.handle_typing(data, True)
            elif message_type == 'stopTyping':
                await self.handle_typing(data, False)
            elif message_type == 'user_activity':
                pass
            elif message_type == 'get_online_users':
                await self.handle_get_online_users()
            elif message_type == 'heartbeat':
                await self.handle_heartbeat()
            else:
                await self.send_error("Unknown message type", InvalidRequest.code)
        except ChatError as e:
            await self.send_error(e.message, e.code)
        except Exception:
            logger.exception("Unhandled error for %s handling %s", self.identity_room, message_type)
            await self.send_error("Internal server error", "error")

    async def handle_join_conversation_room(self, data):
        """Join a conversation room; re-joining is a no-op"""
        conversation_id = str(self.required(data, 'conversationId'))
        await self.check_participant(conversation_id)

        if conversation_id not in self.conversation_rooms:
            await self.channel_layer.group_add(conversation_room(conversation_id).name, self.channel_name)
            self.conversation_rooms.add(conversation_id)
            logger.info("%s joined %s", self.identity_room, conversation_room(conversation_id))
            await dispatch_effects([membership_effect(self.identity, conversation_id, True, self.channel_name)])

        await self.send_event('conversation_joined', {'conversationId': conversation_id})

    async def handle_leave_conversation_room(self, data):
        conversation_id = str(self.required(data, 'conversationId'))

        if conversation_id in self.typing_in:
            self.typing_in.discard(conversation_id)
            await dispatch_effects([typing_effect(self.identity, conversation_id, False, self.channel_name)])

        if conversation_id in self.conversation_rooms:
            await self.channel_layer.group_discard(conversation_room(conversation_id).name, self.channel_name)
            self.conversation_rooms.discard(conversation_id)
            logger.info("%s left %s", self.identity_room, conversation_room(conversation_id))
            await dispatch_effects([membership_effect(self.identity, conversation_id, False, self.channel_name)])

        await self.send_event('conversation_left', {'conversationId': conversation_id})

    async def handle_identity_connected(self, message_type, data):
        """``user_connected``/``vendor_connected``: only the connection's own identity room may be joined"""
        role = ParticipantRole.USER if message_type == 'user_connected' else ParticipantRole.VENDOR
        identity_id = str(self.required(data, 'userId' if role is ParticipantRole.USER else 'vendorId'))

        if role is not self.identity.role or identity_id != self.identity.identity_id:
            raise Forbidden("Cannot join another identity's room")

        # Joined on connect; group_add is idempotent
        await self.channel_layer.group_add(self.identity_room.name, self.channel_name)
        await self.send_event('connected', {
            'identity': self.identity.as_dict(),
            'room': self.identity_room.name,
        })

    async def handle_send_message(self, data):
        temp_id = data.get('tempId')
        try:
            serializer = SendMessageSerializer(data=data)
            if not serializer.is_valid():
                raise InvalidRequest(f"Invalid message: {serializer.errors}")
            payload = serializer.validated_data
            if payload['senderId'] != self.identity.identity_id:
                raise Forbidden("senderId must be the connected identity")

            message, effects = await self.send_message(payload)
        except ChatError as e:
            await self.send_event('messageError', {
                'tempId': temp_id,
                'message': e.message,
                'error': e.code,
            })
            return

        await self.send_event('messageSent', {'tempId': temp_id, 'message': message})
        await dispatch_effects(effects)

    async def handle_reset_unread_count(self, data):
        user_id = str(self.required(data, 'userId'))
        if user_id != self.identity.identity_id:
            raise Forbidden("Cannot reset another identity's unread count")

        serializer = MarkReadSerializer(data={
            'conversationId': self.required(data, 'conversationId'),
            'identityId': user_id,
        })
        if not serializer.is_valid():
            raise InvalidRequest(f"Invalid request: {serializer.errors}")

        outcome = await database_sync_to_async(MessageService.mark_read)(
            serializer.validated_data['conversationId'], user_id,
        )
        await dispatch_effects(outcome.effects)

    async def handle_mark_message_read(self, data):
        message_id = self.required(data, 'messageId')
        outcome = await database_sync_to_async(MessageService.mark_message_read)(
            message_id, self.identity.identity_id,
        )
        await dispatch_effects(outcome.effects)

    async def handle_typing(self, data, is_typing):
        """Relay typing to the rest of the conversation room; never persisted"""
        conversation_id = str(self.required(data, 'chatId'))
        if conversation_id not in self.conversation_rooms:
            raise Forbidden("Join the conversation room first")

        if is_typing:
            self.typing_in.add(conversation_id)
        else:
            self.typing_in.discard(conversation_id)
        await dispatch_effects([typing_effect(self.identity, conversation_id, is_typing, self.channel_name)])

    async def handle_get_online_users(self):
        counterpart_ids = await self.counterpart_ids()
        await self.send_event('onlineUsers', {'users': presence.online_among(counterpart_ids)})

    async def handle_heartbeat(self):
        """Handle heartbeat messages"""
        await self.send_event('heartbeat_response', {'timestamp': timezone.now().isoformat()})

    async def relay_event(self, event):
        """Forward a room broadcast (``relay.event``) to this connection"""
        if event.get('skip_channel') and event['skip_channel'] == self.channel_name:
            return
        await self.send_event(event['event'], event['data'])

    async def broadcast_status(self, status):
        conversation_ids = await self.conversation_ids()
        await dispatch_effects(status_effects(self.identity, conversation_ids, status))

    async def heartbeat_loop(self):
        """Send periodic heartbeats and close connections idle past the timeout"""
        interval = self.scope.get('heartbeat_interval', settings.WEBSOCKET_HEARTBEAT_INTERVAL)
        timeout = self.scope.get('connection_timeout', settings.WEBSOCKET_CONNECTION_TIMEOUT)
        while True:
            try:
                await asyncio.sleep(interval)
                idle = (timezone.now() - self.last_activity).total_seconds()
                if idle > timeout:
                    logger.info("Closing idle connection %s after %ds", self.identity_room, idle)
                    await self.close(code=CLOSE_IDLE)
                    break
                await self.send_event('heartbeat', {'timestamp': timezone.now().isoformat()})
            except asyncio.CancelledError:
                break

    async def send_event(self, event, data):
        await self.send(text_data=json.dumps({'type': event, 'data': data}, cls=DjangoJSONEncoder))

    async def send_error(self, message, code):
        """Send error message to client"""
        await self.send_event('error', {'message': message, 'error': code})

    @staticmethod
    def required(data, field):
        value = data.get(field)
        if value in (None, ""):
            raise InvalidRequest(f"{field} is required")
        return value

    @database_sync_to_async
    def check_participant(self, conversation_id):
        conversation = ConversationService.get_by_key(conversation_id)
        if not conversation.has_participant(self.identity.identity_id):
            raise Forbidden("Access denied to conversation")

    @database_sync_to_async
    def send_message(self, payload):
        outcome = MessageService.send_message(
            payload['conversationId'],
            payload['senderId'],
            payload['receiverId'],
            payload.get('message', ""),
            attachment=payload.get('attachment'),
            roles=payload.get('roles'),
        )
        return MessageSerializer(outcome.result).data, outcome.effects

    @database_sync_to_async
    def conversation_ids(self):
        return list(
            ConversationParticipant.objects
            .filter(identity_id=self.identity.identity_id, role=self.identity.role.value)
            .values_list('conversation__conversation_id', flat=True)
        )

    @database_sync_to_async
    def counterpart_ids(self):
        return list(
            ConversationParticipant.objects
            .filter(conversation__participants__identity_id=self.identity.identity_id)
            .exclude(identity_id=self.identity.identity_id)
            .values_list('identity_id', flat=True)
            .distinct()
        )
