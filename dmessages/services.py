"""
Message delivery protocol.

``send_message`` is the central operation: persist the message, update the
conversation summary and counters, then describe the broadcasts and the push
notification as effects. The message row is the ground truth; a failure while
updating the denormalized summary is logged and never rolls the message back.
"""

import logging

import bleach
from django.conf import settings
from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from conversations.models import Conversation, ConversationParticipant
from conversations.serializers import conversation_summary
from conversations.services import ConversationService
from marketchat.exceptions import Forbidden, InvalidRequest, NotFound, StoreFailure
from marketchat.roles import ParticipantRole
from websocket_chat.effects import Broadcast, Outcome, PushNotification
from websocket_chat.rooms import conversation_room, room_for
from .models import Message, MessageAttachment, MessageDeletion, MessageReceipt
from .serializers import MessageAttachmentSerializer, MessageSerializer

logger = logging.getLogger(__name__)

RECEIVE_MESSAGE = "receive_message"
NEW_MESSAGE = "newMessage"
UNREAD_COUNT_UPDATED = "unread_count_updated"
MESSAGE_READ = "messageRead"

PUSH_PREVIEW_LENGTH = 100


def sanitize_message(content):
    """Strip every HTML tag from a chat body."""
    return bleach.clean(content, tags=[], attributes={}, strip=True)


def message_preview(body, attachment=None):
    if body:
        return body
    if attachment is not None:
        return f"[{attachment.attachment_type}] {attachment.name}".strip()
    return ""


def _with_relations(queryset):
    return queryset.select_related('attachment').prefetch_related('deletions', 'receipts')


def _messages_for(conversation_id):
    return _with_relations(Message.objects.filter(conversation_id=conversation_id))


def _require_participant(conversation, identity_id):
    participant = conversation.participant(identity_id=identity_id)
    if participant is None:
        raise Forbidden("You are not a participant of this conversation")
    return participant


def _validated_attachment(attachment):
    if not attachment:
        return None
    if not isinstance(attachment, dict):
        raise InvalidRequest("Attachment must be an object with url, type, name and size")
    serializer = MessageAttachmentSerializer(data=attachment)
    if not serializer.is_valid():
        raise InvalidRequest(f"Invalid attachment: {serializer.errors}")
    return serializer.validated_data


def _check_declared_roles(roles, sender, receiver):
    if not roles:
        return
    declared = {
        'senderRole': sender,
        'receiverRole': receiver,
    }
    for key, participant in declared.items():
        value = roles.get(key)
        if value is not None and ParticipantRole.parse(value).value != participant.role:
            raise InvalidRequest(f"{key} does not match the conversation participants")


class MessageService:

    @staticmethod
    def get_message(message_id) -> Message:
        try:
            return _with_relations(Message.objects).get(pk=message_id)
        except (Message.DoesNotExist, ValueError):
            raise NotFound("Message not found")

    @staticmethod
    def send_message(conversation_id, sender_id, receiver_id, body, attachment=None, roles=None) -> Outcome:
        """
        Persist a message from ``sender_id`` to ``receiver_id`` and describe its fan-out.

        Effects, in order: ``receive_message`` to the conversation room,
        ``newMessage`` (message plus that participant's summary) to each
        identity room, and a push notification for the receiver.

        Raises:
            InvalidRequest: empty or oversized body, malformed attachment,
                receiver that is not the counterpart, mismatching roles.
            Forbidden: sender is not a participant, or the conversation is blocked.
            NotFound: unknown conversation.
            StoreFailure: the message itself could not be persisted.
        """
        body = body if isinstance(body, str) else ("" if body is None else str(body))
        max_length = getattr(settings, 'CHAT_MAX_MESSAGE_LENGTH', 5000)
        if len(body) > max_length:
            raise InvalidRequest(f"Message too long (max {max_length} characters)")

        attachment_data = _validated_attachment(attachment)
        body = sanitize_message(body).strip()
        if not body and attachment_data is None:
            raise InvalidRequest("Message must have content or an attachment")

        conversation = ConversationService.get_by_key(conversation_id)
        sender = _require_participant(conversation, sender_id)
        receiver = conversation.counterpart_of(sender.identity_id)
        if receiver is None or receiver.identity_id != str(receiver_id):
            raise InvalidRequest("receiverId must be the other participant of the conversation")
        _check_declared_roles(roles, sender, receiver)
        if conversation.is_blocked:
            raise Forbidden("This conversation is blocked")

        try:
            with transaction.atomic():
                message = Message.objects.create(
                    conversation=conversation,
                    sender_id=sender.identity_id,
                    receiver_id=receiver.identity_id,
                    sender_role=sender.role,
                    receiver_role=receiver.role,
                    sender_reference=sender.entity_kind,
                    receiver_reference=receiver.entity_kind,
                    message=body,
                )
                if attachment_data is not None:
                    MessageAttachment.objects.create(message=message, **attachment_data)
        except DatabaseError as e:
            logger.exception("Failed to persist message in conversation %s", conversation.conversation_id)
            raise StoreFailure(f"Error sending message: {e}")

        message = _messages_for(conversation.conversation_id).get(pk=message.pk)
        logger.info("Message %s persisted in conversation %s", message.pk, conversation.conversation_id)

        preview = message_preview(message.message, getattr(message, 'attachment', None))
        try:
            with transaction.atomic():
                Conversation.objects.filter(pk=conversation.pk).update(
                    last_message=preview,
                    last_message_at=message.created_at,
                    last_updated=timezone.now(),
                    messages_count=F('messages_count') + 1,
                )
                ConversationParticipant.objects.filter(pk=receiver.pk).update(
                    unread_count=F('unread_count') + 1,
                )
        except DatabaseError:
            logger.error(
                "Conversation summary diverged: conversation=%s message=%s",
                conversation.conversation_id, message.pk, exc_info=True,
            )

        conversation = ConversationService.get_by_key(conversation.conversation_id)
        data = MessageSerializer(message).data

        effects = [Broadcast(conversation_room(conversation.conversation_id), RECEIVE_MESSAGE, data)]
        for participant in conversation.participants.all():
            effects.append(Broadcast(
                room_for(participant.entity_kind, participant.identity_id),
                NEW_MESSAGE,
                {
                    'message': data,
                    'conversation': conversation_summary(conversation, participant.identity_id),
                },
            ))
        effects.append(PushNotification(
            recipient_id=receiver.identity_id,
            title="New message",
            body=preview[:PUSH_PREVIEW_LENGTH],
            data={
                'conversationId': conversation.conversation_id,
                'messageId': str(message.pk),
                'senderId': sender.identity_id,
            },
        ))
        return Outcome(message, effects=effects)

    @staticmethod
    def mark_read(conversation_id, identity_id) -> Outcome:
        """Zero ``identity_id``'s unread counter; only that identity's room hears about it."""
        conversation = ConversationService.get_by_key(conversation_id)
        participant = _require_participant(conversation, identity_id)

        now = timezone.now()
        try:
            ConversationParticipant.objects.filter(pk=participant.pk).update(unread_count=0, last_seen_at=now)
            Conversation.objects.filter(pk=conversation.pk).update(last_updated=now)
        except DatabaseError as e:
            logger.exception("Failed to mark conversation %s read", conversation.conversation_id)
            raise StoreFailure(f"Error marking messages as read: {e}")

        conversation = ConversationService.get_by_key(conversation.conversation_id)
        summary = conversation_summary(conversation, participant.identity_id)
        effects = [Broadcast(
            room_for(participant.entity_kind, participant.identity_id),
            UNREAD_COUNT_UPDATED,
            {
                'conversationId': conversation.conversation_id,
                'identityId': participant.identity_id,
                'unreadCount': summary['unreadCount'],
                'conversation': summary,
            },
        )]
        return Outcome(conversation, effects=effects)

    @staticmethod
    def mark_message_read(message_id, identity_id) -> Outcome:
        """Add a read receipt for one message. Repeating it changes nothing and broadcasts nothing."""
        message = MessageService.get_message(message_id)
        conversation = ConversationService.get_by_key(message.conversation_id)
        _require_participant(conversation, identity_id)

        try:
            receipt, created = MessageReceipt.objects.get_or_create(message=message, identity_id=str(identity_id))
        except DatabaseError as e:
            logger.exception("Failed to record read receipt for message %s", message.pk)
            raise StoreFailure(f"Error marking message as read: {e}")

        message = MessageService.get_message(message.pk)
        if not created:
            return Outcome(message)

        return Outcome(message, effects=[Broadcast(
            conversation_room(conversation.conversation_id),
            MESSAGE_READ,
            {
                'messageId': message.pk,
                'conversationId': conversation.conversation_id,
                'readBy': receipt.identity_id,
                'readAt': receipt.read_at.isoformat(),
            },
        )])

    @staticmethod
    def soft_delete(conversation_id, identity_id) -> Outcome:
        """Hide every message of the conversation from ``identity_id`` only."""
        conversation = ConversationService.get_by_key(conversation_id)
        participant = _require_participant(conversation, identity_id)

        pending = (
            Message.objects
            .filter(conversation_id=conversation.conversation_id)
            .exclude(deletions__identity_id=participant.identity_id)
            .values_list('id', flat=True)
        )
        try:
            rows = MessageDeletion.objects.bulk_create(
                [MessageDeletion(message_id=pk, identity_id=participant.identity_id) for pk in pending],
                ignore_conflicts=True,
            )
        except DatabaseError as e:
            logger.exception("Failed to delete messages in %s for %s", conversation.conversation_id, identity_id)
            raise StoreFailure(f"Error deleting messages: {e}")

        logger.info("Hid %d messages in %s for %s", len(rows), conversation.conversation_id, identity_id)
        return Outcome({
            'conversationId': conversation.conversation_id,
            'identityId': participant.identity_id,
            'deletedCount': len(rows),
        })

    @staticmethod
    def history(conversation_id, identity_id, offset=0, limit=None):
        """
        Messages visible to ``identity_id``, oldest first within the page.

        Pages are taken newest-first (``offset`` counts back from the newest
        message) and then reversed; ties on ``created_at`` break on id.
        """
        default_limit = getattr(settings, 'CHAT_HISTORY_PAGE_SIZE', 50)
        max_limit = getattr(settings, 'CHAT_HISTORY_MAX_PAGE_SIZE', 200)
        try:
            offset = int(offset or 0)
            limit = int(limit) if limit not in (None, "") else default_limit
        except (TypeError, ValueError):
            raise InvalidRequest("offset and limit must be integers")
        if offset < 0 or limit < 1:
            raise InvalidRequest("offset must be >= 0 and limit must be >= 1")
        limit = min(limit, max_limit)

        conversation = ConversationService.get_by_key(conversation_id)
        participant = _require_participant(conversation, identity_id)

        visible = _messages_for(conversation.conversation_id).exclude(
            deletions__identity_id=participant.identity_id
        )
        total = visible.count()
        page = list(visible.order_by('-created_at', '-id')[offset:offset + limit])
        page.reverse()
        return {
            'messages': page,
            'total': total,
            'offset': offset,
            'limit': limit,
            'hasMore': offset + len(page) < total,
        }

    @staticmethod
    def reconcile(conversation_id) -> bool:
        """
        Recompute the conversation summary from the message log.

        Returns True when the stored summary had diverged and was repaired.
        """
        conversation = ConversationService.get_by_key(conversation_id)
        messages = _messages_for(conversation.conversation_id)
        count = messages.count()
        latest = messages.order_by('-created_at', '-id').first()

        expected = {
            'messages_count': count,
            'last_message': message_preview(latest.message, getattr(latest, 'attachment', None)) if latest else "",
            'last_message_at': latest.created_at if latest else None,
        }
        stale = {k: v for k, v in expected.items() if getattr(conversation, k) != v}
        if not stale:
            return False

        Conversation.objects.filter(pk=conversation.pk).update(**expected)
        logger.warning("Reconciled conversation %s: %s", conversation.conversation_id, sorted(stale))
        return True
