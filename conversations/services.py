"""
Conversation lifecycle: find-or-create, listing and moderation transitions.

Every mutating operation returns an :class:`~websocket_chat.effects.Outcome`
whose effects (broadcasts, moderation email) are dispatched by the caller's
transport. All updates are last-write-wins; there is no concurrency token.
"""

import logging
from typing import Optional

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from marketchat.exceptions import Forbidden, InvalidRequest, NotFound, StoreFailure
from marketchat.roles import EntityKind, ParticipantRole
from websocket_chat.effects import Broadcast, ModerationReport, Outcome
from websocket_chat.rooms import room_for
from .models import Conversation, ConversationParticipant, build_conversation_id
from .serializers import ConversationSerializer

logger = logging.getLogger(__name__)

NEW_CONVERSATION = "new_conversation"
CONVERSATION_BLOCKED = "conversation_blocked"
CONVERSATION_UNBLOCKED = "conversation_unblocked"


def _with_participants(queryset):
    return queryset.prefetch_related('participants')


def _require_id(value, field):
    value = str(value).strip() if value is not None else ""
    if not value:
        raise InvalidRequest(f"{field} is required")
    return value


def _broadcast_to_participants(conversation, event):
    data = ConversationSerializer(conversation).data
    return [
        Broadcast(room_for(p.entity_kind, p.identity_id), event, data)
        for p in conversation.participants.all()
    ]


class ConversationService:

    @staticmethod
    def get_by_key(conversation_id) -> Conversation:
        try:
            return _with_participants(Conversation.objects).get(conversation_id=str(conversation_id))
        except Conversation.DoesNotExist:
            raise NotFound("Conversation not found")

    @staticmethod
    def _find_pair(user_id, vendor_id) -> Optional[Conversation]:
        queryset = (
            Conversation.objects
            .filter(participants__identity_id=vendor_id, participants__role=ParticipantRole.VENDOR.value)
            .filter(participants__identity_id=user_id, participants__role=ParticipantRole.USER.value)
            .order_by('-last_updated', '-id')
        )
        return _with_participants(queryset).first()

    @staticmethod
    def find_or_create(user_id, vendor_id, context=None) -> Outcome:
        """
        Return the conversation between ``user_id`` and ``vendor_id``, creating
        it (with the vendor's welcome message) when the pair has none.

        ``Outcome.created`` tells callers whether creation happened; the
        ``new_conversation`` broadcast is only produced in that case.
        """
        from dmessages.models import Message

        user_id = _require_id(user_id, "userId")
        vendor_id = _require_id(vendor_id, "vendorId")
        if user_id == vendor_id:
            raise InvalidRequest("userId and vendorId must be different identities")

        existing = ConversationService._find_pair(user_id, vendor_id)
        if existing:
            return Outcome(existing)

        welcome = getattr(settings, 'CHAT_WELCOME_MESSAGE', "Welcome to our service!")
        try:
            with transaction.atomic():
                conversation = Conversation.objects.create(
                    conversation_id=build_conversation_id(vendor_id, user_id),
                    last_message=welcome,
                    messages_count=1,
                    context=context or {},
                )
                ConversationParticipant.objects.bulk_create([
                    ConversationParticipant(
                        conversation=conversation,
                        identity_id=vendor_id,
                        role=ParticipantRole.VENDOR.value,
                        entity_kind=EntityKind.VENDOR.value,
                        unread_count=1,
                    ),
                    ConversationParticipant(
                        conversation=conversation,
                        identity_id=user_id,
                        role=ParticipantRole.USER.value,
                        entity_kind=EntityKind.USER.value,
                        unread_count=0,
                    ),
                ])
                greeting = Message.objects.create(
                    conversation=conversation,
                    sender_id=vendor_id,
                    receiver_id=user_id,
                    sender_role=ParticipantRole.VENDOR.value,
                    receiver_role=ParticipantRole.USER.value,
                    sender_reference=EntityKind.VENDOR.value,
                    receiver_reference=EntityKind.USER.value,
                    message=welcome,
                )
                conversation.last_message_at = greeting.created_at
                conversation.save(update_fields=['last_message_at'])
        except IntegrityError:
            # Lost a creation race for the same pair; the winner's record is the answer
            existing = ConversationService._find_pair(user_id, vendor_id)
            if existing:
                return Outcome(existing)
            raise StoreFailure("Error creating conversation")
        except DatabaseError as e:
            logger.exception("Failed to create conversation for %s/%s", vendor_id, user_id)
            raise StoreFailure(f"Error creating conversation: {e}")

        conversation = ConversationService.get_by_key(conversation.conversation_id)
        logger.info("Created conversation %s", conversation.conversation_id)
        return Outcome(
            conversation,
            effects=_broadcast_to_participants(conversation, NEW_CONVERSATION),
            created=True,
        )

    @staticmethod
    def list_for(identity_id, role):
        """All conversations where ``identity_id`` participates with ``role``, newest activity first."""
        identity_id = _require_id(identity_id, "identityId")
        role = ParticipantRole.parse(role)
        queryset = Conversation.objects.filter(
            participants__identity_id=identity_id,
            participants__role=role.value,
        ).order_by('-last_updated', '-id')
        return list(_with_participants(queryset))

    @staticmethod
    def get_one(user_id, vendor_id) -> Optional[Conversation]:
        """Most recently updated conversation for the pair, or None."""
        return ConversationService._find_pair(
            _require_id(user_id, "userId"), _require_id(vendor_id, "vendorId")
        )

    @staticmethod
    def _require_actor(conversation, actor_id, actor_role):
        actor_id = _require_id(actor_id, "actorId")
        kind = EntityKind.parse(actor_role)
        if conversation.participant(identity_id=actor_id, role=kind.role) is None:
            raise Forbidden("Actor is not a participant of this conversation")
        return actor_id, kind

    @staticmethod
    def _apply(conversation, **fields) -> Conversation:
        fields['last_updated'] = timezone.now()
        try:
            Conversation.objects.filter(pk=conversation.pk).update(**fields)
        except DatabaseError as e:
            logger.exception("Failed to update conversation %s", conversation.conversation_id)
            raise StoreFailure(f"Error updating conversation: {e}")
        return ConversationService.get_by_key(conversation.conversation_id)

    @staticmethod
    def block(conversation_id, actor_id, actor_role) -> Outcome:
        conversation = ConversationService.get_by_key(conversation_id)
        actor_id, kind = ConversationService._require_actor(conversation, actor_id, actor_role)

        if conversation.is_blocked:
            return Outcome(conversation)

        conversation = ConversationService._apply(
            conversation,
            is_blocked=True,
            blocked_by=actor_id,
            blocked_by_reference=kind.value,
        )
        logger.info("Conversation %s blocked by %s %s", conversation.conversation_id, kind.value, actor_id)
        return Outcome(conversation, effects=_broadcast_to_participants(conversation, CONVERSATION_BLOCKED))

    @staticmethod
    def unblock(conversation_id) -> Outcome:
        """Clear block and report state together; reporting always implied blocking."""
        conversation = ConversationService.get_by_key(conversation_id)
        if not conversation.is_blocked and not conversation.is_reported:
            return Outcome(conversation)

        conversation = ConversationService._apply(
            conversation,
            is_blocked=False,
            blocked_by=None,
            blocked_by_reference=None,
            is_reported=False,
            reported_by=None,
            reported_by_reference=None,
            report_reason="",
        )
        logger.info("Conversation %s unblocked", conversation.conversation_id)
        return Outcome(conversation, effects=_broadcast_to_participants(conversation, CONVERSATION_UNBLOCKED))

    @staticmethod
    def report(conversation_id, actor_id, actor_role, reason) -> Outcome:
        """
        Report and block in one update. The other party observes a plain
        ``conversation_blocked``; the moderation email is best-effort.
        """
        reason = (reason or "").strip()
        if not reason:
            raise InvalidRequest("A report reason is required")

        conversation = ConversationService.get_by_key(conversation_id)
        actor_id, kind = ConversationService._require_actor(conversation, actor_id, actor_role)

        conversation = ConversationService._apply(
            conversation,
            is_reported=True,
            reported_by=actor_id,
            reported_by_reference=kind.value,
            report_reason=reason,
            is_blocked=True,
            blocked_by=actor_id,
            blocked_by_reference=kind.value,
        )
        logger.info("Conversation %s reported by %s %s", conversation.conversation_id, kind.value, actor_id)

        effects = _broadcast_to_participants(conversation, CONVERSATION_BLOCKED)
        effects.append(ModerationReport(
            conversation_id=conversation.conversation_id,
            reported_by=actor_id,
            reported_by_reference=kind.value,
            reason=reason,
        ))
        return Outcome(conversation, effects=effects)
