from rest_framework import serializers

from marketchat.exceptions import InvalidRequest
from marketchat.roles import ParticipantRole
from .models import Conversation, ConversationParticipant


class ParticipantSerializer(serializers.ModelSerializer):
    identityId = serializers.CharField(source='identity_id')
    entityKind = serializers.CharField(source='entity_kind')

    class Meta:
        model = ConversationParticipant
        fields = ['identityId', 'role', 'entityKind']


class ConversationSerializer(serializers.ModelSerializer):
    """Full conversation record as returned by REST and moderation broadcasts."""
    conversationId = serializers.CharField(source='conversation_id')
    participants = ParticipantSerializer(many=True, read_only=True)
    lastMessage = serializers.SerializerMethodField()
    lastUpdated = serializers.DateTimeField(source='last_updated')
    messagesCount = serializers.IntegerField(source='messages_count')
    unreadMessagesCount = serializers.SerializerMethodField()
    isBlocked = serializers.BooleanField(source='is_blocked')
    blockedBy = serializers.CharField(source='blocked_by', allow_null=True)
    blockedByReference = serializers.CharField(source='blocked_by_reference', allow_null=True)
    isReported = serializers.BooleanField(source='is_reported')
    reportedBy = serializers.CharField(source='reported_by', allow_null=True)
    reportedByReference = serializers.CharField(source='reported_by_reference', allow_null=True)
    reportReason = serializers.CharField(source='report_reason')
    createdAt = serializers.DateTimeField(source='created_at')
    updatedAt = serializers.DateTimeField(source='updated_at')

    class Meta:
        model = Conversation
        fields = [
            'id', 'conversationId', 'participants', 'lastMessage', 'lastUpdated',
            'messagesCount', 'unreadMessagesCount', 'isBlocked', 'blockedBy',
            'blockedByReference', 'isReported', 'reportedBy', 'reportedByReference',
            'reportReason', 'context', 'createdAt', 'updatedAt',
        ]
        read_only_fields = fields

    def get_lastMessage(self, obj):
        return {
            'text': obj.last_message,
            'sentAt': obj.last_message_at.isoformat() if obj.last_message_at else None,
        }

    def get_unreadMessagesCount(self, obj):
        return obj.unread_messages_count


def conversation_summary(conversation, identity_id):
    """
    Conversation-list delta for one participant: only that participant's own
    unread count is included.
    """
    participant = conversation.participant(identity_id=identity_id)
    counterpart = conversation.counterpart_of(identity_id)
    return {
        'conversationId': conversation.conversation_id,
        'lastMessage': {
            'text': conversation.last_message,
            'sentAt': conversation.last_message_at.isoformat() if conversation.last_message_at else None,
        },
        'lastUpdated': conversation.last_updated.isoformat(),
        'messagesCount': conversation.messages_count,
        'unreadCount': participant.unread_count if participant else 0,
        'counterpartId': counterpart.identity_id if counterpart else None,
        'isBlocked': conversation.is_blocked,
    }


class ConversationCreateSerializer(serializers.Serializer):
    userId = serializers.CharField(max_length=100)
    vendorId = serializers.CharField(max_length=100)
    context = serializers.DictField(required=False, default=dict)

    def validate(self, attrs):
        if attrs['userId'].strip() == attrs['vendorId'].strip():
            raise serializers.ValidationError("userId and vendorId must be different identities")
        return attrs


class ModerationSerializer(serializers.Serializer):
    actorId = serializers.CharField(max_length=100)
    actorRole = serializers.CharField(max_length=10)
    reason = serializers.CharField(required=False, allow_blank=True, trim_whitespace=False)

    def validate_actorRole(self, value):
        try:
            return ParticipantRole.parse(value).entity_kind
        except InvalidRequest as e:
            raise serializers.ValidationError(e.message)
