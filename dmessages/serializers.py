from rest_framework import serializers

from .models import Message, MessageAttachment


class MessageAttachmentSerializer(serializers.ModelSerializer):
    type = serializers.ChoiceField(source='attachment_type', choices=MessageAttachment.ATTACHMENT_TYPE_CHOICES)
    size = serializers.IntegerField(allow_null=True, required=False, min_value=0)
    name = serializers.CharField(required=False, allow_blank=True, max_length=255)

    class Meta:
        model = MessageAttachment
        fields = ['url', 'type', 'name', 'size']


class WhitespaceAllowedCharField(serializers.CharField):
    """Custom CharField that allows whitespace-only content"""

    def __init__(self, **kwargs):
        kwargs.setdefault('allow_blank', True)
        kwargs.setdefault('trim_whitespace', False)
        super().__init__(**kwargs)

    def to_internal_value(self, data):
        if data is None:
            raise serializers.ValidationError("This field may not be null.")
        return str(data)


class MessageSerializer(serializers.ModelSerializer):
    conversationId = serializers.CharField(source='conversation_id', read_only=True)
    senderId = serializers.CharField(source='sender_id')
    receiverId = serializers.CharField(source='receiver_id')
    senderRole = serializers.CharField(source='sender_role')
    receiverRole = serializers.CharField(source='receiver_role')
    senderReference = serializers.CharField(source='sender_reference')
    receiverReference = serializers.CharField(source='receiver_reference')
    attachment = serializers.SerializerMethodField()
    deletedFor = serializers.SerializerMethodField()
    readBy = serializers.SerializerMethodField()
    createdAt = serializers.DateTimeField(source='created_at', read_only=True)

    class Meta:
        model = Message
        fields = [
            'id', 'conversationId', 'senderId', 'receiverId', 'senderRole', 'receiverRole',
            'senderReference', 'receiverReference', 'message', 'attachment', 'deletedFor',
            'readBy', 'createdAt',
        ]
        read_only_fields = fields

    def get_attachment(self, obj):
        try:
            attachment = obj.attachment
        except MessageAttachment.DoesNotExist:
            return None
        return MessageAttachmentSerializer(attachment).data

    def get_deletedFor(self, obj):
        return [d.identity_id for d in obj.deletions.all()]

    def get_readBy(self, obj):
        return [r.identity_id for r in obj.receipts.all()]


class SendMessageSerializer(serializers.Serializer):
    """Inbound payload for ``send_message`` (REST body and WebSocket frame)."""
    conversationId = serializers.CharField(max_length=201)
    senderId = serializers.CharField(max_length=100)
    receiverId = serializers.CharField(max_length=100)
    message = WhitespaceAllowedCharField(required=False, default="")
    roles = serializers.DictField(child=serializers.CharField(), required=False)
    conversationType = serializers.CharField(required=False, allow_blank=True)
    # Validated by the delivery service against MessageAttachmentSerializer
    attachment = serializers.DictField(required=False, allow_null=True)
    tempId = serializers.CharField(required=False, allow_blank=True)


class MarkReadSerializer(serializers.Serializer):
    conversationId = serializers.CharField(max_length=201)
    identityId = serializers.CharField(max_length=100)
