from rest_framework import status
from rest_framework.views import APIView

from conversations.serializers import conversation_summary
from marketchat.authentication import require_self
from marketchat.exceptions import InvalidRequest
from marketchat.responses import envelope
from websocket_chat.dispatch import dispatch_effects_sync
from .serializers import MarkReadSerializer, MessageSerializer, SendMessageSerializer
from .services import MessageService


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise InvalidRequest(f"Invalid request: {serializer.errors}")
    return serializer.validated_data


class MessageSendView(APIView):
    """Send a message for clients that are not connected over WebSocket"""

    def post(self, request):
        data = _validated(SendMessageSerializer, request.data)
        require_self(request, data['senderId'])

        outcome = MessageService.send_message(
            data['conversationId'],
            data['senderId'],
            data['receiverId'],
            data.get('message', ""),
            attachment=data.get('attachment'),
            roles=data.get('roles'),
        )
        dispatch_effects_sync(outcome.effects)
        return envelope(
            MessageSerializer(outcome.result).data,
            message="Message sent",
            status_code=status.HTTP_201_CREATED,
        )


class ConversationMessagesView(APIView):
    def get(self, request, conversation_id, identity_id):
        """Message history as seen by ``identity_id`` (soft-deleted messages excluded)"""
        require_self(request, identity_id, allow_admin=True)

        page = MessageService.history(
            conversation_id,
            identity_id,
            offset=request.query_params.get('offset', 0),
            limit=request.query_params.get('limit'),
        )
        page['messages'] = MessageSerializer(page['messages'], many=True).data
        return envelope(page, message="Messages retrieved")

    def delete(self, request, conversation_id, identity_id):
        """Delete the whole conversation from ``identity_id``'s view only"""
        require_self(request, identity_id)

        outcome = MessageService.soft_delete(conversation_id, identity_id)
        return envelope(outcome.result, message="Messages deleted")


class MarkConversationReadView(APIView):
    def patch(self, request):
        data = _validated(MarkReadSerializer, request.data)
        require_self(request, data['identityId'])

        outcome = MessageService.mark_read(data['conversationId'], data['identityId'])
        dispatch_effects_sync(outcome.effects)
        return envelope(
            conversation_summary(outcome.result, data['identityId']),
            message="Messages marked as read",
        )


class MessageReadView(APIView):
    """
    Mark a single message as read by the caller
    """
    def patch(self, request, message_id):
        outcome = MessageService.mark_message_read(message_id, request.identity.identity_id)
        dispatch_effects_sync(outcome.effects)
        return envelope(MessageSerializer(outcome.result).data, message="Message marked as read")
