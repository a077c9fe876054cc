from rest_framework import status
from rest_framework.views import APIView

from marketchat.authentication import require_self
from marketchat.exceptions import Forbidden, InvalidRequest
from marketchat.responses import envelope
from websocket_chat.dispatch import dispatch_effects_sync
from .serializers import ConversationCreateSerializer, ConversationSerializer, ModerationSerializer
from .services import ConversationService


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    if not serializer.is_valid():
        raise InvalidRequest(f"Invalid request: {serializer.errors}")
    return serializer.validated_data


class ConversationCreateView(APIView):
    """Find or create the conversation between a user and a vendor"""

    def post(self, request):
        data = _validated(ConversationCreateSerializer, request.data)
        identity = request.identity
        if not identity.is_admin and identity.identity_id not in (data['userId'], data['vendorId']):
            raise Forbidden("You can only open conversations you take part in")

        outcome = ConversationService.find_or_create(data['userId'], data['vendorId'], data.get('context'))
        dispatch_effects_sync(outcome.effects)

        if outcome.created:
            return envelope(
                ConversationSerializer(outcome.result).data,
                message="Conversation created",
                status_code=status.HTTP_201_CREATED,
            )
        return envelope(ConversationSerializer(outcome.result).data, message="Conversation already exists")


class ConversationListView(APIView):
    """Conversations of one identity in one role, most recently updated first"""

    def get(self, request, identity_id, role):
        require_self(request, identity_id, allow_admin=True)
        conversations = ConversationService.list_for(identity_id, role)
        return envelope(
            ConversationSerializer(conversations, many=True).data,
            message="Conversations retrieved",
        )


class ConversationSingleView(APIView):
    def get(self, request, user_id, vendor_id):
        identity = request.identity
        if not identity.is_admin and identity.identity_id not in (user_id, vendor_id):
            raise Forbidden("You can only read conversations you take part in")

        conversation = ConversationService.get_one(user_id, vendor_id)
        if conversation is None:
            return envelope(None, message="No conversation found")
        return envelope(ConversationSerializer(conversation).data, message="Conversation retrieved")


class ConversationBlockView(APIView):
    def patch(self, request, conversation_id):
        data = _validated(ModerationSerializer, request.data)
        require_self(request, data['actorId'])

        outcome = ConversationService.block(conversation_id, data['actorId'], data['actorRole'])
        dispatch_effects_sync(outcome.effects)
        return envelope(ConversationSerializer(outcome.result).data, message="Conversation blocked")


class ConversationUnblockView(APIView):
    """Either participant, or an admin, may lift a block (and any report with it)"""

    def patch(self, request, conversation_id):
        identity = request.identity
        conversation = ConversationService.get_by_key(conversation_id)
        if not identity.is_admin and not conversation.has_participant(identity.identity_id):
            raise Forbidden("You are not a participant of this conversation")

        outcome = ConversationService.unblock(conversation_id)
        dispatch_effects_sync(outcome.effects)
        return envelope(ConversationSerializer(outcome.result).data, message="Conversation unblocked")


class ConversationReportView(APIView):
    def patch(self, request, conversation_id):
        data = _validated(ModerationSerializer, request.data)
        require_self(request, data['actorId'])

        outcome = ConversationService.report(
            conversation_id, data['actorId'], data['actorRole'], data.get('reason', ""),
        )
        dispatch_effects_sync(outcome.effects)
        return envelope(ConversationSerializer(outcome.result).data, message="Conversation reported")
