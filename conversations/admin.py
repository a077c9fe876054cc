from django.contrib import admin
from .models import Conversation, ConversationParticipant


class ConversationParticipantInline(admin.TabularInline):
    model = ConversationParticipant
    extra = 0
    readonly_fields = ['identity_id', 'role', 'entity_kind', 'unread_count', 'last_seen_at']
    can_delete = False


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):
    list_display = ['conversation_id', 'messages_count', 'is_blocked', 'is_reported', 'last_updated', 'created_at']
    list_filter = ['is_blocked', 'is_reported', 'created_at']
    search_fields = ['conversation_id', 'participants__identity_id']
    readonly_fields = ['conversation_id', 'messages_count', 'last_message', 'last_message_at', 'created_at', 'updated_at']
    inlines = [ConversationParticipantInline]

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related('participants')
