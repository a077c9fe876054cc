from django.contrib import admin
from .models import Message, MessageAttachment


class MessageAttachmentInline(admin.StackedInline):
    model = MessageAttachment
    extra = 0


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'conversation', 'sender_id', 'receiver_id', 'content_preview', 'created_at']
    list_filter = ['sender_role', 'created_at']
    search_fields = ['message', 'sender_id', 'receiver_id', 'conversation__conversation_id']
    readonly_fields = ['created_at']
    inlines = [MessageAttachmentInline]

    @admin.display(description='Content Preview')
    def content_preview(self, obj):
        return obj.message[:50] + "..." if len(obj.message) > 50 else obj.message
