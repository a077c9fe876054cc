from django.urls import path
from .views import ConversationMessagesView, MarkConversationReadView, MessageReadView, MessageSendView

urlpatterns = [
    path('', MessageSendView.as_view(), name='message-send'),
    path('read/', MarkConversationReadView.as_view(), name='message-mark-read'),
    path('<int:message_id>/read/', MessageReadView.as_view(), name='message-read'),
    path('<str:conversation_id>/<str:identity_id>/', ConversationMessagesView.as_view(), name='conversation-messages'),
]
