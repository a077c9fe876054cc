from django.urls import path
from . import views

app_name = 'conversations'

urlpatterns = [
    path('', views.ConversationCreateView.as_view(), name='conversation-create'),
    path('single/<str:user_id>/<str:vendor_id>/', views.ConversationSingleView.as_view(), name='conversation-single'),
    path('<str:conversation_id>/block/', views.ConversationBlockView.as_view(), name='conversation-block'),
    path('<str:conversation_id>/unblock/', views.ConversationUnblockView.as_view(), name='conversation-unblock'),
    path('<str:conversation_id>/report/', views.ConversationReportView.as_view(), name='conversation-report'),
    path('<str:identity_id>/<str:role>/', views.ConversationListView.as_view(), name='conversation-list'),
]
