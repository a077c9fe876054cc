"""
URL configuration for marketchat project.

The WebSocket route (``ws/chat/``) lives in ``websocket_chat.routing``.
"""
from django.contrib import admin
from django.urls import path, include
from . import views

urlpatterns = [
    path('admin/', admin.site.urls),
    path('ping/', views.PingView.as_view(), name='ping'),
    path('conversations/', include('conversations.urls')),
    path('messages/', include('dmessages.urls')),
]
