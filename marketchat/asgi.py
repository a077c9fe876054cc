"""
ASGI config for marketchat project.

It exposes the ASGI callable as a module-level variable named ``application``.
HTTP goes to Django; WebSocket connections go through the chat middleware stack.
"""

import os
import django

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'marketchat.settings')
django.setup()

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter
from websocket_chat.routing import websocket_application

django_asgi_app = get_asgi_application()

application = ProtocolTypeRouter({
    "http": django_asgi_app,
    "websocket": websocket_application(),
})
