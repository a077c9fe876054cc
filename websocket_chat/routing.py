from channels.routing import URLRouter
from channels.sessions import CookieMiddleware
from django.urls import re_path

from . import consumers
from .middleware import ConnectionLimitsMiddleware, SessionAuthMiddleware

websocket_urlpatterns = [
    re_path(r'^ws/chat/$', consumers.ChatConsumer.as_asgi()),
]


def websocket_application():
    """The WebSocket side of the ASGI app: cookies, limits, session auth, then routing."""
    return CookieMiddleware(
        ConnectionLimitsMiddleware(
            SessionAuthMiddleware(
                URLRouter(
                    websocket_urlpatterns
                )
            )
        )
    )
