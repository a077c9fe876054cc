import logging
import time
from urllib.parse import parse_qs

from channels.db import database_sync_to_async
from channels.middleware import BaseMiddleware
from django.conf import settings
from django.core.cache import cache

from marketchat.exceptions import Unauthenticated
from marketchat.identity import resolve_session

logger = logging.getLogger(__name__)

CLOSE_UNAUTHENTICATED = 4001
CLOSE_RATE_LIMITED = 4029


def session_key_from_scope(scope):
    """
    Session credential for a handshake: the ``session`` query parameter wins,
    then the session cookie (``scope["cookies"]`` is filled by ``CookieMiddleware``).
    """
    query_params = parse_qs(scope.get('query_string', b'').decode())
    session_key = query_params.get('session', [None])[0]
    if session_key:
        return session_key
    return scope.get('cookies', {}).get(settings.SESSION_COOKIE_NAME)


class SessionAuthMiddleware(BaseMiddleware):
    """
    Resolves the session credential once per connection and rate limits
    handshakes per identity. Refused handshakes are closed before the consumer
    runs, so no rooms are ever joined for them.
    """

    async def __call__(self, scope, receive, send):
        try:
            identity = await database_sync_to_async(resolve_session)(session_key_from_scope(scope))
            if not identity.can_chat:
                raise Unauthenticated("Admin accounts cannot open chat connections")
        except Unauthenticated as e:
            logger.info("WebSocket handshake refused: %s", e.message)
            await send({
                'type': 'websocket.close',
                'code': CLOSE_UNAUTHENTICATED,
                'reason': e.message,
            })
            return

        if not await self.check_rate_limit(identity.identity_id):
            logger.warning("WebSocket handshake rate limited for %s", identity.identity_id)
            await send({
                'type': 'websocket.close',
                'code': CLOSE_RATE_LIMITED,
                'reason': 'Rate limit exceeded',
            })
            return

        scope['identity'] = identity
        scope['user_id'] = identity.identity_id
        scope['authenticated'] = True

        return await super().__call__(scope, receive, send)

    async def check_rate_limit(self, identity_id):
        """Allow at most ``WEBSOCKET_RATE_LIMIT`` handshakes per identity per minute."""
        cache_key = f"websocket_rate_limit:{identity_id}"
        current_time = int(time.time())

        rate_data = cache.get(cache_key, {'count': 0, 'window_start': current_time})
        if current_time - rate_data['window_start'] >= 60:
            rate_data = {'count': 0, 'window_start': current_time}

        if rate_data['count'] >= settings.WEBSOCKET_RATE_LIMIT:
            return False

        rate_data['count'] += 1
        cache.set(cache_key, rate_data, 60)
        return True


class ConnectionLimitsMiddleware(BaseMiddleware):
    """Copies the per-connection transport limits from settings into the scope."""

    async def __call__(self, scope, receive, send):
        scope['max_message_size'] = settings.WEBSOCKET_MAX_MESSAGE_SIZE
        scope['heartbeat_interval'] = settings.WEBSOCKET_HEARTBEAT_INTERVAL
        scope['connection_timeout'] = settings.WEBSOCKET_CONNECTION_TIMEOUT

        return await super().__call__(scope, receive, send)
