"""
Carries out the effects returned by the chat services.

Broadcasts go through the channel layer, so with ``RedisChannelLayer`` they
reach connections on every instance. Push notifications and moderation email
are side channels: their failures are logged and never raised.
"""

import logging
import smtplib

import pika.exceptions
from asgiref.sync import async_to_sync
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from django.conf import settings
from django.core.mail import send_mail

from event_bus.models.push_notification_payload import (
    NOTIFICATION_EXCHANGE,
    NOTIFICATION_ROUTING_KEY,
    PushNotificationPayload,
)
from event_bus.publisher import publish
from marketchat.exceptions import NotificationFailure
from .effects import Broadcast, ModerationReport, PushNotification
from .presence import presence

logger = logging.getLogger(__name__)

RELAY_EVENT = "relay.event"


def group_message(effect: Broadcast) -> dict:
    """Channel layer message for a broadcast, handled by ``ChatConsumer.relay_event``."""
    return {
        "type": RELAY_EVENT,
        "event": effect.event,
        "data": effect.data,
        "skip_channel": effect.skip_channel,
    }


def _publish_push(effect: PushNotification, user):
    payload = PushNotificationPayload(
        target_user_id=effect.recipient_id,
        push_tokens=[user.push_token],
        headings={user.language: effect.title},
        contents={user.language: effect.body},
        data=effect.data,
    )
    try:
        publish(
            getattr(settings, "NOTIFICATION_EXCHANGE", NOTIFICATION_EXCHANGE),
            getattr(settings, "NOTIFICATION_ROUTING_KEY", NOTIFICATION_ROUTING_KEY),
            payload.to_json(),
        )
    except (pika.exceptions.AMQPError, OSError) as e:
        raise NotificationFailure(f"Push publish failed: {e}")


def send_push(effect: PushNotification) -> bool:
    """
    Publish a push notification unless the recipient is connected here, has no
    push token, or push is disabled. Returns True when a push was published.
    """
    from users.models import User

    if not getattr(settings, "PUSH_NOTIFICATIONS_ENABLED", False):
        return False
    if presence.is_online(effect.recipient_id):
        return False

    user = User.objects.filter(user_id=effect.recipient_id, is_active=True).first()
    if user is None or not user.push_token:
        return False

    try:
        _publish_push(effect, user)
    except NotificationFailure as e:
        logger.warning("Push notification to %s not delivered: %s", effect.recipient_id, e.message)
        return False
    return True


def send_moderation_email(effect: ModerationReport) -> bool:
    recipient = getattr(settings, "MODERATION_EMAIL", "")
    if not recipient:
        logger.warning("MODERATION_EMAIL is not set; report on %s not emailed", effect.conversation_id)
        return False

    subject = f"Conversation reported: {effect.conversation_id}"
    body = (
        f"Conversation: {effect.conversation_id}\n"
        f"Reported by: {effect.reported_by} ({effect.reported_by_reference})\n"
        f"Reason: {effect.reason}\n"
    )
    try:
        send_mail(subject, body, settings.DEFAULT_FROM_EMAIL, [recipient], fail_silently=False)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Moderation email for %s failed: %s", effect.conversation_id, e)
        return False
    return True


async def dispatch_effects(effects, channel_layer=None):
    """Dispatch effects from async code (WebSocket consumers)."""
    layer = channel_layer or get_channel_layer()
    for effect in effects:
        if isinstance(effect, Broadcast):
            await layer.group_send(effect.room.name, group_message(effect))
        elif isinstance(effect, PushNotification):
            await database_sync_to_async(send_push)(effect)
        elif isinstance(effect, ModerationReport):
            await database_sync_to_async(send_moderation_email)(effect)
        else:
            logger.error("Unknown effect %r", effect)


def dispatch_effects_sync(effects, channel_layer=None):
    """Dispatch effects from sync code (REST views, management commands)."""
    layer = channel_layer or get_channel_layer()
    for effect in effects:
        if isinstance(effect, Broadcast):
            async_to_sync(layer.group_send)(effect.room.name, group_message(effect))
        elif isinstance(effect, PushNotification):
            send_push(effect)
        elif isinstance(effect, ModerationReport):
            send_moderation_email(effect)
        else:
            logger.error("Unknown effect %r", effect)
