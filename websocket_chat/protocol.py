"""
Connection states and the broadcast-only real-time events.

Typing and presence changes touch no persisted state, so they are expressed
as plain functions returning :class:`Broadcast` effects.
"""

import enum
from typing import Iterable, List

from django.utils import timezone

from .effects import Broadcast
from .rooms import conversation_room

USER_TYPING = "userTyping"
USER_STATUS_CHANGED = "userStatusChanged"
USER_JOINED_CHAT = "userJoinedChat"
USER_LEFT_CHAT = "userLeftChat"

STATUS_ONLINE = "online"
STATUS_OFFLINE = "offline"


class ConnectionState(enum.Enum):
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    JOINED = "joined"
    DISCONNECTED = "disconnected"


def typing_effect(identity, conversation_id, is_typing, channel_name=None) -> Broadcast:
    """``userTyping`` for the other members of a conversation room; the typist's own connection is skipped."""
    return Broadcast(
        conversation_room(conversation_id),
        USER_TYPING,
        {
            "userId": identity.identity_id,
            "userName": identity.display_name,
            "chatId": str(conversation_id),
            "isTyping": bool(is_typing),
        },
        skip_channel=channel_name,
    )


def membership_effect(identity, conversation_id, joined, channel_name=None) -> Broadcast:
    """``userJoinedChat`` / ``userLeftChat`` for the other members of a conversation room."""
    return Broadcast(
        conversation_room(conversation_id),
        USER_JOINED_CHAT if joined else USER_LEFT_CHAT,
        {
            "userId": identity.identity_id,
            "userName": identity.display_name,
            "chatId": str(conversation_id),
            "timestamp": timezone.now().isoformat(),
        },
        skip_channel=channel_name,
    )


def status_effects(identity, conversation_ids: Iterable[str], status) -> List[Broadcast]:
    """``userStatusChanged`` to the room of every conversation the identity takes part in."""
    changed_at = timezone.now().isoformat()
    return [
        Broadcast(
            conversation_room(conversation_id),
            USER_STATUS_CHANGED,
            {
                "userId": identity.identity_id,
                "userType": identity.role.value,
                "status": status,
                "chatId": conversation_id,
                "lastSeen": changed_at,
            },
        )
        for conversation_id in conversation_ids
    ]
