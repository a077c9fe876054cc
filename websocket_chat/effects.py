"""
Effects produced by the chat services.

Service functions never talk to sockets, brokers or mail servers. They return
their result together with a list of effects, and the transport
(``websocket_chat.dispatch``) carries them out.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from websocket_chat.rooms import RoomKey


@dataclass(frozen=True)
class Broadcast:
    room: RoomKey
    event: str
    data: Any
    # Channel name of a connection that must not receive its own broadcast
    skip_channel: Optional[str] = None


@dataclass(frozen=True)
class PushNotification:
    """Best-effort push for a recipient who is not connected."""

    recipient_id: str
    title: str
    body: str
    data: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class ModerationReport:
    """Best-effort email to the moderation address after a conversation is reported."""

    conversation_id: str
    reported_by: str
    reported_by_reference: str
    reason: str


Effect = Any


@dataclass
class Outcome:
    """The result of a service operation plus the effects it wants dispatched."""

    result: Any
    effects: List[Effect] = field(default_factory=list)
    created: bool = False
