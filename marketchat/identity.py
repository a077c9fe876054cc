"""
Identity resolution for chat connections and REST calls.

The login flow (outside this service) stores ``{"user": {"id": ...}}`` in a
Django session. Both the WebSocket handshake and the REST authentication class
resolve that session key into an :class:`Identity`.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.contrib.sessions.backends.base import SessionBase
from importlib import import_module

from marketchat.exceptions import Unauthenticated
from marketchat.roles import ACCOUNT_ADMIN, ACCOUNT_TYPE_TO_ROLE, ParticipantRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    identity_id: str
    role: Optional[ParticipantRole]
    display_name: str
    language: str
    is_admin: bool = False

    @property
    def entity_kind(self):
        return self.role.entity_kind if self.role else None

    @property
    def can_chat(self) -> bool:
        return self.role is not None

    def as_dict(self):
        return {
            "id": self.identity_id,
            "role": self.role.value if self.role else "admin",
            "displayName": self.display_name,
            "language": self.language,
        }


def get_session_store(session_key=None) -> SessionBase:
    engine = import_module(settings.SESSION_ENGINE)
    return engine.SessionStore(session_key)


def create_chat_session(user_id, **extra) -> str:
    """Create a session for ``user_id`` and return its key. Used by tests and tooling."""
    store = get_session_store()
    store["user"] = {"id": str(user_id), **extra}
    store.create()
    return store.session_key


def resolve_session(session_key) -> Identity:
    """
    Resolve a session credential to an :class:`Identity`.

    Raises:
        Unauthenticated: no credential, no session (or a session without a user),
            or an unknown / inactive account.
    """
    from users.models import User

    if not session_key:
        raise Unauthenticated("Session credential required")

    store = get_session_store(session_key)
    session_user = store.get("user") or {}
    user_id = session_user.get("id") if isinstance(session_user, dict) else None
    if not user_id:
        raise Unauthenticated("Not authenticated (no session user)")

    try:
        user = User.objects.get(user_id=str(user_id))
    except User.DoesNotExist:
        raise Unauthenticated("User not found or inactive")

    if not user.is_active:
        raise Unauthenticated("User not found or inactive")

    role = ACCOUNT_TYPE_TO_ROLE.get(user.user_type)
    return Identity(
        identity_id=user.user_id,
        role=role,
        display_name=user.display_name,
        language=user.language,
        is_admin=user.user_type == ACCOUNT_ADMIN,
    )
