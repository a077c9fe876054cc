"""
Room naming for the channel layer.

Identity rooms hold every connection of one participant (``user_<id>`` /
``vendor_<id>``); conversation rooms hold the connections currently viewing
one conversation (``conversation_<conversationId>``).

Any non-empty id maps to a room. Ids that are not valid channel layer group
names (characters outside ``[A-Za-z0-9-_.]``, or too long) get a digest name
``<prefix>.h<sha1>`` instead, which never collides with a readable name.
"""

import hashlib
import re
from dataclasses import dataclass

from marketchat.exceptions import InvalidRequest
from marketchat.roles import EntityKind

# Channel layer group names are limited to ASCII alphanumerics, hyphens,
# underscores and periods, and must be shorter than 100 characters.
_GROUP_NAME_RE = re.compile(r"^[a-zA-Z0-9\-_.]+$")
_MAX_GROUP_NAME_LENGTH = 99
_DIGEST_LENGTH = 32

CONVERSATION_PREFIX = "conversation"


@dataclass(frozen=True)
class RoomKey:
    prefix: str
    ident: str
    hashed: bool = False

    @property
    def name(self) -> str:
        separator = "." if self.hashed else "_"
        return f"{self.prefix}{separator}{self.ident}"

    @property
    def is_conversation(self) -> bool:
        return self.prefix == CONVERSATION_PREFIX

    def __str__(self):
        return self.name


def _room(prefix, ident) -> RoomKey:
    ident = str(ident)
    if not ident:
        raise InvalidRequest("Room identifier is required")

    key = RoomKey(prefix, ident)
    if _GROUP_NAME_RE.match(ident) and len(key.name) <= _MAX_GROUP_NAME_LENGTH:
        return key

    digest = hashlib.sha1(ident.encode("utf-8")).hexdigest()[:_DIGEST_LENGTH]
    return RoomKey(prefix, f"h{digest}", hashed=True)


def room_for(entity_kind, identity_id) -> RoomKey:
    """Identity room for a participant, e.g. ``room_for(EntityKind.VENDOR, "42")`` -> ``vendor_42``."""
    kind = EntityKind.parse(entity_kind)
    return _room(kind.role.value, identity_id)


def conversation_room(conversation_id) -> RoomKey:
    return _room(CONVERSATION_PREFIX, conversation_id)
