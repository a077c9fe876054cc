"""
Participant roles and entity kinds shared by the chat apps.

A conversation always has exactly one ``user`` participant and one ``vendor``
participant. The entity kind is the capitalised reference tag stored next to
every identity id (``User`` / ``Vendor``).
"""

import enum

from marketchat.exceptions import InvalidRequest


class ParticipantRole(str, enum.Enum):
    USER = "user"
    VENDOR = "vendor"

    @property
    def entity_kind(self) -> "EntityKind":
        return EntityKind.USER if self is ParticipantRole.USER else EntityKind.VENDOR

    @property
    def counterpart(self) -> "ParticipantRole":
        return ParticipantRole.VENDOR if self is ParticipantRole.USER else ParticipantRole.USER

    @classmethod
    def choices(cls):
        return [(member.value, member.name.title()) for member in cls]

    @classmethod
    def parse(cls, value) -> "ParticipantRole":
        """Accept ``user``/``vendor`` as well as the ``User``/``Vendor`` reference tags."""
        if isinstance(value, cls):
            return value
        if isinstance(value, EntityKind):
            return value.role
        if isinstance(value, str):
            normalized = value.strip().lower()
            for member in cls:
                if member.value == normalized:
                    return member
        raise InvalidRequest(f"Invalid role '{value}'. Expected one of: user, vendor")


class EntityKind(str, enum.Enum):
    USER = "User"
    VENDOR = "Vendor"

    @property
    def role(self) -> ParticipantRole:
        return ParticipantRole.USER if self is EntityKind.USER else ParticipantRole.VENDOR

    @classmethod
    def choices(cls):
        return [(member.value, member.value) for member in cls]

    @classmethod
    def parse(cls, value) -> "EntityKind":
        """Parse a reference tag; the lowercase participant role is accepted too."""
        return ParticipantRole.parse(value).entity_kind


# Account types as stored on ``users.User``
ACCOUNT_CLIENT = "client"
ACCOUNT_VENDOR = "vendor"
ACCOUNT_ADMIN = "admin"

ACCOUNT_TYPE_TO_ROLE = {
    ACCOUNT_CLIENT: ParticipantRole.USER,
    ACCOUNT_VENDOR: ParticipantRole.VENDOR,
}
