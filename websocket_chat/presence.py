"""
Process-local presence registry.

Populated when a connection is accepted, purged when it disconnects, and empty
after a restart. It is never persisted and is only as accurate as the last
activity event. Each process has its own registry; cross-instance broadcasts go
through the channel layer, not through this map.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from django.utils import timezone


@dataclass
class PresenceEntry:
    identity_id: str
    display_name: str
    role: str
    connections: Set[str] = field(default_factory=set)
    last_activity: Optional[object] = None

    def as_dict(self):
        return {
            "userId": self.identity_id,
            "userName": self.display_name,
            "userType": self.role,
            "lastSeen": self.last_activity.isoformat() if self.last_activity else None,
            "isOnline": bool(self.connections),
        }


class PresenceRegistry:
    def __init__(self):
        self._entries: Dict[str, PresenceEntry] = {}
        self._lock = threading.Lock()

    def connect(self, identity, channel_name) -> bool:
        """Register a connection. Returns True when the identity just came online."""
        with self._lock:
            entry = self._entries.get(identity.identity_id)
            came_online = entry is None or not entry.connections
            if entry is None:
                entry = PresenceEntry(
                    identity_id=identity.identity_id,
                    display_name=identity.display_name,
                    role=identity.role.value,
                )
                self._entries[identity.identity_id] = entry
            entry.connections.add(channel_name)
            entry.last_activity = timezone.now()
            return came_online

    def disconnect(self, identity_id, channel_name) -> bool:
        """Drop a connection. Returns True when the identity has no connections left."""
        with self._lock:
            entry = self._entries.get(identity_id)
            if entry is None:
                return False
            entry.connections.discard(channel_name)
            if entry.connections:
                return False
            del self._entries[identity_id]
            return True

    def touch(self, identity_id):
        with self._lock:
            entry = self._entries.get(identity_id)
            if entry is not None:
                entry.last_activity = timezone.now()

    def is_online(self, identity_id) -> bool:
        with self._lock:
            entry = self._entries.get(str(identity_id))
            return entry is not None and bool(entry.connections)

    def get(self, identity_id) -> Optional[dict]:
        with self._lock:
            entry = self._entries.get(str(identity_id))
            return entry.as_dict() if entry else None

    def online_among(self, identity_ids) -> List[dict]:
        with self._lock:
            return [
                self._entries[i].as_dict()
                for i in identity_ids
                if i in self._entries and self._entries[i].connections
            ]

    def count(self) -> int:
        with self._lock:
            return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()


presence = PresenceRegistry()
