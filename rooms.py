"""Room directory: named rooms of sessions.

A room exists only while it has members; the last leave deletes it.
"""
import logging
from typing import Optional

from registry import ConnectionRegistry

log = logging.getLogger('relay.rooms')

class RoomDirectory:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry
        self._rooms: dict = {}  # room_code -> set of session ids

    def join(self, session_id: str, room_code: str, display_name: str) -> dict:
        """Add a session to a room, creating it if needed.

        Everyone already in the room gets `user-joined`. A member joining
        again only announces a changed name, as `user-renamed`. The returned
        roster is for the joiner only and never includes the joiner itself.
        """
        members = self._rooms.setdefault(room_code, set())
        rejoin = session_id in members
        old_name = self.registry.name_of(session_id)

        self.registry.set_name(session_id, display_name)
        session = self.registry.lookup(session_id)
        if session:
            session.room_code = room_code
        members.add(session_id)
        count = len(members)

        if not rejoin:
            self.broadcast(room_code, 'user-joined', {
                'sessionId': session_id,
                'displayName': display_name,
                'memberCount': count
            }, exclude=session_id)
        elif old_name != display_name:
            self.broadcast(room_code, 'user-renamed', {
                'sessionId': session_id,
                'displayName': display_name
            }, exclude=session_id)

        others = [{'sessionId': sid, 'displayName': self.registry.name_of(sid)}
                  for sid in members if sid != session_id]
        log.info('%s joined room %s (%d members)', display_name, room_code, count)
        return {'roomCode': room_code, 'otherMembers': others, 'memberCount': count}

    def leave(self, session_id: str, room_code: str) -> bool:
        """Remove a session from a room. No-op if it was not a member."""
        members = self._rooms.get(room_code)
        if not members or session_id not in members:
            return False

        members.discard(session_id)
        session = self.registry.lookup(session_id)
        if session and session.room_code == room_code:
            session.room_code = None
        name = self.registry.name_of(session_id)

        if not members:
            del self._rooms[room_code]
            log.info('%s left room %s, room closed', name, room_code)
            return True

        self.broadcast(room_code, 'user-left', {
            'sessionId': session_id,
            'displayName': name,
            'memberCount': len(members)
        })
        log.info('%s left room %s (%d members)', name, room_code, len(members))
        return True

    def broadcast(self, room_code: str, event: str, data: dict,
                  exclude: Optional[str] = None) -> int:
        """Deliver to every member except `exclude`. Returns the delivery count."""
        sent = 0
        for sid in list(self._rooms.get(room_code, ())):
            if sid != exclude and self.registry.deliver(sid, event, data):
                sent += 1
        return sent

    def members(self, room_code: str) -> set:
        return set(self._rooms.get(room_code, ()))

    def member_count(self, room_code: str) -> int:
        return len(self._rooms.get(room_code, ()))

    def is_member(self, session_id: str, room_code: str) -> bool:
        return session_id in self._rooms.get(room_code, ())

    def room_codes(self) -> list:
        return list(self._rooms)

    def __contains__(self, room_code) -> bool:
        return room_code in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
