"""Call membership: which members of a room are in its live call.

Participants are expected to be room members but this is not enforced here;
the coordinator cleans up a session's call and room together.
"""
import logging

from rooms import RoomDirectory

log = logging.getLogger('relay.calls')

class CallAlreadyActive(Exception):
    """Raised in strict mode when a non-participant starts a call over a live one."""
    def __init__(self, room_code: str):
        super().__init__(f'call already active in {room_code}')
        self.room_code = room_code

class CallTracker:
    def __init__(self, rooms: RoomDirectory, strict: bool = False):
        self.rooms = rooms
        self.registry = rooms.registry
        self.strict = strict
        self._calls: dict = {}  # room_code -> set of participant session ids

    def start_call(self, session_id: str, room_code: str, call_type: str):
        """Add the caller and announce the call to the whole room, caller included.

        Clients drop `call-started` whose callerId is their own.
        """
        participants = self._calls.get(room_code)
        if self.strict and participants and session_id not in participants:
            raise CallAlreadyActive(room_code)

        self._calls.setdefault(room_code, set()).add(session_id)
        name = self.registry.name_of(session_id)
        self.rooms.broadcast(room_code, 'call-started', {
            'callerId': session_id,
            'callerName': name,
            'callType': call_type,
            'roomCode': room_code
        })
        log.info('%s started a %s call in %s', name, call_type, room_code)

    def join_call(self, session_id: str, room_code: str) -> list:
        """Add a participant. Returns the other participants for the joiner to dial."""
        participants = self._calls.setdefault(room_code, set())
        participants.add(session_id)
        name = self.registry.name_of(session_id)

        roster = [{'sessionId': sid, 'displayName': self.registry.name_of(sid)}
                  for sid in participants
                  if sid != session_id and sid in self.registry]

        self.rooms.broadcast(room_code, 'user-joined-call', {
            'sessionId': session_id,
            'displayName': name
        }, exclude=session_id)
        log.info('%s joined call in %s (%d participants)', name, room_code, len(participants))
        return roster

    def leave_call(self, session_id: str, room_code: str) -> bool:
        participants = self._calls.get(room_code)
        if not participants or session_id not in participants:
            return False

        participants.discard(session_id)
        self.rooms.broadcast(room_code, 'user-left-call', {'sessionId': session_id},
                             exclude=session_id)
        if not participants:
            del self._calls[room_code]
            log.info('call in %s is over', room_code)
        return True

    def end_call(self, session_id: str, room_code: str) -> bool:
        """Clear every participant regardless of who is still present."""
        if room_code not in self._calls:
            return False
        del self._calls[room_code]
        name = self.registry.name_of(session_id)
        self.rooms.broadcast(room_code, 'call-ended', {
            'endedBy': name,
            'roomCode': room_code
        }, exclude=session_id)
        log.info('%s ended the call in %s', name, room_code)
        return True

    def discard(self, room_code: str) -> bool:
        return self._calls.pop(room_code, None) is not None

    def participants(self, room_code: str) -> set:
        return set(self._calls.get(room_code, ()))

    def is_active(self, room_code: str) -> bool:
        return room_code in self._calls

    def __len__(self) -> int:
        return len(self._calls)
