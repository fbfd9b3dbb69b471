"""Connection registry: one Session per live connection."""
import logging
from dataclasses import dataclass
from typing import Any, Optional

log = logging.getLogger('relay.registry')

@dataclass
class Session:
    session_id: str
    channel: Any  # anything with send(event, data); never blocks
    display_name: str = ''
    room_code: Optional[str] = None

class ConnectionRegistry:
    def __init__(self):
        self._sessions: dict = {}  # session_id -> Session

    def register(self, session_id: str, channel) -> Session:
        session = Session(session_id=session_id, channel=channel)
        self._sessions[session_id] = session
        return session

    def lookup(self, session_id: str) -> Optional[Session]:
        return self._sessions.get(session_id)

    def set_name(self, session_id: str, name: str):
        session = self._sessions.get(session_id)
        if session:
            session.display_name = name

    def remove(self, session_id: str) -> Optional[Session]:
        return self._sessions.pop(session_id, None)

    def name_of(self, session_id: str) -> str:
        session = self._sessions.get(session_id)
        return session.display_name if session else ''

    def deliver(self, session_id: str, event: str, data: dict) -> bool:
        """Hand one event to a session's channel. False if absent or the send failed."""
        session = self._sessions.get(session_id)
        if not session:
            return False
        try:
            return session.channel.send(event, data) is not False
        except Exception as e:
            log.warning('delivery of %s to %s failed: %s', event, session_id, e)
            return False

    def __contains__(self, session_id) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
