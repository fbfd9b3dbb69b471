"""Coordinator: the only thing that touches relay state.

Every method is synchronous and never awaits, so under one asyncio loop each
inbound event is applied atomically with respect to all other connections.
Bad or late messages become logged no-ops; nothing here raises to the transport.
"""
import logging, time, uuid
from typing import Optional

from registry import ConnectionRegistry, Session
from rooms import RoomDirectory
from calls import CallTracker, CallAlreadyActive
from signaling import SignalingRelay, PAYLOAD_FIELDS
from transfer import TransferRelay

log = logging.getLogger('relay.coordinator')

class BadMessage(ValueError):
    pass

def _field(data: dict, key: str, kind=str):
    value = data.get(key)
    if not isinstance(value, kind) or (kind is str and not value):
        raise BadMessage(f'missing or invalid {key!r}')
    return value

def _clock() -> str:
    return time.strftime('%I:%M %p')

class Coordinator:
    def __init__(self, strict_calls: bool = False):
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory(self.registry)
        self.calls = CallTracker(self.rooms, strict=strict_calls)
        self.signaling = SignalingRelay(self.registry)
        self.transfer = TransferRelay(self.rooms)
        self._handlers = {
            'join-room': self._join_room,
            'leave-room': self._leave_room,
            'chat-message': self._chat_message,
            'typing': self._typing,
            'stop-typing': self._stop_typing,
            'call-start': self._call_start,
            'call-join': self._call_join,
            'call-leave': self._call_leave,
            'end-call': self._end_call,
            'offer': self._signal,
            'answer': self._signal,
            'ice-candidate': self._signal,
            'screen-share-start': self._screen_share_start,
            'screen-share-stop': self._screen_share_stop,
            'file-info': self._file_info,
            'file-chunk': self._file_chunk,
            'file-complete': self._file_complete,
        }

    # ============ LIFECYCLE ============

    def connect(self, channel) -> Session:
        session = self.registry.register(str(uuid.uuid4()), channel)
        self.registry.deliver(session.session_id, 'connected', {'sessionId': session.session_id})
        log.info('connected: %s', session.session_id)
        return session

    def disconnect(self, session_id: str) -> bool:
        """Tear a session down as if it left its call and room. Safe to repeat."""
        session = self.registry.lookup(session_id)
        if not session:
            return False
        if session.room_code:
            self._leave(session, session.room_code)
        self.registry.remove(session_id)
        log.info('disconnected: %s', session_id)
        return True

    def _leave(self, session: Session, room_code: str):
        # Each step runs even if the one before it found nothing to do.
        self.calls.leave_call(session.session_id, room_code)
        self.rooms.leave(session.session_id, room_code)
        if room_code not in self.rooms:
            self.calls.discard(room_code)
        if session.room_code == room_code:
            session.room_code = None

    # ============ DISPATCH ============

    def handle(self, session_id: str, event: str, data) -> bool:
        """Apply one inbound event. Returns False if it was dropped."""
        session = self.registry.lookup(session_id)
        if not session:
            log.debug('%s from unknown session %s dropped', event, session_id)
            return False
        handler = self._handlers.get(event)
        if handler is None:
            log.debug('unknown event %r from %s', event, session_id)
            return False
        if data is None:
            data = {}
        if not isinstance(data, dict):
            log.warning('%s from %s: payload is not an object', event, session_id)
            return False
        try:
            return handler(session, event, data) is not False
        except BadMessage as e:
            log.warning('%s from %s dropped: %s', event, session_id, e)
            return False

    def _room(self, session: Session, data: dict) -> Optional[str]:
        """The sender's current room, if the message is addressed to it."""
        room_code = data.get('roomCode', session.room_code)
        if not session.room_code or room_code != session.room_code:
            log.debug('%s is not in room %r', session.session_id, room_code)
            return None
        return room_code

    # ============ ROOMS & CHAT ============

    def _join_room(self, session, event, data):
        room_code = _field(data, 'roomCode')
        name = data.get('displayName')
        name = name.strip() if isinstance(name, str) else ''
        if session.room_code and session.room_code != room_code:
            self._leave(session, session.room_code)
        reply = self.rooms.join(session.session_id, room_code, name or 'Anonymous')
        self.registry.deliver(session.session_id, 'room-joined', reply)

    def _leave_room(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self._leave(session, room_code)

    def _chat_message(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        message = _field(data, 'message')
        self.rooms.broadcast(room_code, 'chat-message', {
            'message': message,
            'displayName': session.display_name,
            'time': _clock(),
            'senderId': session.session_id
        }, exclude=session.session_id)

    def _typing(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.rooms.broadcast(room_code, 'user-typing', {'displayName': session.display_name},
                             exclude=session.session_id)

    def _stop_typing(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.rooms.broadcast(room_code, 'user-stop-typing', {}, exclude=session.session_id)

    def _screen_share_start(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.rooms.broadcast(room_code, 'screen-share-started', {
            'userId': session.session_id,
            'displayName': session.display_name
        }, exclude=session.session_id)

    def _screen_share_stop(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.rooms.broadcast(room_code, 'screen-share-stopped', {'userId': session.session_id},
                             exclude=session.session_id)

    # ============ CALLS ============

    def _call_start(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        call_type = data.get('callType') or 'video'
        try:
            self.calls.start_call(session.session_id, room_code, call_type)
        except CallAlreadyActive as e:
            log.info('%s: %s', session.session_id, e)
            self.registry.deliver(session.session_id, 'call-rejected', {
                'roomCode': room_code,
                'reason': 'call-already-active'
            })
            return False

    def _call_join(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        participants = self.calls.join_call(session.session_id, room_code)
        self.registry.deliver(session.session_id, 'call-participants', {
            'participants': participants,
            'roomCode': room_code
        })

    def _call_leave(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        return self.calls.leave_call(session.session_id, room_code)

    def _end_call(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        return self.calls.end_call(session.session_id, room_code)

    # ============ SIGNALING ============

    def _signal(self, session, event, data):
        to_id = _field(data, 'to')
        payload = data.get(PAYLOAD_FIELDS[event])
        if payload is None:
            raise BadMessage(f'missing {PAYLOAD_FIELDS[event]!r}')
        return self.signaling.relay(event, payload, session.session_id, to_id)

    # ============ FILES ============

    def _file_info(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.transfer.file_info(session.session_id, room_code, _field(data, 'fileInfo', dict))

    def _file_chunk(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.transfer.file_chunk(
            session.session_id, room_code,
            file_id=_field(data, 'fileId'),
            chunk=_field(data, 'chunk'),
            chunk_index=data.get('chunkIndex'),
            total_chunks=data.get('totalChunks'),
            file_name=data.get('fileName'))

    def _file_complete(self, session, event, data):
        room_code = self._room(session, data)
        if room_code is None:
            return False
        self.transfer.file_complete(session.session_id, room_code,
                                    file_id=_field(data, 'fileId'),
                                    file_name=data.get('fileName'))

    # ============ INTROSPECTION ============

    def stats(self) -> dict:
        return {'sessions': len(self.registry), 'rooms': len(self.rooms), 'calls': len(self.calls)}
