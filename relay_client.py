"""Headless room relay client — no browser needed.

Speaks the relay's JSON-over-WebSocket protocol. Simple connect/send/receive
API for bots and tests.

Usage:
    client = RelayClient(nick='bot')
    await client.connect('ws://localhost:3000')
    await client.join_room('ABCD1234')

    await client.send('hello')
    msg = await client.receive()            # next event
    msg = await client.expect('user-joined')  # next event of one kind

    await client.send_file('notes.txt', b'...')
    f = await client.receive_file()          # reassembled from chunks
"""
import asyncio, base64, json, math, uuid, time
from dataclasses import dataclass, field
from typing import Optional

import websockets

CHUNK_SIZE = 64 * 1024

# ============ FILE REASSEMBLY ============

@dataclass
class PendingFileTransfer:
    file_id: str
    metadata: dict
    sender_id: str = ''
    sender_name: str = ''
    received_chunks: list = field(default_factory=list)
    total_chunks: Optional[int] = None

    @property
    def name(self) -> str:
        return self.metadata.get('name', self.file_id)

@dataclass
class ReceivedFile:
    file_id: str
    name: str
    size: int
    mime_type: str
    data: bytes
    sender_id: str = ''
    sender_name: str = ''

class FileAssembler:
    """Rebuilds files from file-info / file-chunk / file-complete events."""
    def __init__(self):
        self.pending: dict = {}  # file_id -> PendingFileTransfer

    def on_info(self, data: dict):
        info = data.get('fileInfo') or {}
        file_id = info.get('id')
        if file_id:
            self.pending[file_id] = PendingFileTransfer(
                file_id=file_id, metadata=info,
                sender_id=data.get('senderId', ''), sender_name=data.get('senderName', ''))

    def on_chunk(self, data: dict):
        file_id = data.get('fileId')
        transfer = self.pending.get(file_id)
        if not transfer:
            return
        try:
            transfer.received_chunks.append(base64.b64decode(data.get('chunk', ''), validate=True))
        except (ValueError, TypeError) as e:
            # A corrupt chunk spoils the whole file.
            print(f'[relay_client] dropping {transfer.name}: bad chunk ({e})')
            del self.pending[file_id]
            return
        if isinstance(data.get('totalChunks'), int):
            transfer.total_chunks = data['totalChunks']

    def on_complete(self, data: dict) -> Optional[ReceivedFile]:
        """Finish a transfer. None if unknown or if chunks went missing."""
        transfer = self.pending.pop(data.get('fileId'), None)
        if not transfer:
            return None
        blob = b''.join(transfer.received_chunks)
        expected_size = transfer.metadata.get('size')
        got = len(transfer.received_chunks)
        if (isinstance(expected_size, int) and expected_size != len(blob)) or \
                (transfer.total_chunks is not None and transfer.total_chunks != got):
            print(f'[relay_client] dropping {transfer.name}: incomplete '
                  f'({len(blob)}/{expected_size} bytes, {got}/{transfer.total_chunks} chunks)')
            return None
        return ReceivedFile(
            file_id=transfer.file_id,
            name=transfer.name,
            size=len(blob),
            mime_type=transfer.metadata.get('type', ''),
            data=blob,
            sender_id=transfer.sender_id,
            sender_name=transfer.sender_name)

def chunk_file(data: bytes, chunk_size: int = CHUNK_SIZE) -> list:
    """Split bytes into base64 chunks. An empty file is one empty chunk."""
    total = max(1, math.ceil(len(data) / chunk_size))
    return [base64.b64encode(data[i * chunk_size:(i + 1) * chunk_size]).decode()
            for i in range(total)]

# ============ CLIENT ============

@dataclass
class Message:
    event: str
    data: dict = field(default_factory=dict)
    ts: float = 0

class RelayClient:
    def __init__(self, nick: str = 'relay-agent'):
        self.nick = nick
        self.session_id: Optional[str] = None
        self.room_code: Optional[str] = None
        self.ws = None
        self.files = FileAssembler()
        self._msg_queue: asyncio.Queue = asyncio.Queue()
        self._file_queue: asyncio.Queue = asyncio.Queue()
        self._connected = asyncio.Event()
        self._reader: Optional[asyncio.Task] = None

    async def connect(self, url: str, timeout: float = 10.0):
        """Open the socket and wait for the relay to assign our session id."""
        self.ws = await websockets.connect(url, max_size=None)
        self._reader = asyncio.create_task(self._read_loop())
        await asyncio.wait_for(self._connected.wait(), timeout)

    async def _emit(self, event: str, data: dict = None):
        await self.ws.send(json.dumps({'event': event, 'data': data or {}}))

    async def _read_loop(self):
        try:
            async for raw in self.ws:
                try:
                    msg = json.loads(raw)
                except ValueError as e:
                    print(f'[relay_client] bad frame: {e}')
                    continue
                if not isinstance(msg, dict):
                    print(f'[relay_client] bad frame: {raw[:80]!r}')
                    continue
                try:
                    await self._handle(msg.get('event', ''), msg.get('data') or {})
                except Exception as e:
                    print(f"[relay_client] error handling {msg.get('event')!r}: {e}")
        except websockets.ConnectionClosed:
            pass
        finally:
            self._connected.clear()

    async def _handle(self, event: str, data: dict):
        if event == 'connected':
            self.session_id = data.get('sessionId')
            self._connected.set()
            return
        # Our own call announcement comes back to us too.
        if event == 'call-started' and data.get('callerId') == self.session_id:
            return
        if event == 'call-participants':
            data = dict(data, participants=[p for p in data.get('participants', [])
                                            if p.get('sessionId') != self.session_id])

        if event == 'file-info':
            self.files.on_info(data)
        elif event == 'file-chunk':
            self.files.on_chunk(data)
        elif event == 'file-complete':
            received = self.files.on_complete(data)
            if received:
                await self._file_queue.put(received)

        await self._msg_queue.put(Message(event=event, data=data, ts=time.time() * 1000))

    # ============ PUBLIC API ============

    async def join_room(self, room_code: str) -> Message:
        """Join a room and return its `room-joined` reply."""
        self.room_code = room_code
        await self._emit('join-room', {'roomCode': room_code, 'displayName': self.nick})
        return await self.expect('room-joined')

    async def leave_room(self):
        await self._emit('leave-room', {'roomCode': self.room_code})
        self.room_code = None

    async def send(self, text: str):
        """Send a chat message to the room."""
        await self._emit('chat-message', {'roomCode': self.room_code, 'message': text})

    async def typing(self, active: bool = True):
        await self._emit('typing' if active else 'stop-typing', {'roomCode': self.room_code})

    async def start_call(self, call_type: str = 'video'):
        await self._emit('call-start', {'roomCode': self.room_code, 'callType': call_type})

    async def join_call(self) -> list:
        """Join the room's call. Returns the participants to connect to."""
        await self._emit('call-join', {'roomCode': self.room_code})
        msg = await self.expect('call-participants')
        return msg.data.get('participants', [])

    async def leave_call(self):
        await self._emit('call-leave', {'roomCode': self.room_code})

    async def end_call(self):
        await self._emit('end-call', {'roomCode': self.room_code})

    async def signal(self, kind: str, to: str, payload):
        """Send an offer / answer / ice-candidate to one session."""
        field_name = 'candidate' if kind == 'ice-candidate' else kind
        await self._emit(kind, {field_name: payload, 'to': to})

    async def screen_share(self, active: bool = True):
        await self._emit('screen-share-start' if active else 'screen-share-stop',
                         {'roomCode': self.room_code})

    async def send_file(self, name: str, data: bytes, mime_type: str = 'application/octet-stream') -> str:
        """Send a file to everyone else in the room. Returns its file id."""
        file_id = str(uuid.uuid4())
        chunks = chunk_file(data)
        await self._emit('file-info', {'roomCode': self.room_code, 'fileInfo': {
            'id': file_id, 'name': name, 'size': len(data), 'type': mime_type
        }})
        for i, chunk in enumerate(chunks):
            await self._emit('file-chunk', {
                'roomCode': self.room_code,
                'fileId': file_id,
                'fileName': name,
                'chunk': chunk,
                'chunkIndex': i,
                'totalChunks': len(chunks)
            })
        await self._emit('file-complete', {'roomCode': self.room_code, 'fileId': file_id, 'fileName': name})
        return file_id

    async def receive(self, timeout: float = None) -> Message:
        """Receive next event. Blocks until one arrives."""
        if timeout:
            return await asyncio.wait_for(self._msg_queue.get(), timeout)
        return await self._msg_queue.get()

    async def expect(self, event: str, timeout: float = 5.0) -> Message:
        """Skip ahead to the next event of one kind."""
        async def wait():
            while True:
                msg = await self._msg_queue.get()
                if msg.event == event:
                    return msg
        return await asyncio.wait_for(wait(), timeout)

    async def receive_file(self, timeout: float = None) -> ReceivedFile:
        if timeout:
            return await asyncio.wait_for(self._file_queue.get(), timeout)
        return await self._file_queue.get()

    def has_messages(self) -> bool:
        return not self._msg_queue.empty()

    def has_files(self) -> bool:
        return not self._file_queue.empty()

    def drain(self) -> list:
        """Take every queued event without waiting."""
        out = []
        while not self._msg_queue.empty():
            out.append(self._msg_queue.get_nowait())
        return out

    async def close(self):
        if self.ws:
            await self.ws.close()
        if self._reader:
            await self._reader

    @property
    def connected(self) -> bool:
        return self._connected.is_set()
