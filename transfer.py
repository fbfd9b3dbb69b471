"""File transfer fan-out. Stores nothing; receivers reassemble."""
import logging

from rooms import RoomDirectory

log = logging.getLogger('relay.transfer')

class TransferRelay:
    def __init__(self, rooms: RoomDirectory):
        self.rooms = rooms
        self.registry = rooms.registry

    def _forward(self, event: str, sender_id: str, room_code: str, data: dict) -> int:
        data = dict(data, senderId=sender_id, senderName=self.registry.name_of(sender_id))
        return self.rooms.broadcast(room_code, event, data, exclude=sender_id)

    def file_info(self, sender_id: str, room_code: str, file_info: dict) -> int:
        log.info('%s is sending %s to %s', self.registry.name_of(sender_id),
                 file_info.get('name', '?'), room_code)
        return self._forward('file-info', sender_id, room_code, {'fileInfo': file_info})

    def file_chunk(self, sender_id: str, room_code: str, file_id, chunk,
                   chunk_index, total_chunks, file_name=None) -> int:
        return self._forward('file-chunk', sender_id, room_code, {
            'fileId': file_id,
            'fileName': file_name,
            'chunk': chunk,
            'chunkIndex': chunk_index,
            'totalChunks': total_chunks
        })

    def file_complete(self, sender_id: str, room_code: str, file_id, file_name=None) -> int:
        return self._forward('file-complete', sender_id, room_code, {
            'fileId': file_id,
            'fileName': file_name
        })
