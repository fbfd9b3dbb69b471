"""
Tests for the bot's event handling.

Run with: pytest test_relay_bot.py -v
"""

import base64

import pytest

from relay_bot import on_event
from relay_client import RelayClient


async def deliver_file(client, file_id='f1', name='notes.txt', data=b'hello'):
    """Feed a whole transfer into the client as if it came off the socket."""
    await client._handle('file-info', {
        'fileInfo': {'id': file_id, 'name': name, 'size': len(data), 'type': 'text/plain'},
        'senderId': 's1', 'senderName': 'alice',
    })
    await client._handle('file-chunk', {
        'fileId': file_id, 'chunk': base64.b64encode(data).decode(),
        'chunkIndex': 0, 'totalChunks': 1,
    })
    await client._handle('file-complete', {'fileId': file_id, 'fileName': name})


async def run_events(client, **kwargs):
    results = []
    while client.has_messages():
        results.append(await on_event(client, await client.receive(), **kwargs))
    return results


@pytest.mark.asyncio
async def test_files_released_without_save_dir():
    client = RelayClient(nick='bot')
    await deliver_file(client, 'f1')
    await deliver_file(client, 'f2')

    results = await run_events(client, echo=True, save_dir=None)

    assert not client.has_files()
    assert results == [None] * 6


@pytest.mark.asyncio
async def test_files_saved_with_save_dir(tmp_path):
    client = RelayClient(nick='bot')
    await deliver_file(client, name='../escape.txt', data=b'payload')

    results = await run_events(client, echo=False, save_dir=tmp_path)

    saved = [r for r in results if r]
    assert saved == [tmp_path / 'escape.txt']
    assert (tmp_path / 'escape.txt').read_bytes() == b'payload'
    assert not client.has_files()
