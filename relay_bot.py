#!/usr/bin/env python3
"""Room relay bot — headless agent that sits in a room.

Modes:
  1. Echo chat back to the room:
     python3 relay_bot.py --room ABCD1234 --echo

  2. Save every file sent to the room:
     python3 relay_bot.py --room ABCD1234 --save-dir ./inbox

  3. Drop a file into the room and leave:
     python3 relay_bot.py --room ABCD1234 --send-file report.pdf
"""
import argparse, asyncio, logging, mimetypes, os
from pathlib import Path

from relay_client import RelayClient

def describe(msg) -> str:
    d = msg.data
    if msg.event == 'chat-message':
        return f"[{d.get('time', '')}] {d.get('displayName', '?')}: {d.get('message', '')}"
    if msg.event in ('user-joined', 'user-left'):
        verb = 'joined' if msg.event == 'user-joined' else 'left'
        return f"{d.get('displayName', '?')} {verb} ({d.get('memberCount', 0)} in room)"
    if msg.event == 'call-started':
        return f"{d.get('callerName', '?')} started a {d.get('callType', '')} call"
    if msg.event == 'call-ended':
        return f"call ended by {d.get('endedBy', '?')}"
    return f'{msg.event} {d}'

async def on_event(client: RelayClient, msg, echo: bool, save_dir):
    """React to one room event. Returns the saved path, if a file was written."""
    if msg.event in ('file-chunk', 'file-info'):
        return None
    if msg.event == 'file-complete':
        # Always take the file off the queue so unsaved files are freed.
        while client.has_files():
            received = await client.receive_file()
            if not save_dir:
                print(f'ignoring {received.name} from {received.sender_name}')
                continue
            path = Path(save_dir) / os.path.basename(received.name)
            path.write_bytes(received.data)
            print(f'saved {received.name} from {received.sender_name} -> {path}')
            return path
        return None
    print(describe(msg))
    if echo and msg.event == 'chat-message' and msg.data.get('senderId') != client.session_id:
        await client.send(f"echo: {msg.data.get('message', '')}")
    return None

async def sit(client: RelayClient, echo: bool, save_dir):
    """Print room events; echo chat and save files as asked."""
    while True:
        await on_event(client, await client.receive(), echo, save_dir)

async def run(args):
    client = RelayClient(nick=args.nick)
    await client.connect(args.url)
    joined = await client.join_room(args.room)
    others = ', '.join(m['displayName'] for m in joined.data.get('otherMembers', [])) or 'nobody'
    print(f"Joined {args.room} as {args.nick} ({joined.data.get('memberCount')} members: {others})")

    try:
        if args.send_file:
            path = Path(args.send_file)
            mime = mimetypes.guess_type(path.name)[0] or 'application/octet-stream'
            await client.send_file(path.name, path.read_bytes(), mime)
            print(f'sent {path.name}')
            await client.leave_room()
            return
        if args.save_dir:
            Path(args.save_dir).mkdir(parents=True, exist_ok=True)
        await sit(client, args.echo, args.save_dir)
    finally:
        await client.close()

def main(argv=None):
    p = argparse.ArgumentParser()
    p.add_argument('--url', default=os.environ.get('RELAY_URL', 'ws://localhost:3000'))
    p.add_argument('--room', required=True)
    p.add_argument('--nick', default='relay-bot')
    p.add_argument('--echo', action='store_true', help='Echo chat messages back')
    p.add_argument('--save-dir', help='Save received files here')
    p.add_argument('--send-file', help='Send one file to the room, then leave')
    p.add_argument('--log-level', default='WARNING')
    args = p.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format='[%(levelname)s][%(name)s] %(message)s')

    try:
        asyncio.run(run(args))
    except KeyboardInterrupt:
        pass

if __name__ == '__main__':
    main()
