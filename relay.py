#!/usr/bin/env python3
"""WebSocket relay server for rooms, calls and file transfers.

One JSON frame per event: {"event": "<name>", "data": {...}}.
"""
import argparse, asyncio, json, logging, os
from dataclasses import dataclass

import websockets

from coordinator import Coordinator

log = logging.getLogger('relay.server')

@dataclass
class RelayConfig:
    host: str = '0.0.0.0'
    port: int = 3000
    max_size: int = 100_000_000  # bytes per frame
    ping_interval: float = 25.0
    ping_timeout: float = 60.0
    outbox_size: int = 1024  # queued frames per connection before dropping
    strict_calls: bool = False
    log_level: str = 'INFO'

def setup_logging(level: str = 'INFO'):
    logging.basicConfig(level=level.upper(), format='[%(levelname)s][%(name)s] %(message)s')

class Outbox:
    """Bounded per-connection send queue. send() never blocks the caller."""
    def __init__(self, session_label: str = '', maxsize: int = 1024):
        self.label = session_label
        self.queue: asyncio.Queue = asyncio.Queue(maxsize)
        self.dropped = 0

    def send(self, event: str, data: dict) -> bool:
        try:
            self.queue.put_nowait(json.dumps({'event': event, 'data': data}))
            return True
        except asyncio.QueueFull:
            self.dropped += 1
            log.warning('outbox full for %s, dropped %s (%d so far)', self.label, event, self.dropped)
            return False

    async def pump(self, ws):
        """Write queued frames to the socket in order until it closes."""
        while True:
            frame = await self.queue.get()
            try:
                await ws.send(frame)
            except websockets.ConnectionClosed:
                return

def decode(raw):
    """Parse one frame into (event, data). Raises ValueError on garbage."""
    msg = json.loads(raw)
    if not isinstance(msg, dict) or not isinstance(msg.get('event'), str):
        raise ValueError('frame needs an "event" string')
    return msg['event'], msg.get('data')

class RelayServer:
    def __init__(self, config: RelayConfig = None, coordinator: Coordinator = None):
        self.config = config or RelayConfig()
        self.coordinator = coordinator or Coordinator(strict_calls=self.config.strict_calls)

    async def handle(self, ws):
        """Handle one WebSocket connection."""
        outbox = Outbox(maxsize=self.config.outbox_size)
        session = self.coordinator.connect(outbox)
        sid = outbox.label = session.session_id
        writer = asyncio.create_task(outbox.pump(ws))
        try:
            async for raw in ws:
                try:
                    event, data = decode(raw)
                except ValueError as e:
                    log.warning('bad frame from %s: %s', sid, e)
                    continue
                try:
                    self.coordinator.handle(sid, event, data)
                except Exception:
                    log.exception('error handling %s from %s', event, sid)
        except websockets.ConnectionClosed:
            pass
        finally:
            self.coordinator.disconnect(sid)
            writer.cancel()
            log.debug('state: %s', self.coordinator.stats())

    def serve(self):
        c = self.config
        return websockets.serve(self.handle, c.host, c.port, max_size=c.max_size,
                                ping_interval=c.ping_interval, ping_timeout=c.ping_timeout)

    async def run(self):
        async with self.serve():
            log.info('relay on ws://%s:%d', self.config.host, self.config.port)
            await asyncio.Future()  # run forever

def parse_args(argv=None) -> RelayConfig:
    d = RelayConfig()
    p = argparse.ArgumentParser(description='Room relay server')
    p.add_argument('--host', default=os.environ.get('RELAY_HOST', d.host))
    p.add_argument('--port', type=int, default=int(os.environ.get('PORT', d.port)))
    p.add_argument('--max-size', type=int, default=d.max_size, help='max frame size in bytes')
    p.add_argument('--ping-interval', type=float, default=d.ping_interval)
    p.add_argument('--ping-timeout', type=float, default=d.ping_timeout)
    p.add_argument('--outbox-size', type=int, default=d.outbox_size)
    p.add_argument('--strict-calls', action='store_true',
                   help='reject call-start while another call is live in the room')
    p.add_argument('--log-level', default=os.environ.get('RELAY_LOG_LEVEL', d.log_level))
    a = p.parse_args(argv)
    return RelayConfig(host=a.host, port=a.port, max_size=a.max_size,
                       ping_interval=a.ping_interval, ping_timeout=a.ping_timeout,
                       outbox_size=a.outbox_size, strict_calls=a.strict_calls,
                       log_level=a.log_level)

def main(argv=None):
    config = parse_args(argv)
    setup_logging(config.log_level)
    try:
        asyncio.run(RelayServer(config).run())
    except KeyboardInterrupt:
        pass

if __name__ == '__main__':
    main()
