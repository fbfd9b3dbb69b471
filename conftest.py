"""Shared pytest fixtures for relay tests."""
import pytest

from coordinator import Coordinator


class FakeChannel:
    """Records what the relay would have sent to one connection."""

    def __init__(self):
        self.sent = []

    def send(self, event, data):
        self.sent.append((event, data))
        return True

    def events(self, name=None):
        return [(e, d) for e, d in self.sent if name is None or e == name]

    def last(self, name):
        found = self.events(name)
        return found[-1][1] if found else None

    def names(self):
        return [e for e, _ in self.sent]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def coordinator():
    return Coordinator()


@pytest.fixture
def strict_coordinator():
    return Coordinator(strict_calls=True)


@pytest.fixture
def user(coordinator):
    """Factory: connect a session and optionally join a room. Returns (session_id, channel)."""

    def make(name, room=None, coord=None):
        coord = coord or coordinator
        channel = FakeChannel()
        session = coord.connect(channel)
        if room:
            coord.handle(session.session_id, 'join-room', {'roomCode': room, 'displayName': name})
        channel.clear()
        return session.session_id, channel

    return make
