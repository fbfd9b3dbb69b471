"""
Unit tests for the connection registry and room directory.

Run with: pytest test_rooms.py -v
"""

import pytest

from conftest import FakeChannel
from registry import ConnectionRegistry
from rooms import RoomDirectory


class BrokenChannel:
    def send(self, event, data):
        raise ConnectionError('socket gone')


@pytest.fixture
def directory():
    return RoomDirectory(ConnectionRegistry())


def add(directory, sid):
    channel = FakeChannel()
    directory.registry.register(sid, channel)
    return channel


class TestConnectionRegistry:
    """Test session bookkeeping."""

    def test_register_and_lookup(self):
        registry = ConnectionRegistry()
        session = registry.register('s1', FakeChannel())

        assert registry.lookup('s1') is session
        assert session.room_code is None
        assert 's1' in registry
        assert len(registry) == 1

    def test_absent_lookup_is_none(self):
        registry = ConnectionRegistry()
        assert registry.lookup('nobody') is None
        registry.set_name('nobody', 'ghost')
        assert registry.remove('nobody') is None

    def test_set_name(self):
        registry = ConnectionRegistry()
        registry.register('s1', FakeChannel())
        registry.set_name('s1', 'alice')
        assert registry.name_of('s1') == 'alice'

    def test_deliver(self):
        registry = ConnectionRegistry()
        channel = FakeChannel()
        registry.register('s1', channel)

        assert registry.deliver('s1', 'ping', {'x': 1})
        assert channel.sent == [('ping', {'x': 1})]
        assert not registry.deliver('nobody', 'ping', {})

    def test_failing_channel_does_not_raise(self):
        registry = ConnectionRegistry()
        registry.register('s1', BrokenChannel())
        assert registry.deliver('s1', 'ping', {}) is False

    def test_remove(self):
        registry = ConnectionRegistry()
        registry.register('s1', FakeChannel())
        assert registry.remove('s1').session_id == 's1'
        assert 's1' not in registry


class TestRoomDirectory:
    """Test joins, leaves and broadcasts."""

    def test_first_join_creates_room(self, directory):
        add(directory, 'a')
        reply = directory.join('a', 'ABCD1234', 'alice')

        assert reply == {'roomCode': 'ABCD1234', 'otherMembers': [], 'memberCount': 1}
        assert 'ABCD1234' in directory
        assert directory.registry.lookup('a').room_code == 'ABCD1234'

    def test_second_join_notifies_first(self, directory):
        a = add(directory, 'a')
        b = add(directory, 'b')
        directory.join('a', 'ABCD1234', 'alice')
        reply = directory.join('b', 'ABCD1234', 'bob')

        assert a.events('user-joined') == [
            ('user-joined', {'sessionId': 'b', 'displayName': 'bob', 'memberCount': 2})
        ]
        assert reply['otherMembers'] == [{'sessionId': 'a', 'displayName': 'alice'}]
        assert reply['memberCount'] == 2
        # No echo of our own join
        assert b.events('user-joined') == []

    def test_leave_notifies_remaining(self, directory):
        a = add(directory, 'a')
        add(directory, 'b')
        directory.join('a', 'R', 'alice')
        directory.join('b', 'R', 'bob')
        a.clear()

        assert directory.leave('b', 'R')
        assert a.last('user-left') == {'sessionId': 'b', 'displayName': 'bob', 'memberCount': 1}
        assert directory.registry.lookup('b').room_code is None

    def test_last_leave_deletes_room(self, directory):
        add(directory, 'a')
        directory.join('a', 'R', 'alice')
        directory.leave('a', 'R')

        assert 'R' not in directory
        assert len(directory) == 0

    def test_leave_unknown_room_is_noop(self, directory):
        add(directory, 'a')
        assert directory.leave('a', 'nowhere') is False

    def test_leave_as_non_member_is_noop(self, directory):
        a = add(directory, 'a')
        add(directory, 'b')
        directory.join('a', 'R', 'alice')
        a.clear()

        assert directory.leave('b', 'R') is False
        assert a.sent == []
        assert directory.member_count('R') == 1

    def test_member_count_tracks_set_size(self, directory):
        observer = add(directory, 'obs')
        directory.join('obs', 'R', 'observer')
        for sid in ('a', 'b', 'c'):
            add(directory, sid)
            directory.join(sid, 'R', sid)
        directory.leave('b', 'R')
        add(directory, 'd')
        directory.join('d', 'R', 'd')

        counts = [d['memberCount'] for e, d in observer.sent if e in ('user-joined', 'user-left')]
        assert counts == [2, 3, 4, 3, 4]
        assert directory.member_count('R') == len(directory.members('R')) == 4

    def test_broadcast_excludes(self, directory):
        a = add(directory, 'a')
        b = add(directory, 'b')
        directory.join('a', 'R', 'alice')
        directory.join('b', 'R', 'bob')
        a.clear()
        b.clear()

        assert directory.broadcast('R', 'note', {}, exclude='a') == 1
        assert a.sent == []
        assert b.names() == ['note']

    def test_rejoin_same_room_is_silent(self, directory):
        a = add(directory, 'a')
        add(directory, 'b')
        directory.join('a', 'R', 'alice')
        directory.join('b', 'R', 'bob')
        a.clear()

        reply = directory.join('b', 'R', 'bob')
        assert a.sent == []
        assert reply['memberCount'] == 2
        assert reply['otherMembers'] == [{'sessionId': 'a', 'displayName': 'alice'}]

    def test_rejoin_with_new_name_announces_rename(self, directory):
        a = add(directory, 'a')
        add(directory, 'b')
        directory.join('a', 'R', 'alice')
        directory.join('b', 'R', 'bob')
        a.clear()

        directory.join('b', 'R', 'robert')
        assert a.sent == [('user-renamed', {'sessionId': 'b', 'displayName': 'robert'})]
        assert directory.registry.name_of('b') == 'robert'
        assert directory.member_count('R') == 2
