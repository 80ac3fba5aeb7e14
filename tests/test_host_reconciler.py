from unittest import mock

import pytest

from exceptions import StoreError
from player import ManagedPlayer, PlayerState
from reconcilers.host import HostReconciler
from schemas.rooms import RoomStateUpdate
from tests.conftest import PlayerBuilder


@pytest.fixture
def room(store):
    return store.create("LXb3EKWsInQ")


@pytest.fixture
def host(room, store, player):
    return HostReconciler(room.room_id, store, player)


def test_playing_event_writes_play_intent(host, store, room, player, clock):
    player.seek_to(12.0)
    clock.advance(100)
    state = host.on_player_state_change(PlayerState.PLAYING)
    assert state.is_playing is True
    assert state.timestamp == 12.0
    assert store.read(room.room_id).last_updated == clock.now


def test_pause_event_writes_paused_checkpoint(host, store, room, player):
    player.seek_to(55.4)
    host.on_player_state_change(PlayerState.PAUSED)
    stored = store.read(room.room_id)
    assert stored.is_playing is False
    assert stored.timestamp == 55.4


@pytest.mark.parametrize("state", [PlayerState.BUFFERING, PlayerState.UNSTARTED, PlayerState.CUED])
def test_other_events_write_nothing(host, store, room, state):
    assert host.on_player_state_change(state) is None
    assert store.read(room.room_id) == room


def test_heartbeat_only_while_playing(host, store, room, player, clock):
    assert host.heartbeat() is None

    player.play()
    clock.advance(2000)
    state = host.heartbeat()
    assert state.timestamp == 2.0
    assert state.is_playing is False  # heartbeat never touches play intent


def test_seek_writes_target_regardless_of_state(host, store, room, player):
    state = host.seek(90.0)
    assert state.timestamp == 90.0
    assert state.is_playing is False
    assert player.get_current_time() == 90.0


def test_play_and_pause_commands_drive_player_and_store(host, store, room, player, clock):
    host.play()
    assert player.get_player_state() == PlayerState.PLAYING
    assert store.read(room.room_id).is_playing is True

    clock.advance(4000)
    state = host.pause()
    assert player.get_player_state() == PlayerState.PAUSED
    assert state.is_playing is False
    assert state.timestamp == 4.0


def test_store_failure_is_surfaced_without_retry(room, player):
    store = mock.Mock()
    store.merge.side_effect = StoreError("redis down")
    host = HostReconciler(room.room_id, store, player)
    with pytest.raises(StoreError):
        host.seek(10)
    assert store.merge.call_count == 1
    store.merge.assert_called_with(room.room_id, RoomStateUpdate(timestamp=10))


@pytest.mark.parametrize("command", ["play", "pause", "seek"])
def test_commands_before_player_ready_write_nothing(room, store, clock, command):
    builder = PlayerBuilder(clock, auto_ready=False)
    player = ManagedPlayer(builder)
    player.load("LXb3EKWsInQ")
    store.merge(room.room_id, RoomStateUpdate(is_playing=True, timestamp=75.0))
    before = store.read(room.room_id)
    host = HostReconciler(room.room_id, store, player)

    args = (30.0,) if command == "seek" else ()
    assert getattr(host, command)(*args) is None
    assert store.read(room.room_id) == before
    assert builder.last.commands == []


def test_commands_write_once_player_is_ready(room, store, clock):
    builder = PlayerBuilder(clock, auto_ready=False)
    player = ManagedPlayer(builder)
    player.load("LXb3EKWsInQ")
    host = HostReconciler(room.room_id, store, player)
    assert host.seek(30.0) is None

    builder.last.ready()
    assert host.seek(30.0).timestamp == 30.0
