import pytest

from player import ManagedPlayer, PlayerState, SimulatedPlayer
from tests.conftest import PlayerBuilder


def test_commands_are_noops_until_ready(clock):
    builder = PlayerBuilder(clock, auto_ready=False)
    managed = ManagedPlayer(builder)
    managed.load("abc123defgh")

    managed.play()
    managed.seek_to(30)
    assert builder.last.commands == []
    assert managed.get_player_state() == PlayerState.UNSTARTED
    assert managed.get_current_time() == 0.0

    builder.last.ready()
    managed.seek_to(30)
    assert builder.last.commands == [("seek", 30)]
    assert managed.get_current_time() == 30


def test_ready_callback_fires_for_immediately_ready_adapters(builder):
    managed = ManagedPlayer(builder)
    calls = []
    managed.on_ready = lambda: calls.append(managed.is_ready)
    managed.load("abc123defgh")
    assert calls == [True]


def test_state_changes_are_forwarded(builder):
    managed = ManagedPlayer(builder)
    seen = []
    managed.on_state_change = seen.append
    managed.load("abc123defgh")
    managed.play()
    managed.pause()
    assert seen == [PlayerState.PLAYING, PlayerState.PAUSED]


def test_loading_new_video_tears_down_old_adapter(builder):
    managed = ManagedPlayer(builder)
    managed.load("abc123defgh")
    first = builder.last
    managed.load("abc123defgh")
    assert len(builder.built) == 1

    managed.load("zyx987wvuts")
    assert first.destroyed
    assert builder.last.video_id == "zyx987wvuts"
    assert managed.video_id == "zyx987wvuts"


def test_stale_adapter_callbacks_are_ignored(builder):
    managed = ManagedPlayer(builder)
    seen = []
    managed.on_state_change = seen.append
    managed.load("abc123defgh")
    old = builder.last
    managed.load("zyx987wvuts")
    old.play()
    assert seen == []


def test_teardown_swallows_destroy_errors(builder):
    managed = ManagedPlayer(builder)
    managed.load("abc123defgh")

    def explode():
        raise RuntimeError("iframe already gone")

    builder.last.destroy = explode
    managed.teardown()
    assert not managed.is_ready
    managed.play()
    managed.teardown()


def test_simulated_player_advances_only_while_playing(clock):
    player = SimulatedPlayer("abc123defgh", lambda: None, lambda state: None, clock=clock)
    clock.advance(5000)
    assert player.get_current_time() == 0.0
    player.play()
    clock.advance(2000)
    assert player.get_current_time() == 2.0
    player.stall()
    clock.advance(3000)
    assert player.get_current_time() == 2.0
    assert player.get_player_state() == PlayerState.BUFFERING
    player.resume()
    clock.advance(1000)
    assert player.get_current_time() == 3.0


@pytest.mark.parametrize("code", [None, 42, "buffering"])
def test_unknown_state_codes_read_as_unstarted(builder, code):
    managed = ManagedPlayer(builder)
    managed.load("abc123defgh")
    builder.last.get_player_state = lambda: code
    assert managed.get_player_state() == PlayerState.UNSTARTED


def test_known_numeric_codes_map_to_states(builder):
    managed = ManagedPlayer(builder)
    managed.load("abc123defgh")
    builder.last.get_player_state = lambda: 3
    assert managed.get_player_state() == PlayerState.BUFFERING
