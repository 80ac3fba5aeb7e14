import pytest

from backend import InMemoryBackend
from player import ManagedPlayer, SimulatedPlayer

T0 = 1_700_000_000_000.0


class FakeClock:
    """Millisecond wall clock that only moves when told to."""

    def __init__(self, start: float = T0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class PlayerBuilder:
    def __init__(self, clock, auto_ready=True):
        self.clock = clock
        self.auto_ready = auto_ready
        self.built: list[SimulatedPlayer] = []

    def __call__(self, video_id, on_ready, on_state_change):
        player = SimulatedPlayer(video_id, on_ready, on_state_change, clock=self.clock, auto_ready=self.auto_ready)
        self.built.append(player)
        return player

    @property
    def last(self) -> SimulatedPlayer:
        return self.built[-1]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryBackend(clock=clock)


@pytest.fixture
def builder(clock):
    return PlayerBuilder(clock)


@pytest.fixture
def player(builder):
    managed = ManagedPlayer(builder)
    managed.load("LXb3EKWsInQ")
    return managed
