"""
Player adapter contract and the wrapper the reconcilers talk to.

The actual video player lives outside this code base (a browser iframe, a
desktop player, ...). Anything implementing `PlayerAdapter` can be plugged in
through a `PlayerFactory`.
"""

from enum import IntEnum
from typing import Callable, Optional, Protocol

from logging_config import get_logger
from timers import now_ms

logger = get_logger(__name__)


class PlayerState(IntEnum):
    # Same codes as the YouTube iframe API so browser events can be passed through untouched
    UNSTARTED = -1
    ENDED = 0
    PLAYING = 1
    PAUSED = 2
    BUFFERING = 3
    CUED = 5


class PlayerAdapter(Protocol):
    def play(self) -> None: ...
    def pause(self) -> None: ...
    def seek_to(self, seconds: float) -> None: ...
    def get_current_time(self) -> float: ...
    def get_player_state(self) -> PlayerState: ...
    def destroy(self) -> None: ...


ReadyCallback = Callable[[], None]
StateChangeCallback = Callable[[PlayerState], None]
PlayerFactory = Callable[[str, ReadyCallback, StateChangeCallback], PlayerAdapter]


class ManagedPlayer:
    """
    Owns the adapter for whatever video is loaded.

    Every command is a no-op until the adapter reports ready, and after
    `teardown`, so timers that outlive a room can't hurt anything. Loading a
    different video destroys the old adapter first.
    """

    def __init__(self, factory: PlayerFactory):
        self._factory = factory
        self._adapter: Optional[PlayerAdapter] = None
        self._ready = False
        self._generation = 0
        self.video_id: Optional[str] = None
        self.on_ready: Optional[ReadyCallback] = None
        self.on_state_change: Optional[StateChangeCallback] = None

    @property
    def is_ready(self) -> bool:
        return self._ready and self._adapter is not None

    def load(self, video_id: str) -> None:
        if video_id == self.video_id and self._adapter is not None:
            return
        self.teardown()
        self._generation += 1
        generation = self._generation
        self.video_id = video_id
        logger.info(f"Loading player for video {video_id}")

        # Callbacks from a previous adapter are dropped by the generation check
        def ready():
            if generation != self._generation:
                return
            self._ready = True
            # Adapters that are ready straight away fire this from inside the factory call
            if self._adapter is not None:
                self._announce_ready()

        def state_changed(state: PlayerState):
            if generation != self._generation or not self._ready:
                return
            logger.debug(f"Player state changed to {PlayerState(state).name}")
            if self.on_state_change:
                self.on_state_change(PlayerState(state))

        self._adapter = self._factory(video_id, ready, state_changed)
        if self._ready:
            self._announce_ready()

    def _announce_ready(self) -> None:
        logger.info(f"Player ready for video {self.video_id}")
        if self.on_ready:
            self.on_ready()

    def teardown(self) -> None:
        adapter, self._adapter = self._adapter, None
        self._ready = False
        self._generation += 1
        self.video_id = None
        if adapter is None:
            return
        try:
            adapter.destroy()
        except Exception as e:
            # cleanup runs on unrelated transitions (leaving, switching video) and must not raise
            logger.debug(f"Ignoring player teardown error: {e}")

    def play(self) -> None:
        if self.is_ready:
            self._adapter.play()

    def pause(self) -> None:
        if self.is_ready:
            self._adapter.pause()

    def seek_to(self, seconds: float) -> None:
        if self.is_ready:
            self._adapter.seek_to(seconds)

    def get_current_time(self) -> float:
        if not self.is_ready:
            return 0.0
        return self._adapter.get_current_time() or 0.0

    def get_player_state(self) -> PlayerState:
        if not self.is_ready:
            return PlayerState.UNSTARTED
        code = self._adapter.get_player_state()
        try:
            return PlayerState(code)
        except (ValueError, TypeError):
            # embeds report codes outside the documented set, or nothing while they are half built
            logger.debug(f"Unknown player state {code!r}, treating as unstarted")
            return PlayerState.UNSTARTED


class SimulatedPlayer:
    """
    In-process player driven by a millisecond clock.

    Position advances at `rate` while PLAYING. `stall()` puts it into BUFFERING
    where the position freezes until `resume()`.
    """

    def __init__(self, video_id: str, on_ready: ReadyCallback, on_state_change: StateChangeCallback,
                 clock: Callable[[], float] = now_ms, rate: float = 1.0, auto_ready: bool = True):
        self.video_id = video_id
        self.clock = clock
        self.rate = rate
        self.destroyed = False
        self.commands: list[tuple] = []
        self._on_ready = on_ready
        self._on_state_change = on_state_change
        self._state = PlayerState.UNSTARTED
        self._position = 0.0
        self._anchor_ms = clock()
        if auto_ready:
            self.ready()

    def ready(self) -> None:
        self._on_ready()

    def _settle(self) -> None:
        now = self.clock()
        if self._state == PlayerState.PLAYING:
            self._position += (now - self._anchor_ms) / 1000 * self.rate
        self._anchor_ms = now

    def _set_state(self, state: PlayerState) -> None:
        self._settle()
        if state != self._state:
            self._state = state
            self._on_state_change(state)

    def play(self) -> None:
        self.commands.append(("play",))
        self._set_state(PlayerState.PLAYING)

    def pause(self) -> None:
        self.commands.append(("pause",))
        self._set_state(PlayerState.PAUSED)

    def seek_to(self, seconds: float) -> None:
        self.commands.append(("seek", seconds))
        self._settle()
        self._position = max(seconds, 0.0)

    def stall(self) -> None:
        self._set_state(PlayerState.BUFFERING)

    def resume(self) -> None:
        self._set_state(PlayerState.PLAYING)

    def get_current_time(self) -> float:
        self._settle()
        return self._position

    def get_player_state(self) -> PlayerState:
        return self._state

    def destroy(self) -> None:
        self.destroyed = True


def simulated_player_factory(clock: Callable[[], float] = now_ms, rate: float = 1.0) -> PlayerFactory:
    def build(video_id: str, on_ready: ReadyCallback, on_state_change: StateChangeCallback) -> SimulatedPlayer:
        return SimulatedPlayer(video_id, on_ready, on_state_change, clock=clock, rate=rate)
    return build
