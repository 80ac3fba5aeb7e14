"""
Listener side drift correction.

There is no shared clock. Each tick the listener projects the host's last
checkpoint forward by the wall time elapsed since it was taken and steers the
local player towards that position. This holds up as long as host and
listener clocks roughly agree and checkpoints arrive within a second or so;
neither is checked here.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

from constants import MAX_DRIFT_SECONDS, BUFFER_STALL_TICKS, BUFFER_STALL_MAX_TICKS
from logging_config import get_logger
from media import format_time
from player import ManagedPlayer, PlayerState
from schemas.rooms import RoomState
from timers import now_ms

logger = get_logger(__name__)


class ListenerPhase(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"


@dataclass
class TickResult:
    target_time: float
    local_time: float
    drift: float
    local_state: PlayerState
    commands: list[str] = field(default_factory=list)

    @property
    def seeked(self) -> bool:
        return "seek" in self.commands


class ListenerReconciler:
    def __init__(self, player: ManagedPlayer, clock: Callable[[], float] = now_ms,
                 max_drift: float = MAX_DRIFT_SECONDS, stall_ticks: int = BUFFER_STALL_TICKS,
                 max_stall_ticks: int = BUFFER_STALL_MAX_TICKS):
        self.player = player
        self.clock = clock
        self.max_drift = max_drift
        self.stall_ticks = stall_ticks
        self.max_stall_ticks = max_stall_ticks
        self.state: Optional[RoomState] = None
        self.playback_granted = False
        self._buffering_ticks = 0
        self._stall_threshold = stall_ticks

    @property
    def phase(self) -> ListenerPhase:
        if self.state is not None and self.playback_granted and self.player.is_ready:
            return ListenerPhase.TRACKING
        return ListenerPhase.IDLE

    def observe(self, state: RoomState) -> bool:
        """
        Cache the latest broadcast. Only the newest state matters, there is no history.

        A state older than the cached one for the same room is dropped, so a
        snapshot read that races a broadcast cannot roll tracking back.
        Returns whether the state was taken.
        """
        current = self.state
        if current is None:
            logger.info(f"First state for room {state.room_id}: playing={state.is_playing} at {format_time(state.timestamp)}")
        elif current.room_id == state.room_id and state.last_updated < current.last_updated:
            logger.debug(f"Dropping stale state for room {state.room_id} "
                         f"({state.last_updated} < {current.last_updated})")
            return False
        self.state = state
        return True

    def grant_playback(self) -> None:
        # Browsers refuse to start media without a user gesture, so tracking waits for one
        self.playback_granted = True

    def tick(self) -> Optional[TickResult]:
        if self.phase is not ListenerPhase.TRACKING:
            return None

        state = self.state
        target = state.position_at(self.clock())
        local_time = self.player.get_current_time()
        local_state = self.player.get_player_state()
        drift = abs(local_time - target)
        result = TickResult(target_time=target, local_time=local_time, drift=drift, local_state=local_state)

        if drift > self.max_drift:
            logger.debug(f"Drift {drift:.2f}s exceeds {self.max_drift}s, seeking to {target:.2f}")
            self.player.seek_to(target)
            result.commands.append("seek")

        if state.is_playing and local_state not in (PlayerState.PLAYING, PlayerState.BUFFERING):
            self.player.play()
            result.commands.append("play")
        elif not state.is_playing and local_state == PlayerState.PLAYING:
            self.player.pause()
            result.commands.append("pause")

        self._check_stall(state, local_state, target, result)
        return result

    def _check_stall(self, state: RoomState, local_state: PlayerState, target: float, result: TickResult) -> None:
        if not state.is_playing or local_state != PlayerState.BUFFERING:
            self._buffering_ticks = 0
            self._stall_threshold = self.stall_ticks
            return

        self._buffering_ticks += 1
        if self._buffering_ticks < self._stall_threshold:
            return

        logger.warning(f"Player buffering for {self._buffering_ticks} ticks, nudging it to {target:.2f}")
        if not result.seeked:
            self.player.seek_to(target)
            result.commands.append("seek")
        self._buffering_ticks = 0
        self._stall_threshold = min(self._stall_threshold * 2, self.max_stall_ticks)
