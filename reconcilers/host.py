from typing import Optional

from backend import RoomStore
from logging_config import get_logger
from media import format_time
from player import ManagedPlayer, PlayerState
from schemas.rooms import RoomState, RoomStateUpdate

logger = get_logger(__name__)


class HostReconciler:
    """
    Turns what happens on the host's player into authoritative room writes.

    Every write goes straight to the store. A failed write raises and is not
    retried here: the next event or heartbeat carries a fresher checkpoint anyway.
    """

    def __init__(self, room_id: str, store: RoomStore, player: ManagedPlayer):
        self.room_id = room_id
        self.store = store
        self.player = player

    def _write(self, update: RoomStateUpdate, reason: str) -> RoomState:
        logger.debug(f"Host write for room {self.room_id} ({reason}): {update.changes()}")
        return self.store.merge(self.room_id, update)

    def on_player_state_change(self, state: PlayerState) -> Optional[RoomState]:
        if state == PlayerState.PLAYING:
            return self._write(RoomStateUpdate(is_playing=True, timestamp=self.player.get_current_time()), "playing")
        if state == PlayerState.PAUSED:
            return self._write(RoomStateUpdate(is_playing=False, timestamp=self.player.get_current_time()), "paused")
        return None

    def heartbeat(self) -> Optional[RoomState]:
        # Only refreshes the checkpoint for late joiners, play intent stays as it is
        if self.player.get_player_state() != PlayerState.PLAYING:
            return None
        return self._write(RoomStateUpdate(timestamp=self.player.get_current_time()), "heartbeat")

    def _player_ready(self, command: str) -> bool:
        # Before ready the player ignores commands and reports 0.0, a write now would clobber the room
        if self.player.is_ready:
            return True
        logger.warning(f"Host {command} for room {self.room_id} ignored: player not ready")
        return False

    def seek(self, seconds: float) -> Optional[RoomState]:
        if not self._player_ready("seek"):
            return None
        seconds = max(seconds, 0.0)
        logger.info(f"Host seeking room {self.room_id} to {format_time(seconds)}")
        self.player.seek_to(seconds)
        return self._write(RoomStateUpdate(timestamp=seconds), "seek")

    def play(self) -> Optional[RoomState]:
        if not self._player_ready("play"):
            return None
        self.player.play()
        return self._write(RoomStateUpdate(is_playing=True, timestamp=self.player.get_current_time()), "play")

    def pause(self) -> Optional[RoomState]:
        if not self._player_ready("pause"):
            return None
        self.player.pause()
        return self._write(RoomStateUpdate(is_playing=False, timestamp=self.player.get_current_time()), "pause")
