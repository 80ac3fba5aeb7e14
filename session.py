import asyncio
import uuid
from typing import Callable, Optional

from backend import RoomStore
from constants import HEARTBEAT_INTERVAL_MS, SYNC_TICK_INTERVAL_MS, MAX_DRIFT_SECONDS
from exceptions import InvalidMediaReferenceError, NotHostError, RoomNotFoundError, SyncStreamError
from logging_config import get_logger
from media import extract_video_id
from player import ManagedPlayer, PlayerState
from reconcilers.host import HostReconciler
from reconcilers.listener import ListenerReconciler, TickResult
from schemas.rooms import Role, RoomState
from timers import now_ms, run_periodic

logger = get_logger(__name__)


class SessionRoles:
    """Per-session lookup of which rooms this participant hosts."""

    def __init__(self, participant_id: Optional[str] = None):
        self.participant_id = participant_id or uuid.uuid4().hex
        self._roles: dict[str, Role] = {}

    def bind_host(self, room_id: str, host_id: str) -> None:
        self._roles[room_id] = "host"
        self.participant_id = host_id

    def role_for(self, state: RoomState) -> Role:
        if self._roles.get(state.room_id) == "host" or self.participant_id == state.host_id:
            return "host"
        return "listener"


def create_room(store: RoomStore, roles: SessionRoles, media_ref: Optional[str]) -> RoomState:
    video_id = extract_video_id(media_ref)
    if video_id is None:
        logger.warning(f"Room creation rejected: invalid media reference {media_ref!r}")
        raise InvalidMediaReferenceError(media_ref)
    state = store.create(video_id)
    roles.bind_host(state.room_id, state.host_id)
    return state


def join_room(store: RoomStore, roles: SessionRoles, room_id: str) -> tuple[RoomState, Role]:
    state = store.read(room_id)
    if state is None:
        logger.warning(f"Join room failed: Room {room_id} not found")
        raise RoomNotFoundError(room_id)
    role = roles.role_for(state)
    logger.info(f"Joined room {room_id} as {role}")
    return state, role


class RoomSession:
    """
    One participant inside one room.

    Wires the player, the store subscription and the periodic task for the
    participant's role, and tears all of it down on `leave`.
    """

    def __init__(self, store: RoomStore, roles: SessionRoles, player: ManagedPlayer,
                 clock: Callable[[], float] = now_ms,
                 heartbeat_interval_ms: int = HEARTBEAT_INTERVAL_MS,
                 tick_interval_ms: int = SYNC_TICK_INTERVAL_MS,
                 max_drift: float = MAX_DRIFT_SECONDS):
        self.store = store
        self.roles = roles
        self.player = player
        self.clock = clock
        self.heartbeat_interval_ms = heartbeat_interval_ms
        self.tick_interval_ms = tick_interval_ms
        self.max_drift = max_drift

        self.room_id: Optional[str] = None
        self.role: Optional[Role] = None
        self.host: Optional[HostReconciler] = None
        self.listener: Optional[ListenerReconciler] = None
        self.last_tick: Optional[TickResult] = None
        self._tasks: list[asyncio.Task] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    async def join(self, room_id: str) -> Role:
        if self.room_id is not None:
            await self.leave()

        self._loop = asyncio.get_running_loop()
        # Subscribe before reading the snapshot so a write in between is still delivered
        unsubscribe = self.store.subscribe(room_id, self._on_broadcast)
        try:
            state, role = join_room(self.store, self.roles, room_id)
        except SyncStreamError:
            unsubscribe()
            raise
        self.room_id = room_id
        self.role = role
        self.player.on_state_change = self._on_player_state_change

        if role == "host":
            unsubscribe()
            self.host = HostReconciler(room_id, self.store, self.player)
        else:
            self._unsubscribe = unsubscribe
            self.listener = ListenerReconciler(self.player, clock=self.clock, max_drift=self.max_drift)
            self.listener.observe(state)

        self.player.load(state.video_id)
        self._start_tasks()
        return role

    async def leave(self) -> None:
        if self.room_id is None:
            return
        logger.info(f"Leaving room {self.room_id}")
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        await self._stop_tasks()
        self.player.on_state_change = None
        self.player.teardown()
        self.room_id = None
        self.role = None
        self.host = None
        self.listener = None

    def grant_playback(self) -> None:
        if self.listener:
            self.listener.grant_playback()

    # ---- Host commands ----

    def _require_host(self) -> HostReconciler:
        if self.host is None:
            raise NotHostError(self.room_id or "")
        return self.host

    def play(self) -> Optional[RoomState]:
        return self._require_host().play()

    def pause(self) -> Optional[RoomState]:
        return self._require_host().pause()

    def seek(self, seconds: float) -> Optional[RoomState]:
        return self._require_host().seek(seconds)

    # ---- Periodic tasks ----

    def _start_tasks(self) -> None:
        if self.host:
            self._tasks.append(asyncio.create_task(
                run_periodic(self.heartbeat_interval_ms, self.host.heartbeat, f"heartbeat:{self.room_id}")))
        if self.listener:
            self._tasks.append(asyncio.create_task(
                run_periodic(self.tick_interval_ms, self._tick, f"sync:{self.room_id}")))

    async def _stop_tasks(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

    def _tick(self) -> None:
        result = self.listener.tick()
        if result is not None:
            self.last_tick = result
            if result.commands:
                logger.debug(f"Sync tick: target={result.target_time:.2f} local={result.local_time:.2f} "
                             f"drift={result.drift:.2f} commands={result.commands}")

    # ---- Callbacks ----

    def _on_player_state_change(self, state: PlayerState) -> None:
        if self.host is None:
            return
        try:
            self.host.on_player_state_change(state)
        except SyncStreamError as e:
            logger.error(f"Host update for room {self.room_id} failed: {e}")

    def _on_broadcast(self, state: RoomState) -> None:
        # Redis delivers on its own thread, hop onto the loop that owns the timers
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._apply_state, state)

    def _apply_state(self, state: RoomState) -> None:
        if self.listener is None or state.room_id != self.room_id:
            return
        if not self.listener.observe(state):
            return
        if state.video_id != self.player.video_id:
            logger.warning(f"Room {self.room_id} switched to video {state.video_id}, reloading player")
            self._reload_media(state.video_id)

    def _reload_media(self, video_id: str) -> None:
        for task in self._tasks:
            task.cancel()
        self._tasks = []
        self.player.load(video_id)
        self._start_tasks()
