import json
import random
import string
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Optional

import redis

from constants import REDIS_HOST, REDIS_PORT, REDIS_PASSWORD, ROOM_TTL_SECONDS, ROOM_ID_LENGTH, STORE_BACKEND
from exceptions import RoomNotFoundError, StoreError
from logging_config import get_logger
from redis_keys import REDIS_STATE_KEY, REDIS_ROOM_CHANNEL
from schemas.rooms import RoomState, RoomStateUpdate
from timers import now_ms

logger = get_logger(__name__)

StateCallback = Callable[[RoomState], None]
Unsubscribe = Callable[[], None]


def generate_random_slug(length: int = ROOM_ID_LENGTH) -> str:
    # URL-safe: used verbatim as a path segment
    return ''.join(random.choices(string.ascii_lowercase + string.digits, k=length))


class RoomStore(ABC):
    """
    Persists RoomState and broadcasts every change to subscribers.

    Subscribers get the latest state after each merge, at least once. Rapid
    merges may collapse, so a subscriber can miss intermediate states.
    """

    def __init__(self, clock: Callable[[], float] = now_ms):
        self.clock = clock

    def new_state(self, video_id: str) -> RoomState:
        return RoomState(
            room_id=generate_random_slug(),
            host_id=uuid.uuid4().hex,
            video_id=video_id,
            is_playing=False,
            timestamp=0.0,
            last_updated=self.clock(),
        )

    @abstractmethod
    def read(self, room_id: str) -> Optional[RoomState]:
        ...

    @abstractmethod
    def create(self, video_id: str) -> RoomState:
        ...

    @abstractmethod
    def merge(self, room_id: str, update: RoomStateUpdate) -> RoomState:
        ...

    @abstractmethod
    def subscribe(self, room_id: str, on_change: StateCallback) -> Unsubscribe:
        ...


class InMemoryBackend(RoomStore):
    """Process-local store. Good for a single server instance, tests and simulations."""

    def __init__(self, clock: Callable[[], float] = now_ms):
        super().__init__(clock)
        self._rooms: dict[str, RoomState] = {}
        self._subscribers: dict[str, list[StateCallback]] = {}
        self._lock = threading.RLock()
        logger.info("Initializing InMemoryBackend")

    def read(self, room_id: str) -> Optional[RoomState]:
        with self._lock:
            return self._rooms.get(room_id)

    def create(self, video_id: str) -> RoomState:
        with self._lock:
            state = self.new_state(video_id)
            while state.room_id in self._rooms:
                state = self.new_state(video_id)
            self._rooms[state.room_id] = state
        logger.info(f"Created room {state.room_id} for video {video_id}")
        return state

    def merge(self, room_id: str, update: RoomStateUpdate) -> RoomState:
        with self._lock:
            current = self._rooms.get(room_id)
            if current is None:
                raise RoomNotFoundError(room_id)
            new_state = current.merged(update, self.clock())
            self._rooms[room_id] = new_state
            callbacks = list(self._subscribers.get(room_id, []))
        logger.debug(f"Merged {update.changes()} into room {room_id}, notifying {len(callbacks)} subscribers")
        for callback in callbacks:
            try:
                callback(new_state)
            except Exception as e:
                logger.error(f"Subscriber for room {room_id} failed: {e}", exc_info=True)
        return new_state

    def subscribe(self, room_id: str, on_change: StateCallback) -> Unsubscribe:
        with self._lock:
            self._subscribers.setdefault(room_id, []).append(on_change)
        logger.debug(f"Subscribed to room {room_id}")

        def unsubscribe():
            with self._lock:
                callbacks = self._subscribers.get(room_id, [])
                if on_change in callbacks:
                    callbacks.remove(on_change)
                if not callbacks:
                    self._subscribers.pop(room_id, None)
            logger.debug(f"Unsubscribed from room {room_id}")

        return unsubscribe


class RedisBackend(RoomStore):
    def __init__(self, redis_client: Optional[redis.Redis] = None, pubsub_client: Optional[redis.Redis] = None,
                 ttl: int = ROOM_TTL_SECONDS, clock: Callable[[], float] = now_ms):
        super().__init__(clock)
        self.ttl = ttl
        logger.info(f"Initializing RedisBackend with connection to {REDIS_HOST}:{REDIS_PORT}")
        try:
            self.redis_client = redis_client if redis_client is not None else self._connect()
            # Separate connection for pub/sub (required by Redis)
            self.pubsub_client = pubsub_client if pubsub_client is not None else self._connect()
        except redis.RedisError as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise StoreError(f"Redis unavailable: {e}") from e

    @staticmethod
    def _connect() -> redis.Redis:
        client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
        client.ping()
        logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        return client

    def get_room_channel_name(self, room_id: str) -> str:
        """Get the Redis pub/sub channel name for a room."""
        return REDIS_ROOM_CHANNEL.format(slug=room_id)

    def read(self, room_id: str) -> Optional[RoomState]:
        logger.debug(f"Fetching room {room_id}")
        key = REDIS_STATE_KEY.format(slug=room_id)
        try:
            record = self.redis_client.hgetall(key)
        except redis.RedisError as e:
            logger.error(f"Failed to read room {room_id}: {e}", exc_info=True)
            raise StoreError(f"Failed to read room {room_id}") from e
        if not record:
            logger.debug(f"Room {room_id} not found in Redis")
            return None
        return RoomState.from_record(record)

    def create(self, video_id: str) -> RoomState:
        try:
            while True:
                state = self.new_state(video_id)
                key = REDIS_STATE_KEY.format(slug=state.room_id)
                # roomId is written first and only if absent, so an id collision retries instead of clobbering
                if self.redis_client.hsetnx(key, "roomId", json.dumps(state.room_id)):
                    break
            self.redis_client.hset(key, mapping=state.to_record())
            if self.ttl:
                self.redis_client.expire(key, self.ttl)
        except redis.RedisError as e:
            logger.error(f"Error creating room for video {video_id}: {e}", exc_info=True)
            raise StoreError("Failed to create room") from e
        logger.info(f"Created room {state.room_id} for video {video_id} with TTL {self.ttl} seconds")
        return state

    def merge(self, room_id: str, update: RoomStateUpdate) -> RoomState:
        key = REDIS_STATE_KEY.format(slug=room_id)

        def apply(pipe):
            # WATCH makes this read-modify-write fail and re-run if another writer got in between
            record = pipe.hgetall(key)
            if not record:
                raise RoomNotFoundError(room_id)
            new_state = RoomState.from_record(record).merged(update, self.clock())
            pipe.multi()
            pipe.hset(key, mapping=new_state.to_record())
            if self.ttl:
                pipe.expire(key, self.ttl)
            return new_state

        try:
            new_state = self.redis_client.transaction(apply, key, value_from_callable=True)
            subscribers = self.redis_client.publish(self.get_room_channel_name(room_id), json.dumps(new_state.to_wire()))
        except redis.RedisError as e:
            logger.error(f"Failed to merge {update.changes()} into room {room_id}: {e}", exc_info=True)
            raise StoreError(f"Failed to update room {room_id}") from e
        logger.debug(f"Merged {update.changes()} into room {room_id}, {subscribers} subscribers")
        return new_state

    def subscribe(self, room_id: str, on_change: StateCallback) -> Unsubscribe:
        channel = self.get_room_channel_name(room_id)
        logger.debug(f"Subscribing to Redis channel {channel} for room {room_id}")

        def handle(message):
            try:
                state = RoomState.model_validate(json.loads(message["data"]))
            except (json.JSONDecodeError, ValueError) as e:
                logger.error(f"Error parsing state from Redis for room {room_id}: {e}")
                return
            try:
                on_change(state)
            except Exception as e:
                logger.error(f"Subscriber for room {room_id} failed: {e}", exc_info=True)

        try:
            pubsub = self.pubsub_client.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{channel: handle})
            worker = pubsub.run_in_thread(sleep_time=0.05, daemon=True)
        except redis.RedisError as e:
            logger.error(f"Failed to subscribe to room {room_id}: {e}", exc_info=True)
            raise StoreError(f"Failed to subscribe to room {room_id}") from e

        def unsubscribe():
            try:
                worker.stop()
                pubsub.close()
                logger.debug(f"Closed pub/sub connection for room: {room_id}")
            except Exception as e:
                logger.error(f"Error closing pub/sub for room {room_id}: {e}")

        return unsubscribe


def build_backend(kind: str = STORE_BACKEND) -> RoomStore:
    if kind == "memory":
        return InMemoryBackend()
    if kind == "redis":
        return RedisBackend()
    raise ValueError(f"Unknown STORE_BACKEND {kind!r}")
