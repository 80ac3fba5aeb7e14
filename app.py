from fastapi import Depends, FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import asyncio
import os
from typing import Optional

from backend import RoomStore, build_backend
from exceptions import StoreError
from logging_config import get_logger, setup_logging
from routers.rooms import get_store, rooms_router
from schemas.rooms import RoomState

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    _app.state.store = build_backend()
    logger.info(f"Room store ready: {type(_app.state.store).__name__}")
    yield


app = FastAPI(title="SyncStream", lifespan=lifespan)

# Configure CORS to allow all origins
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(rooms_router)

logger.info("FastAPI application initialized")


def state_message(state: RoomState) -> dict:
    return {"type": "state", "state": state.to_wire()}


@app.websocket("/rooms/{room_id}/ws")
async def websocket_endpoint(room_id: str, websocket: WebSocket, store: RoomStore = Depends(get_store)):
    """Push the room's state on connect and again after every host write.

    Only the latest state is forwarded: if several writes land before this
    connection catches up, the older ones are dropped.
    """
    logger.info(f"WebSocket connection attempt for room: {room_id}")
    loop = asyncio.get_running_loop()
    latest: asyncio.Queue = asyncio.Queue(maxsize=1)
    newest: Optional[RoomState] = None

    def offer(new_state: RoomState):
        nonlocal newest
        # The snapshot and broadcasts can arrive in either order, never step back in time
        if newest is not None and new_state.last_updated < newest.last_updated:
            return
        newest = new_state
        if latest.full():
            latest.get_nowait()
        latest.put_nowait(new_state)

    try:
        # Subscribe before the snapshot read so a write in between still reaches this client.
        # Store callbacks may come from a Redis worker thread.
        unsubscribe = store.subscribe(room_id, lambda new_state: loop.call_soon_threadsafe(offer, new_state))
    except StoreError as e:
        logger.error(f"Error subscribing to room {room_id} for WebSocket: {e}", exc_info=True)
        await websocket.close(code=1011, reason="State store unavailable")
        return
    try:
        state = store.read(room_id)
    except StoreError as e:
        unsubscribe()
        logger.error(f"Error reading room {room_id} for WebSocket: {e}", exc_info=True)
        await websocket.close(code=1011, reason="State store unavailable")
        return
    if state is None:
        unsubscribe()
        logger.info(f"WebSocket connection rejected: Room {room_id} not found")
        await websocket.close(code=1008, reason="Room not found")
        return
    offer(state)

    await websocket.accept()
    logger.info(f"WebSocket connection accepted for room: {room_id}")

    async def drain_client():
        # Listeners are read-only here, incoming frames are ignored until the client goes away
        while True:
            await websocket.receive_text()

    receiver = asyncio.create_task(drain_client())
    try:
        while not receiver.done():
            getter = asyncio.create_task(latest.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if getter not in done:
                getter.cancel()
                break
            await websocket.send_json(state_message(getter.result()))
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for room {room_id}")
    except Exception as e:
        logger.error(f"WebSocket error in room {room_id}: {e}", exc_info=True)
    finally:
        unsubscribe()
        receiver.cancel()
        try:
            await receiver
        except (asyncio.CancelledError, WebSocketDisconnect):
            pass
        except Exception as e:
            logger.debug(f"Client reader for room {room_id} ended with: {e}")
        logger.info(f"WebSocket for room {room_id} closed")
