from fastapi import APIRouter, Depends, HTTPException, Request, status
from starlette.requests import HTTPConnection

from backend import RoomStore
from exceptions import InvalidMediaReferenceError, RoomNotFoundError, StoreError
from logging_config import get_logger
from schemas.rooms import (
    CreateRoomRequest,
    CreateRoomResponse,
    HostUpdateRequest,
    JoinRoomRequest,
    JoinRoomResponse,
    RoomDetailsResponse,
)
from session import SessionRoles, create_room as create_room_state, join_room as join_room_state
from timers import now_ms

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/rooms", tags=["rooms"])


def get_store(conn: HTTPConnection) -> RoomStore:
    return conn.app.state.store


def build_ws_url(request: Request, room_id: str) -> str:
    # Replace http/https with ws/wss
    base_url = str(request.base_url).rstrip('/')
    ws_base = base_url.replace("http://", "ws://").replace("https://", "wss://")
    return f"{ws_base}/rooms/{room_id}/ws"


@rooms_router.post("/", status_code=status.HTTP_201_CREATED, response_model=CreateRoomResponse)
async def create_room(room: CreateRoomRequest, request: Request, store: RoomStore = Depends(get_store)):
    # { "media_url": "https://www.youtube.com/watch?v=LXb3EKWsInQ" }
    # Response 201: { "room_id": "k3v9x0qa2m", "host_id": "5f0c...", "room_url": ".../room/k3v9x0qa2m", "ws_url": "ws://.../rooms/k3v9x0qa2m/ws", "state": {...} }
    logger.info(f"Room creation request from {request.client.host}, media_url: {room.media_url}")
    try:
        state = create_room_state(store, SessionRoles(), room.media_url)
    except InvalidMediaReferenceError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except StoreError as e:
        logger.error(f"Error creating room: {e}", exc_info=True)
        raise HTTPException(status_code=503, detail="Failed to create room")

    base_url = str(request.base_url).rstrip('/')
    logger.info(f"Room {state.room_id} created successfully for video {state.video_id}")
    return CreateRoomResponse(
        room_id=state.room_id,
        host_id=state.host_id,
        room_url=f"{base_url}/room/{state.room_id}",
        ws_url=build_ws_url(request, state.room_id),
        state=state.to_wire(),
    )


@rooms_router.post("/{room_id}/join", response_model=JoinRoomResponse)
async def join_room(room_id: str, join_room_request: JoinRoomRequest, request: Request,
                    store: RoomStore = Depends(get_store)):
    # POST /rooms/{room_id}/join Body: { "participant_id": "host id if this caller created the room" }
    # Response 200: { "role": "host" | "listener", "ws_url": "ws://.../rooms/{room_id}/ws", "state": {...} }
    logger.info(f"Join room request for {room_id} from {request.client.host}")
    roles = SessionRoles(participant_id=join_room_request.participant_id)
    try:
        state, role = join_room_state(store, roles, room_id)
    except RoomNotFoundError:
        raise HTTPException(status_code=404, detail="Room not found")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return JoinRoomResponse(role=role, ws_url=build_ws_url(request, room_id), state=state.to_wire())


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, store: RoomStore = Depends(get_store)):
    """
    Get the room state plus where playback should be right now.

    Returns:
    - state: RoomState record (camelCase keys)
    - position: projected playback position in seconds
    """
    try:
        state = store.read(room_id)
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))
    if state is None:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomDetailsResponse(state=state.to_wire(), position=state.position_at(now_ms()))


@rooms_router.patch("/{room_id}/state")
async def update_room_state(room_id: str, update: HostUpdateRequest, request: Request,
                            store: RoomStore = Depends(get_store)):
    # PATCH /rooms/{room_id}/state Body: { "host_id": "...", "is_playing": true, "timestamp": 42.0 }
    # - Only the host may write. Every field left out keeps its current value.
    try:
        state = store.read(room_id)
        if state is None:
            raise RoomNotFoundError(room_id)
        if update.host_id != state.host_id:
            logger.warning(f"State update rejected: {request.client.host} is not the host of room {room_id}")
            raise HTTPException(status_code=403, detail="Only the host may update this room")
        new_state = store.merge(room_id, update.to_update())
    except RoomNotFoundError:
        logger.warning(f"State update failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    except StoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

    return new_state.to_wire()
