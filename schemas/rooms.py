import json
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

Role = Literal["host", "listener"]


class RoomStateUpdate(BaseModel):
    """Partial write to a room. Identity fields are not part of it, so they can't change."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    is_playing: Optional[bool] = Field(default=None, alias="isPlaying")
    timestamp: Optional[float] = Field(default=None, ge=0)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)


class RoomState(BaseModel):
    """
    Authoritative playback intent of a room.

    `timestamp` is the host position as of `last_updated` (ms since epoch), a
    checkpoint rather than a live clock. Use `position_at` to get where playback
    should be right now.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    room_id: str = Field(alias="roomId")
    host_id: str = Field(alias="hostId")
    video_id: str = Field(alias="videoId")
    is_playing: bool = Field(default=False, alias="isPlaying")
    timestamp: float = 0.0
    last_updated: float = Field(alias="lastUpdated")

    def merged(self, update: RoomStateUpdate, now_ms: float) -> "RoomState":
        return self.model_copy(update={**update.changes(), "last_updated": now_ms})

    def position_at(self, now_ms: float) -> float:
        if not self.is_playing:
            return self.timestamp
        return self.timestamp + (now_ms - self.last_updated) / 1000

    def to_record(self) -> dict[str, str]:
        return {k: json.dumps(v) for k, v in self.model_dump(by_alias=True).items()}

    @classmethod
    def from_record(cls, record: dict) -> "RoomState":
        return cls.model_validate({k: json.loads(v) for k, v in record.items()})

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class CreateRoomRequest(BaseModel):
    media_url: Optional[str] = None

class CreateRoomResponse(BaseModel):
    room_id: str
    host_id: str
    room_url: str
    ws_url: str
    state: dict

class JoinRoomRequest(BaseModel):
    participant_id: Optional[str] = None

class JoinRoomResponse(BaseModel):
    role: Role
    ws_url: str
    state: dict

class RoomDetailsResponse(BaseModel):
    state: dict
    position: float

class HostUpdateRequest(BaseModel):
    host_id: str
    is_playing: Optional[bool] = None
    timestamp: Optional[float] = Field(default=None, ge=0)

    @model_validator(mode="after")
    def check_not_empty(self):
        if self.is_playing is None and self.timestamp is None:
            raise ValueError("Update must set is_playing or timestamp")
        return self

    def to_update(self) -> RoomStateUpdate:
        return RoomStateUpdate(is_playing=self.is_playing, timestamp=self.timestamp)
