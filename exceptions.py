class SyncStreamError(Exception):
    """Base class for room sync errors."""


class RoomNotFoundError(SyncStreamError):
    def __init__(self, room_id: str):
        super().__init__(f"Room {room_id} not found")
        self.room_id = room_id


class InvalidMediaReferenceError(SyncStreamError):
    def __init__(self, media_ref: str):
        super().__init__(f"Not a valid YouTube reference: {media_ref!r}")
        self.media_ref = media_ref


class NotHostError(SyncStreamError):
    def __init__(self, room_id: str):
        super().__init__(f"Only the host may update room {room_id}")
        self.room_id = room_id


class StoreError(SyncStreamError):
    """A read or write against the state store failed."""
