import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict

ROOM_CAPACITY = 2


@dataclass
class PlaybackState:
    track_index: int = 0
    playing: bool = False
    position: float = 0.0
    last_updated: float = 0.0

    def as_payload(self) -> dict:
        return {
            "trackIndex": self.track_index,
            "playing": self.playing,
            "position": self.position,
        }


@dataclass
class Room:
    room_id: str
    members: list[str] = field(default_factory=list)  # join order
    origins: set[str] = field(default_factory=set)
    playback: PlaybackState = field(default_factory=PlaybackState)

    @property
    def is_full(self) -> bool:
        return len(self.members) >= ROOM_CAPACITY

    def others(self, connection_id: str) -> list[str]:
        return [m for m in self.members if m != connection_id]


@dataclass
class _LockEntry:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class RoomDirectory:
    """Room records keyed by room id, plus one lock per active room id.

    A room exists only while it has members; callers must hold
    ``locked(room_id)`` around any read-then-write of a room.
    """

    def __init__(self) -> None:
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, _LockEntry] = {}

    @asynccontextmanager
    async def locked(self, room_id: str) -> AsyncIterator[None]:
        entry = self._locks.get(room_id)
        if entry is None:
            entry = self._locks[room_id] = _LockEntry()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                self._locks.pop(room_id, None)

    def get_or_create(self, room_id: str, now: float) -> Room:
        room = self._rooms.get(room_id)
        if room is None:
            room = self._rooms[room_id] = Room(room_id, playback=PlaybackState(last_updated=now))
        return room

    def get(self, room_id: str) -> Room | None:
        return self._rooms.get(room_id)

    def discard_if_empty(self, room_id: str) -> bool:
        room = self._rooms.get(room_id)
        if room is not None and not room.members:
            del self._rooms[room_id]
            return True
        return False

    def __contains__(self, room_id: str) -> bool:
        return room_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)
