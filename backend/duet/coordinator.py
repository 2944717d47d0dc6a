import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

from .config import Settings
from .registry import ConnectionRegistry, Session
from .rooms import ROOM_CAPACITY, Room, RoomDirectory
from .schemas import CallSignal, InboundEvent, MessageSeen, MusicControl, SendMessage, Typing

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Delivery:
    """One outbound frame addressed to a single connection."""

    to: str
    type: str
    data: dict

    def frame(self) -> dict:
        return {"type": self.type, **self.data}


class JoinOutcome(str, Enum):
    JOINED = "joined-room"
    ROOM_FULL = "room-full"
    ORIGIN_ALREADY_PRESENT = "origin-already-connected"
    ALREADY_JOINED = "already-joined"


@dataclass
class JoinResult:
    outcome: JoinOutcome
    deliveries: list[Delivery] = field(default_factory=list)

    @property
    def joined(self) -> bool:
        return self.outcome is JoinOutcome.JOINED


class RoomCoordinator:
    """Pairs connections into two-person rooms and routes their events.

    Every operation returns the frames to send instead of sending them, so
    the transport decides how delivery happens. Membership changes and
    playback updates run under the room's lock; rooms do not share locks.
    """

    def __init__(
        self,
        *,
        origin_dedup: bool = False,
        implicit_call_end: bool = True,
        max_message_length: int = 4000,
        max_display_name_length: int = 64,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.registry = ConnectionRegistry()
        self.rooms = RoomDirectory()
        self.origin_dedup = origin_dedup
        self.implicit_call_end = implicit_call_end
        self.max_message_length = max_message_length
        self.max_display_name_length = max_display_name_length
        self._clock = clock

    @classmethod
    def from_settings(cls, settings: Settings) -> "RoomCoordinator":
        return cls(
            origin_dedup=settings.origin_dedup,
            implicit_call_end=settings.implicit_call_end,
            max_message_length=settings.max_message_length,
            max_display_name_length=settings.max_display_name_length,
        )

    # ---------------------- ADMISSION ----------------------
    async def join(
        self, connection_id: str, room_id: str, display_name: str, avatar: str, origin: str
    ) -> JoinResult:
        current = self.registry.get(connection_id)
        if current is not None:
            logger.info("connection %s already in room %s, join to %s rejected", connection_id, current.room_id, room_id)
            return self._reject(connection_id, JoinOutcome.ALREADY_JOINED, current.room_id)

        name = display_name[: self.max_display_name_length]
        async with self.rooms.locked(room_id):
            now = self._clock()
            room = self.rooms.get_or_create(room_id, now)
            if self.origin_dedup and origin in room.origins:
                logger.info("room %s already has a member from %s", room_id, origin)
                return self._reject(connection_id, JoinOutcome.ORIGIN_ALREADY_PRESENT, room_id)
            if room.is_full:
                logger.info("room %s is full, %s turned away", room_id, name)
                return self._reject(connection_id, JoinOutcome.ROOM_FULL, room_id)

            room.members.append(connection_id)
            room.origins.add(origin)
            session = Session(connection_id, name, avatar, room_id, origin)
            self.registry.add(session)
            deliveries = self._announce_join(room, session, now)

        logger.info("[room %s] %s joined (%d/%d users)", room_id, name, len(room.members), ROOM_CAPACITY)
        return JoinResult(JoinOutcome.JOINED, deliveries)

    @staticmethod
    def _reject(connection_id: str, outcome: JoinOutcome, room_id: str) -> JoinResult:
        return JoinResult(outcome, [Delivery(connection_id, outcome.value, {"roomId": room_id})])

    def _announce_join(self, room: Room, session: Session, now: float) -> list[Delivery]:
        count = len(room.members)
        partners = room.others(session.connection_id)
        elapsed = max(0.0, now - room.playback.last_updated) if partners else 0.0
        deliveries = [
            Delivery(session.connection_id, "joined-room", {
                "roomId": room.room_id,
                "userCount": count,
                "isAlone": count == 1,
                "musicState": {**room.playback.as_payload(), "elapsed": elapsed},
            })
        ]
        for partner_id in partners:
            deliveries.append(Delivery(partner_id, "partner-joined", {
                "name": session.display_name,
                "avatar": session.avatar,
                "userCount": count,
            }))
        if count == ROOM_CAPACITY:
            partner = self.registry.get(partners[0])
            if partner is not None:
                deliveries.append(Delivery(session.connection_id, "partner-already-here", {
                    "name": partner.display_name,
                    "avatar": partner.avatar,
                }))
        return deliveries

    # ---------------------- RELAY ----------------------
    async def relay(self, connection_id: str, event: InboundEvent) -> list[Delivery]:
        session = self.registry.get(connection_id)
        if session is None:
            logger.debug("dropping %s from connection %s without a session", event.type, connection_id)
            return []
        if isinstance(event, MusicControl):
            return await self._music_control(session, event)

        room = self.rooms.get(session.room_id)
        if room is None:
            logger.debug("dropping %s for vanished room %s", event.type, session.room_id)
            return []
        kind, payload = self._forward(session, event)
        return [Delivery(peer, kind, payload) for peer in room.others(connection_id)]

    def _forward(self, session: Session, event: InboundEvent) -> tuple[str, dict]:
        if isinstance(event, SendMessage):
            return "receive-message", {
                "from": session.display_name,
                "avatar": session.avatar,
                "message": event.message[: self.max_message_length],
                "timestamp": event.timestamp,
                "msgId": event.msg_id,
                "socketId": session.connection_id,
            }
        if isinstance(event, Typing):
            return "partner-typing", {"isTyping": event.is_typing, "name": session.display_name}
        if isinstance(event, MessageSeen):
            return "message-seen", {"msgId": event.msg_id}
        if isinstance(event, CallSignal):
            payload = event.passthrough()
            if event.type in ("video-offer", "video-answer"):
                payload["from"] = session.connection_id
            elif event.type == "call-request":
                payload["name"] = session.display_name
                payload["avatar"] = session.avatar
            return event.type, payload
        raise TypeError(f"{event.type} is not a relayed event")

    async def _music_control(self, session: Session, event: MusicControl) -> list[Delivery]:
        async with self.rooms.locked(session.room_id):
            room = self.rooms.get(session.room_id)
            if room is None or session.connection_id not in room.members:
                logger.debug("music-control for unknown room %s dropped", session.room_id)
                return []
            playback = room.playback
            playback.track_index = event.track_index
            playback.playing = event.playing
            playback.position = event.position
            playback.last_updated = max(playback.last_updated, self._clock())
            payload = playback.as_payload()
            return [Delivery(peer, "music-sync", payload) for peer in room.others(session.connection_id)]

    # ---------------------- DEPARTURE ----------------------
    async def leave(self, connection_id: str) -> list[Delivery]:
        session = self.registry.get(connection_id)
        if session is None:
            return []

        async with self.rooms.locked(session.room_id):
            if self.registry.remove(connection_id) is None:
                return []
            room = self.rooms.get(session.room_id)
            if room is None:
                return []
            if connection_id in room.members:
                room.members.remove(connection_id)
            if not any(self._origin_of(m) == session.origin for m in room.members):
                room.origins.discard(session.origin)

            if self.rooms.discard_if_empty(room.room_id):
                logger.info("[room %s] %s left, room closed", room.room_id, session.display_name)
                return []

            deliveries = []
            for peer in room.members:
                deliveries.append(Delivery(peer, "partner-left", {"name": session.display_name}))
                if self.implicit_call_end:
                    deliveries.append(Delivery(peer, "call-ended", {"reason": "partner-left"}))

        logger.info("[room %s] %s left (%d/%d users)", room.room_id, session.display_name, len(room.members), ROOM_CAPACITY)
        return deliveries

    def _origin_of(self, connection_id: str) -> str | None:
        session = self.registry.get(connection_id)
        return session.origin if session else None

    # ---------------------- QUERIES ----------------------
    def occupancy(self, room_id: str) -> int | None:
        room = self.rooms.get(room_id)
        return len(room.members) if room else None
