from typing import Annotated, Literal, Union, get_args

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter
from pydantic.alias_generators import to_camel

CallSignalType = Literal[
    "call-request",
    "call-cancelled",
    "call-accepted",
    "call-rejected",
    "call-ended",
    "video-offer",
    "video-answer",
    "ice-candidate",
    "toggle-video",
    "toggle-audio",
]
CALL_SIGNALS = get_args(CallSignalType)


class Event(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class JoinRoom(Event):
    type: Literal["join-room"]
    room_id: str = Field(min_length=1, max_length=128)
    user_name: str = ""
    avatar: str = ""


class SendMessage(Event):
    type: Literal["send-message"]
    message: str
    timestamp: int | float | str | None = None
    msg_id: str | None = None


class Typing(Event):
    type: Literal["typing"]
    is_typing: bool = False


class MessageSeen(Event):
    type: Literal["message-seen"]
    msg_id: str


class MusicControl(Event):
    type: Literal["music-control"]
    track_index: int = Field(ge=0)
    playing: bool
    position: float = Field(ge=0)


class CallSignal(Event):
    """Call negotiation frame. Fields other than ``type`` are opaque."""

    model_config = ConfigDict(extra="allow")

    type: CallSignalType

    def passthrough(self) -> dict:
        extra = dict(self.model_extra or {})
        extra.pop("roomId", None)
        return extra


class Leaving(Event):
    type: Literal["leaving"]


InboundEvent = Annotated[
    Union[JoinRoom, SendMessage, Typing, MessageSeen, MusicControl, CallSignal, Leaving],
    Field(discriminator="type"),
]

_inbound = TypeAdapter(InboundEvent)


def parse_event(raw: str | bytes) -> InboundEvent:
    return _inbound.validate_json(raw)


class RoomCreated(Event):
    room_id: str
    link: str


class RoomOut(Event):
    room_id: str
    user_count: int
