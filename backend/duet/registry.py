from dataclasses import dataclass
from typing import Dict


@dataclass
class Session:
    connection_id: str
    display_name: str
    avatar: str
    room_id: str
    origin: str


class ConnectionRegistry:
    """Owns every joined connection's session. Rooms only keep the ids."""

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}

    def add(self, session: Session) -> None:
        self._sessions[session.connection_id] = session

    def get(self, connection_id: str) -> Session | None:
        return self._sessions.get(connection_id)

    def remove(self, connection_id: str) -> Session | None:
        return self._sessions.pop(connection_id, None)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)
