import logging
from typing import Dict, Iterable

from fastapi import WebSocket

from .coordinator import Delivery

logger = logging.getLogger(__name__)


class ConnectionHub:
    """Open sockets by connection id. Delivery is best-effort."""

    def __init__(self) -> None:
        self.sockets: Dict[str, WebSocket] = {}

    def add(self, connection_id: str, ws: WebSocket) -> None:
        self.sockets[connection_id] = ws

    def remove(self, connection_id: str) -> None:
        self.sockets.pop(connection_id, None)

    async def deliver(self, deliveries: Iterable[Delivery]) -> None:
        for delivery in deliveries:
            ws = self.sockets.get(delivery.to)
            if ws is None:
                logger.debug("no socket for %s, dropping %s", delivery.to, delivery.type)
                continue
            try:
                await ws.send_json(delivery.frame())
            except Exception as exc:
                # the receive loop of that socket runs the leave
                logger.warning("delivery of %s to %s failed: %s", delivery.type, delivery.to, exc)
