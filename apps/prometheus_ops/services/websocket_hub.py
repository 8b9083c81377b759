from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Protocol, Set

from prometheus_client import Gauge

from ..models.metric_models import utcnow

logger = logging.getLogger("prometheus_ops.websocket")

WEBSOCKET_CLIENTS = Gauge(
    "prometheus_ops_websocket_clients",
    "Connected live-update clients",
)


class JsonConnection(Protocol):
    async def send_json(self, data: Any) -> None: ...


@dataclass
class ClientState:
    connection: JsonConnection
    # None means "every topic" until the client subscribes explicitly.
    topics: Optional[Set[str]] = None
    connected_at: float = field(default_factory=lambda: utcnow().timestamp())

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics


class WebSocketHub:
    """
    Topic-filtered fan-out to live clients.

    Frames:
      - on connect: {"type": "system_state", "data": {...}}
      - broadcast:  {"topic": <topic>, "data": <payload>}
    Clients send {"type": "subscribe" | "unsubscribe", "topics": [...]}.
    """

    def __init__(self) -> None:
        self._clients: Dict[int, ClientState] = {}

    async def connect(self, connection: JsonConnection) -> ClientState:
        state = ClientState(connection=connection)
        self._clients[id(connection)] = state
        WEBSOCKET_CLIENTS.set(len(self._clients))
        logger.info("New WebSocket client connected")
        await self.send_system_state(state)
        return state

    def disconnect(self, connection: JsonConnection) -> None:
        if self._clients.pop(id(connection), None) is not None:
            WEBSOCKET_CLIENTS.set(len(self._clients))
            logger.info("WebSocket client disconnected")

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def send_system_state(self, state: ClientState) -> None:
        await state.connection.send_json(
            {
                "type": "system_state",
                "data": {
                    "timestamp": utcnow().isoformat(),
                    "status": "active",
                    "connectedClients": self.client_count,
                },
            }
        )

    def handle_message(self, connection: JsonConnection, message: Dict[str, Any]) -> None:
        state = self._clients.get(id(connection))
        if state is None:
            logger.warning("Message from unknown WebSocket client ignored")
            return

        msg_type = message.get("type")
        topics = _topics(message.get("topics"))

        if msg_type == "subscribe":
            state.topics = set(topics)
            logger.info("Client subscribed to topics: %s", ", ".join(topics))
        elif msg_type == "unsubscribe":
            if state.topics is not None:
                state.topics.difference_update(topics)
            logger.info("Client unsubscribed from topics: %s", ", ".join(topics))
        else:
            logger.warning("Unknown message type: %s", msg_type)

    async def broadcast(self, topic: str, data: Any) -> int:
        """Send to every interested client; returns the number reached."""
        frame = {"topic": topic, "data": data}
        delivered = 0
        for key, state in list(self._clients.items()):
            if not state.wants(topic):
                continue
            try:
                await state.connection.send_json(frame)
                delivered += 1
            except Exception:  # noqa: BLE001
                logger.exception("Failed to push %s frame, dropping client", topic)
                self._clients.pop(key, None)
                WEBSOCKET_CLIENTS.set(len(self._clients))
        return delivered


def _topics(raw: Optional[Iterable[Any]]) -> List[str]:
    if not raw:
        return []
    return [str(t) for t in raw]
