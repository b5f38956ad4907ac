"""
Connection Registry - the in-memory record of who is online.

Maps connection id -> Connection. It is the single source of truth read by
the broadcaster and the heartbeat monitor and mutated by the connection
lifecycle.

Thread Safety:
- The gateway runs on a single asyncio event loop. Every mutation below is a
  plain dict operation with no await in between, so it is atomic with
  respect to other coroutines and no lock is needed.
- all() copies the key list up front and re-checks membership while
  iterating, so concurrent register/remove during a broadcast never raises
  and never yields an entry that has already been removed.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Callable, Iterator, TYPE_CHECKING

from starlette.websockets import WebSocketState

from presence_gateway.components.core.constants import WSCloseCode
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket

logger = get_logger(__name__)


@dataclass(eq=False)
class Connection:
    """
    Server-side state for one live client transport.

    The websocket is owned exclusively by this object: only send_json()
    and close() below touch it.
    """

    websocket: "WebSocket"
    id: str = ""
    name: str | None = None
    room: str | None = None

    # Liveness state (heartbeat monitor + PONG handler only)
    awaiting_pong: bool = False
    last_ping_sent_at: float = field(default_factory=time.monotonic)

    # Rate state (inbound frame processing only)
    message_count: int = 0
    window_start: float = field(default_factory=time.monotonic)

    connected_at: float = field(default_factory=time.monotonic)

    @property
    def is_joined(self) -> bool:
        """Whether a valid JOIN has assigned name and room."""
        return self.room is not None

    @property
    def is_open(self) -> bool:
        """
        Check if the transport is in connected state before sending.

        Starlette only exposes CONNECTING / CONNECTED / DISCONNECTED, so a
        connection may briefly look open after a close was initiated by the
        peer. Sends in that window fail and are handled by the caller.
        """
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def join(self, name: str, room: str) -> None:
        """Assign name and room together."""
        self.name = name
        self.room = room

    async def send_json(self, payload: dict[str, Any]) -> None:
        """Send a JSON message. Transport errors propagate to the caller."""
        await self.websocket.send_json(payload)

    async def close(self, code: int = WSCloseCode.NORMAL, reason: str | None = None) -> None:
        """Close the transport. With no arguments this is a plain 1000 close."""
        await self.websocket.close(code=code, reason=reason)


class ConnectionRegistry:
    """
    Registry of live connections keyed by id.

    Usage:
        registry = ConnectionRegistry()
        conn_id = registry.register(Connection(websocket))
        registry.get(conn_id)     # -> Connection | None
        registry.remove(conn_id)  # -> Connection | None
        for conn in registry.all():
            ...
    """

    def __init__(self, id_factory: Callable[[], str] | None = None) -> None:
        """
        Initialize an empty registry.

        Args:
            id_factory: Generates connection ids. Defaults to random UUID4
                        strings; tests may inject a deterministic factory.
        """
        self._connections: dict[str, Connection] = {}
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))
        self._total_registered = 0
        self._total_removed = 0

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def register(self, conn: Connection) -> str:
        """
        Insert a connection under a fresh unique id and return the id.

        The id is written onto the connection. A generated id that collides
        with a live one is discarded and regenerated.
        """
        connection_id = self._id_factory()
        while connection_id in self._connections:
            logger.warning("Connection id collision, regenerating", connection_id=connection_id)
            connection_id = self._id_factory()

        conn.id = connection_id
        self._connections[connection_id] = conn
        self._total_registered += 1
        return connection_id

    def get(self, connection_id: str) -> Connection | None:
        """Return the connection, or None if it is not registered."""
        return self._connections.get(connection_id)

    def remove(self, connection_id: str) -> Connection | None:
        """
        Delete and return the connection, or None if it was not registered.

        Removing twice is harmless: the second call returns None.
        """
        conn = self._connections.pop(connection_id, None)
        if conn is not None:
            self._total_removed += 1
        return conn

    def all(self) -> Iterator[Connection]:
        """
        Lazy snapshot of current connections.

        The id list is captured when all() is called. Entries removed
        afterwards are skipped; entries added afterwards are not included.
        The returned iterator cannot be restarted.
        """
        return self._iter_snapshot(list(self._connections))

    def _iter_snapshot(self, connection_ids: list[str]) -> Iterator[Connection]:
        for connection_id in connection_ids:
            conn = self._connections.get(connection_id)
            if conn is not None:
                yield conn

    def joined(self) -> list[Connection]:
        """Snapshot of connections that have completed a valid JOIN."""
        return [conn for conn in self.all() if conn.is_joined]

    def get_stats(self) -> dict[str, int]:
        """Get registry statistics."""
        joined = sum(1 for conn in self._connections.values() if conn.is_joined)
        rooms = {conn.room for conn in self._connections.values() if conn.is_joined}
        return {
            "connections": len(self._connections),
            "joined_connections": joined,
            "rooms": len(rooms),
            "total_registered": self._total_registered,
            "total_removed": self._total_removed,
        }
