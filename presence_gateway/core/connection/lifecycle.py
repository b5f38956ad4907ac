"""
Connection Lifecycle Management.

Handles connection acceptance, JOIN and disconnection, and triggers the
presence notifications that belong to each transition.

State machine per connection:

    (accept) -> unjoined --valid JOIN--> joined
                   |                        |
                   +------(disconnect)------+--> removed (final)

Disconnect runs at most once per connection in effect: the registry
removal is the gate, and a second call finds nothing to remove.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from presence_gateway.components.connection.registry import Connection
from presence_gateway.components.events.types import init_message, user_list_message
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from fastapi import WebSocket
    from presence_gateway.components.connection.registry import ConnectionRegistry
    from presence_gateway.components.metrics.collector import MetricsCollector
    from presence_gateway.core.connection.broadcaster import PresenceBroadcaster

logger = get_logger(__name__)


class ConnectionLifecycle:
    """
    Manages the lifecycle of presence connections.

    Responsibilities:
    - Accept new transports and register them
    - Apply a JOIN and announce it
    - Deregister on close and announce the departure
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        broadcaster: "PresenceBroadcaster",
        metrics: "MetricsCollector",
    ) -> None:
        """
        Initialize lifecycle manager with dependencies.

        Args:
            registry: Connection registry
            broadcaster: Sends presence notifications
            metrics: Collects connection metrics
        """
        self._registry = registry
        self._broadcaster = broadcaster
        self._metrics = metrics
        self._shutdown = False

    def set_shutdown(self, value: bool) -> None:
        """Set shutdown state."""
        self._shutdown = value

    async def connect(self, websocket: "WebSocket") -> Connection:
        """
        Accept a WebSocket, register it and greet it with its id.

        The greeting is followed by the current roster, sent to the new
        connection only, so a client can show who is online before it joins.

        Args:
            websocket: The WebSocket to connect.

        Returns:
            The registered, unjoined Connection.

        Raises:
            ConnectionError: If the server is shutting down or the accept failed.
        """
        if self._shutdown:
            raise ConnectionError("Server is shutting down")

        try:
            await websocket.accept()
        except Exception as e:
            raise ConnectionError(f"WebSocket accept failed: {e}") from e

        conn = Connection(websocket=websocket)
        connection_id = self._registry.register(conn)
        self._metrics.increment("connections_accepted")

        logger.info("User connected", connection_id=connection_id)

        if not await self._broadcaster.send_to(conn, init_message(connection_id)):
            logger.warning("Failed to send init message", connection_id=connection_id)

        roster = user_list_message(self._broadcaster.roster())
        if not await self._broadcaster.send_to(conn, roster):
            logger.warning("Failed to send roster", connection_id=connection_id)

        return conn

    async def join(self, conn: Connection, name: str, room: str) -> bool:
        """
        Apply a validated JOIN to an unjoined connection.

        Name and room are immutable once set, so a JOIN on an already joined
        connection is ignored.

        Args:
            conn: The connection that sent the JOIN.
            name: Validated display name.
            room: Validated room.

        Returns:
            True if the connection transitioned to joined.
        """
        if conn.is_joined:
            logger.info(
                "Ignoring JOIN from already joined connection",
                connection_id=conn.id,
            )
            return False

        if conn.id not in self._registry:
            # Closed while the frame was being handled
            return False

        conn.join(name, room)
        logger.info("User joined", connection_id=conn.id, room_length=len(room))

        await self._broadcaster.broadcast_joined(conn)
        await self._broadcaster.broadcast_roster()
        return True

    async def disconnect(self, connection_id: str, reason: str = "closed") -> Connection | None:
        """
        Remove a connection and announce its departure if it had joined.

        Safe to call repeatedly and from several paths (receive loop exit,
        heartbeat eviction): only the call that actually removes the entry
        broadcasts.

        Args:
            connection_id: Id of the connection to remove.
            reason: Why the connection went away (for logs).

        Returns:
            The removed Connection, or None if it was already gone.
        """
        conn = self._registry.remove(connection_id)
        if conn is None:
            return None

        self._metrics.increment("connections_closed")
        logger.info("User disconnected", connection_id=connection_id, reason=reason)

        if conn.is_joined:
            await self._broadcaster.broadcast_left(conn)
            await self._broadcaster.broadcast_roster()

        return conn
