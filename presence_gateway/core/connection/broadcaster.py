"""
Presence Broadcaster.

Computes recipients for presence notifications and sends them.

Every send is best-effort: a failure to one recipient is logged and
counted, never aborts delivery to the others, and never closes the failing
recipient. A transport that is truly dead is reaped by the heartbeat
monitor.
"""

from __future__ import annotations

import asyncio
from typing import Any, Iterable, Literal, TYPE_CHECKING

from presence_gateway.components.events.types import (
    PresenceUser,
    user_joined_message,
    user_left_message,
    user_list_message,
)
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection, ConnectionRegistry
    from presence_gateway.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

BroadcastScope = Literal["room", "global"]


class PresenceBroadcaster:
    """
    Sends Joined, Left and Roster notifications.

    Recipient rules:
    - Joined: every other open connection in the joiner's room ("room"
      scope) or every other open connection ("global" scope). Never the
      joiner itself.
    - Left: every open connection in the departed room, or all open
      connections in "global" scope. Sent after registry removal, so the
      departed connection is never a recipient.
    - Roster: every open connection, joined or not. The list holds every
      joined connection and is rebuilt from the registry on each call.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        metrics: "MetricsCollector",
        scope: BroadcastScope = "room",
        batch_size: int = 50,
    ) -> None:
        """
        Initialize broadcaster with dependencies.

        Args:
            registry: Source of recipients and roster entries.
            metrics: Collects broadcast metrics.
            scope: "room" or "global" delivery for Joined/Left.
            batch_size: Number of sends awaited together.
        """
        if scope not in ("room", "global"):
            raise ValueError(f"Invalid broadcast scope: {scope!r}")
        self._registry = registry
        self._metrics = metrics
        self._scope = scope
        self._batch_size = batch_size

    @property
    def scope(self) -> BroadcastScope:
        return self._scope

    # =========================================================================
    # Public notifications
    # =========================================================================

    async def send_to(self, conn: "Connection", payload: dict[str, Any]) -> bool:
        """
        Unicast to a single connection.

        Returns:
            True if sent successfully, False otherwise.
        """
        return await self._send_to_connection(conn, payload)

    async def broadcast_joined(self, joiner: "Connection") -> int:
        """
        Announce a newly joined connection.

        Returns:
            Number of connections that received the message.
        """
        recipients = [
            conn
            for conn in self._registry.all()
            if conn.id != joiner.id and conn.is_open and self._in_scope(conn, joiner.room)
        ]
        payload = user_joined_message(PresenceUser.from_connection(joiner))
        return await self._broadcast_to_connections(recipients, payload, context="joined")

    async def broadcast_left(self, departed: "Connection") -> int:
        """
        Announce a departed connection. Call after it left the registry.

        Returns:
            Number of connections that received the message.
        """
        recipients = [
            conn
            for conn in self._registry.all()
            if conn.id != departed.id and conn.is_open and self._in_scope(conn, departed.room)
        ]
        payload = user_left_message(departed.id)
        return await self._broadcast_to_connections(recipients, payload, context="left")

    async def broadcast_roster(self) -> int:
        """
        Send the current roster to every open connection.

        Returns:
            Number of connections that received the message.
        """
        payload = user_list_message(self.roster())
        recipients = [conn for conn in self._registry.all() if conn.is_open]
        return await self._broadcast_to_connections(recipients, payload, context="roster")

    def roster(self) -> list[PresenceUser]:
        """Current list of joined connections, recomputed from the registry."""
        return [PresenceUser.from_connection(conn) for conn in self._registry.joined()]

    # =========================================================================
    # Internals
    # =========================================================================

    def _in_scope(self, conn: "Connection", room: str | None) -> bool:
        if self._scope == "global":
            return True
        return conn.room is not None and conn.room == room

    async def _send_to_connection(
        self,
        conn: "Connection",
        payload: dict[str, Any],
    ) -> bool:
        """
        Send to a single connection, returning success status.

        Args:
            conn: The recipient.
            payload: Message payload to send.

        Returns:
            True if sent successfully, False otherwise.
        """
        if not conn.is_open:
            return False
        try:
            await conn.send_json(payload)
            return True
        except Exception as e:
            logger.debug(
                "Send failed",
                connection_id=conn.id,
                message_type=payload.get("type"),
                error=type(e).__name__,
                detail=str(e),
            )
            return False

    async def _broadcast_to_connections(
        self,
        connections: Iterable["Connection"],
        payload: dict[str, Any],
        context: str = "broadcast",
    ) -> int:
        """
        Send to multiple connections in parallel batches.

        Args:
            connections: Recipients.
            payload: Message payload to send.
            context: Context string for logging.

        Returns:
            Number of connections that received the message.
        """
        connections = list(connections)
        if not connections:
            return 0

        sent = 0
        failed = 0

        for i in range(0, len(connections), self._batch_size):
            batch = connections[i : i + self._batch_size]
            results = await asyncio.gather(
                *[self._send_to_connection(conn, payload) for conn in batch],
                return_exceptions=True,
            )

            for conn, result in zip(batch, results):
                if result is True:
                    sent += 1
                else:
                    failed += 1
                    if isinstance(result, BaseException):
                        logger.warning(
                            "Broadcast send raised",
                            context=context,
                            connection_id=conn.id,
                            error=type(result).__name__,
                        )

        self._metrics.increment("broadcasts_total")
        if failed > 0:
            self._metrics.increment("broadcasts_failed")
            self._metrics.increment("broadcasts_failed_recipients", failed)
            logger.debug(
                "Broadcast completed with failures",
                context=context,
                sent=sent,
                failed=failed,
                total=len(connections),
            )

        return sent

    def get_stats(self) -> dict[str, int | str]:
        """Get broadcaster configuration."""
        return {
            "scope": self._scope,
            "batch_size": self._batch_size,
        }
