"""
Presence WebSocket endpoint.

Session protocol for one client:
- unjoined: connected, has an id, not visible in the roster
- joined: sent a valid JOIN, visible to others

Inbound frames after the rate limiter:
- JOIN {name, room}: both non-empty strings of at most 50 characters.
  Valid while unjoined -> joined, then userJoined + userList go out.
  Invalid -> warning logged, nothing changes, nothing is sent back.
- PONG: clears the outstanding heartbeat PING.
- anything else, including unparseable frames: dropped.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from fastapi import WebSocket
from pydantic import ValidationError

from presence_gateway.components.core.constants import MessageType
from presence_gateway.components.core.context import sanitize_log_data
from presence_gateway.components.endpoints.base import WebSocketEndpointBase
from presence_gateway.components.events.types import (
    JoinFrame,
    MalformedFrameError,
    parse_frame,
)
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection
    from presence_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class PresenceEndpoint(WebSocketEndpointBase):
    """
    WebSocket endpoint for presence clients.

    Features:
    - No authentication; a client identifies itself with JOIN
    - One JOIN per connection; name and room are fixed afterwards
    """

    def __init__(
        self,
        websocket: WebSocket,
        manager: "ConnectionManager",
        endpoint_name: str = "/",
    ):
        super().__init__(
            websocket=websocket,
            manager=manager,
            endpoint_name=endpoint_name,
        )

    async def register_connection(self) -> "Connection":
        """Accept, register and greet the connection."""
        return await self.manager.connect(self.websocket)

    async def unregister_connection(self, reason: str) -> None:
        """Remove from the registry; announces departure if joined."""
        if self.connection is not None:
            await self.manager.disconnect(self.connection.id, reason=reason)

    async def handle_message(self, data: str | bytes) -> None:
        """Dispatch one admitted frame."""
        try:
            frame = parse_frame(data)
        except MalformedFrameError as e:
            logger.error(
                "Failed to parse frame",
                error=str(e),
                frame=sanitize_log_data(data),
            )
            self.manager.metrics.increment("frames_malformed")
            return

        self.manager.metrics.increment("frames_processed")
        message_type = frame.get("type")

        if message_type == MessageType.JOIN:
            await self._handle_join(frame)
        elif message_type == MessageType.PONG:
            self.acknowledge_pong()
        else:
            self.manager.metrics.increment("frames_ignored")
            logger.debug(
                "Ignoring unknown message type",
                message_type=sanitize_log_data(message_type),
            )

    async def _handle_join(self, frame: dict[str, Any]) -> None:
        try:
            join = JoinFrame.model_validate(frame)
        except ValidationError as e:
            logger.warning(
                "Invalid JOIN data",
                errors=[
                    {"field": ".".join(str(p) for p in err["loc"]), "type": err["type"]}
                    for err in e.errors()
                ],
            )
            self.manager.metrics.increment("frames_invalid_join")
            return

        if await self.manager.join(self.connection, join.name, join.room):
            self.context.room = join.room
            self.context.audit("JOIN")
