"""
Receive loop shared by WebSocket endpoints.

A session is: register -> read frames until something ends the loop ->
deregister. Starlette's open / message / close events collapse into that
single coroutine, and the ``finally`` clause is the only place a session is
torn down.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from fastapi import WebSocket, WebSocketDisconnect

from presence_gateway.components.core.context import WebSocketContext
from presence_gateway.components.endpoints.mixins import (
    PongMixin,
    RateLimitMixin,
    SessionLoggingMixin,
)
from shared.config.logging import get_logger
from shared.infrastructure.correlation import bind_connection_id, reset_connection_id

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection
    from presence_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class WebSocketEndpointBase(RateLimitMixin, PongMixin, SessionLoggingMixin, ABC):
    """
    One instance serves one WebSocket for its whole life.

    Subclasses provide registration, deregistration and frame handling;
    rate limiting happens here, before handle_message() sees a frame.
    """

    def __init__(self, websocket: WebSocket, manager: "ConnectionManager", endpoint_name: str):
        self.websocket = websocket
        self.manager = manager
        self.endpoint_name = endpoint_name
        self.context = WebSocketContext.from_websocket(websocket, endpoint_name)
        self.connection: "Connection | None" = None

    @abstractmethod
    async def register_connection(self) -> "Connection":
        """Accept and register. Raises ConnectionError to refuse the session."""

    @abstractmethod
    async def unregister_connection(self, reason: str) -> None:
        """Deregister; called exactly once per registered session."""

    @abstractmethod
    async def handle_message(self, data: str | bytes) -> None:
        """Handle a frame that passed the rate limiter."""

    async def run(self) -> None:
        """Serve the socket until the peer leaves or the server closes it."""
        try:
            self.connection = await self.register_connection()
        except ConnectionError as e:
            self.log_session_rejected(str(e))
            return

        self.context.connection_id = self.connection.id
        token = bind_connection_id(self.connection.id)
        self.log_session_start()

        reason = "client_disconnect"
        try:
            reason = await self._read_frames()
        except WebSocketDisconnect as e:
            logger.debug("Peer closed the socket", code=e.code)
        except (ConnectionError, RuntimeError, OSError) as e:
            reason = "transport_error"
            logger.warning("WebSocket transport error", error=type(e).__name__, detail=str(e))
        finally:
            self.log_session_end(reason)
            await self.unregister_connection(reason)
            reset_connection_id(token)

    async def _read_frames(self) -> str:
        """
        Read until a frame is rejected by the rate limiter.

        Returns:
            The server-side reason for ending the session. A peer close
            surfaces as WebSocketDisconnect instead.
        """
        while True:
            data = await self._next_frame()
            if not await self.admit_frame():
                return "rate_limited"
            await self.handle_message(data)

    async def _next_frame(self) -> str | bytes:
        message = await self.websocket.receive()
        if message["type"] == "websocket.disconnect":
            raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

        if message.get("text") is not None:
            return message["text"]
        return message.get("bytes") or b""
