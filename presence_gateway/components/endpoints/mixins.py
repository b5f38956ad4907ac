"""
Behaviour mixed into WebSocketEndpointBase.

RateLimitMixin       -> counts each inbound frame, closes 1008 on overflow
PongMixin            -> clears the outstanding heartbeat PING
SessionLoggingMixin  -> connect / disconnect / rejection log and audit lines

Each mixin declares what it needs from the host class as a Protocol so the
type checker can follow ``self`` without a shared base.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

from fastapi import WebSocket

from presence_gateway.components.core.constants import RATE_LIMIT_CLOSE_REASON, WSCloseCode
from shared.config.logging import audit_rate_limit, get_logger

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection
    from presence_gateway.components.core.context import WebSocketContext
    from presence_gateway.connection_manager import ConnectionManager

logger = get_logger(__name__)


class EndpointHost(Protocol):
    """Attributes every endpoint provides once registration succeeded."""

    websocket: WebSocket
    manager: "ConnectionManager"
    connection: "Connection"
    endpoint_name: str
    context: "WebSocketContext"


class RateLimitMixin:
    """Gate applied to every frame before it is parsed."""

    async def admit_frame(self: EndpointHost) -> bool:
        """
        Count the frame just received.

        Returns:
            False once the connection went over its window budget. The
            transport has then been closed with 1008 and the caller must
            stop reading.
        """
        conn = self.connection
        if self.manager.check_rate_limit(conn):
            return True

        limiter = self.manager.rate_limiter
        usage = limiter.get_connection_usage(conn)
        logger.warning(
            "Rate limit exceeded",
            connection_id=conn.id,
            frames_in_window=usage["messages_in_window"],
            limit=usage["max_messages"],
            usage_percent=usage["usage_percent"],
        )
        audit_rate_limit(
            endpoint=self.endpoint_name,
            connection_id=conn.id,
            limit=limiter.max_messages,
            window=limiter.window_seconds,
        )
        self.manager.record_rate_limit_rejection()

        try:
            await self.websocket.close(
                code=WSCloseCode.POLICY_VIOLATION,
                reason=RATE_LIMIT_CLOSE_REASON,
            )
        except (ConnectionError, RuntimeError, OSError) as e:
            # Peer already gone; deregistration still follows
            logger.debug("Rate limit close failed", connection_id=conn.id, error=str(e))
        return False


class PongMixin:
    """Heartbeat acknowledgement."""

    def acknowledge_pong(self: EndpointHost) -> None:
        self.manager.record_pong(self.connection)


class SessionLoggingMixin:
    """Log and audit lines for the session's start and end."""

    def log_session_start(self: EndpointHost) -> None:
        logger.info("Presence socket opened", **self.context.log_fields(client=self.context.client))
        self.context.audit("CONNECT")

    def log_session_end(self: EndpointHost, reason: str) -> None:
        logger.info(
            "Presence socket closed",
            **self.context.log_fields(reason=reason, joined=self.connection.is_joined),
        )
        self.context.audit("DISCONNECT", reason=reason)

    def log_session_rejected(self: EndpointHost, reason: str) -> None:
        logger.warning(
            "Presence socket rejected",
            endpoint=self.endpoint_name,
            client=self.context.client,
            reason=reason,
        )
        self.context.audit("CONNECT_REJECTED", reason=reason)


__all__ = [
    "EndpointHost",
    "RateLimitMixin",
    "PongMixin",
    "SessionLoggingMixin",
]
