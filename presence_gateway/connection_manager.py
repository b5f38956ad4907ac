"""
Presence Connection Manager.

Thin orchestrator that composes the connection components:
- ConnectionRegistry: who is online
- WebSocketRateLimiter: inbound frame gating
- HeartbeatMonitor: liveness sweeps
- PresenceBroadcaster: Joined / Left / Roster fan-out
- ConnectionLifecycle: connect / join / disconnect transitions
- ConnectionStats: statistics aggregation

One manager owns one registry. The application creates a single manager
and passes it to every endpoint; tests create as many as they need.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

from presence_gateway.components.connection.heartbeat import HeartbeatMonitor, record_pong
from presence_gateway.components.connection.rate_limiter import WebSocketRateLimiter
from presence_gateway.components.connection.registry import Connection, ConnectionRegistry
from presence_gateway.components.core.constants import PresenceConstants
from presence_gateway.components.metrics.collector import MetricsCollector
from presence_gateway.core.connection import (
    ConnectionLifecycle,
    ConnectionStats,
    PresenceBroadcaster,
)
from shared.config.logging import get_logger
from shared.config.settings import settings

if TYPE_CHECKING:
    from fastapi import WebSocket
    from presence_gateway.core.connection.broadcaster import BroadcastScope

logger = get_logger(__name__)

__all__ = ["ConnectionManager"]


class ConnectionManager:
    """
    Manages presence connections.

    Configuration from settings:
    - presence_broadcast_scope: "room" (default) or "global" delivery of
      userJoined / userLeft

    Concurrency: all components run on the application's event loop and are
    only mutated from coroutines on it, so no locks are taken.
    """

    def __init__(
        self,
        registry: ConnectionRegistry | None = None,
        broadcast_scope: "BroadcastScope | None" = None,
        ping_interval: float = PresenceConstants.PING_INTERVAL,
        pong_timeout: float = PresenceConstants.PONG_TIMEOUT,
        max_messages: int = PresenceConstants.MAX_MESSAGES_PER_WINDOW,
        rate_window: float = PresenceConstants.RATE_LIMIT_WINDOW,
    ) -> None:
        """Initialize the connection manager with composed components."""
        self._registry = registry if registry is not None else ConnectionRegistry()
        self._metrics = MetricsCollector()
        self._rate_limiter = WebSocketRateLimiter(
            max_messages=max_messages,
            window_seconds=rate_window,
        )
        self._broadcaster = PresenceBroadcaster(
            registry=self._registry,
            metrics=self._metrics,
            scope=broadcast_scope or settings.presence_broadcast_scope,
        )
        self._lifecycle = ConnectionLifecycle(
            registry=self._registry,
            broadcaster=self._broadcaster,
            metrics=self._metrics,
        )
        self._heartbeat = HeartbeatMonitor(
            registry=self._registry,
            on_dead=self._on_heartbeat_timeout,
            interval_seconds=ping_interval,
            pong_timeout_seconds=pong_timeout,
        )
        self._stats = ConnectionStats(
            registry=self._registry,
            rate_limiter=self._rate_limiter,
            heartbeat=self._heartbeat,
            broadcaster=self._broadcaster,
            metrics=self._metrics,
        )

    # =========================================================================
    # Component access
    # =========================================================================

    @property
    def registry(self) -> ConnectionRegistry:
        return self._registry

    @property
    def heartbeat(self) -> HeartbeatMonitor:
        return self._heartbeat

    @property
    def rate_limiter(self) -> WebSocketRateLimiter:
        return self._rate_limiter

    @property
    def broadcaster(self) -> PresenceBroadcaster:
        return self._broadcaster

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # =========================================================================
    # Lifecycle (delegated to ConnectionLifecycle)
    # =========================================================================

    async def connect(self, websocket: "WebSocket") -> Connection:
        """Accept and register a WebSocket connection."""
        return await self._lifecycle.connect(websocket)

    async def join(self, conn: Connection, name: str, room: str) -> bool:
        """Apply a validated JOIN."""
        return await self._lifecycle.join(conn, name, room)

    async def disconnect(self, connection_id: str, reason: str = "closed") -> Connection | None:
        """Deregister a connection. Repeated calls are no-ops."""
        return await self._lifecycle.disconnect(connection_id, reason=reason)

    async def _on_heartbeat_timeout(self, conn: Connection) -> None:
        if await self._lifecycle.disconnect(conn.id, reason="heartbeat_timeout") is not None:
            self._metrics.increment("connections_heartbeat_timeouts")

    # =========================================================================
    # Inbound frames
    # =========================================================================

    def check_rate_limit(self, conn: Connection, now: float | None = None) -> bool:
        """Count an inbound frame; False means close for policy violation."""
        return self._rate_limiter.admit(conn, now)

    def record_rate_limit_rejection(self) -> None:
        self._metrics.increment("connections_rate_limited")

    def record_pong(self, conn: Connection) -> None:
        record_pong(conn)

    # =========================================================================
    # Heartbeat
    # =========================================================================

    def start_heartbeat(self) -> bool:
        """Start the heartbeat monitor. Only the first call has an effect."""
        return self._heartbeat.start()

    async def shutdown(self) -> None:
        """Stop accepting connections and stop the heartbeat monitor."""
        self._lifecycle.set_shutdown(True)
        await self._heartbeat.stop()

    # =========================================================================
    # Statistics
    # =========================================================================

    def get_stats(self) -> dict[str, Any]:
        """Get connection statistics."""
        return self._stats.get_stats()
