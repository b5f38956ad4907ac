"""
Connection Statistics.

Aggregates statistics from the connection components for the health
endpoint.
"""

from __future__ import annotations

from typing import Any, TYPE_CHECKING

if TYPE_CHECKING:
    from presence_gateway.components.connection.heartbeat import HeartbeatMonitor
    from presence_gateway.components.connection.rate_limiter import WebSocketRateLimiter
    from presence_gateway.components.connection.registry import ConnectionRegistry
    from presence_gateway.components.metrics.collector import MetricsCollector
    from presence_gateway.core.connection.broadcaster import PresenceBroadcaster


class ConnectionStats:
    """
    Aggregates connection statistics from components.

    Reads the registry directly, so call it from the event loop thread
    (an async route), never from a worker thread.
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        rate_limiter: "WebSocketRateLimiter",
        heartbeat: "HeartbeatMonitor",
        broadcaster: "PresenceBroadcaster",
        metrics: "MetricsCollector",
    ) -> None:
        self._registry = registry
        self._rate_limiter = rate_limiter
        self._heartbeat = heartbeat
        self._broadcaster = broadcaster
        self._metrics = metrics

    def get_stats(self) -> dict[str, Any]:
        """Get comprehensive connection statistics."""
        registry_stats = self._registry.get_stats()

        return {
            "total_connections": registry_stats["connections"],
            "joined_connections": registry_stats["joined_connections"],
            "rooms": registry_stats["rooms"],
            "broadcast_scope": self._broadcaster.scope,
            "registry": registry_stats,
            "heartbeat": self._heartbeat.get_stats(),
            "rate_limiter": self._rate_limiter.get_stats(),
            "metrics": self._metrics.get_snapshot(),
        }
