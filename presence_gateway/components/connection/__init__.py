"""
Connection management components.

Handles per-connection state: registry, heartbeat, rate limiting.
"""

from presence_gateway.components.connection.registry import Connection, ConnectionRegistry
from presence_gateway.components.connection.heartbeat import (
    HeartbeatMonitor,
    HeartbeatSweepResult,
    record_pong,
)
from presence_gateway.components.connection.rate_limiter import WebSocketRateLimiter

__all__ = [
    "Connection",
    "ConnectionRegistry",
    "HeartbeatMonitor",
    "HeartbeatSweepResult",
    "record_pong",
    "WebSocketRateLimiter",
]
