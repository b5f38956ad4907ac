"""
Presence Gateway Core Module.

- connection/: Connection lifecycle, broadcasting, stats
"""

from presence_gateway.core.connection import (
    ConnectionLifecycle,
    PresenceBroadcaster,
    ConnectionStats,
)

__all__ = [
    "ConnectionLifecycle",
    "PresenceBroadcaster",
    "ConnectionStats",
]
