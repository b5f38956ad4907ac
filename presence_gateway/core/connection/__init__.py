"""
Connection Management Module.

Components composed by ConnectionManager:
- lifecycle.py: Connection accept/join/disconnect
- broadcaster.py: Presence notifications
- stats.py: Statistics aggregation
"""

from presence_gateway.core.connection.lifecycle import ConnectionLifecycle
from presence_gateway.core.connection.broadcaster import PresenceBroadcaster
from presence_gateway.core.connection.stats import ConnectionStats

__all__ = [
    "ConnectionLifecycle",
    "PresenceBroadcaster",
    "ConnectionStats",
]
