"""
WebSocket endpoint components.

Base receive loop, its mixins, and the presence endpoint.
"""

from presence_gateway.components.endpoints.base import WebSocketEndpointBase
from presence_gateway.components.endpoints.mixins import (
    PongMixin,
    RateLimitMixin,
    SessionLoggingMixin,
)
from presence_gateway.components.endpoints.handlers import PresenceEndpoint

__all__ = [
    "WebSocketEndpointBase",
    "RateLimitMixin",
    "PongMixin",
    "SessionLoggingMixin",
    "PresenceEndpoint",
]
