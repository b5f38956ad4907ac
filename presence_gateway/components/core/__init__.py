"""
Core components: constants and audit context.
"""

from presence_gateway.components.core.constants import (
    WSCloseCode,
    PresenceConstants,
    MessageType,
    RATE_LIMIT_CLOSE_REASON,
    SERVER_RUNNING_TEXT,
)
from presence_gateway.components.core.context import WebSocketContext, sanitize_log_data

__all__ = [
    "WSCloseCode",
    "PresenceConstants",
    "MessageType",
    "RATE_LIMIT_CLOSE_REASON",
    "SERVER_RUNNING_TEXT",
    "WebSocketContext",
    "sanitize_log_data",
]
