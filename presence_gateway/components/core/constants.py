"""
Presence Gateway Constants.

Centralized protocol constants. These are fixed for the wire protocol and
not exposed through settings.
"""

from enum import IntEnum
from typing import Final

__all__ = [
    "WSCloseCode",
    "PresenceConstants",
    "MessageType",
    "RATE_LIMIT_CLOSE_REASON",
    "SERVER_RUNNING_TEXT",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes used by the gateway.

    Standard codes (1000-1999) from RFC 6455.
    """

    NORMAL = 1000  # Normal closure, also used for heartbeat timeout
    POLICY_VIOLATION = 1008  # Rate limit exceeded


class MessageType:
    """Wire-level message type discriminators."""

    # Client -> server
    JOIN: Final[str] = "JOIN"
    PONG: Final[str] = "PONG"

    # Server -> client
    INIT: Final[str] = "init"
    PING: Final[str] = "PING"
    USER_JOINED: Final[str] = "userJoined"
    USER_LEFT: Final[str] = "userLeft"
    USER_LIST: Final[str] = "userList"


class PresenceConstants:
    """
    Presence protocol constants.

    Durations are declared in milliseconds, matching the values clients are
    documented against, with second-based aliases for use with time.monotonic()
    and asyncio.sleep().
    """

    # ==========================================================================
    # JOIN validation
    # ==========================================================================

    MAX_NAME_LENGTH: Final[int] = 50
    MAX_ROOM_LENGTH: Final[int] = 50

    # ==========================================================================
    # Heartbeat
    # ==========================================================================

    # PING_INTERVAL: period of the process-wide heartbeat sweep
    PING_INTERVAL_MS: Final[int] = 45_000

    # PONG_TIMEOUT: a PING unanswered for longer than this is a dead peer.
    # Only checked on the next sweep, so effective detection takes up to
    # PING_INTERVAL + PONG_TIMEOUT.
    PONG_TIMEOUT_MS: Final[int] = 10_000

    # ==========================================================================
    # Rate limiting (fixed window)
    # ==========================================================================

    RATE_LIMIT_WINDOW_MS: Final[int] = 10_000
    MAX_MESSAGES_PER_WINDOW: Final[int] = 20

    # ==========================================================================
    # Seconds
    # ==========================================================================

    PING_INTERVAL: Final[float] = PING_INTERVAL_MS / 1000
    PONG_TIMEOUT: Final[float] = PONG_TIMEOUT_MS / 1000
    RATE_LIMIT_WINDOW: Final[float] = RATE_LIMIT_WINDOW_MS / 1000

    # ==========================================================================
    # Logging
    # ==========================================================================

    # Maximum length of client-supplied text copied into log lines
    LOG_SNIPPET_LENGTH: Final[int] = 100


RATE_LIMIT_CLOSE_REASON: Final[str] = "Rate limit exceeded"
SERVER_RUNNING_TEXT: Final[str] = "WebSocket server running"
