"""
WebSocket Rate Limiter.

Per-connection rate limiting using a fixed window counter.
Prevents message flooding from a single client.

The counter lives on the Connection itself (message_count / window_start),
so there is no per-limiter bookkeeping to clean up when a connection goes
away and no cross-connection contention.

Fixed windows allow a burst straddling a window boundary to reach up to
twice the nominal rate. That is accepted behaviour.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from presence_gateway.components.core.constants import PresenceConstants

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection


class WebSocketRateLimiter:
    """
    Fixed window rate limiter for inbound WebSocket frames.

    Algorithm, per frame:
    - If more than window_seconds have elapsed since window_start, start a
      new window at now with a count of zero
    - Increment the count
    - Reject if the count now exceeds max_messages

    With the defaults, frames 1-20 in a window are admitted and frame 21
    is rejected.
    """

    def __init__(
        self,
        max_messages: int = PresenceConstants.MAX_MESSAGES_PER_WINDOW,
        window_seconds: float = PresenceConstants.RATE_LIMIT_WINDOW,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_messages: Maximum messages allowed per window.
            window_seconds: Window size in seconds.
        """
        self._max_messages = max_messages
        self._window_seconds = window_seconds

        # Metrics
        self._total_allowed = 0
        self._total_rejected = 0

    @property
    def max_messages(self) -> int:
        """Maximum messages allowed per window."""
        return self._max_messages

    @property
    def window_seconds(self) -> float:
        """Window size in seconds."""
        return self._window_seconds

    def admit(self, conn: "Connection", now: float | None = None) -> bool:
        """
        Count a frame from this connection and decide whether to process it.

        Args:
            conn: The connection the frame arrived on.
            now: Monotonic timestamp in seconds. If None, uses time.monotonic().

        Returns:
            True if the frame is admitted, False if the caller must close the
            connection for policy violation.
        """
        if now is None:
            now = time.monotonic()

        if now - conn.window_start > self._window_seconds:
            conn.message_count = 0
            conn.window_start = now

        conn.message_count += 1
        if conn.message_count > self._max_messages:
            self._total_rejected += 1
            return False

        self._total_allowed += 1
        return True

    def get_stats(self) -> dict[str, int | float]:
        """Get rate limiter statistics."""
        return {
            "max_messages_per_window": self._max_messages,
            "window_seconds": self._window_seconds,
            "total_allowed": self._total_allowed,
            "total_rejected": self._total_rejected,
        }

    def get_connection_usage(self, conn: "Connection", now: float | None = None) -> dict[str, int | float]:
        """
        Get rate limit usage for a specific connection.

        Args:
            conn: The connection to check.
            now: Monotonic timestamp in seconds. If None, uses time.monotonic().

        Returns:
            Dict with current message count and percentage used.
        """
        if now is None:
            now = time.monotonic()
        in_window = now - conn.window_start <= self._window_seconds
        current_count = conn.message_count if in_window else 0

        return {
            "messages_in_window": current_count,
            "max_messages": self._max_messages,
            "usage_percent": round(current_count / self._max_messages * 100, 1),
        }
