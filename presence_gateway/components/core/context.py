"""
Per-session metadata for log and audit lines, and the sanitizer applied to
every client-supplied string before it reaches a log record.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from presence_gateway.components.core.constants import PresenceConstants
from shared.config.logging import audit_connection_event

if TYPE_CHECKING:
    from fastapi import WebSocket


# C0/C1 controls, zero-width and bidi marks, isolates, BOM
_INVISIBLE = re.compile(
    r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]"
)

# Applied after _INVISIBLE, so only quote and backslash remain to escape
_ESCAPES = str.maketrans({"\\": "\\\\", '"': '\\"'})


def sanitize_log_data(data: Any, max_length: int = PresenceConstants.LOG_SNIPPET_LENGTH) -> str:
    """
    Make a client-supplied value safe to embed in a log line.

    The value is stringified, cut to max_length characters ("..." marks a
    cut), stripped of control and invisible formatting characters, and has
    quotes and backslashes escaped.
    """
    text = data if isinstance(data, str) else str(data)
    suffix = ""
    if len(text) > max_length:
        text, suffix = text[:max_length], "..."
    return _INVISIBLE.sub("", text).translate(_ESCAPES) + suffix


@dataclass
class WebSocketContext:
    """
    What is known about a session, filled in as it progresses.

    endpoint, origin and client come from the handshake; connection_id is
    set after registration and room after a successful JOIN.
    """

    endpoint: str
    origin: str | None = None
    client: str | None = None
    connection_id: str | None = None
    room: str | None = None

    @classmethod
    def from_websocket(cls, websocket: "WebSocket", endpoint: str) -> "WebSocketContext":
        peer = getattr(websocket, "client", None)
        return cls(
            endpoint=endpoint,
            origin=websocket.headers.get("origin"),
            client=f"{peer.host}:{peer.port}" if peer else None,
        )

    @property
    def identifier(self) -> str:
        return self.connection_id or "unregistered"

    def log_fields(self, **extra: Any) -> dict[str, Any]:
        """Structured fields describing this session."""
        fields: dict[str, Any] = {
            "endpoint": self.endpoint,
            "connection_id": self.identifier,
        }
        if self.room is not None:
            fields["room"] = sanitize_log_data(self.room)
        fields.update(extra)
        return fields

    def audit(self, event_type: str, reason: str | None = None) -> None:
        audit_connection_event(
            event_type,
            self.endpoint,
            connection_id=self.connection_id,
            room=sanitize_log_data(self.room) if self.room is not None else None,
            origin=sanitize_log_data(self.origin) if self.origin is not None else None,
            client=self.client,
            reason=reason,
        )
