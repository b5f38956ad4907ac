"""
Presence wire messages.

Inbound frames are validated with pydantic models; outbound notifications
are immutable value objects rendered with to_dict() right before sending.

Client -> server:
    {"type": "JOIN", "name": str(1..50), "room": str(1..50)}
    {"type": "PONG"}

Server -> client:
    {"type": "init", "id": str}
    {"type": "PING"}
    {"type": "userJoined", "user": {"id", "name", "room"}}
    {"type": "userLeft", "id": str}
    {"type": "userList", "users": [{"id", "name", "room"}, ...]}
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Iterable, Self, TYPE_CHECKING

from pydantic import BaseModel, Field, StrictStr

from presence_gateway.components.core.constants import MessageType, PresenceConstants

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection


class MalformedFrameError(ValueError):
    """Inbound frame is not a JSON object."""


# =============================================================================
# Inbound
# =============================================================================


class JoinFrame(BaseModel):
    """
    JOIN request. Both fields must be non-empty strings within the limits;
    non-string values are rejected rather than coerced.
    """

    type: StrictStr
    name: StrictStr = Field(min_length=1, max_length=PresenceConstants.MAX_NAME_LENGTH)
    room: StrictStr = Field(min_length=1, max_length=PresenceConstants.MAX_ROOM_LENGTH)


def parse_frame(data: str | bytes) -> dict[str, Any]:
    """
    Decode an inbound frame.

    Raises:
        MalformedFrameError: If the frame is not valid JSON or not an object.
    """
    try:
        decoded = json.loads(data)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise MalformedFrameError(f"Invalid JSON: {e}") from e

    if not isinstance(decoded, dict):
        raise MalformedFrameError(f"Expected a JSON object, got {type(decoded).__name__}")
    return decoded


# =============================================================================
# Outbound
# =============================================================================


@dataclass(frozen=True, slots=True)
class PresenceUser:
    """Public view of a joined connection."""

    id: str
    name: str | None
    room: str | None

    @classmethod
    def from_connection(cls, conn: "Connection") -> Self:
        return cls(id=conn.id, name=conn.name, room=conn.room)

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "room": self.room}


def init_message(connection_id: str) -> dict[str, Any]:
    """Unicast greeting carrying the connection's own id."""
    return {"type": MessageType.INIT, "id": connection_id}


def user_joined_message(user: PresenceUser) -> dict[str, Any]:
    return {"type": MessageType.USER_JOINED, "user": user.to_dict()}


def user_left_message(connection_id: str) -> dict[str, Any]:
    return {"type": MessageType.USER_LEFT, "id": connection_id}


def user_list_message(users: Iterable[PresenceUser]) -> dict[str, Any]:
    return {"type": MessageType.USER_LIST, "users": [user.to_dict() for user in users]}
