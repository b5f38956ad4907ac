"""
Presence wire messages.
"""

from presence_gateway.components.events.types import (
    JoinFrame,
    MalformedFrameError,
    PresenceUser,
    parse_frame,
    init_message,
    user_joined_message,
    user_left_message,
    user_list_message,
)

__all__ = [
    "JoinFrame",
    "MalformedFrameError",
    "PresenceUser",
    "parse_frame",
    "init_message",
    "user_joined_message",
    "user_left_message",
    "user_list_message",
]
