"""
Connection Correlation.

Binds the id of the WebSocket connection being served to the current
asyncio task so every log line emitted while handling it carries that id.
"""

from contextvars import ContextVar, Token

# Context variable for connection id (task-local under asyncio)
connection_id_var: ContextVar[str] = ContextVar("connection_id", default="")


def get_connection_id() -> str:
    """Get the connection id bound to the current task."""
    return connection_id_var.get()


def bind_connection_id(connection_id: str) -> Token:
    """Bind a connection id to the current task. Returns a reset token."""
    return connection_id_var.set(connection_id)


def reset_connection_id(token: Token) -> None:
    """Restore the previous binding."""
    connection_id_var.reset(token)


class ConnectionIdFilter:
    """
    Logging filter that adds connection_id to log records.

    Usage:
        import logging
        handler = logging.StreamHandler()
        handler.addFilter(ConnectionIdFilter())
    """

    def filter(self, record) -> bool:
        record.connection_id = connection_id_var.get() or "-"
        return True
