"""
Pytest configuration and fixtures for presence gateway tests.
"""

import asyncio
import itertools
from typing import Any

import pytest
from starlette.websockets import WebSocketState

from presence_gateway.components.connection.registry import Connection, ConnectionRegistry
from presence_gateway.connection_manager import ConnectionManager


class FakeWebSocket:
    """
    In-memory stand-in for a Starlette WebSocket.

    Records everything sent and every close, and serves inbound frames
    pushed by the test through receive().
    """

    def __init__(self, fail_send: bool = False, headers: dict[str, str] | None = None):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.headers = headers or {}
        self.client = None
        self.accepted = False
        self.fail_send = fail_send
        self.sent: list[dict[str, Any]] = []
        self.closes: list[tuple[int, str | None]] = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, payload: dict[str, Any]) -> None:
        if self.fail_send or self.application_state != WebSocketState.CONNECTED:
            raise RuntimeError("Cannot send on a closed websocket")
        self.sent.append(payload)

    async def close(self, code: int = 1000, reason: str | None = None) -> None:
        self.closes.append((code, reason))
        self.application_state = WebSocketState.DISCONNECTED

    async def receive(self) -> dict[str, Any]:
        return await self._inbox.get()

    # Test helpers

    def push_text(self, text: str) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "text": text})

    def push_bytes(self, data: bytes) -> None:
        self._inbox.put_nowait({"type": "websocket.receive", "bytes": data})

    def push_disconnect(self, code: int = 1000) -> None:
        self._inbox.put_nowait({"type": "websocket.disconnect", "code": code})

    def drop(self) -> None:
        """Simulate the peer vanishing: the transport reports disconnected."""
        self.client_state = WebSocketState.DISCONNECTED

    def messages(self, message_type: str) -> list[dict[str, Any]]:
        return [m for m in self.sent if m.get("type") == message_type]

    def clear(self) -> None:
        self.sent.clear()


@pytest.fixture
def make_ws():
    """Factory for fake websockets."""
    def _make(**kwargs: Any) -> FakeWebSocket:
        return FakeWebSocket(**kwargs)
    return _make


@pytest.fixture
def registry():
    """Registry with predictable ids: conn-1, conn-2, ..."""
    counter = itertools.count(1)
    return ConnectionRegistry(id_factory=lambda: f"conn-{next(counter)}")


@pytest.fixture
def manager(registry):
    """Room-scoped connection manager over the predictable registry."""
    return ConnectionManager(registry=registry, broadcast_scope="room")


@pytest.fixture
def global_manager():
    """Connection manager with global Joined/Left delivery."""
    counter = itertools.count(1)
    return ConnectionManager(
        registry=ConnectionRegistry(id_factory=lambda: f"conn-{next(counter)}"),
        broadcast_scope="global",
    )


@pytest.fixture
def make_connection():
    """Factory for bare Connections, optionally already joined."""
    def _make(
        ws: FakeWebSocket | None = None,
        name: str | None = None,
        room: str | None = None,
    ) -> Connection:
        conn = Connection(websocket=ws or FakeWebSocket())
        if name is not None and room is not None:
            conn.join(name, room)
        return conn
    return _make
