"""
Tests for the presence WebSocket endpoint receive loop.

The endpoint runs against an in-memory websocket; inbound frames are queued
before or during run() and the loop ends on a queued disconnect.
"""

import asyncio
import json
import logging

import pytest

from presence_gateway.components.core.constants import MessageType, WSCloseCode
from presence_gateway.components.endpoints.handlers import PresenceEndpoint
from shared.infrastructure.correlation import get_connection_id


def _join(name, room) -> str:
    return json.dumps({"type": "JOIN", "name": name, "room": room})


async def _run(manager, ws, timeout: float = 2.0) -> PresenceEndpoint:
    endpoint = PresenceEndpoint(ws, manager)
    await asyncio.wait_for(endpoint.run(), timeout)
    return endpoint


async def _wait_until(predicate, attempts: int = 200) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


async def _peer(manager, make_ws, room="lobby"):
    ws = make_ws()
    conn = await manager.connect(ws)
    await manager.join(conn, "Peer", room)
    ws.clear()
    return conn, ws


class TestSessionFlow:
    """Happy path from connect to close."""

    @pytest.mark.asyncio
    async def test_join_then_close_notifies_peer(self, manager, make_ws):
        peer, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_text(_join("Alice", "lobby"))
        ws.push_disconnect()

        endpoint = await _run(manager, ws)

        conn_id = endpoint.connection.id
        alice = {"id": conn_id, "name": "Alice", "room": "lobby"}
        peer_user = {"id": peer.id, "name": "Peer", "room": "lobby"}
        assert ws.sent[:2] == [
            {"type": "init", "id": conn_id},
            {"type": "userList", "users": [peer_user]},
        ]
        assert ws_peer.sent == [
            {"type": "userJoined", "user": alice},
            {"type": "userList", "users": [peer_user, alice]},
            {"type": "userLeft", "id": conn_id},
            {"type": "userList", "users": [peer_user]},
        ]
        assert conn_id not in manager.registry

    @pytest.mark.asyncio
    async def test_binary_frames_are_accepted(self, manager, make_ws):
        _, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_bytes(_join("Alice", "lobby").encode())
        ws.push_disconnect()

        await _run(manager, ws)

        assert len(ws_peer.messages(MessageType.USER_JOINED)) == 1

    @pytest.mark.asyncio
    async def test_connection_id_bound_only_while_running(self, manager, make_ws):
        ws = make_ws()
        endpoint = PresenceEndpoint(ws, manager)
        task = asyncio.create_task(endpoint.run())
        await _wait_until(lambda: endpoint.connection is not None)

        ws.push_disconnect()
        await asyncio.wait_for(task, 2.0)

        assert get_connection_id() == ""

    @pytest.mark.asyncio
    async def test_rejected_during_shutdown(self, manager, make_ws):
        await manager.shutdown()
        ws = make_ws()

        endpoint = await _run(manager, ws)

        assert endpoint.connection is None
        assert not ws.accepted
        assert len(manager.registry) == 0


class TestJoinValidation:
    """Invalid JOIN frames change nothing and send nothing."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "frame",
        [
            {"type": "JOIN", "name": "", "room": "lobby"},
            {"type": "JOIN", "name": "Alice", "room": ""},
            {"type": "JOIN", "name": "x" * 51, "room": "lobby"},
            {"type": "JOIN", "name": "Alice", "room": "r" * 51},
            {"type": "JOIN", "name": 42, "room": "lobby"},
            {"type": "JOIN", "name": "Alice"},
            {"type": "JOIN", "room": "lobby"},
        ],
    )
    async def test_invalid_join_is_dropped(self, manager, make_ws, frame):
        peer, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_text(json.dumps(frame))
        ws.push_disconnect()

        endpoint = await _run(manager, ws)

        assert not endpoint.connection.is_joined
        assert ws.sent == [
            {"type": "init", "id": endpoint.connection.id},
            {"type": "userList", "users": [{"id": peer.id, "name": "Peer", "room": "lobby"}]},
        ]
        assert ws_peer.sent == []
        assert manager.metrics.get_snapshot()["frames_invalid_join"] == 1

    @pytest.mark.asyncio
    async def test_fifty_character_values_are_accepted(self, manager, make_ws):
        ws = make_ws()
        ws.push_text(_join("n" * 50, "r" * 50))
        ws.push_disconnect()

        endpoint = await _run(manager, ws)

        assert endpoint.connection.name == "n" * 50
        assert endpoint.connection.room == "r" * 50

    @pytest.mark.asyncio
    async def test_second_join_does_not_rename(self, manager, make_ws):
        _, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_text(_join("Alice", "lobby"))
        ws.push_text(_join("Mallory", "lobby"))
        ws.push_disconnect()

        endpoint = await _run(manager, ws)

        assert endpoint.connection.name == "Alice"
        assert len(ws_peer.messages(MessageType.USER_JOINED)) == 1


class TestUnexpectedFrames:
    """Malformed and unknown frames are dropped."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2, 3]", '"JOIN"', "{"])
    async def test_malformed_frame_keeps_connection(self, manager, make_ws, raw):
        _, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_text(raw)
        ws.push_text(_join("Alice", "lobby"))
        ws.push_disconnect()

        await _run(manager, ws)

        assert ws.closes == []
        assert len(ws_peer.messages(MessageType.USER_JOINED)) == 1
        assert manager.metrics.get_snapshot()["frames_malformed"] == 1

    @pytest.mark.asyncio
    async def test_unknown_type_is_ignored(self, manager, make_ws):
        ws = make_ws()
        ws.push_text(json.dumps({"type": "CHAT", "text": "hi"}))
        ws.push_disconnect()

        endpoint = await _run(manager, ws)

        assert ws.sent == [
            {"type": "init", "id": endpoint.connection.id},
            {"type": "userList", "users": []},
        ]
        assert manager.metrics.get_snapshot()["frames_ignored"] == 1


class TestPong:
    """PONG handling inside the receive loop."""

    @pytest.mark.asyncio
    async def test_pong_clears_outstanding_ping(self, manager, make_ws):
        ws = make_ws()
        endpoint = PresenceEndpoint(ws, manager)
        task = asyncio.create_task(endpoint.run())
        await _wait_until(lambda: endpoint.connection is not None)

        await manager.heartbeat.sweep(now=0.0)
        assert endpoint.connection.awaiting_pong

        ws.push_text(json.dumps({"type": "PONG"}))
        await _wait_until(lambda: not endpoint.connection.awaiting_pong)

        ws.push_disconnect()
        await asyncio.wait_for(task, 2.0)

    @pytest.mark.asyncio
    async def test_pong_from_unjoined_connection_counts(self, manager, make_ws):
        ws = make_ws()
        endpoint = PresenceEndpoint(ws, manager)
        task = asyncio.create_task(endpoint.run())
        await _wait_until(lambda: endpoint.connection is not None)
        endpoint.connection.awaiting_pong = True

        ws.push_text('{"type": "PONG"}')
        ws.push_disconnect()
        await asyncio.wait_for(task, 2.0)

        assert endpoint.connection.awaiting_pong is False


class TestRateLimit:
    """Inbound frame rate limiting."""

    @pytest.mark.asyncio
    async def test_twenty_first_frame_closes_with_policy_violation(self, manager, make_ws):
        ws = make_ws()
        for _ in range(21):
            ws.push_text('{"type": "CHAT"}')

        endpoint = await _run(manager, ws)

        assert ws.closes == [(WSCloseCode.POLICY_VIOLATION, "Rate limit exceeded")]
        assert ws.closes[0][0] == 1008
        snapshot = manager.metrics.get_snapshot()
        assert snapshot["frames_ignored"] == 20
        assert snapshot["connections_rate_limited"] == 1
        assert endpoint.connection.id not in manager.registry

    @pytest.mark.asyncio
    async def test_rate_limit_warning_reports_window_usage(self, manager, make_ws, caplog):
        ws = make_ws()
        for _ in range(21):
            ws.push_text('{"type": "PONG"}')

        with caplog.at_level(logging.WARNING, logger="presence_gateway.components.endpoints.mixins"):
            await _run(manager, ws)

        record = next(r for r in caplog.records if r.getMessage() == "Rate limit exceeded")
        assert record.fields["frames_in_window"] == 21
        assert record.fields["limit"] == 20
        assert record.fields["usage_percent"] == 105.0

    @pytest.mark.asyncio
    async def test_malformed_frames_count_toward_limit(self, manager, make_ws):
        ws = make_ws()
        for _ in range(21):
            ws.push_text("garbage")

        await _run(manager, ws)

        assert ws.closes == [(1008, "Rate limit exceeded")]
        assert manager.metrics.get_snapshot()["frames_malformed"] == 20

    @pytest.mark.asyncio
    async def test_rate_limited_joined_user_leaves_once(self, manager, make_ws):
        _, ws_peer = await _peer(manager, make_ws)
        ws = make_ws()
        ws.push_text(_join("Alice", "lobby"))
        for _ in range(20):
            ws.push_text('{"type": "PONG"}')

        endpoint = await _run(manager, ws)

        assert ws_peer.messages(MessageType.USER_LEFT) == [
            {"type": "userLeft", "id": endpoint.connection.id}
        ]

    @pytest.mark.asyncio
    async def test_frames_after_window_reset_are_admitted(self, manager, make_ws):
        ws = make_ws()
        endpoint = PresenceEndpoint(ws, manager)
        task = asyncio.create_task(endpoint.run())
        await _wait_until(lambda: endpoint.connection is not None)

        for _ in range(20):
            ws.push_text('{"type": "PONG"}')
        await _wait_until(lambda: endpoint.connection.message_count == 20)

        # Age the window past its length
        endpoint.connection.window_start -= 11.0
        ws.push_text('{"type": "PONG"}')
        await _wait_until(lambda: endpoint.connection.message_count == 1)

        ws.push_disconnect()
        await asyncio.wait_for(task, 2.0)

        assert ws.closes == []
