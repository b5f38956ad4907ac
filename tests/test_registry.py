"""
Tests for the connection registry.

Tests verify:
- Unique ids, including regeneration on collision
- get/remove not-found signalling
- Snapshot iteration under concurrent mutation
"""

import itertools
from unittest.mock import MagicMock

from hypothesis import given, settings, strategies as st

from presence_gateway.components.connection.registry import Connection, ConnectionRegistry


class TestRegisterAndLookup:
    """Basic mapping operations."""

    def test_register_assigns_id_and_returns_it(self, registry, make_connection):
        conn = make_connection()
        connection_id = registry.register(conn)

        assert connection_id == "conn-1"
        assert conn.id == connection_id
        assert registry.get(connection_id) is conn
        assert connection_id in registry
        assert len(registry) == 1

    def test_default_ids_are_unique_strings(self, make_connection):
        registry = ConnectionRegistry()
        ids = {registry.register(make_connection()) for _ in range(50)}

        assert len(ids) == 50
        assert all(isinstance(i, str) and i for i in ids)

    def test_colliding_id_is_regenerated(self, make_connection):
        ids = iter(["same", "same", "other"])
        registry = ConnectionRegistry(id_factory=lambda: next(ids))

        first = registry.register(make_connection())
        second = registry.register(make_connection())

        assert first == "same"
        assert second == "other"
        assert len(registry) == 2

    def test_get_unknown_returns_none(self, registry, make_connection):
        assert registry.get("missing") is None

    def test_remove_returns_connection_then_none(self, registry, make_connection):
        conn = make_connection()
        connection_id = registry.register(conn)

        assert registry.remove(connection_id) is conn
        assert registry.get(connection_id) is None
        assert registry.remove(connection_id) is None
        assert len(registry) == 0


class TestSnapshotIteration:
    """all() must tolerate mutation while a consumer iterates."""

    def test_all_yields_every_connection(self, registry, make_connection):
        conns = [make_connection() for _ in range(3)]
        for conn in conns:
            registry.register(conn)

        assert set(c.id for c in registry.all()) == {c.id for c in conns}

    def test_removed_during_iteration_is_skipped(self, registry, make_connection):
        conns = [make_connection() for _ in range(3)]
        for conn in conns:
            registry.register(conn)

        seen = []
        for conn in registry.all():
            seen.append(conn.id)
            if conn.id == "conn-1":
                registry.remove("conn-2")

        assert seen == ["conn-1", "conn-3"]

    def test_added_during_iteration_does_not_raise(self, registry, make_connection):
        registry.register(make_connection())

        seen = []
        for conn in registry.all():
            seen.append(conn.id)
            registry.register(make_connection())

        assert seen == ["conn-1"]
        assert len(registry) == 2

    def test_snapshot_never_yields_removed_entries(self, registry, make_connection):
        for _ in range(3):
            registry.register(make_connection())

        snapshot = registry.all()
        registry.remove("conn-3")

        assert [c.id for c in snapshot] == ["conn-1", "conn-2"]

    def test_snapshot_is_not_restartable(self, registry, make_connection):
        registry.register(make_connection())
        snapshot = registry.all()

        assert len(list(snapshot)) == 1
        assert list(snapshot) == []

    def test_joined_excludes_unjoined(self, registry, make_connection):
        registry.register(make_connection(name="Alice", room="lobby"))
        registry.register(make_connection())

        assert [c.name for c in registry.joined()] == ["Alice"]


class TestConnectionState:
    """Connection helpers used by the other components."""

    def test_join_sets_name_and_room_together(self, make_connection):
        conn = make_connection()
        assert not conn.is_joined
        assert conn.name is None and conn.room is None

        conn.join("Alice", "lobby")

        assert conn.is_joined
        assert (conn.name, conn.room) == ("Alice", "lobby")

    def test_is_open_follows_transport_state(self, make_ws, make_connection):
        ws = make_ws()
        conn = make_connection(ws)
        assert conn.is_open

        ws.drop()
        assert not conn.is_open

    def test_stats_count_joined_and_rooms(self, registry, make_connection):
        registry.register(make_connection(name="A", room="r1"))
        registry.register(make_connection(name="B", room="r2"))
        registry.register(make_connection())

        stats = registry.get_stats()

        assert stats["connections"] == 3
        assert stats["joined_connections"] == 2
        assert stats["rooms"] == 2


class TestRegistryProperties:
    """Property-based checks over arbitrary register/remove sequences."""

    @given(st.lists(st.tuples(st.booleans(), st.integers(min_value=0, max_value=20)), max_size=60))
    @settings(max_examples=100)
    def test_ids_stay_unique_and_removed_ids_are_gone(self, operations):
        # Small id space forces collisions
        counter = itertools.count()
        registry = ConnectionRegistry(id_factory=lambda: f"id-{next(counter) % 7}")
        live: dict[str, object] = {}
        removed: set[str] = set()

        for is_register, pick in operations:
            if is_register and len(live) < 7:
                conn = Connection(websocket=MagicMock())
                connection_id = registry.register(conn)
                assert connection_id not in live
                live[connection_id] = conn
                removed.discard(connection_id)
            elif live:
                connection_id = sorted(live)[pick % len(live)]
                assert registry.remove(connection_id) is live.pop(connection_id)
                removed.add(connection_id)

            ids = [c.id for c in registry.all()]
            assert len(ids) == len(set(ids))
            assert set(ids) == set(live)
            for connection_id in removed:
                assert registry.get(connection_id) is None
