"""
Process-local counters for the presence gateway.

Counters are named ``{group}_{event}``; the full set is fixed up front so a
typo at a call site fails loudly instead of creating a new series. Values
are exposed through /health via get_snapshot().
"""

from __future__ import annotations

import threading
from collections import Counter
from typing import Final

COUNTERS: Final[tuple[str, ...]] = (
    # Fan-out
    "broadcasts_total",
    "broadcasts_failed",
    "broadcasts_failed_recipients",
    # Connection lifecycle
    "connections_accepted",
    "connections_closed",
    "connections_rate_limited",
    "connections_heartbeat_timeouts",
    # Inbound frames
    "frames_processed",
    "frames_malformed",
    "frames_invalid_join",
    "frames_ignored",
)


class MetricsCollector:
    """Monotonic counters guarded by a lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Counter[str] = Counter()

    def increment(self, name: str, amount: int = 1) -> None:
        """
        Add ``amount`` to a counter.

        Raises:
            KeyError: If ``name`` is not one of COUNTERS.
        """
        if name not in COUNTERS:
            raise KeyError(f"Unknown counter: {name}")
        if amount <= 0:
            return
        with self._lock:
            self._counts[name] += amount

    def get(self, name: str) -> int:
        with self._lock:
            return self._counts[name]

    def get_snapshot(self) -> dict[str, int]:
        """Every counter, zeros included, in declaration order."""
        with self._lock:
            return {name: self._counts[name] for name in COUNTERS}
