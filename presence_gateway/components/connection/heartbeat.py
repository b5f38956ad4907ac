"""
Heartbeat Monitor for the presence gateway.

Server-initiated PING/PONG liveness checks. This is the only mechanism that
detects half-open or silently dead transports: a peer that vanished without
a close frame never produces a receive error on its own.

Each sweep, for every open connection:
- If a PING is outstanding and older than PONG_TIMEOUT, the connection is
  dead: close the transport and hand it to the disconnect callback.
- Otherwise mark a PING as outstanding and send it. A failed send is only
  logged; the next sweep's timeout check reaps the connection.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, TYPE_CHECKING

from presence_gateway.components.core.constants import MessageType, PresenceConstants, WSCloseCode
from shared.config.logging import get_logger

if TYPE_CHECKING:
    from presence_gateway.components.connection.registry import Connection, ConnectionRegistry

logger = get_logger(__name__)

PING_MESSAGE: dict[str, str] = {"type": MessageType.PING}


@dataclass
class HeartbeatSweepResult:
    """Outcome of a single heartbeat sweep."""
    pinged: int = 0
    evicted: int = 0
    send_failures: int = 0


def record_pong(conn: "Connection") -> None:
    """
    Record a PONG from a connection.

    Clears the outstanding PING regardless of join state.
    """
    conn.awaiting_pong = False


class HeartbeatMonitor:
    """
    Process-wide periodic liveness probe over the connection registry.

    Started once from the application lifespan; a second start() is a no-op.
    sweep() can be driven directly (with an explicit timestamp) in tests.

    Usage:
        monitor = HeartbeatMonitor(registry, on_dead=manager.disconnect_dead)
        monitor.start()
        ...
        await monitor.stop()
    """

    def __init__(
        self,
        registry: "ConnectionRegistry",
        on_dead: Callable[["Connection"], Awaitable[None]],
        interval_seconds: float = PresenceConstants.PING_INTERVAL,
        pong_timeout_seconds: float = PresenceConstants.PONG_TIMEOUT,
    ):
        """
        Initialize heartbeat monitor.

        Args:
            registry: Registry to sweep.
            on_dead: Called after a timed-out connection's transport was
                     closed. Must be safe to call for an already removed
                     connection.
            interval_seconds: Seconds between sweeps.
            pong_timeout_seconds: Seconds a PING may stay unanswered.
        """
        self._registry = registry
        self._on_dead = on_dead
        self._interval = interval_seconds
        self._pong_timeout = pong_timeout_seconds
        self._task: asyncio.Task | None = None
        self._started = False

        # Metrics
        self._sweeps = 0
        self._pings_sent = 0
        self._ping_failures = 0
        self._evictions = 0

    @property
    def interval(self) -> float:
        """Seconds between sweeps."""
        return self._interval

    @property
    def pong_timeout(self) -> float:
        """Seconds a PING may stay unanswered."""
        return self._pong_timeout

    @property
    def is_running(self) -> bool:
        """Whether the periodic task is alive."""
        return self._task is not None and not self._task.done()

    def start(self) -> bool:
        """
        Start the periodic sweep task.

        Must be called from a running event loop.

        Returns:
            True if the task was started, False if it had already been
            started during this monitor's lifetime.
        """
        if self._started:
            logger.warning("Heartbeat monitor already started")
            return False

        self._started = True
        self._task = asyncio.create_task(self._run(), name="heartbeat_monitor")
        logger.info(
            "Heartbeat monitor started",
            interval_seconds=self._interval,
            pong_timeout_seconds=self._pong_timeout,
        )
        return True

    async def stop(self) -> None:
        """Cancel the periodic task and wait for it to finish."""
        if self._task is None:
            return

        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Heartbeat monitor stopped")

    async def _run(self) -> None:
        """Sweep every interval until cancelled."""
        while True:
            try:
                await asyncio.sleep(self._interval)
                result = await self.sweep()
                if result.evicted > 0:
                    logger.info("Evicted unresponsive connections", count=result.evicted)
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Error in heartbeat sweep", error=str(e), exc_info=True)

    async def sweep(self, now: float | None = None) -> HeartbeatSweepResult:
        """
        Probe every open connection once.

        Probes run concurrently so one slow transport does not delay the
        rest of the sweep.

        Args:
            now: Monotonic timestamp in seconds. If None, uses time.monotonic().

        Returns:
            Counts of PINGs sent, connections evicted and failed sends.
        """
        if now is None:
            now = time.monotonic()

        self._sweeps += 1
        result = HeartbeatSweepResult()
        connections = [conn for conn in self._registry.all() if conn.is_open]
        if not connections:
            return result

        outcomes = await asyncio.gather(
            *[self._probe(conn, now) for conn in connections],
            return_exceptions=True,
        )

        for conn, outcome in zip(connections, outcomes):
            if isinstance(outcome, BaseException):
                # _probe handles its own errors; anything here is a bug
                logger.error(
                    "Unexpected heartbeat probe error",
                    connection_id=conn.id,
                    error=type(outcome).__name__,
                    message=str(outcome),
                )
            elif outcome == "evicted":
                result.evicted += 1
            elif outcome == "pinged":
                result.pinged += 1
            else:
                result.send_failures += 1

        return result

    async def _probe(self, conn: "Connection", now: float) -> str:
        """
        Run the liveness check for one connection.

        Returns:
            "evicted", "pinged" or "failed".
        """
        if conn.awaiting_pong and now - conn.last_ping_sent_at > self._pong_timeout:
            logger.info(
                "Connection failed to respond to ping, closing",
                connection_id=conn.id,
                seconds_since_ping=round(now - conn.last_ping_sent_at, 1),
            )
            self._evictions += 1
            try:
                await conn.close(WSCloseCode.NORMAL)
            except Exception as e:
                # Transport already gone; deregistration still has to happen
                logger.debug("Failed to close unresponsive connection", connection_id=conn.id, error=str(e))
            await self._on_dead(conn)
            return "evicted"

        conn.awaiting_pong = True
        conn.last_ping_sent_at = now
        try:
            await conn.send_json(PING_MESSAGE)
        except (ConnectionError, RuntimeError, OSError) as e:
            self._ping_failures += 1
            logger.warning("Error sending ping", connection_id=conn.id, error=str(e))
            return "failed"
        except (KeyboardInterrupt, SystemExit):
            raise
        except Exception as e:
            self._ping_failures += 1
            logger.warning(
                "Unexpected error sending ping",
                connection_id=conn.id,
                error=type(e).__name__,
                message=str(e),
            )
            return "failed"

        self._pings_sent += 1
        return "pinged"

    def get_stats(self) -> dict[str, float | int | bool]:
        """Get heartbeat monitor statistics."""
        return {
            "running": self.is_running,
            "interval_seconds": self._interval,
            "pong_timeout_seconds": self._pong_timeout,
            "sweeps": self._sweeps,
            "pings_sent": self._pings_sent,
            "ping_failures": self._ping_failures,
            "evictions": self._evictions,
        }
