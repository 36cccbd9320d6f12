"""
Shutdown and maintenance coordination for the store.

Closing the app never closes the database directly. The first shutdown
request is vetoed, the store stops taking new writes, observers are told the
app is closing, and a drain runs on the store loop once the write in flight
(if any) has committed: optimize, incremental vacuum, WAL checkpoint. After a short
grace period the coordinator is CLOSED and the exit hook stops the host.

    RUNNING -> CLOSING_REQUESTED -> DRAINING -> CLOSED

Drain failures are logged and swallowed: a store that could not be compacted
is still better than an app that cannot quit.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import signal
import threading
from enum import Enum
from typing import Callable, Iterable, List, Optional

from ..config import config
from .runtime import StoreRuntime
from .storage import NoteStorage

logger = logging.getLogger(__name__)

DRAIN_STEPS = (
    ("optimize", "PRAGMA optimize"),
    ("incrementally vacuum", "PRAGMA incremental_vacuum(0)"),
    ("flush WAL of", "PRAGMA wal_checkpoint(TRUNCATE)"),
)


class LifecycleState(str, Enum):
    RUNNING = "running"
    CLOSING_REQUESTED = "closing_requested"
    DRAINING = "draining"
    CLOSED = "closed"


class LifecycleCoordinator:
    """Owns the shutdown state machine and the periodic optimizer."""

    def __init__(
        self,
        runtime: StoreRuntime,
        storage: NoteStorage,
        optimize_interval: Optional[float] = None,
        grace_seconds: Optional[float] = None,
        exit_hook: Optional[Callable[[], None]] = None,
    ):
        self.runtime = runtime
        self.storage = storage
        self.engine = storage.engine
        self.optimize_interval = optimize_interval if optimize_interval is not None else config.OPTIMIZE_INTERVAL_SECONDS
        self.grace_seconds = grace_seconds if grace_seconds is not None else config.SHUTDOWN_GRACE_SECONDS
        self.exit_hook = exit_hook

        self._state = LifecycleState.RUNNING
        self._lock = threading.Lock()
        self._closed = threading.Event()
        self._listeners: List[Callable[[], None]] = []
        self._periodic: Optional[concurrent.futures.Future] = None
        self._drain: Optional[concurrent.futures.Future] = None

    @property
    def state(self) -> LifecycleState:
        with self._lock:
            return self._state

    def add_closing_listener(self, callback: Callable[[], None]) -> None:
        """Register a callback fired once when closing begins (e.g. to tell the UI)."""
        self._listeners.append(callback)

    def start(self) -> None:
        """Start the periodic optimizer. Idempotent."""
        if self._periodic is None and self.state is LifecycleState.RUNNING:
            self._periodic = self.runtime.submit(self._optimize_periodically())
            logger.info("Periodic database optimization every %ss", self.optimize_interval)

    def request_shutdown(self) -> bool:
        """
        Ask the app to close.

        The close itself is always refused here; the drain decides when the
        process may exit. Returns True if this call started the drain, False if
        shutdown was already under way.
        """
        with self._lock:
            if self._state is not LifecycleState.RUNNING:
                logger.info("Shutdown already in progress (%s), ignoring request", self._state.value)
                return False
            self._state = LifecycleState.CLOSING_REQUESTED
        self.storage.stop_writes()

        logger.info("Close requested, draining the database before exit")
        for callback in list(self._listeners):
            try:
                callback()
            except Exception:
                logger.exception("Closing listener failed")

        self._drain = self.runtime.submit(self._drain_and_close())
        return True

    def wait_closed(self, timeout: Optional[float] = None) -> bool:
        return self._closed.wait(timeout)

    def install_signal_handlers(self, signals: Optional[Iterable[int]] = None) -> None:
        """Route SIGINT/SIGTERM into request_shutdown. Must be called from the main thread."""
        if signals is None:
            signals = [signal.SIGINT]
            if hasattr(signal, "SIGTERM"):
                signals.append(signal.SIGTERM)
        for signum in signals:
            signal.signal(signum, self._handle_signal)

    def _handle_signal(self, signum, frame):
        logger.info("Received signal %s", signum)
        # Handlers interrupt the main thread at any point; take the lock on the loop thread instead.
        self.runtime.call_soon(self.request_shutdown)

    def _transition(self, state: LifecycleState) -> None:
        with self._lock:
            self._state = state
        logger.debug("Lifecycle state -> %s", state.value)

    async def _drain_and_close(self) -> None:
        self._transition(LifecycleState.DRAINING)
        if self._periodic is not None:
            self._periodic.cancel()

        # Held to the end: the write in flight commits first, nothing writes after.
        async with self.storage.write_lock:
            for label, sql in DRAIN_STEPS:
                try:
                    await self._execute_pragma(sql)
                except Exception as exc:
                    logger.warning("Failed to %s database: %s", label, exc)

            if self.grace_seconds > 0:
                await asyncio.sleep(self.grace_seconds)

            try:
                await self.engine.dispose()
            except Exception as exc:
                logger.warning("Failed to close database connections: %s", exc)

            self._transition(LifecycleState.CLOSED)
        self._closed.set()
        logger.info("Database drained, exiting")

        if self.exit_hook is not None:
            try:
                await asyncio.to_thread(self.exit_hook)
            except Exception:
                logger.exception("Exit hook failed")

    async def _optimize_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.optimize_interval)
            async with self.storage.write_lock:
                if self.state is not LifecycleState.RUNNING:
                    return
                try:
                    await self._execute_pragma("PRAGMA optimize")
                except Exception as exc:
                    logger.warning("Periodic database optimization failed: %s", exc)

    async def _execute_pragma(self, sql: str) -> None:
        async with self.engine.connect() as conn:
            conn = await conn.execution_options(isolation_level="AUTOCOMMIT")
            result = await conn.exec_driver_sql(sql)
            if result.returns_rows:
                # Some pragmas do their work per step; drain every row.
                logger.debug("%s -> %s", sql, result.fetchall())
