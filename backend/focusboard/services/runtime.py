"""
Dedicated event loop thread for the store.

The async engine, the write lock, the periodic optimizer and the shutdown
drain all live on this one loop. Synchronous callers (Flask request threads,
signal handlers, tests) hand coroutines to it and wait for the result.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

from ..errors import UnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_RUN_TIMEOUT_S = 30.0


class StoreRuntime:
    """Owns one asyncio loop running forever in a daemon thread."""

    def __init__(self, run_timeout_s: float = DEFAULT_RUN_TIMEOUT_S):
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._thread_ident: Optional[int] = None
        self._ready = threading.Event()
        self._start_lock = threading.Lock()
        self._run_timeout_s = max(1.0, float(run_timeout_s))

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self.start()

    @property
    def running(self) -> bool:
        return bool(self._loop and self._thread and self._thread.is_alive())

    def start(self) -> asyncio.AbstractEventLoop:
        with self._start_lock:
            if self.running:
                return self._loop

            self._ready.clear()

            def _run():
                self._thread_ident = threading.get_ident()
                loop = asyncio.new_event_loop()
                asyncio.set_event_loop(loop)
                self._loop = loop
                self._ready.set()
                try:
                    loop.run_forever()
                finally:
                    pending = asyncio.all_tasks(loop)
                    for task in pending:
                        task.cancel()
                    if pending:
                        loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
                    loop.run_until_complete(loop.shutdown_asyncgens())
                    loop.close()
                    logger.debug("Store event loop closed")

            self._thread = threading.Thread(target=_run, name="focusboard-store", daemon=True)
            self._thread.start()
            self._ready.wait(timeout=10.0)
            if not self._loop:
                raise RuntimeError("Failed to start store event loop thread")
            return self._loop

    def in_loop_thread(self) -> bool:
        return self._thread_ident == threading.get_ident()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run a coroutine on the store loop and block the calling thread for its result."""
        loop = self.start()
        # Waiting on the loop from its own thread would deadlock.
        if self.in_loop_thread():
            raise RuntimeError("StoreRuntime.run() called from the store loop; await the coroutine instead")
        fut = asyncio.run_coroutine_threadsafe(coro, loop)
        try:
            return fut.result(timeout=timeout or self._run_timeout_s)
        except concurrent.futures.TimeoutError as exc:
            # Not cancelled: a started transaction still runs to commit or rollback.
            logger.error("Timed out after %.1fs waiting for the store", timeout or self._run_timeout_s)
            raise UnavailableError() from exc

    def submit(self, coro: Awaitable[Any]) -> concurrent.futures.Future:
        """Schedule a coroutine on the store loop without waiting for it."""
        return asyncio.run_coroutine_threadsafe(coro, self.start())

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Run a plain callable on the loop thread (safe from signal handlers)."""
        self.start().call_soon_threadsafe(callback, *args)

    def stop(self, timeout: float = 5.0) -> None:
        loop = self._loop
        thread = self._thread
        if not loop or not thread:
            return
        if loop.is_running():
            loop.call_soon_threadsafe(loop.stop)
        if thread is not threading.current_thread():
            thread.join(timeout=timeout)
        self._loop = None
        self._thread = None
        self._thread_ident = None
