"""Background asyncio loop that hosts the live result engines."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from concurrent.futures import Future
import logging
from threading import Thread
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class BackgroundLoop:
    """Runs one event loop on a daemon thread.

    Every engine operation and subscription callback executes on this loop,
    so events for a question are processed one at a time without locks.
    """

    def __init__(self, name: str = "PollEventLoop") -> None:
        self._loop = asyncio.new_event_loop()
        self._thread = Thread(target=self._run, name=name, daemon=True)

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        return self._loop

    def start(self) -> None:
        if not self._thread.is_alive():
            self._thread.start()

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        """Schedule ``coro`` on the loop and return a thread-safe future."""
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def run(self, coro: Coroutine[Any, Any, T], timeout: float | None = 10.0) -> T:
        """Run ``coro`` on the loop and block the calling thread for its result."""
        return self.submit(coro).result(timeout)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 5.0) -> None:
        if self._loop.is_closed():
            return
        if self._thread.is_alive():
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                # A running loop cannot be closed; a later stop() retries.
                logger.warning("Background loop still busy after %.1f s; left open", timeout)
                return
        self._loop.close()
        logger.debug("Background loop stopped")

    def _run(self) -> None:
        asyncio.set_event_loop(self._loop)
        self._loop.run_forever()
