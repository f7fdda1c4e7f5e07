"""
Background asyncio loop for driving the recorder from Flask request threads.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Any, Awaitable, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class BackgroundLoop:
    """An event loop running forever on a daemon thread."""

    def __init__(self, name: str = "livenotes-loop"):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run_forever, name=name, daemon=True)
        self._thread.start()
        logger.debug(f"Started background loop thread {name}")

    def _run_forever(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def run(self, coro: Awaitable[T], timeout: Optional[float] = None) -> T:
        """Run ``coro`` on the loop and block the caller until it finishes."""
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout=timeout)

    def call(self, func, *args: Any) -> Any:
        """Run a plain function on the loop thread and return its result."""
        async def _invoke():
            return func(*args)
        return self.run(_invoke())

    def close(self) -> None:
        if self.loop.is_running():
            self.loop.call_soon_threadsafe(self.loop.stop)
            self._thread.join(timeout=5)
        if not self.loop.is_running():
            self.loop.close()
