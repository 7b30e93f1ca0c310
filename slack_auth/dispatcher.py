"""Delivery of successful authorizations to the registered auth handler.

Request handlers put each successful TokenResponse on a bounded queue. A
single background task drains that queue in order and calls whatever
handler is registered at delivery time. Events that arrive while no handler
is registered are dropped with a warning; there is no replay.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import threading
from typing import Any, Callable

from .tokens import TokenResponse

# Type alias for auth handlers (plain functions or coroutine functions)
AuthHandler = Callable[[TokenResponse], Any]

# Capacity of the auth event queue: one event may wait for delivery, the
# next producer blocks until the dispatcher catches up.
QUEUE_CAPACITY = 1

_CLOSE = object()


class EventDispatcher:
    """Single-consumer dispatch loop fed by a bounded queue."""

    def __init__(
        self,
        capacity: int = QUEUE_CAPACITY,
        logger: logging.Logger | None = None,
    ) -> None:
        self.capacity = capacity
        self.logger = logger or logging.getLogger("slack_auth.dispatcher")
        self.queue: asyncio.Queue[Any] = asyncio.Queue(maxsize=capacity)

        self._handler: AuthHandler | None = None
        self._lock = threading.Lock()
        self._task: asyncio.Task[None] | None = None

    @property
    def handler(self) -> AuthHandler | None:
        """The currently registered auth handler."""
        with self._lock:
            return self._handler

    def on_auth(self, handler: AuthHandler | None) -> None:
        """Replace the auth handler.

        Only deliveries that happen after this call see the new handler.
        Passing None unregisters the current one.
        """
        with self._lock:
            self._handler = handler

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def put(self, event: TokenResponse) -> None:
        """Enqueue an event, waiting while the queue is full."""
        await self.queue.put(event)

    def start(self) -> None:
        """Start the background dispatch loop (idempotent)."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="slack-auth-dispatcher")

    async def join(self) -> None:
        """Wait until every event enqueued so far has been handled."""
        await self.queue.join()

    async def stop(self) -> None:
        """Close the queue and wait for pending events to be delivered.

        Only the first of several concurrent calls enqueues the close
        sentinel; later calls return immediately.
        """
        task, self._task = self._task, None
        if task is None or task.done():
            return

        await self.queue.put(_CLOSE)
        await task

    async def _run(self) -> None:
        self.logger.debug("Auth event dispatcher started")
        while True:
            event = await self.queue.get()
            try:
                if event is _CLOSE:
                    self.logger.debug("Auth event dispatcher stopped")
                    return
                await self._deliver(event)
            finally:
                self.queue.task_done()

    async def _deliver(self, event: TokenResponse) -> None:
        handler = self.handler
        if handler is None:
            self.logger.warning("Auth event triggered but there was no handler")
            return

        try:
            if is_async_handler(handler):
                await handler(event)
            else:
                # Blocking handlers run in a worker thread
                result = await asyncio.to_thread(handler, event)
                if inspect.isawaitable(result):
                    await result
        except Exception:
            # Handler errors never stop the loop
            self.logger.exception("Auth handler raised an error")


def is_async_handler(handler: AuthHandler) -> bool:
    """Whether calling the handler returns a coroutine.

    Covers coroutine functions and objects with an ``async def __call__``.
    """
    return inspect.iscoroutinefunction(handler) or inspect.iscoroutinefunction(
        getattr(handler, "__call__", None)
    )
