"""Out-of-band delivery of migration events to listeners.

``emit`` never blocks: events go onto a bounded queue drained by a dispatcher
task. A full queue drops the event. Coroutine listeners run as their own
tasks, so a listener that never returns cannot hold up the pipeline.
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ferry.models.migration import MigrationEvent

logger = logging.getLogger(__name__)

EventListener = Callable[[MigrationEvent], Awaitable[None] | None]


class EventDispatcher:
    def __init__(self, queue_size: int = 256, flush_timeout_s: float = 5.0) -> None:
        self._queue_size = queue_size
        self._flush_timeout_s = flush_timeout_s
        self._listeners: list[EventListener] = []
        self._queue: asyncio.Queue[MigrationEvent] | None = None
        self._dispatch_task: asyncio.Task[None] | None = None
        self._listener_tasks: set[asyncio.Task[Any]] = set()
        self.dropped = 0

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        """Register ``listener``; the returned callable unregisters it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return _unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def emit(self, event: MigrationEvent) -> None:
        if not self._listeners:
            return
        queue = self._ensure_running()
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Event queue full (%d); dropped %s event for %s",
                self._queue_size,
                event.type.value,
                event.migration_id,
            )

    def _ensure_running(self) -> asyncio.Queue[MigrationEvent]:
        if self._queue is None:
            self._queue = asyncio.Queue(maxsize=self._queue_size)
        if self._dispatch_task is None or self._dispatch_task.done():
            self._dispatch_task = asyncio.get_running_loop().create_task(
                self._drain(self._queue), name="ferry-event-dispatch"
            )
        return self._queue

    async def _drain(self, queue: asyncio.Queue[MigrationEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                for listener in list(self._listeners):
                    self._deliver(listener, event)
            finally:
                queue.task_done()

    def _deliver(self, listener: EventListener, event: MigrationEvent) -> None:
        try:
            result = listener(event)
        except Exception:
            logger.exception("Event listener failed on %s", event.type.value)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._listener_tasks.add(task)
            task.add_done_callback(self._on_listener_done)

    def _on_listener_done(self, task: asyncio.Task[Any]) -> None:
        self._listener_tasks.discard(task)
        if task.cancelled():
            return
        if exc := task.exception():
            logger.error("Async event listener failed: %s", exc, exc_info=exc)

    async def flush(self, timeout: float | None = None) -> bool:
        """Wait until queued events are handed to listeners and async listeners finish.

        Returns False if ``timeout`` elapsed first.
        """
        timeout = self._flush_timeout_s if timeout is None else timeout
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        if self._queue is not None and self._dispatch_task is not None:
            try:
                await asyncio.wait_for(self._queue.join(), timeout=timeout)
            except TimeoutError:
                return False
        if self._listener_tasks:
            remaining = max(deadline - loop.time(), 0)
            _, pending = await asyncio.wait(set(self._listener_tasks), timeout=remaining)
            if pending:
                return False
        return True

    async def close(self) -> None:
        """Deliver what is queued (bounded by the flush timeout), then stop."""
        if not await self.flush():
            logger.warning("Event flush timed out; %d listener task(s) still running", len(self._listener_tasks))
        if self._dispatch_task is not None:
            self._dispatch_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._dispatch_task
            self._dispatch_task = None
        for task in list(self._listener_tasks):
            task.cancel()
        self._queue = None


__all__ = ["EventDispatcher", "EventListener"]
