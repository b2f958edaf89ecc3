"""SIGINT/SIGTERM handling for a running migration.

The first signal cancels the migration task; the orchestrator saves its
state on the way out so the run can be resumed. A second signal while the
cancellation is still unwinding is reported as a forced quit.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from ferry.models.migration import MigrationState

logger = logging.getLogger(__name__)

INTERRUPT_EXIT_CODE = 130
FORCED_EXIT_CODE = 1
HANDLED_SIGNALS = (signal.SIGINT, signal.SIGTERM)

T = TypeVar("T")


class MigrationInterrupted(Exception):
    """The migration task was cancelled by a signal; its state is resumable."""

    def __init__(self, signum: int, state: MigrationState | None = None) -> None:
        self.signum = signum
        self.state = state
        self.exit_code = INTERRUPT_EXIT_CODE
        name = signal.Signals(signum).name
        if state is not None:
            message = (
                f"Migration {state.id} interrupted by {name} during {state.phase.value} "
                f"({round(state.progress)}%); resume with id {state.id}"
            )
        else:
            message = f"Migration interrupted by {name}"
        super().__init__(message)


class InterruptHandler:
    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._task: asyncio.Task[Any] | None = None
        self._installed: list[int] = []
        self.interrupt_count = 0
        self.signum: int | None = None

    @property
    def interrupted(self) -> bool:
        return self.interrupt_count > 0

    @property
    def exit_code(self) -> int:
        if self.interrupt_count > 1:
            return FORCED_EXIT_CODE
        return INTERRUPT_EXIT_CODE if self.interrupted else 0

    def install(self, task: asyncio.Task[Any]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        self._loop = loop
        self._task = task
        for signum in HANDLED_SIGNALS:
            try:
                loop.add_signal_handler(signum, self.handle, signum)
            except (NotImplementedError, RuntimeError):
                logger.warning("Signal handling unavailable for %s", signal.Signals(signum).name)
                continue
            self._installed.append(signum)

    def uninstall(self) -> None:
        if self._loop is None:
            return
        for signum in self._installed:
            self._loop.remove_signal_handler(signum)
        self._installed.clear()
        self._task = None

    def handle(self, signum: int) -> None:
        self.interrupt_count += 1
        self.signum = signum
        if self.interrupt_count > 1:
            logger.warning("Second interrupt received; forcing quit")
        else:
            logger.warning("Interrupt received (%s); saving migration state", signal.Signals(signum).name)
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(
        self,
        coro: Coroutine[Any, Any, T],
        get_state: Callable[[], MigrationState] | None = None,
    ) -> T:
        """Run ``coro`` as a task with signal handlers installed.

        Raises :class:`MigrationInterrupted` if a handled signal cancelled it.
        ``get_state`` (usually ``orchestrator.get_state``) describes where the
        run stopped.
        """
        task = asyncio.ensure_future(coro)
        self.install(task)
        try:
            return await task
        except asyncio.CancelledError:
            if not self.interrupted or self.signum is None:
                raise
            state = get_state() if get_state is not None else None
            raise MigrationInterrupted(self.signum, state) from None
        finally:
            self.uninstall()


__all__ = [
    "FORCED_EXIT_CODE",
    "INTERRUPT_EXIT_CODE",
    "InterruptHandler",
    "MigrationInterrupted",
]
