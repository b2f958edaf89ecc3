from __future__ import annotations

import asyncio
import signal

import pytest
from ferry.models.migration import MigrationPhase, MigrationState
from ferry.models.platforms import Platform
from ferry.signals import (
    FORCED_EXIT_CODE,
    INTERRUPT_EXIT_CODE,
    InterruptHandler,
    MigrationInterrupted,
)

pytestmark = pytest.mark.asyncio


async def _sleep_forever() -> None:
    await asyncio.Event().wait()


async def test_run_returns_result_without_signal() -> None:
    handler = InterruptHandler()

    async def work() -> str:
        return "done"

    assert await handler.run(work()) == "done"
    assert not handler.interrupted
    assert handler.exit_code == 0


async def test_signal_cancels_and_raises_interrupted() -> None:
    handler = InterruptHandler()
    state = MigrationState(
        id="mig_sig",
        source=Platform.chatgpt,
        target=Platform.claude,
        phase=MigrationPhase.transforming,
        progress=40.0,
    )
    asyncio.get_running_loop().call_later(0.05, handler.handle, signal.SIGINT)

    with pytest.raises(MigrationInterrupted) as excinfo:
        await handler.run(_sleep_forever(), get_state=lambda: state)

    interrupted = excinfo.value
    assert interrupted.exit_code == INTERRUPT_EXIT_CODE
    assert interrupted.state is state
    assert "SIGINT" in str(interrupted)
    assert "resume with id mig_sig" in str(interrupted)
    assert handler.exit_code == INTERRUPT_EXIT_CODE


async def test_second_signal_is_a_forced_quit() -> None:
    handler = InterruptHandler()
    loop = asyncio.get_running_loop()
    loop.call_later(0.02, handler.handle, signal.SIGTERM)
    loop.call_later(0.02, handler.handle, signal.SIGTERM)

    with pytest.raises(MigrationInterrupted):
        await handler.run(_sleep_forever())

    assert handler.interrupt_count == 2
    assert handler.exit_code == FORCED_EXIT_CODE


async def test_cancellation_without_signal_propagates() -> None:
    handler = InterruptHandler()

    async def cancelled() -> None:
        raise asyncio.CancelledError

    with pytest.raises(asyncio.CancelledError):
        await handler.run(cancelled())
    assert not handler.interrupted


async def test_handlers_are_removed_after_run() -> None:
    handler = InterruptHandler()

    async def work() -> None:
        return None

    await handler.run(work())
    assert handler._installed == []
