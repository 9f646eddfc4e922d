"""
Tests for Supervisor restart and exit-code behaviour.
"""
import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock

from pongbot.core.errors import (
    EXIT_INSUFFICIENT_FUNDS,
    EXIT_INVALID_INPUT,
    EXIT_OK,
    EXIT_RESTARTS_EXHAUSTED,
    EXIT_STATE_IO_ERROR,
    ConnectivityError,
    FeedClosedError,
    InsufficientResourcesError,
    InvalidEventError,
    StateIOError,
)
from pongbot.orchestrator.supervisor import Supervisor, SupervisorConfig


def make_engine(*outcomes):
    engine = MagicMock()
    engine.run = AsyncMock(side_effect=list(outcomes))
    return engine


class TestFatalExit:
    """Fatal errors end the loop with their exit code."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exc,code", [
        (InsufficientResourcesError("insufficient funds"), EXIT_INSUFFICIENT_FUNDS),
        (StateIOError("disk gone"), EXIT_STATE_IO_ERROR),
        (InvalidEventError("no id"), EXIT_INVALID_INPUT),
    ])
    async def test_fatal_error_maps_to_exit_code(self, exc, code):
        alerts = AsyncMock()
        sup = Supervisor(make_engine(exc), alerts=alerts, sleep=AsyncMock())

        assert await sup.run() == code
        alerts.alert_fatal.assert_awaited_once()
        assert alerts.alert_fatal.await_args.args[1] == code

    @pytest.mark.asyncio
    async def test_fatal_after_restarts(self):
        """Retryable errors restart; a later fatal error still exits."""
        sleep = AsyncMock()
        engine = make_engine(ConnectivityError("down"), FeedClosedError("stale"), InsufficientResourcesError("broke"))
        sup = Supervisor(engine, SupervisorConfig(restart_backoff_sec=5.0), sleep=sleep)

        assert await sup.run() == EXIT_INSUFFICIENT_FUNDS
        assert engine.run.await_count == 3
        assert sup.restarts == 2
        sleep.assert_awaited_with(5.0)


class TestRestart:
    """Non-fatal failures are retried after a fixed backoff."""

    @pytest.mark.asyncio
    async def test_unexpected_exception_restarts(self):
        """Errors outside the taxonomy are treated as restartable."""
        engine = make_engine(RuntimeError("boom"), StateIOError("stop"))
        alerts = AsyncMock()
        sup = Supervisor(engine, alerts=alerts, sleep=AsyncMock())

        assert await sup.run() == EXIT_STATE_IO_ERROR
        alerts.alert_restart.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_max_restarts_exhausted(self):
        """A bounded run gives up after max_restarts."""
        engine = make_engine(*[ConnectivityError("down") for _ in range(5)])
        sup = Supervisor(engine, SupervisorConfig(restart_backoff_sec=0, max_restarts=2), sleep=AsyncMock())

        assert await sup.run() == EXIT_RESTARTS_EXHAUSTED
        assert engine.run.await_count == 3


class TestStop:
    """stop() ends the loop with exit code 0."""

    @pytest.mark.asyncio
    async def test_stop_cancels_running_engine(self):
        started = asyncio.Event()

        async def run_forever():
            started.set()
            await asyncio.Event().wait()

        engine = MagicMock()
        engine.run = AsyncMock(side_effect=run_forever)
        alerts = AsyncMock()
        sup = Supervisor(engine, alerts=alerts, sleep=AsyncMock())

        task = asyncio.create_task(sup.run())
        await started.wait()
        sup.stop()

        assert await asyncio.wait_for(task, timeout=1.0) == EXIT_OK
        alerts.alert_shutdown.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_stop_interrupts_backoff(self):
        """A stop during the restart backoff does not wait it out."""
        async def never_wakes(_delay):
            await asyncio.Event().wait()

        engine = make_engine(ConnectivityError("down"))
        sup = Supervisor(engine, SupervisorConfig(restart_backoff_sec=3600), sleep=never_wakes)

        task = asyncio.create_task(sup.run())
        while sup.restarts == 0:
            await asyncio.sleep(0)
        sup.stop()

        assert await asyncio.wait_for(task, timeout=1.0) == EXIT_OK
        assert engine.run.await_count == 1

    @pytest.mark.asyncio
    async def test_stop_before_run(self):
        engine = make_engine()
        sup = Supervisor(engine, sleep=AsyncMock())
        sup.stop()

        assert await sup.run() == EXIT_OK
        engine.run.assert_not_called()


class TestSupervisorMetrics:

    @pytest.mark.asyncio
    async def test_restarts_counted_by_error_class(self):
        from pongbot.monitoring.metrics import PongMetrics

        metrics = PongMetrics()
        engine = make_engine(ConnectivityError("down"), FeedClosedError("stale"), StateIOError("stop"))
        sup = Supervisor(engine, metrics=metrics, sleep=AsyncMock())

        assert await sup.run() == EXIT_STATE_IO_ERROR
        reg = metrics.registry
        assert reg.get_sample_value("engine_restarts_total", {"reason": "ConnectivityError"}) == 1.0
        assert reg.get_sample_value("engine_restarts_total", {"reason": "FeedClosedError"}) == 1.0
