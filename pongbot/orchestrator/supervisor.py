"""
Supervisor: restarts the reconciliation engine until stopped or a fatal error.

Architecture:
    Each engine run executes in its own task so stop() can cancel it.
    Fatal errors map to their exit code. Anything else is logged, alerted
    and retried after a fixed backoff, starting again from Initialize.
    Restarting is safe because the engine deduplicates against persisted
    state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, TYPE_CHECKING

from pongbot.core.errors import EXIT_OK, EXIT_RESTARTS_EXHAUSTED, FatalError
from pongbot.infra.logging_cfg import log_event

if TYPE_CHECKING:
    from pongbot.execution.reconciliation_engine import ReconciliationEngine
    from pongbot.monitoring.alerting import AlertManager
    from pongbot.monitoring.metrics import PongMetrics

log = logging.getLogger("pongbot")


@dataclass
class SupervisorConfig:
    """Configuration for Supervisor."""
    restart_backoff_sec: float = 5.0
    max_restarts: int = 0  # 0 = unlimited


class Supervisor:
    """
    Usage:
        supervisor = Supervisor(engine, SupervisorConfig(restart_backoff_sec=5))
        loop.add_signal_handler(signal.SIGTERM, supervisor.stop)
        exit_code = await supervisor.run()
    """

    def __init__(
        self,
        engine: "ReconciliationEngine",
        config: Optional[SupervisorConfig] = None,
        alerts: Optional["AlertManager"] = None,
        metrics: Optional["PongMetrics"] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.engine = engine
        self.config = config or SupervisorConfig()
        self.alerts = alerts
        self.metrics = metrics
        self._sleep = sleep
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.restarts = 0

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Request shutdown; safe to call from a signal handler."""
        if self._stop_event.is_set():
            return
        log_event(log, "stop_requested")
        self._stop_event.set()
        if self._task is not None and not self._task.done():
            self._task.cancel()

    async def run(self) -> int:
        while not self.stopping:
            self._task = asyncio.create_task(self.engine.run())
            try:
                await self._task
                kind, reason = "returned", "engine run returned"
            except asyncio.CancelledError:
                if self.stopping:
                    break
                raise
            except FatalError as exc:
                return await self._fatal(exc)
            except Exception as exc:
                kind, reason = type(exc).__name__, f"{type(exc).__name__}: {exc}"
            finally:
                self._task = None

            if self.stopping:
                break
            if not await self._restart(kind, reason):
                return EXIT_RESTARTS_EXHAUSTED

        log_event(log, "supervisor_stopped", restarts=self.restarts)
        if self.alerts is not None:
            await self.alerts.alert_shutdown("stop requested", restarts=self.restarts)
        return EXIT_OK

    async def _fatal(self, exc: FatalError) -> int:
        log_event(
            log,
            "fatal_exit",
            level=logging.CRITICAL,
            error=type(exc).__name__,
            err=str(exc),
            exit_code=exc.exit_code,
        )
        if self.alerts is not None:
            await self.alerts.alert_fatal(str(exc), exc.exit_code, error=type(exc).__name__)
        return exc.exit_code

    async def _restart(self, kind: str, reason: str) -> bool:
        """Log, alert and back off. Returns False once max_restarts is exceeded."""
        self.restarts += 1
        if self.config.max_restarts and self.restarts > self.config.max_restarts:
            log_event(
                log,
                "restart_limit_reached",
                level=logging.CRITICAL,
                restarts=self.restarts - 1,
                reason=reason,
                exit_code=EXIT_RESTARTS_EXHAUSTED,
            )
            if self.alerts is not None:
                await self.alerts.alert_fatal(f"restart limit reached: {reason}", EXIT_RESTARTS_EXHAUSTED)
            return False

        if self.metrics is not None:
            self.metrics.restarts.labels(reason=kind).inc()
        log_event(
            log,
            "restart",
            level=logging.WARNING,
            reason=reason,
            restart_no=self.restarts,
            backoff_sec=self.config.restart_backoff_sec,
        )
        if self.alerts is not None:
            await self.alerts.alert_restart(reason, self.config.restart_backoff_sec, restart_no=self.restarts)
        await self._backoff()
        return True

    async def _backoff(self) -> None:
        """Sleep restart_backoff_sec, waking early if stop() is called."""
        sleeper = asyncio.ensure_future(self._sleep(self.config.restart_backoff_sec))
        stopper = asyncio.ensure_future(self._stop_event.wait())
        try:
            await asyncio.wait({sleeper, stopper}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for fut in (sleeper, stopper):
                if not fut.done():
                    fut.cancel()
            await asyncio.gather(sleeper, stopper, return_exceptions=True)
