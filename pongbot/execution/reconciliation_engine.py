"""
ReconciliationEngine: catch-up scan plus live feed over the persisted progress state.

Phases, executed in order on every run:
    1. Initialize  load progress; on first run pin start_height and persist
    2. Catch-up    scan (last_processed_height, head] in windows, splitting any
                   window the node refuses, re-reading the head until caught up
    3. Live        consume the event feed from last_processed_height + 1 until
                   it closes; FeedClosedError hands control back to the supervisor

Invariants:
    - The seen set is consulted before every respond() call, retries included.
    - last_processed_height only moves forward, and only past heights whose
      events have all been responded to, rejected, or were already seen.
    - Every mutation is persisted before the next event is considered.

Thread Safety:
    Single task. Catch-up and live never overlap and at most one response
    is in flight, so the progress state needs no locking.
"""

from __future__ import annotations

import asyncio
import logging
import time
from contextlib import aclosing
from dataclasses import dataclass
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, List, Optional, Tuple, TYPE_CHECKING

from pongbot.core.errors import (
    ConnectivityError,
    FeedClosedError,
    InvalidEventError,
    RangeTooLargeError,
    RejectedError,
    TransientError,
)
from pongbot.core.types import Event, FeedCheckpoint
from pongbot.infra.logging_cfg import log_event
from pongbot.state.state import ProgressState

if TYPE_CHECKING:
    from pongbot.execution.responder import Responder
    from pongbot.ledger.event_source import EventSource
    from pongbot.monitoring.alerting import AlertManager
    from pongbot.monitoring.metrics import PongMetrics
    from pongbot.state.state_atomic import AtomicStateStore

log = logging.getLogger("pongbot")

PHASE_CATCHUP = "catchup"
PHASE_LIVE = "live"
PHASE_RETRY = "retry"


@dataclass
class EngineConfig:
    """Configuration for ReconciliationEngine."""
    start_height: Optional[int] = None  # None: use the head on first run
    max_block_range: int = 2000
    respond_retries: int = 3
    respond_retry_delay_sec: float = 2.0
    suppress_rejected: bool = False
    max_rejected_attempts: int = 3


@dataclass
class CatchUpResult:
    """Summary of one catch-up phase."""
    from_height: int
    to_height: int
    passes: int = 0
    events_found: int = 0
    responded: int = 0
    skipped_seen: int = 0
    rejected: int = 0


class ReconciliationEngine:
    """
    Drives responses for every Ping at or after start_height, exactly once.

    Usage:
        engine = ReconciliationEngine(source, responder, store, EngineConfig(start_height=100))
        await engine.run()   # returns only by raising
    """

    def __init__(
        self,
        source: "EventSource",
        responder: "Responder",
        store: "AtomicStateStore",
        config: Optional[EngineConfig] = None,
        alerts: Optional["AlertManager"] = None,
        metrics: Optional["PongMetrics"] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.source = source
        self.responder = responder
        self.store = store
        self.config = config or EngineConfig()
        self.alerts = alerts
        self.metrics = metrics
        self._sleep = sleep
        self._state: Optional[ProgressState] = None
        self._window = self.config.max_block_range
        self._stats: Dict[str, int] = {
            "responded": 0,
            "dedup_skips": 0,
            "rejected": 0,
            "abandoned": 0,
            "range_splits": 0,
        }

    @property
    def state(self) -> ProgressState:
        if self._state is None:
            raise RuntimeError("engine not initialized")
        return self._state

    def get_stats(self) -> Dict[str, int]:
        return dict(self._stats)

    async def run(self) -> None:
        await self.initialize()
        await self.catch_up()
        await self.run_live()

    # ========== Initialize ==========

    async def initialize(self) -> ProgressState:
        state = await self.store.load()
        if state.start_height is None:
            start = self.config.start_height
            if start is None:
                start = await self.source.current_height()
            state.start_height = start
            state.last_processed_height = start - 1
            self._state = state
            await self._persist()
            log_event(log, "state_initialized", start_height=start, last_processed_height=start - 1)
        else:
            self._state = state
            if state.advance_to(state.start_height - 1):
                await self._persist()

        log_event(
            log,
            "startup_state",
            start_height=state.start_height,
            last_processed_height=state.last_processed_height,
            seen=len(state.processed_txs),
            rejected_pending=len(state.rejected),
            responder=getattr(self.responder, "address", None),
        )
        return state

    # ========== Catch-up ==========

    async def catch_up(self) -> CatchUpResult:
        state = self.state
        result = CatchUpResult(from_height=state.last_processed_height + 1, to_height=state.last_processed_height)
        self._window = self.config.max_block_range

        await self._retry_rejected(result)

        current = await self._head()
        if state.last_processed_height >= current:
            log_event(log, "catchup_not_needed", last_processed_height=state.last_processed_height, head=current)

        while state.last_processed_height < current:
            result.passes += 1
            if result.passes > 1:
                await self._retry_rejected(result)
            log_event(log, "catchup_pass", from_height=state.last_processed_height + 1, to_height=current, pass_no=result.passes)

            while state.last_processed_height < current:
                lo = state.last_processed_height + 1
                hi = min(current, lo + self._window - 1)
                async for sub_lo, sub_hi, events in self.fetch_range(lo, hi):
                    result.events_found += len(events)
                    log_event(log, "catchup_range", from_height=sub_lo, to_height=sub_hi, count=len(events))
                    for ev in events:
                        await self._process_event(ev, PHASE_CATCHUP, result)
                    if state.advance_to(sub_hi):
                        await self._persist()

            # new blocks may have landed during the pass
            current = await self._head()

        result.to_height = state.last_processed_height
        log_event(
            log,
            "catchup_complete",
            from_height=result.from_height,
            to_height=result.to_height,
            passes=result.passes,
            events=result.events_found,
            responded=result.responded,
            skipped_seen=result.skipped_seen,
            rejected=result.rejected,
        )
        return result

    async def fetch_range(self, from_height: int, to_height: int) -> AsyncIterator[Tuple[int, int, List[Event]]]:
        """
        Yield (lo, hi, events) covering [from_height, to_height] in ascending order.

        A window the node refuses is bisected until it is accepted; a single
        block that is still refused is a connectivity failure.
        """
        stack: List[Tuple[int, int]] = [(from_height, to_height)]
        while stack:
            lo, hi = stack.pop()
            try:
                events = await self.source.events_in_range(lo, hi)
            except RangeTooLargeError as exc:
                if lo >= hi:
                    raise ConnectivityError(f"node refuses logs for single block {lo}: {exc.reason}") from exc
                mid = (lo + hi) // 2
                self._stats["range_splits"] += 1
                if self.metrics is not None:
                    self.metrics.range_splits.inc()
                self._window = max(1, min(self._window, mid - lo + 1))
                log_event(log, "range_split", level=logging.WARNING, from_height=lo, to_height=hi, mid=mid)
                stack.append((mid + 1, hi))
                stack.append((lo, mid))
                continue
            yield lo, hi, events

    async def _retry_rejected(self, result: CatchUpResult) -> None:
        state = self.state
        due = sorted(
            (rec.height, event_id)
            for event_id, rec in state.rejected.items()
            if rec.attempts < self.config.max_rejected_attempts and not state.has_seen(event_id)
        )
        if not due:
            return
        log_event(log, "rejected_retry", count=len(due))
        for height, event_id in due:
            await self._process_event(Event(id=event_id, height=height, log_index=0), PHASE_RETRY, result)

    # ========== Live ==========

    async def run_live(self) -> None:
        state = self.state
        from_height = state.last_processed_height + 1
        log_event(log, "live_start", from_height=from_height)

        async with aclosing(self.source.subscribe(from_height)) as feed:
            async for item in feed:
                if isinstance(item, FeedCheckpoint):
                    if state.advance_to(item.height):
                        await self._persist()
                    continue
                await self._process_event(item, PHASE_LIVE)

        raise FeedClosedError("live feed ended")

    # ========== Per-event handling ==========

    async def _process_event(self, event: Event, phase: str, result: Optional[CatchUpResult] = None) -> bool:
        """Respond to one event unless already seen. Returns True if a response was confirmed."""
        if not event.id:
            raise InvalidEventError(f"event at height {event.height} has no id")

        state = self.state
        attempt = 0
        started = time.monotonic()
        while True:
            if state.has_seen(event.id):
                self._stats["dedup_skips"] += 1
                if self.metrics is not None:
                    self.metrics.dedup_skips.inc()
                if result is not None:
                    result.skipped_seen += 1
                log_event(log, "event_dedup_skip", level=logging.DEBUG, event_id=event.id, height=event.height, phase=phase)
                return False

            attempt += 1
            log_event(log, "pong_attempt", event_id=event.id, height=event.height, phase=phase, attempt=attempt)
            try:
                outcome = await self.responder.respond(event)
            except TransientError as exc:
                if attempt > self.config.respond_retries:
                    raise ConnectivityError(f"response to {event.id} failed {attempt} times: {exc}") from exc
                log_event(log, "pong_retry", level=logging.WARNING, event_id=event.id, attempt=attempt, err=str(exc))
                if self.metrics is not None:
                    self.metrics.respond_retries.inc()
                await self._sleep(self.config.respond_retry_delay_sec)
                continue
            except RejectedError as exc:
                await self._handle_rejected(event, exc, phase)
                if result is not None:
                    result.rejected += 1
                return False

            state.mark_seen(event.id)
            if phase == PHASE_LIVE:
                # the rest of this block is only covered once its checkpoint arrives
                state.advance_to(event.height - 1)
            await self._persist()
            self._stats["responded"] += 1
            if self.metrics is not None:
                self.metrics.pongs_confirmed.labels(phase=phase).inc()
                self.metrics.respond_latency.observe(time.monotonic() - started)
            if result is not None:
                result.responded += 1
            log_event(log, "pong_confirmed", phase=phase, **outcome.to_dict())
            return True

    async def _handle_rejected(self, event: Event, exc: RejectedError, phase: str) -> None:
        state = self.state
        self._stats["rejected"] += 1
        if self.metrics is not None:
            self.metrics.pongs_rejected.inc()

        if self.config.suppress_rejected:
            state.mark_seen(event.id)
            await self._persist()
            log_event(log, "pong_rejected_suppressed", level=logging.ERROR, event_id=event.id, height=event.height, err=str(exc))
            await self._alert("alert_rejected", event.id, str(exc), suppressed=True)
            return

        rec = state.record_rejection(event.id, event.height)
        await self._persist()
        log_event(
            log,
            "pong_rejected",
            level=logging.ERROR,
            event_id=event.id,
            height=event.height,
            phase=phase,
            attempts=rec.attempts,
            tx=exc.tx_hash,
            err=str(exc),
        )
        if rec.attempts >= self.config.max_rejected_attempts:
            self._stats["abandoned"] += 1
            if self.metrics is not None:
                self.metrics.pongs_abandoned.inc()
            log_event(log, "pong_abandoned", level=logging.CRITICAL, event_id=event.id, height=event.height, attempts=rec.attempts)
            await self._alert("alert_abandoned", event.id, rec.attempts)
        else:
            await self._alert("alert_rejected", event.id, str(exc), attempts=rec.attempts)

    async def _head(self) -> int:
        head = await self.source.current_height()
        if self.metrics is not None:
            self.metrics.head_height.set(head)
        return head

    async def _persist(self) -> None:
        await self.store.save(self.state)
        if self.metrics is not None:
            self.metrics.last_processed_height.set(self.state.last_processed_height)

    async def _alert(self, method: str, *args: Any, **kwargs: Any) -> None:
        if self.alerts is None:
            return
        await getattr(self.alerts, method)(*args, **kwargs)
