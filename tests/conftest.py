"""
Pytest configuration and shared fakes.

FakeChain stands in for the event source: an in-memory list of Ping
events, a movable head, an optional node limit on log query ranges and a
scripted live feed. FakeResponder records every respond() call and raises
scripted errors per event id.
"""

from typing import Callable, Dict, List, Optional

import pytest
from unittest.mock import AsyncMock

from pongbot.core.errors import FeedClosedError, RangeTooLargeError
from pongbot.core.types import Event, ResponseOutcome
from pongbot.execution.reconciliation_engine import EngineConfig, ReconciliationEngine
from pongbot.state.state_atomic import AtomicStateStore


def tx_id(n: int) -> str:
    return "0x" + format(n, "064x")


class FakeChain:
    """In-memory event source."""

    def __init__(self, head: int = 0, max_range: Optional[int] = None):
        self.head = head
        self.max_range = max_range
        self.events: List[Event] = []
        self.range_calls: List[tuple] = []
        self.subscribe_calls: List[int] = []
        self.feed_script: List[object] = []
        self.on_range: Optional[Callable[[int, int], None]] = None
        self._next_id = 1

    def add_ping(self, height: int, log_index: int = 0, event_id: Optional[str] = None) -> Event:
        if event_id is None:
            event_id = tx_id(self._next_id)
            self._next_id += 1
        ev = Event(height=height, log_index=log_index, id=event_id)
        self.events.append(ev)
        return ev

    async def current_height(self) -> int:
        return self.head

    async def events_in_range(self, from_height: int, to_height: int) -> List[Event]:
        self.range_calls.append((from_height, to_height))
        if self.max_range is not None and to_height - from_height + 1 > self.max_range:
            raise RangeTooLargeError(from_height, to_height, "query returned more than 10000 results")
        found = sorted(e for e in self.events if from_height <= e.height <= to_height)
        if self.on_range is not None:
            self.on_range(from_height, to_height)
        return found

    async def subscribe(self, from_height: int):
        self.subscribe_calls.append(from_height)
        for item in self.feed_script:
            yield item
        raise FeedClosedError("scripted feed exhausted")


class FakeResponder:
    """Records calls; succeeds unless an error is scripted for the event id."""

    address = "0x" + "ab" * 20

    def __init__(self):
        self.calls: List[str] = []
        self.confirmed: List[str] = []
        self.script: Dict[str, List[Exception]] = {}

    def fail(self, event_id: str, *errors: Exception) -> None:
        self.script.setdefault(event_id, []).extend(errors)

    async def respond(self, event: Event) -> ResponseOutcome:
        self.calls.append(event.id)
        pending = self.script.get(event.id)
        if pending:
            raise pending.pop(0)
        self.confirmed.append(event.id)
        return ResponseOutcome(event_id=event.id, confirmation_id="0x" + "cd" * 32, block_number=event.height + 1)


@pytest.fixture
def state_path(tmp_path):
    return tmp_path / "state" / "state.json"


@pytest.fixture
def store(state_path):
    return AtomicStateStore(str(state_path))


@pytest.fixture
def chain():
    return FakeChain(head=100)


@pytest.fixture
def responder():
    return FakeResponder()


@pytest.fixture
def alerts():
    mgr = AsyncMock()
    return mgr


@pytest.fixture
def make_engine(chain, responder, store, alerts):
    def _make(**overrides):
        cfg = EngineConfig(**{"start_height": 100, "respond_retry_delay_sec": 0.0, **overrides})
        return ReconciliationEngine(chain, responder, store, cfg, alerts=alerts, sleep=AsyncMock())
    return _make
