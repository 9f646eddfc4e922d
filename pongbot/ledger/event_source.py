"""
EventSource: height queries, ranged log queries and a polling live feed.

Architecture:
    The adapter stays thin. It maps web3 failures onto the error taxonomy
    and leaves range splitting to the reconciliation engine.

    The live feed is an async generator. Each poll reads the head and
    fetches logs for the new blocks. It yields the events, then a
    FeedCheckpoint for the last block covered. Losing the node or a head
    that stops advancing raises FeedClosedError. A dead transport
    therefore ends the iteration instead of stalling it.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from typing import Any, AsyncIterator, Awaitable, Callable, List, Protocol, Union

from web3 import Web3
from web3.exceptions import Web3RPCError

from pongbot.core.errors import ConnectivityError, FeedClosedError, RangeTooLargeError
from pongbot.core.types import Event, FeedCheckpoint
from pongbot.infra.async_ledger import TRANSPORT_ERRORS
from pongbot.ledger.contract import log_to_event, ping_topic

log = logging.getLogger("pongbot")

FeedItem = Union[Event, FeedCheckpoint]

# Substrings nodes use when refusing an eth_getLogs window
RANGE_ERROR_MARKERS = (
    "query returned more than",
    "block range",
    "range too large",
    "range is too large",
    "too many results",
    "too many logs",
    "too many blocks",
    "log limit exceeded",
    "response size exceeded",
    "exceed maximum",
)


def is_range_error(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return any(marker in msg for marker in RANGE_ERROR_MARKERS)


class EventSource(Protocol):
    async def current_height(self) -> int: ...

    async def events_in_range(self, from_height: int, to_height: int) -> List[Event]: ...

    def subscribe(self, from_height: int) -> AsyncIterator[FeedItem]: ...


class Web3EventSource:
    """
    Ping() events of one contract, read through an AsyncLedger.

    Usage:
        source = Web3EventSource(ledger, "0xa7f4...")
        head = await source.current_height()
        events = await source.events_in_range(100, head)
        async for item in source.subscribe(head + 1):
            ...
    """

    def __init__(
        self,
        ledger,
        contract_address: str,
        poll_interval_sec: float = 4.0,
        poll_max_blocks: int = 500,
        stale_after_sec: float = 180.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.ledger = ledger
        self.contract_address = Web3.to_checksum_address(contract_address)
        self.poll_interval_sec = poll_interval_sec
        self.poll_max_blocks = poll_max_blocks
        self.stale_after_sec = stale_after_sec
        self._topic = ping_topic()
        self._clock = clock
        self._sleep = sleep

    async def current_height(self) -> int:
        try:
            return await self.ledger.block_number()
        except TRANSPORT_ERRORS as exc:
            raise ConnectivityError(f"block_number failed: {exc}") from exc
        except (Web3RPCError, ValueError) as exc:
            raise ConnectivityError(f"block_number rejected: {exc}") from exc

    async def events_in_range(self, from_height: int, to_height: int) -> List[Event]:
        if from_height > to_height:
            raise ValueError(f"from_height {from_height} > to_height {to_height}")
        params = {
            "address": self.contract_address,
            "topics": [self._topic],
            "fromBlock": from_height,
            "toBlock": to_height,
        }
        try:
            entries = await self.ledger.get_logs(params)
        except TRANSPORT_ERRORS as exc:
            raise ConnectivityError(f"get_logs [{from_height}, {to_height}] failed: {exc}") from exc
        except (Web3RPCError, ValueError) as exc:
            if is_range_error(exc):
                raise RangeTooLargeError(from_height, to_height, str(exc)) from exc
            raise ConnectivityError(f"get_logs [{from_height}, {to_height}] rejected: {exc}") from exc
        return sorted(log_to_event(entry) for entry in entries)

    async def subscribe(self, from_height: int) -> AsyncIterator[FeedItem]:
        next_height = from_height
        last_head: int | None = None
        last_advance = self._clock()
        log.info(json.dumps({"event": "feed_open", "from_height": from_height}))

        while True:
            try:
                head = await self.current_height()
            except ConnectivityError as exc:
                raise FeedClosedError(f"feed lost node: {exc}") from exc

            now = self._clock()
            if last_head is None or head > last_head:
                last_head = head
                last_advance = now
            elif now - last_advance >= self.stale_after_sec:
                raise FeedClosedError(f"head stuck at {head} for {now - last_advance:.0f}s")

            while next_height <= head:
                to_height = min(head, next_height + self.poll_max_blocks - 1)
                try:
                    events = await self.events_in_range(next_height, to_height)
                except (ConnectivityError, RangeTooLargeError) as exc:
                    raise FeedClosedError(f"feed poll failed: {exc}") from exc
                if events:
                    log.debug(json.dumps({"event": "feed_poll", "from": next_height, "to": to_height, "count": len(events)}))
                for ev in events:
                    yield ev
                yield FeedCheckpoint(height=to_height)
                next_height = to_height + 1

            await self._sleep(self.poll_interval_sec)
