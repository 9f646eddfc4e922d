"""
Async wrapper around a blocking web3 client using a shared thread pool.

Reads get a per-call timeout and a bounded retry on transport errors.
Transaction submission and receipt waits are never retried here; the
responder decides what a failure means.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Optional

import requests

log = logging.getLogger("pongbot")

TRANSPORT_ERRORS = (requests.exceptions.RequestException, asyncio.TimeoutError, OSError)


class AsyncLedger:
    def __init__(self, web3, timeout: float = 10.0, max_workers: int = 4, read_retries: int = 2) -> None:
        self._w3 = web3
        self._timeout = timeout
        self._read_retries = read_retries
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="ledger")

    @property
    def web3(self):
        return self._w3

    async def block_number(self) -> int:
        return int(await self._read(lambda: self._w3.eth.block_number))

    async def chain_id(self) -> int:
        return int(await self._read(lambda: self._w3.eth.chain_id))

    async def get_logs(self, filter_params: Dict[str, Any]) -> List[Any]:
        return list(await self._read(lambda: self._w3.eth.get_logs(filter_params)))

    async def get_transaction_count(self, address: str, block: str = "pending") -> int:
        return int(await self._read(lambda: self._w3.eth.get_transaction_count(address, block)))

    async def build_transaction(self, contract_fn, params: Dict[str, Any]) -> Dict[str, Any]:
        # build_transaction fills fee fields from the node
        return await self._read(lambda: contract_fn.build_transaction(params))

    async def send_raw_transaction(self, raw: bytes) -> Any:
        return await self._call(lambda: self._w3.eth.send_raw_transaction(raw), retries=0)

    async def wait_for_receipt(self, tx_hash: Any, timeout: float, poll_latency: float) -> Any:
        # No outer timeout: web3 raises TimeExhausted after `timeout` itself
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            self._executor,
            lambda: self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout, poll_latency=poll_latency),
        )

    async def close(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    async def _read(self, fn: Callable[[], Any]) -> Any:
        return await self._call(fn, retries=self._read_retries)

    async def _call(self, fn: Callable[[], Any], retries: int = 2, timeout: Optional[float] = None) -> Any:
        loop = asyncio.get_running_loop()
        backoff = 0.2
        for attempt in range(retries + 1):
            try:
                return await asyncio.wait_for(
                    loop.run_in_executor(self._executor, fn),
                    timeout=timeout or self._timeout,
                )
            except TRANSPORT_ERRORS as exc:
                if attempt >= retries:
                    raise
                log.warning(json.dumps({"event": "ledger_call_retry", "attempt": attempt + 1, "err": str(exc)}))
                await asyncio.sleep(backoff + random.uniform(0, backoff * 0.5))
                backoff *= 2
