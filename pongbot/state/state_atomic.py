"""
Async wrapper around StateStore.

Runs file IO in an executor and serializes access with an asyncio.Lock so
a save never interleaves with a load.
"""

from __future__ import annotations

import asyncio

from pongbot.state.state import ProgressState, StateStore


class AtomicStateStore:
    def __init__(self, path: str) -> None:
        self._store = StateStore(path)
        self._lock = asyncio.Lock()

    @property
    def path(self):
        return self._store.path

    async def load(self) -> ProgressState:
        async with self._lock:
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(None, self._store.load)

    async def save(self, state: ProgressState) -> None:
        # serialize on the loop thread so later mutations cannot leak into this write
        snapshot = ProgressState.from_dict(state.to_dict())
        async with self._lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: self._store.save(snapshot))
