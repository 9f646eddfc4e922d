"""
Progress state and its crash-safe JSON persistence.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

from pongbot.core.errors import StateIOError

STATE_VERSION = 2


@dataclass
class RejectedRecord:
    """An event whose response was rejected and may still be retried."""
    height: int
    attempts: int = 1

    def to_dict(self) -> Dict[str, int]:
        return {"height": self.height, "attempts": self.attempts}


@dataclass
class ProgressState:
    """
    Durable record of what has been reconciled.

    `processed_txs` keeps insertion order for the file; `_seen` mirrors it
    for constant-time dedup lookups. Both only grow.
    """
    start_height: Optional[int] = None
    last_processed_height: int = 0
    processed_txs: List[str] = field(default_factory=list)
    rejected: Dict[str, RejectedRecord] = field(default_factory=dict)
    _seen: Set[str] = field(default_factory=set, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._seen = set(self.processed_txs)

    @property
    def seen_event_ids(self) -> Set[str]:
        return set(self._seen)

    @property
    def initialized(self) -> bool:
        return self.start_height is not None

    def has_seen(self, event_id: str) -> bool:
        return event_id in self._seen

    def mark_seen(self, event_id: str) -> bool:
        """Record a responded-to id. Returns False if it was already known."""
        self.rejected.pop(event_id, None)
        if event_id in self._seen:
            return False
        self._seen.add(event_id)
        self.processed_txs.append(event_id)
        return True

    def advance_to(self, height: int) -> bool:
        """Move last_processed_height forward; never backwards."""
        if height > self.last_processed_height:
            self.last_processed_height = height
            return True
        return False

    def record_rejection(self, event_id: str, height: int) -> RejectedRecord:
        rec = self.rejected.get(event_id)
        if rec is None:
            rec = RejectedRecord(height=height, attempts=1)
            self.rejected[event_id] = rec
        else:
            rec.attempts += 1
        return rec

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startHeight": self.start_height,
            "lastProcessedHeight": self.last_processed_height,
            "processedTxs": list(self.processed_txs),
            "rejectedTxs": {k: v.to_dict() for k, v in self.rejected.items()},
            "stateVersion": STATE_VERSION,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProgressState":
        """Create from persisted dictionary; accepts the v1 startBlock/lastProcessedBlock keys."""
        start = data.get("startHeight", data.get("startBlock"))
        last = data.get("lastProcessedHeight", data.get("lastProcessedBlock", 0))
        # dedup while preserving order
        txs = list(dict.fromkeys(str(t) for t in data.get("processedTxs", [])))
        rejected = {
            str(k): RejectedRecord(height=int(v["height"]), attempts=int(v.get("attempts", 1)))
            for k, v in (data.get("rejectedTxs") or {}).items()
        }
        return cls(
            start_height=int(start) if start is not None else None,
            last_processed_height=int(last or 0),
            processed_txs=txs,
            rejected=rejected,
        )


class StateStore:
    """
    JSON file store with atomic replace.

    A save writes a sibling .tmp file, fsyncs it and renames it over the
    target, so a crash leaves either the previous or the new state.
    """

    def __init__(self, path: str) -> None:
        self.path = Path(path)
        self.tmp = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StateIOError(f"state_dir_error:{self.path.parent}:{exc}") from exc

    def load(self) -> ProgressState:
        if not self.path.exists():
            return ProgressState()
        try:
            data = json.loads(self.path.read_text())
            if not isinstance(data, dict):
                raise ValueError("state root is not an object")
            return ProgressState.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as exc:
            raise StateIOError(f"state_load_error:{self.path}:{exc}") from exc

    def save(self, state: ProgressState) -> None:
        payload = json.dumps(state.to_dict(), indent=2)
        try:
            with open(self.tmp, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(self.tmp, self.path)
            self._fsync_dir()
        except OSError as exc:
            raise StateIOError(f"state_save_error:{self.path}:{exc}") from exc

    def _fsync_dir(self) -> None:
        if os.name != "posix":
            return
        fd = os.open(self.path.parent, os.O_RDONLY)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
