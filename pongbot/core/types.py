"""
Transient value types passed between the event source, responder and engine.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass(frozen=True, order=True)
class Event:
    """One occurrence of the watched Ping() notification."""
    height: int
    log_index: int
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "height": self.height, "log_index": self.log_index}


@dataclass(frozen=True)
class FeedCheckpoint:
    """Marker from the live feed: every event at or below `height` has been delivered."""
    height: int


@dataclass
class ResponseOutcome:
    """Confirmed response to one event."""
    event_id: str
    confirmation_id: str
    block_number: Optional[int] = None
    gas_used: Optional[int] = None
    attempts: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event_id": self.event_id,
            "confirmation_id": self.confirmation_id,
            "block_number": self.block_number,
            "gas_used": self.gas_used,
            "attempts": self.attempts,
        }
