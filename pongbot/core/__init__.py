"""
Core package.

Shared types and the error taxonomy used by every other layer.
"""

from pongbot.core.errors import (
    ConnectivityError,
    FatalError,
    FeedClosedError,
    InsufficientResourcesError,
    InvalidEventError,
    PongBotError,
    RangeTooLargeError,
    RejectedError,
    RetryableError,
    StateIOError,
    TransientError,
)
from pongbot.core.types import Event, FeedCheckpoint, ResponseOutcome

__all__ = [
    "ConnectivityError",
    "FatalError",
    "FeedClosedError",
    "InsufficientResourcesError",
    "InvalidEventError",
    "PongBotError",
    "RangeTooLargeError",
    "RejectedError",
    "RetryableError",
    "StateIOError",
    "TransientError",
    "Event",
    "FeedCheckpoint",
    "ResponseOutcome",
]
