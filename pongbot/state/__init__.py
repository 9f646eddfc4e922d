"""
State management package.

This package contains progress state and its persistence.
"""

from pongbot.state.state import ProgressState, RejectedRecord, StateStore
from pongbot.state.state_atomic import AtomicStateStore

__all__ = [
    "ProgressState",
    "RejectedRecord",
    "StateStore",
    "AtomicStateStore",
]
