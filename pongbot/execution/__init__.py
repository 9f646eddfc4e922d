"""
Execution package.

The responder that submits pong transactions and the reconciliation
engine that decides which events still need one.
"""

from pongbot.execution.reconciliation_engine import (
    CatchUpResult,
    EngineConfig,
    ReconciliationEngine,
)
from pongbot.execution.responder import (
    Responder,
    ResponderConfig,
    classify_submit_error,
)

__all__ = [
    "CatchUpResult",
    "EngineConfig",
    "ReconciliationEngine",
    "Responder",
    "ResponderConfig",
    "classify_submit_error",
]
