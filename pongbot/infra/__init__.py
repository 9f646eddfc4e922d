"""
Infrastructure package.

This package contains the async ledger wrapper and logging configuration.
"""

from pongbot.infra.async_ledger import AsyncLedger
from pongbot.infra.logging_cfg import build_logger, log_event

__all__ = [
    "AsyncLedger",
    "build_logger",
    "log_event",
]
