"""
Error taxonomy for the responder.

Retryable errors end the current engine run and trigger a supervised restart.
Fatal errors carry the process exit status the supervisor terminates with.
RangeTooLargeError and RejectedError never leave the reconciliation engine.
"""

from __future__ import annotations

from typing import Optional

EXIT_OK = 0
EXIT_CONFIG_ERROR = 1
EXIT_INSUFFICIENT_FUNDS = 2
EXIT_STATE_IO_ERROR = 3
EXIT_INVALID_INPUT = 4
EXIT_RESTARTS_EXHAUSTED = 5


class PongBotError(Exception):
    """Base class for all responder errors."""
    pass


class RetryableError(PongBotError):
    """Recoverable by restarting the engine after a backoff."""
    pass


class FatalError(PongBotError):
    """Unrecoverable; the process must stop."""

    exit_code: int = 1


class ConnectivityError(RetryableError):
    """Transport failure talking to the ledger node."""
    pass


class FeedClosedError(RetryableError):
    """The live event feed dropped or went stale."""
    pass


class TransientError(RetryableError):
    """Network or timeout failure while submitting a response; the same event may be retried."""
    pass


class RangeTooLargeError(PongBotError):
    """The node refused a log query; the caller must split the block range."""

    def __init__(self, from_height: int, to_height: int, reason: str = "") -> None:
        super().__init__(f"range [{from_height}, {to_height}] too large: {reason}")
        self.from_height = from_height
        self.to_height = to_height
        self.reason = reason


class RejectedError(PongBotError):
    """The response transaction was rejected or reverted."""

    def __init__(self, message: str, tx_hash: Optional[str] = None) -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class InsufficientResourcesError(FatalError):
    """The responding account cannot pay for transactions."""

    exit_code = EXIT_INSUFFICIENT_FUNDS


class StateIOError(FatalError):
    """Progress state could not be read or written."""

    exit_code = EXIT_STATE_IO_ERROR


class InvalidEventError(FatalError):
    """The ledger returned an event that cannot be identified."""

    exit_code = EXIT_INVALID_INPUT
