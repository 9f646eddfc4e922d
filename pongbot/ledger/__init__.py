"""
Ledger package.

Contract interface and the event source over the ledger node.
"""

from pongbot.ledger.contract import PING_PONG_ABI, log_to_event, ping_topic
from pongbot.ledger.event_source import EventSource, Web3EventSource

__all__ = [
    "PING_PONG_ABI",
    "log_to_event",
    "ping_topic",
    "EventSource",
    "Web3EventSource",
]
