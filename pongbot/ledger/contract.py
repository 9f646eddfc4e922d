"""
Watched contract interface: the Ping() event and the pong(bytes32) response.
"""

from __future__ import annotations

from typing import Any, Mapping

from web3 import Web3

from pongbot.core.errors import InvalidEventError
from pongbot.core.types import Event

PING_EVENT_SIGNATURE = "Ping()"

PING_PONG_ABI = [
    {
        "anonymous": False,
        "inputs": [],
        "name": "Ping",
        "type": "event",
    },
    {
        "inputs": [{"internalType": "bytes32", "name": "txHash", "type": "bytes32"}],
        "name": "pong",
        "outputs": [],
        "stateMutability": "nonpayable",
        "type": "function",
    },
]


def ping_topic() -> str:
    return Web3.to_hex(Web3.keccak(text=PING_EVENT_SIGNATURE))


def normalize_hash(value: Any) -> str:
    if isinstance(value, str):
        value = value.lower()
        return value if value.startswith("0x") else "0x" + value
    return Web3.to_hex(value)


def log_to_event(entry: Mapping[str, Any]) -> Event:
    """Map a raw eth_getLogs entry to an Event keyed by its transaction hash."""
    tx_hash = entry.get("transactionHash")
    if not tx_hash:
        raise InvalidEventError(f"log without transaction hash at block {entry.get('blockNumber')}")
    height = entry.get("blockNumber")
    if height is None:
        raise InvalidEventError(f"log {normalize_hash(tx_hash)} has no block number")
    return Event(
        id=normalize_hash(tx_hash),
        height=int(height),
        log_index=int(entry.get("logIndex") or 0),
    )


def event_id_to_bytes32(event_id: str) -> bytes:
    raw = Web3.to_bytes(hexstr=event_id)
    if len(raw) != 32:
        raise InvalidEventError(f"event id {event_id} is not 32 bytes")
    return raw
