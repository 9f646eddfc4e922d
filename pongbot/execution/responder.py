"""
Responder: submits pong(txHash) for one Ping event and waits for settlement.

Architecture:
    The transaction is signed locally. Its hash is known before broadcast
    and is remembered per event id. A retry for the same event
    (after a transport error or a lost receipt poll) resumes on the same
    signed transaction instead of paying for a second pong. The memory is
    per process; dedup across restarts is the engine's persisted seen set.

Failure classification:
    InsufficientResourcesError  account cannot pay gas, fatal
    TransientError              transport/timeout/nonce race, retry same event
    RejectedError               reverted or refused by the node, anomaly
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from web3.exceptions import ContractLogicError, TimeExhausted, Web3RPCError

from pongbot.core.errors import InsufficientResourcesError, RejectedError, TransientError
from pongbot.core.types import Event, ResponseOutcome
from pongbot.infra.async_ledger import TRANSPORT_ERRORS
from pongbot.ledger.contract import PING_PONG_ABI, event_id_to_bytes32, normalize_hash

log = logging.getLogger("pongbot")

INSUFFICIENT_FUNDS_MARKERS = ("insufficient funds", "insufficient balance")
TRANSIENT_MARKERS = (
    "nonce too low",
    "replacement transaction underpriced",
    "already known",
    "known transaction",
    "timeout",
    "timed out",
    "too many requests",
    "rate limit",
)
# Node replies on rebroadcast that mean "this exact tx is already in flight or mined"
REBROADCAST_OK_MARKERS = ("already known", "known transaction", "nonce too low")


def classify_submit_error(exc: BaseException, tx_hash: Optional[str] = None) -> Exception:
    msg = str(exc).lower()
    if any(m in msg for m in INSUFFICIENT_FUNDS_MARKERS):
        return InsufficientResourcesError(f"insufficient funds: {exc}")
    if isinstance(exc, TRANSPORT_ERRORS) or any(m in msg for m in TRANSIENT_MARKERS):
        return TransientError(f"submit failed: {exc}")
    return RejectedError(f"submit rejected: {exc}", tx_hash=tx_hash)


@dataclass
class ResponderConfig:
    """Configuration for Responder."""
    gas_limit: int = 100_000
    chain_id: Optional[int] = None  # discovered from the node when unset
    confirm_timeout_sec: float = 120.0
    confirm_poll_sec: float = 2.0
    log_event_callback: Optional[Callable[..., None]] = None


@dataclass
class _InFlight:
    tx_hash: str
    raw: bytes
    sent_once: bool = False  # send_raw_transaction was tried with these bytes
    broadcast: bool = False


class Responder:
    """
    Sends one confirming pong per call and blocks until it is mined.

    Does not deduplicate; callers must not invoke it twice for an event
    that already has a confirmed response.
    """

    def __init__(
        self,
        ledger,
        account,
        contract_address: str,
        config: Optional[ResponderConfig] = None,
        contract: Any = None,
    ) -> None:
        self.ledger = ledger
        self.account = account
        self.config = config or ResponderConfig()
        self.contract = contract or ledger.web3.eth.contract(
            address=ledger.web3.to_checksum_address(contract_address),
            abi=PING_PONG_ABI,
        )
        self._chain_id = self.config.chain_id
        self._inflight: Dict[str, _InFlight] = {}
        self._attempts: Dict[str, int] = {}
        self._log_event = self.config.log_event_callback or self._default_log

    def _default_log(self, event: str, **kwargs: Any) -> None:
        payload = {"event": event, **kwargs}
        log.info(json.dumps(payload, default=str))

    @property
    def address(self) -> str:
        return self.account.address

    def pending(self) -> Dict[str, str]:
        """Event id -> tx hash of responses signed but not yet settled."""
        return {k: v.tx_hash for k, v in self._inflight.items()}

    async def respond(self, event: Event) -> ResponseOutcome:
        attempts = self._attempts.get(event.id, 0) + 1
        self._attempts[event.id] = attempts

        inflight = self._inflight.get(event.id)
        if inflight is None:
            inflight = await self._sign(event)
            self._inflight[event.id] = inflight
            self._log_event("pong_submit", event_id=event.id, height=event.height, tx=inflight.tx_hash, attempt=attempts)
        else:
            self._log_event("pong_resume", event_id=event.id, tx=inflight.tx_hash, attempt=attempts)

        if not inflight.broadcast:
            await self._broadcast(event, inflight)

        receipt = await self._await_receipt(event, inflight.tx_hash)
        self._inflight.pop(event.id, None)
        self._attempts.pop(event.id, None)

        status = receipt.get("status")
        if status != 1:
            raise RejectedError(f"pong {inflight.tx_hash} reverted (status={status})", tx_hash=inflight.tx_hash)

        return ResponseOutcome(
            event_id=event.id,
            confirmation_id=normalize_hash(receipt.get("transactionHash") or inflight.tx_hash),
            block_number=receipt.get("blockNumber"),
            gas_used=receipt.get("gasUsed"),
            attempts=attempts,
        )

    async def _resolve_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = await self.ledger.chain_id()
        return self._chain_id

    async def _sign(self, event: Event) -> _InFlight:
        payload = event_id_to_bytes32(event.id)
        try:
            chain_id = await self._resolve_chain_id()
            nonce = await self.ledger.get_transaction_count(self.account.address, "pending")
            tx = await self.ledger.build_transaction(
                self.contract.functions.pong(payload),
                {
                    "from": self.account.address,
                    "nonce": nonce,
                    "gas": self.config.gas_limit,
                    "chainId": chain_id,
                },
            )
        except TRANSPORT_ERRORS as exc:
            raise TransientError(f"building pong failed: {exc}") from exc
        except (Web3RPCError, ContractLogicError, ValueError) as exc:
            raise classify_submit_error(exc) from exc

        signed = self.account.sign_transaction(tx)
        return _InFlight(tx_hash=normalize_hash(signed.hash), raw=bytes(signed.raw_transaction))

    async def _broadcast(self, event: Event, inflight: _InFlight) -> None:
        resend = inflight.sent_once
        inflight.sent_once = True
        try:
            await self.ledger.send_raw_transaction(inflight.raw)
        except TRANSPORT_ERRORS as exc:
            # the node may or may not have it; a retry rebroadcasts the same bytes
            raise TransientError(f"broadcast of {inflight.tx_hash} failed: {exc}") from exc
        except (Web3RPCError, ContractLogicError, ValueError) as exc:
            msg = str(exc).lower()
            if resend and any(m in msg for m in REBROADCAST_OK_MARKERS):
                self._log_event("pong_rebroadcast_known", event_id=event.id, tx=inflight.tx_hash)
            else:
                self._inflight.pop(event.id, None)
                self._attempts.pop(event.id, None)
                raise classify_submit_error(exc, tx_hash=inflight.tx_hash) from exc
        inflight.broadcast = True

    async def _await_receipt(self, event: Event, tx_hash: str) -> Dict[str, Any]:
        while True:
            try:
                receipt = await self.ledger.wait_for_receipt(
                    tx_hash,
                    timeout=self.config.confirm_timeout_sec,
                    poll_latency=self.config.confirm_poll_sec,
                )
                return dict(receipt)
            except TimeExhausted:
                log.warning(json.dumps({"event": "confirm_wait", "event_id": event.id, "tx": tx_hash}))
            except TRANSPORT_ERRORS as exc:
                raise TransientError(f"receipt poll for {tx_hash} failed: {exc}") from exc
