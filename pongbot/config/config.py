"""
Environment-driven configuration with validation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_RPC_URL = "https://rpc.sepolia.org"
DEFAULT_CONTRACT_ADDRESS = "0xa7f42ff7433cb268dd7d59be62b00c30ded28d3d"


def env_bool(key: str, default: bool) -> bool:
    val = os.getenv(key)
    if val is None:
        return default
    return val.lower() in {"1", "true", "yes", "y"}


def _int_env(key: str, default: Optional[int]) -> Optional[int]:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return int(raw)


def _float_env(key: str, default: float) -> float:
    raw = os.getenv(key)
    if raw is None or raw == "":
        return default
    return float(raw)


@dataclass(frozen=True)
class Settings:
    rpc_url: str
    contract_address: str
    private_key: str | None
    chain_id: int | None
    start_height: int | None
    state_file: str
    gas_limit: int
    http_timeout: float
    max_block_range: int
    poll_interval_sec: float
    poll_max_blocks: int
    feed_stale_after_sec: float
    confirm_timeout_sec: float
    confirm_poll_sec: float
    respond_retries: int
    respond_retry_delay_sec: float
    restart_backoff_sec: float
    max_restarts: int  # 0 = unlimited
    suppress_rejected: bool
    max_rejected_attempts: int
    log_file: str | None
    log_level: str
    alert_webhook_url: str | None
    alert_webhook_type: str  # generic, slack, discord
    alert_enabled: bool
    metrics_port: int  # 0 disables the /metrics endpoint

    def dump(self) -> dict:
        """Return a dict of settings for logging, with the key masked."""
        data = self.__dict__.copy()
        if data.get("private_key"):
            data["private_key"] = "***"
        return data

    @classmethod
    def load(cls) -> "Settings":
        cfg = cls(
            rpc_url=os.getenv("PONG_RPC_URL") or os.getenv("SEPOLIA_RPC_URL") or DEFAULT_RPC_URL,
            contract_address=os.getenv("PONG_CONTRACT_ADDRESS", DEFAULT_CONTRACT_ADDRESS),
            private_key=os.getenv("PONG_PRIVATE_KEY") or os.getenv("PRIVATE_KEY"),
            chain_id=_int_env("PONG_CHAIN_ID", None),
            start_height=_int_env("PONG_START_BLOCK", None),
            state_file=os.getenv("PONG_STATE_FILE", "state/state.json"),
            gas_limit=_int_env("PONG_GAS_LIMIT", 100_000),
            http_timeout=_float_env("PONG_HTTP_TIMEOUT", 10.0),
            max_block_range=_int_env("PONG_MAX_BLOCK_RANGE", 2000),
            poll_interval_sec=_float_env("PONG_POLL_INTERVAL_SEC", 4.0),
            poll_max_blocks=_int_env("PONG_POLL_MAX_BLOCKS", 500),
            feed_stale_after_sec=_float_env("PONG_FEED_STALE_AFTER_SEC", 180.0),
            confirm_timeout_sec=_float_env("PONG_CONFIRM_TIMEOUT_SEC", 120.0),
            confirm_poll_sec=_float_env("PONG_CONFIRM_POLL_SEC", 2.0),
            respond_retries=_int_env("PONG_RESPOND_RETRIES", 3),
            respond_retry_delay_sec=_float_env("PONG_RESPOND_RETRY_DELAY_SEC", 2.0),
            restart_backoff_sec=_float_env("PONG_RESTART_BACKOFF_SEC", 5.0),
            max_restarts=_int_env("PONG_MAX_RESTARTS", 0),
            suppress_rejected=env_bool("PONG_SUPPRESS_REJECTED", False),
            max_rejected_attempts=_int_env("PONG_MAX_REJECTED_ATTEMPTS", 3),
            log_file=os.getenv("PONG_LOG_FILE", "logs/pongbot.log") or None,
            log_level=os.getenv("PONG_LOG_LEVEL", "INFO").upper(),
            alert_webhook_url=os.getenv("PONG_ALERT_WEBHOOK_URL"),
            alert_webhook_type=os.getenv("PONG_ALERT_WEBHOOK_TYPE", "generic"),
            alert_enabled=env_bool("PONG_ALERT_ENABLED", True),
            metrics_port=_int_env("PONG_METRICS_PORT", 0),
        )
        cfg._validate()
        return cfg

    def resolve_signer(self):
        from eth_account import Account

        if self.private_key:
            return Account.from_key(self.private_key)
        raise RuntimeError("Missing credentials: set PONG_PRIVATE_KEY")

    def resolve_account(self) -> str:
        return self.resolve_signer().address

    def _validate(self) -> None:
        if self.start_height is not None and self.start_height < 0:
            raise ValueError("PONG_START_BLOCK must be >= 0")
        if self.gas_limit <= 0:
            raise ValueError("PONG_GAS_LIMIT must be > 0")
        if self.max_block_range <= 0 or self.poll_max_blocks <= 0:
            raise ValueError("Block ranges must be > 0")
        if self.poll_interval_sec <= 0 or self.confirm_poll_sec <= 0:
            raise ValueError("Poll intervals must be > 0")
        if self.feed_stale_after_sec <= self.poll_interval_sec:
            raise ValueError("PONG_FEED_STALE_AFTER_SEC must exceed PONG_POLL_INTERVAL_SEC")
        if self.respond_retries < 0:
            raise ValueError("PONG_RESPOND_RETRIES must be >= 0")
        if self.restart_backoff_sec < 0:
            raise ValueError("PONG_RESTART_BACKOFF_SEC must be >= 0")
        if self.max_restarts < 0:
            raise ValueError("PONG_MAX_RESTARTS must be >= 0")
        if not 0 <= self.metrics_port <= 65535:
            raise ValueError("PONG_METRICS_PORT must be 0-65535")
        if self.max_rejected_attempts <= 0:
            raise ValueError("PONG_MAX_REJECTED_ATTEMPTS must be > 0")
