"""
Entry point wiring all components.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from web3 import Web3

from pongbot.config.config import Settings
from pongbot.config.config_validator import validate_and_log
from pongbot.core.errors import EXIT_CONFIG_ERROR, FatalError
from pongbot.execution.reconciliation_engine import EngineConfig, ReconciliationEngine
from pongbot.execution.responder import Responder, ResponderConfig
from pongbot.infra.async_ledger import AsyncLedger
from pongbot.infra.logging_cfg import build_logger, log_event, shutdown_logger
from pongbot.ledger.event_source import Web3EventSource
from pongbot.monitoring.alerting import AlertConfig, AlertManager, AlertSeverity
from pongbot.monitoring.metrics import PongMetrics
from pongbot.orchestrator.supervisor import Supervisor, SupervisorConfig
from pongbot.state.state_atomic import AtomicStateStore


async def main() -> int:
    try:
        cfg = Settings.load()
    except ValueError as exc:
        log = build_logger()
        log_event(log, "config_error", err=str(exc))
        return EXIT_CONFIG_ERROR

    log = build_logger(level=cfg.log_level, file_path=cfg.log_file)

    # Validate before any ledger access
    if not validate_and_log(cfg, log):
        log.error("Configuration validation failed, exiting")
        return EXIT_CONFIG_ERROR

    try:
        signer = cfg.resolve_signer()
    except (RuntimeError, ValueError) as exc:
        log_event(log, "config_error", err=f"bad private key: {exc}")
        return EXIT_CONFIG_ERROR

    log_event(log, "config_loaded", **cfg.dump())

    try:
        store = AtomicStateStore(cfg.state_file)
    except FatalError as exc:
        log_event(log, "fatal_exit", level=logging.CRITICAL, err=str(exc), exit_code=exc.exit_code)
        return exc.exit_code

    alerts = AlertManager(AlertConfig(
        webhook_url=cfg.alert_webhook_url,
        webhook_type=cfg.alert_webhook_type,
        min_severity=AlertSeverity.WARNING,
        enabled=cfg.alert_enabled,
        bot_name="PongBot",
    ))

    w3 = Web3(Web3.HTTPProvider(cfg.rpc_url, request_kwargs={"timeout": cfg.http_timeout}))
    ledger = AsyncLedger(w3, timeout=cfg.http_timeout)
    source = Web3EventSource(
        ledger,
        cfg.contract_address,
        poll_interval_sec=cfg.poll_interval_sec,
        poll_max_blocks=cfg.poll_max_blocks,
        stale_after_sec=cfg.feed_stale_after_sec,
    )
    responder = Responder(
        ledger,
        signer,
        cfg.contract_address,
        ResponderConfig(
            gas_limit=cfg.gas_limit,
            chain_id=cfg.chain_id,
            confirm_timeout_sec=cfg.confirm_timeout_sec,
            confirm_poll_sec=cfg.confirm_poll_sec,
        ),
    )
    metrics = PongMetrics()
    if cfg.metrics_port:
        metrics.serve(cfg.metrics_port)
        log_event(log, "metrics_server", port=cfg.metrics_port)

    engine = ReconciliationEngine(
        source,
        responder,
        store,
        EngineConfig(
            start_height=cfg.start_height,
            max_block_range=cfg.max_block_range,
            respond_retries=cfg.respond_retries,
            respond_retry_delay_sec=cfg.respond_retry_delay_sec,
            suppress_rejected=cfg.suppress_rejected,
            max_rejected_attempts=cfg.max_rejected_attempts,
        ),
        alerts=alerts,
        metrics=metrics,
    )
    supervisor = Supervisor(
        engine,
        SupervisorConfig(restart_backoff_sec=cfg.restart_backoff_sec, max_restarts=cfg.max_restarts),
        alerts=alerts,
        metrics=metrics,
    )

    loop = asyncio.get_running_loop()
    # Windows doesn't support add_signal_handler, so rely on KeyboardInterrupt handling
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, supervisor.stop)
        except NotImplementedError:
            pass

    log_event(log, "startup", responder=signer.address, contract=cfg.contract_address, state_file=cfg.state_file)
    await alerts.alert_startup(signer.address, contract=cfg.contract_address)

    try:
        return await supervisor.run()
    finally:
        log.info("Closing connections...")
        await ledger.close(wait=False)
        await alerts.close()
        log.info("Shutdown complete")


def cli() -> None:
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        print("\nResponder stopped by user")
        code = 0
    finally:
        shutdown_logger()
    sys.exit(code)


if __name__ == "__main__":
    cli()
