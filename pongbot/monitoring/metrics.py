"""
Prometheus metrics for the responder.

Organized into: responses, progress, operational.
"""

from __future__ import annotations

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, start_http_server


class PongMetrics:
    """Counters and gauges updated by the engine and supervisor."""

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.registry = registry or CollectorRegistry()
        reg = self.registry

        # === Response Metrics ===
        self.pongs_confirmed = Counter(
            'pongs_confirmed_total',
            'Pong transactions confirmed on chain',
            labelnames=['phase'],
            registry=reg
        )
        self.pongs_rejected = Counter(
            'pongs_rejected_total',
            'Pong transactions rejected or reverted',
            registry=reg
        )
        self.pongs_abandoned = Counter(
            'pongs_abandoned_total',
            'Pings given up on after repeated rejections',
            registry=reg
        )
        self.respond_retries = Counter(
            'respond_retries_total',
            'Transient failures retried for the same ping',
            registry=reg
        )
        self.respond_latency = Histogram(
            'respond_latency_seconds',
            'Time from first attempt to confirmed pong',
            buckets=[1, 5, 15, 30, 60, 120, 300, 900],
            registry=reg
        )
        self.dedup_skips = Counter(
            'dedup_skips_total',
            'Pings skipped because a pong was already recorded',
            registry=reg
        )

        # === Progress Metrics ===
        self.last_processed_height = Gauge(
            'last_processed_height',
            'Highest block fully reconciled',
            registry=reg
        )
        self.head_height = Gauge(
            'head_height',
            'Latest block height observed during catch-up',
            registry=reg
        )
        self.range_splits = Counter(
            'range_splits_total',
            'Log queries split after the node refused the range',
            registry=reg
        )

        # === Operational Metrics ===
        self.restarts = Counter(
            'engine_restarts_total',
            'Supervised engine restarts',
            labelnames=['reason'],
            registry=reg
        )

    def serve(self, port: int, addr: str = "0.0.0.0") -> None:
        """Expose /metrics on a background thread."""
        start_http_server(port, addr=addr, registry=self.registry)
