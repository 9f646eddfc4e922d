"""
Monitoring package.

Operator alerting over webhooks and Prometheus metrics.
"""

from pongbot.monitoring.alerting import Alert, AlertConfig, AlertManager, AlertSeverity, AlertType
from pongbot.monitoring.metrics import PongMetrics

__all__ = [
    "Alert",
    "AlertConfig",
    "AlertManager",
    "AlertSeverity",
    "AlertType",
    "PongMetrics",
]
