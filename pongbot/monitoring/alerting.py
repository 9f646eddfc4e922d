"""
Webhook alerting for operator-relevant events.

- Generic JSON, Slack and Discord payloads
- Per-type rate limiting to prevent alert storms
- Delivery failures are logged and never propagate into the responder loop
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger("pongbot")


class AlertSeverity(Enum):
    """Alert severity levels."""
    CRITICAL = auto()  # Immediate attention required
    WARNING = auto()   # Potential issue
    INFO = auto()      # Informational


class AlertType(Enum):
    """Types of alerts."""
    STARTUP = auto()
    SHUTDOWN = auto()
    RESTART = auto()
    RESPONSE_REJECTED = auto()
    RESPONSE_ABANDONED = auto()
    FATAL = auto()
    CUSTOM = auto()


@dataclass
class Alert:
    """An alert to be sent."""
    alert_type: AlertType
    severity: AlertSeverity
    title: str
    message: str
    timestamp_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.alert_type.name,
            "severity": self.severity.name,
            "title": self.title,
            "message": self.message,
            "timestamp_ms": self.timestamp_ms,
            "timestamp_iso": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(self.timestamp_ms / 1000)),
            "details": self.details,
        }


@dataclass
class AlertConfig:
    """Configuration for alerting."""
    webhook_url: Optional[str] = None
    webhook_type: str = "generic"  # generic, slack, discord
    min_severity: AlertSeverity = AlertSeverity.WARNING
    rate_limit_seconds: int = 60  # Min seconds between alerts of one type
    enabled: bool = True
    include_details: bool = True
    bot_name: str = "PongBot"
    timeout_sec: float = 10.0


class WebhookFormatter:
    """Formats alerts for different webhook types."""

    @staticmethod
    def format_generic(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        return {"source": config.bot_name, **alert.to_dict()}

    @staticmethod
    def format_slack(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: "#FF0000",
            AlertSeverity.WARNING: "#FFA500",
            AlertSeverity.INFO: "#0000FF",
        }.get(alert.severity, "#808080")

        fields = [{"title": "Type", "value": alert.alert_type.name, "short": True}]
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:
                fields.append({"title": key, "value": str(value), "short": True})

        return {
            "username": config.bot_name,
            "attachments": [{
                "color": color,
                "title": alert.title,
                "text": alert.message,
                "fields": fields,
                "footer": f"{config.bot_name} | {alert.severity.name}",
                "ts": alert.timestamp_ms // 1000,
            }],
        }

    @staticmethod
    def format_discord(alert: Alert, config: AlertConfig) -> Dict[str, Any]:
        color = {
            AlertSeverity.CRITICAL: 0xFF0000,
            AlertSeverity.WARNING: 0xFFA500,
            AlertSeverity.INFO: 0x0000FF,
        }.get(alert.severity, 0x808080)

        fields = [{"name": "Type", "value": alert.alert_type.name, "inline": True}]
        if config.include_details and alert.details:
            for key, value in list(alert.details.items())[:5]:
                fields.append({"name": key, "value": str(value), "inline": True})

        return {
            "username": config.bot_name,
            "embeds": [{
                "title": alert.title,
                "description": alert.message,
                "color": color,
                "fields": fields,
                "footer": {"text": f"{config.bot_name} | {alert.severity.name}"},
                "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(alert.timestamp_ms / 1000)),
            }],
        }


class AlertManager:
    """
    Delivers alerts to a single webhook with per-type rate limiting.

    Delivery is awaited so a fatal alert is out before the process exits.
    """

    def __init__(self, config: Optional[AlertConfig] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config or AlertConfig()
        self._last_alert_times: Dict[AlertType, int] = {}
        self._client = client
        self._owns_client = client is None
        self._lock = asyncio.Lock()

    async def send_alert(self, alert: Alert, force: bool = False) -> bool:
        """
        Deliver an alert.

        Returns:
            True if delivered, False if disabled, filtered, rate limited or failed
        """
        if not self.config.enabled or not self.config.webhook_url:
            logger.debug(f"Alert not sent (disabled or no webhook): {alert.title}")
            return False

        if alert.severity.value > self.config.min_severity.value:
            return False

        now_ms = int(time.time() * 1000)
        async with self._lock:
            last_time = self._last_alert_times.get(alert.alert_type)
            if not force and last_time is not None and now_ms - last_time < self.config.rate_limit_seconds * 1000:
                logger.debug(f"Alert rate limited: {alert.alert_type.name}")
                return False
            self._last_alert_times[alert.alert_type] = now_ms

        return await self._http_post(self._format_alert(alert))

    def _format_alert(self, alert: Alert) -> Dict[str, Any]:
        formatters = {
            "generic": WebhookFormatter.format_generic,
            "slack": WebhookFormatter.format_slack,
            "discord": WebhookFormatter.format_discord,
        }
        formatter = formatters.get(self.config.webhook_type, WebhookFormatter.format_generic)
        return formatter(alert, self.config)

    async def _http_post(self, payload: Dict[str, Any], retries: int = 2) -> bool:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.timeout_sec)
        for attempt in range(retries + 1):
            try:
                resp = await self._client.post(self.config.webhook_url, json=payload)
                if resp.status_code < 300:
                    logger.debug("Alert delivered successfully")
                    return True
                logger.warning(f"Alert delivery failed: HTTP {resp.status_code}")
            except httpx.HTTPError as e:
                logger.warning(f"Alert delivery error (attempt {attempt + 1}): {e}")
            if attempt < retries:
                await asyncio.sleep(1 * (attempt + 1))
        return False

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    # Convenience methods

    async def alert_startup(self, address: str, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.STARTUP,
            severity=AlertSeverity.INFO,
            title="Responder Started",
            message=f"Responding from {address}",
            details=details,
        ))

    async def alert_shutdown(self, reason: str, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.SHUTDOWN,
            severity=AlertSeverity.INFO,
            title="Responder Stopped",
            message=reason,
            details=details,
        ))

    async def alert_restart(self, reason: str, backoff_sec: float, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.RESTART,
            severity=AlertSeverity.WARNING,
            title="Responder Restarting",
            message=f"{reason}; restarting in {backoff_sec:.0f}s",
            details=details,
        ))

    async def alert_rejected(self, event_id: str, reason: str, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.RESPONSE_REJECTED,
            severity=AlertSeverity.WARNING,
            title="Pong Rejected",
            message=f"Response to {event_id} was rejected: {reason}",
            details={"event_id": event_id, **details},
        ))

    async def alert_abandoned(self, event_id: str, attempts: int, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.RESPONSE_ABANDONED,
            severity=AlertSeverity.CRITICAL,
            title="Pong Abandoned",
            message=f"Giving up on {event_id} after {attempts} rejected attempts",
            details={"event_id": event_id, "attempts": attempts, **details},
        ), force=True)

    async def alert_fatal(self, reason: str, exit_code: int, **details) -> bool:
        return await self.send_alert(Alert(
            alert_type=AlertType.FATAL,
            severity=AlertSeverity.CRITICAL,
            title="Responder Halted",
            message=reason,
            details={"exit_code": exit_code, **details},
        ), force=True)
