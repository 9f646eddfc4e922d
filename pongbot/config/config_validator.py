"""
Configuration validation for production safety.

- Range checks for numeric parameters
- Address and URL format checks
- Credential presence
- Warnings for risky but valid configurations
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlparse

from web3 import Web3

logger = logging.getLogger(__name__)


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logs warning but allows startup
    INFO = auto()     # Informational only


@dataclass
class ValidationIssue:
    """A single validation issue."""
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    """
    Validates Settings before the responder touches the ledger.

    Checks:
    - Required fields are present
    - Numeric values are within safe ranges
    - The contract address and RPC URL are well formed
    - A signing key is configured
    """

    # Range definitions: (min, max)
    NUMERIC_RANGES: Dict[str, Tuple[float, float]] = {
        "gas_limit": (21_000, 10_000_000),
        "http_timeout": (1.0, 300.0),
        "max_block_range": (1, 100_000),
        "poll_interval_sec": (0.5, 300.0),
        "poll_max_blocks": (1, 10_000),
        "feed_stale_after_sec": (5.0, 3600.0),
        "confirm_timeout_sec": (5.0, 3600.0),
        "confirm_poll_sec": (0.1, 60.0),
        "respond_retries": (0, 20),
        "respond_retry_delay_sec": (0.0, 300.0),
        "restart_backoff_sec": (0.0, 600.0),
        "max_restarts": (0, 10_000),
        "max_rejected_attempts": (1, 100),
        "metrics_port": (0, 65535),
    }

    REQUIRED_STRINGS: List[str] = [
        "rpc_url",
        "contract_address",
        "state_file",
    ]

    def validate(self, cfg) -> ValidationResult:
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_required_strings(cfg))
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._validate_formats(cfg))
        issues.extend(self._check_risky_configs(cfg))
        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_required_strings(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name in self.REQUIRED_STRINGS:
            value = getattr(cfg, field_name, None)
            if not value or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"Required field '{field_name}' is missing or empty",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name, (min_val, max_val) in self.NUMERIC_RANGES.items():
            value = getattr(cfg, field_name, None)
            try:
                num_value = float(value)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' has invalid numeric value: {value}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
                continue
            if num_value < min_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is below minimum {min_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at least {min_val}",
                ))
            elif num_value > max_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is above maximum {max_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at most {max_val}",
                ))
        return issues

    def _validate_formats(self, cfg) -> List[ValidationIssue]:
        issues = []
        address = getattr(cfg, "contract_address", None)
        if address and not Web3.is_address(address):
            issues.append(ValidationIssue(
                field="contract_address",
                message=f"'{address}' is not a valid contract address",
                severity=ValidationSeverity.ERROR,
                value=address,
            ))

        rpc_url = getattr(cfg, "rpc_url", None)
        if rpc_url and urlparse(rpc_url).scheme not in {"http", "https"}:
            issues.append(ValidationIssue(
                field="rpc_url",
                message=f"RPC URL '{rpc_url}' must use http or https",
                severity=ValidationSeverity.ERROR,
                value=rpc_url,
            ))

        if not getattr(cfg, "private_key", None):
            issues.append(ValidationIssue(
                field="private_key",
                message="No signing key configured",
                severity=ValidationSeverity.ERROR,
                suggestion="Set PONG_PRIVATE_KEY",
            ))

        webhook_type = getattr(cfg, "alert_webhook_type", "generic")
        if webhook_type not in {"generic", "slack", "discord"}:
            issues.append(ValidationIssue(
                field="alert_webhook_type",
                message=f"Unknown webhook type '{webhook_type}'",
                severity=ValidationSeverity.ERROR,
                value=webhook_type,
                suggestion="Use generic, slack or discord",
            ))
        return issues

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        issues = []
        if getattr(cfg, "start_height", None) is None:
            issues.append(ValidationIssue(
                field="start_height",
                message="No start block configured; the current head will be used on first run",
                severity=ValidationSeverity.WARNING,
                suggestion="Set PONG_START_BLOCK to cover pings emitted before the first start",
            ))

        if getattr(cfg, "suppress_rejected", False):
            issues.append(ValidationIssue(
                field="suppress_rejected",
                message="Rejected responses will be skipped permanently without retry",
                severity=ValidationSeverity.WARNING,
            ))

        max_range = getattr(cfg, "max_block_range", 2000)
        if max_range > 10_000:
            issues.append(ValidationIssue(
                field="max_block_range",
                message=f"Large catch-up window ({max_range} blocks) is likely to be refused by public nodes",
                severity=ValidationSeverity.WARNING,
                value=max_range,
            ))

        if getattr(cfg, "alert_enabled", True) and not getattr(cfg, "alert_webhook_url", None):
            issues.append(ValidationIssue(
                field="alert_webhook_url",
                message="Alerting enabled but no webhook URL set",
                severity=ValidationSeverity.INFO,
            ))
        return issues


def validate_config(cfg) -> ValidationResult:
    validator = ConfigValidator()
    return validator.validate(cfg)


def validate_and_log(cfg, logger_instance=None) -> bool:
    """
    Validate config and log all issues.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")

    return result.valid
