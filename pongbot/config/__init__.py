"""
Configuration package.

This package contains configuration loading and validation.
"""

from pongbot.config.config import Settings
from pongbot.config.config_validator import ConfigValidator, validate_and_log

__all__ = [
    "Settings",
    "ConfigValidator",
    "validate_and_log",
]
