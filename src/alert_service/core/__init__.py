"""Core module for alert-service.

This module provides core functionality including:
- Configuration management (Settings, AlertConfig, AnomalyConfig)
- Custom exceptions (AlertServiceException and subclasses)
- Logging utilities
"""

from alert_service.core.config import AlertConfig, AnomalyConfig, Settings, get_settings
from alert_service.core.exceptions import (
    AlertServiceException,
    ConfigurationError,
    DuplicateChannelError,
    DuplicateRuleError,
    RuleNotFoundError,
    RuleValidationError,
    UnsupportedChannelError,
)
from alert_service.core.logging import get_logger, setup_logging

__all__ = [
    "AlertConfig",
    "AlertServiceException",
    "AnomalyConfig",
    "ConfigurationError",
    "DuplicateChannelError",
    "DuplicateRuleError",
    "RuleNotFoundError",
    "RuleValidationError",
    "Settings",
    "UnsupportedChannelError",
    "get_logger",
    "get_settings",
    "setup_logging",
]
