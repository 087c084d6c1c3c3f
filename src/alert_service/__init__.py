"""alert-service - Threshold alerting and anomaly detection for metric streams.

This package provides:
- Duration-gated threshold rules with cooldown-debounced firing (alerts)
- Rolling statistical anomaly detection per metric (anomaly)
- Console, webhook and email notification fan-out
"""

from alert_service.alerts import (
    Alert,
    AlertCondition,
    AlertManager,
    AlertRule,
    AlertRuleBuilder,
    AlertSeverity,
    EvaluationContext,
    NotificationChannelConfig,
)
from alert_service.anomaly import Anomaly, AnomalyDetector, AnomalyType
from alert_service.core import AlertConfig, AnomalyConfig

__version__ = "0.1.0"

__all__ = [
    "Alert",
    "AlertCondition",
    "AlertConfig",
    "AlertManager",
    "AlertRule",
    "AlertRuleBuilder",
    "AlertSeverity",
    "Anomaly",
    "AnomalyConfig",
    "AnomalyDetector",
    "AnomalyType",
    "EvaluationContext",
    "NotificationChannelConfig",
]
