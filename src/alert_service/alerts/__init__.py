"""Alert System - Threshold rules, evaluation, channels and management.

This module provides a complete threshold alerting pipeline:
- Duration-gated conditions combined into rules
- Rule evaluation with per-condition timing state
- Console, webhook and email notification channels
- Alert management with cooldowns, bounded history and auto-evaluation
"""

from alert_service.alerts.channels import (
    AiohttpWebhookTransport,
    ChannelFactory,
    ChannelType,
    ConsoleChannel,
    DeliveryOutcome,
    EmailChannel,
    NotificationChannel,
    NotificationChannelConfig,
    NotificationPayload,
    NotificationResult,
    SmtpEmailTransport,
    WebhookChannel,
)
from alert_service.alerts.evaluator import (
    ConditionEvaluationResult,
    ConditionState,
    EvaluationContext,
    EvaluationResult,
    RuleEvaluator,
    aggregate,
)
from alert_service.alerts.manager import AlertManager, AlertStats, DispatchRecord
from alert_service.alerts.rules import (
    AggregationType,
    Alert,
    AlertCondition,
    AlertRule,
    AlertRuleBuilder,
    AlertSeverity,
    ComparisonOperator,
)

__all__ = [
    "AggregationType",
    "AiohttpWebhookTransport",
    "Alert",
    "AlertCondition",
    "AlertManager",
    "AlertRule",
    "AlertRuleBuilder",
    "AlertSeverity",
    "AlertStats",
    "ChannelFactory",
    "ChannelType",
    "ComparisonOperator",
    "ConditionEvaluationResult",
    "ConditionState",
    "ConsoleChannel",
    "DeliveryOutcome",
    "DispatchRecord",
    "EmailChannel",
    "EvaluationContext",
    "EvaluationResult",
    "NotificationChannel",
    "NotificationChannelConfig",
    "NotificationPayload",
    "NotificationResult",
    "RuleEvaluator",
    "SmtpEmailTransport",
    "WebhookChannel",
    "aggregate",
]
