"""Alert Rules - Threshold conditions, rule definitions and fired alerts.

This module provides the immutable data model of the alerting system:
- Conditions (metric, operator, threshold, "for" duration, aggregation)
- Rules combining one or more conditions with severity, cooldown and actions
- A fluent builder that validates rules before they are registered
- Alert records emitted when a rule fires
"""

import time
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from alert_service.core.exceptions import RuleValidationError


class AlertSeverity(Enum):
    """Alert severity levels."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class ComparisonOperator(Enum):
    """Operators comparing an aggregated value with a threshold."""

    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "="
    NE = "!="

    def compare(self, value: float, threshold: float) -> bool:
        """Apply the operator.

        Equality operators use exact numeric equality, without tolerance.

        Args:
            value: Aggregated metric value.
            threshold: Condition threshold.

        Returns:
            True if ``value <op> threshold`` holds.
        """
        if self is ComparisonOperator.GT:
            return value > threshold
        elif self is ComparisonOperator.GTE:
            return value >= threshold
        elif self is ComparisonOperator.LT:
            return value < threshold
        elif self is ComparisonOperator.LTE:
            return value <= threshold
        elif self is ComparisonOperator.EQ:
            return value == threshold
        return value != threshold


class AggregationType(Enum):
    """Functions reducing a window of samples to one value."""

    AVERAGE = "average"
    SUM = "sum"
    MIN = "min"
    MAX = "max"
    COUNT = "count"


def _coerce_enum(enum_cls: type[Enum], value: Any, what: str) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(repr(member.value) for member in enum_cls)
        raise RuleValidationError(f"Unknown {what} {value!r} (expected one of {allowed})") from None


def now_ms() -> float:
    """Current wall-clock time in milliseconds."""
    return time.time() * 1000


@dataclass(frozen=True)
class AlertCondition:
    """A single threshold condition.

    Example:
        >>> condition = AlertCondition(
        ...     metric="cpu_usage",
        ...     operator=">",
        ...     threshold=80,
        ...     duration_ms=60_000,
        ... )
    """

    metric: str
    operator: ComparisonOperator
    threshold: float
    duration_ms: float = 0
    aggregation: AggregationType = AggregationType.AVERAGE

    def __post_init__(self) -> None:
        if not self.metric:
            raise RuleValidationError("Condition metric name is required")
        if isinstance(self.threshold, bool) or not isinstance(self.threshold, int | float):
            raise RuleValidationError(
                f"Condition threshold must be a number, got {self.threshold!r}"
            )
        object.__setattr__(
            self, "operator", _coerce_enum(ComparisonOperator, self.operator, "operator")
        )
        object.__setattr__(
            self, "aggregation", _coerce_enum(AggregationType, self.aggregation, "aggregation")
        )
        if self.duration_ms < 0:
            raise RuleValidationError(f"Condition duration must be >= 0, got {self.duration_ms}")

    def describe(self) -> str:
        """Short human-readable form, e.g. ``cpu_usage > 80``."""
        return f"{self.metric} {self.operator.value} {self.threshold:g}"

    def to_dict(self) -> dict[str, Any]:
        """Convert condition to dictionary.

        Returns:
            Dictionary representation of the condition.
        """
        return {
            "metric": self.metric,
            "operator": self.operator.value,
            "threshold": self.threshold,
            "duration_ms": self.duration_ms,
            "aggregation": self.aggregation.value,
        }


@dataclass(frozen=True)
class AlertRule:
    """An alert rule: all conditions must hold for the rule to trigger.

    Rules are immutable once built; the manager replaces them on update.
    """

    id: str
    name: str
    severity: AlertSeverity
    conditions: tuple[AlertCondition, ...]
    description: str = ""
    cooldown_ms: float = 0
    tags: tuple[str, ...] = ()
    labels: Mapping[str, str] = field(default_factory=dict)
    actions: tuple[str, ...] = ()
    enabled: bool = True
    created_at: float = field(default_factory=now_ms)
    updated_at: float = field(default_factory=now_ms)

    def __post_init__(self) -> None:
        if not self.id:
            raise RuleValidationError("Rule id is required")
        if not self.name:
            raise RuleValidationError(f"Rule {self.id} requires a name")
        object.__setattr__(self, "severity", _coerce_enum(AlertSeverity, self.severity, "severity"))
        object.__setattr__(self, "conditions", tuple(self.conditions))
        if not self.conditions:
            raise RuleValidationError(f"Rule {self.id} requires at least one condition")
        if self.cooldown_ms < 0:
            raise RuleValidationError(f"Rule {self.id} cooldown must be >= 0")
        object.__setattr__(self, "tags", tuple(self.tags))
        object.__setattr__(self, "labels", dict(self.labels))
        object.__setattr__(self, "actions", tuple(self.actions))

    def to_dict(self) -> dict[str, Any]:
        """Convert rule to dictionary.

        Returns:
            Dictionary representation of the rule.
        """
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "severity": self.severity.value,
            "conditions": [c.to_dict() for c in self.conditions],
            "cooldown_ms": self.cooldown_ms,
            "tags": list(self.tags),
            "labels": dict(self.labels),
            "actions": list(self.actions),
            "enabled": self.enabled,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


class AlertRuleBuilder:
    """Fluent builder for AlertRule.

    Example:
        >>> rule = (
        ...     AlertRuleBuilder()
        ...     .set_id("high-cpu")
        ...     .set_name("High CPU")
        ...     .set_severity("critical")
        ...     .add_condition(AlertCondition("cpu", ">", 80, duration_ms=1000))
        ...     .set_cooldown(2000)
        ...     .add_action("console")
        ...     .build()
        ... )
    """

    def __init__(self) -> None:
        self._id: str | None = None
        self._name: str | None = None
        self._description = ""
        self._severity: AlertSeverity | str | None = None
        self._conditions: list[AlertCondition] = []
        self._cooldown_ms: float = 0
        self._enabled = True
        self._tags: list[str] = []
        self._labels: dict[str, str] = {}
        self._actions: list[str] = []

    def set_id(self, rule_id: str) -> "AlertRuleBuilder":
        self._id = rule_id
        return self

    def set_name(self, name: str) -> "AlertRuleBuilder":
        self._name = name
        return self

    def set_description(self, description: str) -> "AlertRuleBuilder":
        self._description = description
        return self

    def set_severity(self, severity: AlertSeverity | str) -> "AlertRuleBuilder":
        self._severity = severity
        return self

    def add_condition(self, condition: AlertCondition) -> "AlertRuleBuilder":
        self._conditions.append(condition)
        return self

    def set_conditions(self, conditions: Iterable[AlertCondition]) -> "AlertRuleBuilder":
        self._conditions = list(conditions)
        return self

    def set_cooldown(self, cooldown_ms: float) -> "AlertRuleBuilder":
        self._cooldown_ms = cooldown_ms
        return self

    def set_enabled(self, enabled: bool) -> "AlertRuleBuilder":
        self._enabled = enabled
        return self

    def add_tag(self, tag: str) -> "AlertRuleBuilder":
        if tag not in self._tags:
            self._tags.append(tag)
        return self

    def set_tags(self, tags: Iterable[str]) -> "AlertRuleBuilder":
        self._tags = list(dict.fromkeys(tags))
        return self

    def add_label(self, key: str, value: str) -> "AlertRuleBuilder":
        self._labels[key] = value
        return self

    def set_labels(self, labels: Mapping[str, str]) -> "AlertRuleBuilder":
        self._labels = dict(labels)
        return self

    def add_action(self, channel_id: str) -> "AlertRuleBuilder":
        if channel_id not in self._actions:
            self._actions.append(channel_id)
        return self

    def set_actions(self, channel_ids: Iterable[str]) -> "AlertRuleBuilder":
        self._actions = list(dict.fromkeys(channel_ids))
        return self

    def build(self) -> AlertRule:
        """Validate and build the rule.

        Returns:
            Immutable AlertRule.

        Raises:
            RuleValidationError: If id, name, severity or conditions are missing.
        """
        missing = [
            label
            for label, value in (
                ("id", self._id),
                ("name", self._name),
                ("severity", self._severity),
            )
            if not value
        ]
        if not self._conditions:
            missing.append("conditions")
        if missing:
            raise RuleValidationError(f"Missing required fields: {', '.join(missing)}")

        created = now_ms()
        return AlertRule(
            id=self._id,
            name=self._name,
            description=self._description,
            severity=self._severity,
            conditions=tuple(self._conditions),
            cooldown_ms=self._cooldown_ms,
            tags=tuple(self._tags),
            labels=dict(self._labels),
            actions=tuple(self._actions),
            enabled=self._enabled,
            created_at=created,
            updated_at=created,
        )


@dataclass(frozen=True)
class Alert:
    """Represents a fired alert."""

    rule_id: str
    rule_name: str
    severity: AlertSeverity
    message: str
    timestamp: float
    labels: Mapping[str, str] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def to_dict(self) -> dict[str, Any]:
        """Convert alert to dictionary.

        Returns:
            Dictionary representation of the alert.
        """
        return {
            "id": self.id,
            "rule_id": self.rule_id,
            "rule_name": self.rule_name,
            "severity": self.severity.value,
            "message": self.message,
            "timestamp": self.timestamp,
            "labels": dict(self.labels),
        }
