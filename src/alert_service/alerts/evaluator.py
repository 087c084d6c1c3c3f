"""Rule Evaluation - Aggregate samples and evaluate duration-gated conditions.

A condition is met only once its instantaneous comparison has held
continuously for at least the condition's duration ("for" semantics).
The evaluator keeps that timing state per (rule id, condition index) so
rules themselves stay immutable.
"""

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from alert_service.alerts.rules import AggregationType, AlertCondition, AlertRule

logger = logging.getLogger(__name__)


def aggregate(values: Sequence[float], aggregation: AggregationType) -> float | None:
    """Reduce samples to a single value.

    Args:
        values: Recent raw samples, oldest first.
        aggregation: Aggregation function.

    Returns:
        The aggregated value, or None when there are no samples.
    """
    if not values:
        return None

    if aggregation is AggregationType.SUM:
        return float(sum(values))
    elif aggregation is AggregationType.MIN:
        return float(min(values))
    elif aggregation is AggregationType.MAX:
        return float(max(values))
    elif aggregation is AggregationType.COUNT:
        return float(len(values))
    return sum(values) / len(values)


@dataclass(frozen=True)
class EvaluationContext:
    """Snapshot of recent metric samples at an evaluation timestamp (ms)."""

    metric_values: Mapping[str, Sequence[float]]
    timestamp: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EvaluationContext":
        """Build a context from ``{"metricValues": {...}, "timestamp": ...}``.

        The snake_case key ``metric_values`` is accepted as well.
        """
        values = data.get("metric_values", data.get("metricValues", {}))
        return cls(
            metric_values={name: list(samples) for name, samples in values.items()},
            timestamp=float(data["timestamp"]),
        )


@dataclass
class ConditionState:
    """Timing state of one condition of one rule."""

    first_met_at: float | None = None


@dataclass(frozen=True)
class ConditionEvaluationResult:
    """Outcome of evaluating one condition."""

    condition: AlertCondition
    aggregated_value: float | None
    threshold: float
    comparison_met: bool
    met: bool
    held_for_ms: float = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "condition": self.condition.to_dict(),
            "aggregated_value": self.aggregated_value,
            "threshold": self.threshold,
            "comparison_met": self.comparison_met,
            "met": self.met,
            "held_for_ms": self.held_for_ms,
        }


@dataclass(frozen=True)
class EvaluationResult:
    """Outcome of evaluating one rule."""

    rule_id: str
    triggered: bool
    conditions: tuple[ConditionEvaluationResult, ...]
    timestamp: float
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule_id": self.rule_id,
            "triggered": self.triggered,
            "conditions": [c.to_dict() for c in self.conditions],
            "timestamp": self.timestamp,
            "message": self.message,
        }


class RuleEvaluator:
    """Evaluate rules against evaluation contexts.

    Example:
        >>> evaluator = RuleEvaluator()
        >>> context = EvaluationContext({"cpu": [85.0]}, timestamp=0)
        >>> result = evaluator.evaluate(rule, context)
        >>> result.triggered
        False
    """

    def __init__(self) -> None:
        """Initialize the evaluator with empty condition state."""
        self._states: dict[tuple[str, int], ConditionState] = {}

    def evaluate(self, rule: AlertRule, context: EvaluationContext) -> EvaluationResult:
        """Evaluate every condition of a rule; the rule triggers when all are met.

        Args:
            rule: Rule to evaluate.
            context: Current metric snapshot.

        Returns:
            EvaluationResult with per-condition detail.
        """
        results = tuple(
            self.evaluate_condition(rule.id, index, condition, context)
            for index, condition in enumerate(rule.conditions)
        )
        triggered = bool(results) and all(r.met for r in results)

        return EvaluationResult(
            rule_id=rule.id,
            triggered=triggered,
            conditions=results,
            timestamp=context.timestamp,
            message=self._build_message(rule, results, triggered),
        )

    def evaluate_condition(
        self,
        rule_id: str,
        index: int,
        condition: AlertCondition,
        context: EvaluationContext,
    ) -> ConditionEvaluationResult:
        """Evaluate a single condition and update its timing state.

        Args:
            rule_id: Owning rule id.
            index: Position of the condition within the rule.
            condition: Condition to evaluate.
            context: Current metric snapshot.

        Returns:
            ConditionEvaluationResult.
        """
        now = context.timestamp
        state = self._states.setdefault((rule_id, index), ConditionState())
        value = aggregate(context.metric_values.get(condition.metric, ()), condition.aggregation)

        # Missing data never triggers and breaks the "held" streak
        if value is None:
            logger.debug(f"No samples for metric {condition.metric} (rule {rule_id})")
            state.first_met_at = None
            return ConditionEvaluationResult(
                condition=condition,
                aggregated_value=None,
                threshold=condition.threshold,
                comparison_met=False,
                met=False,
            )

        comparison_met = condition.operator.compare(value, condition.threshold)
        if not comparison_met:
            state.first_met_at = None
            return ConditionEvaluationResult(
                condition=condition,
                aggregated_value=value,
                threshold=condition.threshold,
                comparison_met=False,
                met=False,
            )

        if state.first_met_at is None:
            state.first_met_at = now
        held_for = now - state.first_met_at

        return ConditionEvaluationResult(
            condition=condition,
            aggregated_value=value,
            threshold=condition.threshold,
            comparison_met=True,
            met=held_for >= condition.duration_ms,
            held_for_ms=held_for,
        )

    def _build_message(
        self,
        rule: AlertRule,
        results: tuple[ConditionEvaluationResult, ...],
        triggered: bool,
    ) -> str:
        if triggered:
            held = "; ".join(
                f"{r.condition.describe()} (actual: {r.aggregated_value:.2f})" for r in results
            )
            return f"Alert '{rule.name}' triggered: {held}"

        failed = []
        for r in results:
            if r.aggregated_value is None:
                failed.append(f"{r.condition.metric} has no data")
            elif not r.comparison_met:
                failed.append(f"{r.condition.describe()} not met (actual: {r.aggregated_value:.2f})")
            elif not r.met:
                failed.append(
                    f"{r.condition.describe()} pending "
                    f"({r.held_for_ms:g}/{r.condition.duration_ms:g} ms)"
                )
        return f"Alert '{rule.name}' not triggered: {'; '.join(failed)}"

    def get_state(self, rule_id: str, index: int) -> ConditionState | None:
        """Get the timing state of a condition, if it has been evaluated."""
        return self._states.get((rule_id, index))

    def reset(self) -> None:
        """Clear timing state of all rules."""
        self._states.clear()

    def reset_rule(self, rule_id: str) -> None:
        """Clear timing state of one rule.

        Args:
            rule_id: Rule whose condition states are dropped.
        """
        for key in [k for k in self._states if k[0] == rule_id]:
            del self._states[key]
