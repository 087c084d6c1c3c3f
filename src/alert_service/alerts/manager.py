"""Alert Manager - Rule and channel registries, cooldowns, history and fan-out.

The manager is the single owner of all mutable alerting state: registered
rules and channels, per-condition timing state (through its RuleEvaluator),
last-fired timestamps and the bounded alert history. Evaluation passes are
serialized; notification delivery runs in background tasks so a slow
channel never holds up the pass.
"""

import asyncio
import dataclasses
import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from alert_service import metrics
from alert_service.alerts.channels import (
    ChannelFactory,
    EmailTransport,
    NotificationChannel,
    NotificationChannelConfig,
    NotificationPayload,
    NotificationResult,
    WebhookTransport,
)
from alert_service.alerts.evaluator import EvaluationContext, EvaluationResult, RuleEvaluator
from alert_service.alerts.rules import Alert, AlertRule, AlertSeverity, now_ms
from alert_service.anomaly.detector import Anomaly, AnomalyDetector
from alert_service.core.config import AlertConfig, get_settings
from alert_service.core.exceptions import (
    DuplicateChannelError,
    DuplicateRuleError,
    RuleNotFoundError,
    RuleValidationError,
)
from alert_service.core.logging import alert_context

logger = logging.getLogger(__name__)

ContextLike = EvaluationContext | Mapping[str, Any]
ContextProvider = Callable[[], ContextLike | Awaitable[ContextLike]]


@dataclass(frozen=True)
class DispatchRecord:
    """Delivery outcomes of one fired alert across its channels."""

    alert_id: str
    rule_id: str
    results: tuple[NotificationResult, ...]
    timestamp: float = field(default_factory=now_ms)

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results)


@dataclass(frozen=True)
class AlertStats:
    """Aggregate view over the manager state."""

    total_rules: int
    active_rules: int
    total_alerts: int
    alerts_by_severity: dict[str, int]
    channel_count: int

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)


class AlertManager:
    """Coordinate rule evaluation, cooldowns, alert history and notifications.

    Example:
        >>> manager = AlertManager(AlertConfig(max_history_size=100))
        >>> manager.add_channel(
        ...     NotificationChannelConfig(id="console", name="Console", type="console")
        ... )
        >>> manager.add_rule(rule)
        >>> results = await manager.evaluate(
        ...     EvaluationContext({"cpu": [91.0]}, timestamp=1500)
        ... )
    """

    def __init__(
        self,
        config: AlertConfig | None = None,
        *,
        webhook_transport: WebhookTransport | None = None,
        email_transport: EmailTransport | None = None,
        console_sink: Callable[[str], None] | None = None,
    ) -> None:
        """Initialize the manager.

        Args:
            config: Manager configuration; defaults to the environment settings.
            webhook_transport: Transport used by webhook channels added later.
            email_transport: Transport used by email channels added later.
            console_sink: Output used by console channels added later.
        """
        self.config = config or get_settings().to_alert_config()
        self.evaluator = RuleEvaluator()
        self.anomaly_detector: AnomalyDetector | None = None
        if self.config.enable_anomaly_detection:
            self.anomaly_detector = AnomalyDetector(self.config.anomaly_config)

        self._webhook_transport = webhook_transport
        self._email_transport = email_transport
        self._console_sink = console_sink

        self._rules: dict[str, AlertRule] = {}
        self._channels: dict[str, NotificationChannel] = {}
        self._last_fired_at: dict[str, float] = {}
        self._history: deque[Alert] = deque(maxlen=self.config.max_history_size)
        self._dispatch_records: deque[DispatchRecord] = deque(
            maxlen=self.config.max_history_size
        )

        self._evaluation_lock = asyncio.Lock()
        self._dispatch_tasks: set[asyncio.Task[DispatchRecord]] = set()
        self._loop_tasks: set[asyncio.Task[None]] = set()
        self._stop_event: asyncio.Event | None = None

    # Rule registry

    def add_rule(self, rule: AlertRule) -> None:
        """Register an alert rule.

        Args:
            rule: Rule to register.

        Raises:
            DuplicateRuleError: If a rule with the same id is registered.
        """
        if rule.id in self._rules:
            raise DuplicateRuleError(rule.id)
        self._rules[rule.id] = rule
        logger.info(f"Registered alert rule: {rule.id} ({rule.name})")

    def remove_rule(self, rule_id: str) -> bool:
        """Unregister a rule and drop its timing and cooldown state.

        Args:
            rule_id: ID of the rule to remove.

        Returns:
            True if rule was removed, False if not found.
        """
        if rule_id not in self._rules:
            return False
        del self._rules[rule_id]
        self.evaluator.reset_rule(rule_id)
        self._last_fired_at.pop(rule_id, None)
        logger.info(f"Unregistered alert rule: {rule_id}")
        return True

    def get_rule(self, rule_id: str) -> AlertRule | None:
        return self._rules.get(rule_id)

    def get_all_rules(self) -> list[AlertRule]:
        return list(self._rules.values())

    def update_rule(self, rule_id: str, **changes: Any) -> AlertRule:
        """Replace a registered rule with an updated copy.

        Condition timing state is dropped when the conditions change or the
        rule is enabled or disabled, so a re-enabled rule must hold its
        conditions again before it fires.

        Args:
            rule_id: ID of the rule to update.
            **changes: AlertRule fields to change.

        Returns:
            The updated rule.

        Raises:
            RuleNotFoundError: If the rule is not registered.
            RuleValidationError: If the update is invalid or changes the id.
        """
        rule = self._rules.get(rule_id)
        if rule is None:
            raise RuleNotFoundError(rule_id)
        if changes.get("id", rule_id) != rule_id:
            raise RuleValidationError("Rule id cannot be changed")

        try:
            updated = dataclasses.replace(rule, **changes, updated_at=now_ms())
        except TypeError as e:
            raise RuleValidationError(f"Invalid rule update: {e}") from e

        self._rules[rule_id] = updated
        if "conditions" in changes or updated.enabled != rule.enabled:
            self.evaluator.reset_rule(rule_id)
        logger.info(f"Updated alert rule: {rule_id} ({', '.join(sorted(changes))})")
        return updated

    # Channel registry

    def add_channel(self, config: NotificationChannelConfig) -> NotificationChannel:
        """Create and register a notification channel.

        Args:
            config: Channel registration record.

        Returns:
            The created channel.

        Raises:
            UnsupportedChannelError: If the channel type is unknown.
            DuplicateChannelError: If a channel with the same id is registered.
        """
        if config.id in self._channels:
            raise DuplicateChannelError(config.id)
        channel = ChannelFactory.create(
            config,
            webhook_transport=self._webhook_transport,
            email_transport=self._email_transport,
            console_sink=self._console_sink,
        )
        self._channels[config.id] = channel
        logger.info(f"Added notification channel: {config.id} ({config.type})")
        return channel

    def remove_channel(self, channel_id: str) -> bool:
        if self._channels.pop(channel_id, None) is None:
            return False
        logger.info(f"Removed notification channel: {channel_id}")
        return True

    def get_channel(self, channel_id: str) -> NotificationChannel | None:
        return self._channels.get(channel_id)

    def get_all_channels(self) -> list[NotificationChannel]:
        return list(self._channels.values())

    # Evaluation

    async def evaluate(self, context: ContextLike) -> list[EvaluationResult]:
        """Evaluate all enabled rules against a context.

        Triggered rules outside their cooldown emit an Alert, which is
        appended to the history and dispatched to the rule's channels in the
        background.

        Args:
            context: EvaluationContext or its dictionary form.

        Returns:
            EvaluationResults of every evaluated rule.
        """
        if not isinstance(context, EvaluationContext):
            context = EvaluationContext.from_dict(context)

        async with self._evaluation_lock:
            with metrics.EVALUATION_DURATION.time():
                return self._run_pass(context)

    def _run_pass(self, context: EvaluationContext) -> list[EvaluationResult]:
        results = []
        for rule in list(self._rules.values()):
            if not rule.enabled:
                continue
            try:
                result = self.evaluator.evaluate(rule, context)
            except Exception as e:
                logger.exception(f"Error evaluating rule {rule.id}: {e}")
                continue

            results.append(result)
            if result.triggered:
                self._handle_triggered(rule, result)
        return results

    def _handle_triggered(self, rule: AlertRule, result: EvaluationResult) -> Alert | None:
        now = result.timestamp
        last_fired = self._last_fired_at.get(rule.id)
        if last_fired is not None and now - last_fired < rule.cooldown_ms:
            metrics.record_suppressed(rule.id)
            logger.debug(
                f"Alert {rule.id} suppressed by cooldown "
                f"({now - last_fired:g}/{rule.cooldown_ms:g} ms)"
            )
            return None

        alert = Alert(
            rule_id=rule.id,
            rule_name=rule.name,
            severity=rule.severity,
            message=result.message or f"Alert '{rule.name}' triggered",
            timestamp=now,
            labels=rule.labels,
        )
        self._history.append(alert)
        self._last_fired_at[rule.id] = now
        metrics.record_fired(rule.id, rule.severity.value)
        logger.warning(f"Alert fired: {rule.id} - {alert.message}")

        if rule.actions:
            payload = NotificationPayload(
                rule=rule,
                severity=rule.severity,
                message=alert.message,
                timestamp=now,
                metadata={
                    "alert_id": alert.id,
                    "conditions": [c.to_dict() for c in result.conditions],
                },
            )
            task = asyncio.create_task(self._dispatch(rule, alert, payload))
            self._dispatch_tasks.add(task)
            task.add_done_callback(self._dispatch_tasks.discard)
        return alert

    async def _dispatch(
        self, rule: AlertRule, alert: Alert, payload: NotificationPayload
    ) -> DispatchRecord:
        with alert_context(rule_id=rule.id, alert_id=alert.id):
            return await self._send_to_channels(rule, alert, payload)

    async def _send_to_channels(
        self, rule: AlertRule, alert: Alert, payload: NotificationPayload
    ) -> DispatchRecord:
        results: list[NotificationResult | None] = []
        pending: list[tuple[int, NotificationChannel]] = []

        for channel_id in rule.actions:
            channel = self._channels.get(channel_id)
            if channel is None:
                logger.warning(f"Rule {rule.id} references unregistered channel {channel_id}")
                results.append(
                    NotificationResult(
                        success=False,
                        channel_id=channel_id,
                        error=f"Channel {channel_id} is not registered",
                    )
                )
                continue
            if not channel.enabled:
                logger.debug(f"Skipping disabled channel {channel_id} for rule {rule.id}")
                continue
            pending.append((len(results), channel))
            results.append(None)

        # Run all channels concurrently
        outcomes = await asyncio.gather(
            *(channel.send(payload) for _, channel in pending),
            return_exceptions=True,
        )

        for (slot, channel), outcome in zip(pending, outcomes, strict=True):
            if isinstance(outcome, BaseException):
                outcome = NotificationResult(
                    success=False,
                    channel_id=channel.id,
                    error=f"Channel error: {outcome!s}",
                )
            metrics.record_notification(channel.type, outcome.success)
            if not outcome.success:
                logger.warning(
                    f"Notification for alert {alert.id} failed on {channel.id}: {outcome.error}"
                )
            results[slot] = outcome

        record = DispatchRecord(
            alert_id=alert.id,
            rule_id=rule.id,
            results=tuple(r for r in results if r is not None),
        )
        self._dispatch_records.append(record)
        return record

    async def wait_for_dispatches(self) -> None:
        """Wait until every in-flight notification dispatch has finished."""
        while self._dispatch_tasks:
            await asyncio.gather(*list(self._dispatch_tasks), return_exceptions=True)

    def detect_anomalies(self, metric: str, value: float, timestamp: float) -> list[Anomaly]:
        """Feed a reading to the anomaly detector.

        Returns:
            Detected anomalies; always empty when anomaly detection is disabled.
        """
        if self.anomaly_detector is None:
            return []
        return self.anomaly_detector.detect(metric, value, timestamp)

    # History and stats

    def get_history(self, limit: int | None = None) -> list[Alert]:
        """Get fired alerts in firing order.

        Args:
            limit: Return only the ``limit`` most recent alerts.
        """
        return self._tail(list(self._history), limit)

    def get_history_for_rule(self, rule_id: str, limit: int | None = None) -> list[Alert]:
        return self._tail([a for a in self._history if a.rule_id == rule_id], limit)

    def get_dispatch_records(self, alert_id: str | None = None) -> list[DispatchRecord]:
        """Get completed dispatch records, optionally for one alert."""
        if alert_id is None:
            return list(self._dispatch_records)
        return [r for r in self._dispatch_records if r.alert_id == alert_id]

    @staticmethod
    def _tail(items: list[Alert], limit: int | None) -> list[Alert]:
        if limit is None:
            return items
        if limit <= 0:
            return []
        return items[-limit:]

    def get_stats(self) -> AlertStats:
        by_severity = {severity.value: 0 for severity in AlertSeverity}
        for alert in self._history:
            by_severity[alert.severity.value] += 1

        return AlertStats(
            total_rules=len(self._rules),
            active_rules=sum(1 for r in self._rules.values() if r.enabled),
            total_alerts=len(self._history),
            alerts_by_severity=by_severity,
            channel_count=len(self._channels),
        )

    def clear_history(self) -> None:
        self._history.clear()
        self._dispatch_records.clear()

    # Auto-evaluation

    @property
    def is_auto_evaluating(self) -> bool:
        return self._stop_event is not None

    def start_auto_evaluation(self, context_provider: ContextProvider) -> None:
        """Evaluate on a fixed interval with contexts pulled from a provider.

        Must be called from a running event loop.

        Args:
            context_provider: Sync or async callable returning a context.
        """
        if self._stop_event is not None:
            logger.warning("Auto-evaluation already running")
            return

        stop_event = asyncio.Event()
        self._stop_event = stop_event
        task = asyncio.create_task(self._evaluation_loop(context_provider, stop_event))
        self._loop_tasks.add(task)
        task.add_done_callback(self._loop_tasks.discard)
        logger.info(
            f"Started auto-evaluation every {self.config.evaluation_interval_ms:g} ms"
        )

    def stop_auto_evaluation(self) -> None:
        """Stop the auto-evaluation loop.

        No tick starts after this returns; a tick already running finishes.
        Calling it when the loop is not running does nothing.
        """
        if self._stop_event is None:
            return
        self._stop_event.set()
        self._stop_event = None
        logger.info("Stopped auto-evaluation")

    async def _evaluation_loop(
        self, context_provider: ContextProvider, stop_event: asyncio.Event
    ) -> None:
        interval = self.config.evaluation_interval_ms / 1000
        while not stop_event.is_set():
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except TimeoutError:
                pass
            if stop_event.is_set():
                break
            await self._tick(context_provider)

    async def _tick(self, context_provider: ContextProvider) -> None:
        if self._evaluation_lock.locked():
            logger.warning("Previous evaluation still running, skipping tick")
            return
        try:
            context = context_provider()
            if inspect.isawaitable(context):
                context = await context
            await self.evaluate(context)
        except Exception as e:
            logger.exception(f"Auto-evaluation tick failed: {e}")

    # Lifecycle

    def reset(self) -> None:
        """Drop all rules, channels, history and timing state."""
        self._rules.clear()
        self._channels.clear()
        self._history.clear()
        self._dispatch_records.clear()
        self._last_fired_at.clear()
        self.evaluator.reset()
        if self.anomaly_detector is not None:
            self.anomaly_detector.reset()

    async def aclose(self) -> None:
        """Stop auto-evaluation and wait for running ticks and dispatches."""
        self.stop_auto_evaluation()
        if self._loop_tasks:
            await asyncio.gather(*list(self._loop_tasks), return_exceptions=True)
        await self.wait_for_dispatches()
