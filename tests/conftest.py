"""Pytest fixtures for alert-service tests."""

from collections.abc import Generator

import pytest

from alert_service.alerts.channels import DeliveryOutcome, NotificationPayload
from alert_service.alerts.manager import AlertManager
from alert_service.alerts.rules import AlertCondition, AlertRule, AlertRuleBuilder, AlertSeverity
from alert_service.core.config import AlertConfig, get_settings


class RecordingTransport:
    """Transport double that records deliveries and returns a fixed outcome."""

    def __init__(self, success: bool = True, detail: str = "") -> None:
        self.outcome = DeliveryOutcome(success=success, detail=detail)
        self.deliveries: list[tuple[str, NotificationPayload]] = []

    async def deliver(self, target: str, payload: NotificationPayload) -> DeliveryOutcome:
        self.deliveries.append((target, payload))
        return self.outcome


@pytest.fixture(autouse=True)
def clear_settings_cache() -> Generator[None, None, None]:
    """Make every test read settings from a fresh environment."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def alert_config() -> AlertConfig:
    """Manager configuration with a short interval for loop tests."""
    return AlertConfig(evaluation_interval_ms=10, max_history_size=100)


@pytest.fixture
def console_lines() -> list[str]:
    """Collects lines written by console channels."""
    return []


@pytest.fixture
def make_transport() -> type[RecordingTransport]:
    """Factory for transport doubles with a chosen outcome."""
    return RecordingTransport


@pytest.fixture
def webhook_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def email_transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def manager(
    alert_config: AlertConfig,
    console_lines: list[str],
    webhook_transport: RecordingTransport,
    email_transport: RecordingTransport,
) -> AlertManager:
    """AlertManager wired to recording collaborators."""
    return AlertManager(
        alert_config,
        webhook_transport=webhook_transport,
        email_transport=email_transport,
        console_sink=console_lines.append,
    )


@pytest.fixture
def cpu_rule() -> AlertRule:
    """cpu average > 80 held for 1s, 2s cooldown, notifies the console channel."""
    return (
        AlertRuleBuilder()
        .set_id("high-cpu")
        .set_name("High CPU")
        .set_description("CPU usage above 80%")
        .set_severity(AlertSeverity.CRITICAL)
        .add_condition(AlertCondition("cpu", ">", 80, duration_ms=1000))
        .set_cooldown(2000)
        .add_label("team", "infra")
        .add_action("console")
        .build()
    )


@pytest.fixture
def sample_payload(cpu_rule: AlertRule) -> NotificationPayload:
    return NotificationPayload(
        rule=cpu_rule,
        severity=cpu_rule.severity,
        message="Alert 'High CPU' triggered: cpu > 80 (actual: 90.00)",
        timestamp=1_700_000_000_000,
    )
