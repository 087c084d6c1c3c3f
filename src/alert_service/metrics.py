"""Prometheus Metrics - Alert pipeline instrumentation."""

from prometheus_client import Counter, Histogram


ALERTS_FIRED = Counter(
    "alert_service_alerts_fired_total",
    "Alerts emitted after passing the cooldown gate",
    ["rule", "severity"],
)

ALERTS_SUPPRESSED = Counter(
    "alert_service_alerts_suppressed_total",
    "Triggered evaluations suppressed by the rule cooldown",
    ["rule"],
)

NOTIFICATIONS = Counter(
    "alert_service_notifications_total",
    "Notification deliveries by channel type and outcome",
    ["channel_type", "outcome"],
)

ANOMALIES_DETECTED = Counter(
    "alert_service_anomalies_detected_total",
    "Anomalies reported by the anomaly detector",
    ["metric", "type"],
)

EVALUATION_DURATION = Histogram(
    "alert_service_evaluation_duration_seconds",
    "Duration of one evaluation pass over all rules",
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0],
)


def record_fired(rule_id: str, severity: str) -> None:
    ALERTS_FIRED.labels(rule=rule_id, severity=severity).inc()


def record_suppressed(rule_id: str) -> None:
    ALERTS_SUPPRESSED.labels(rule=rule_id).inc()


def record_notification(channel_type: str, success: bool) -> None:
    NOTIFICATIONS.labels(
        channel_type=channel_type,
        outcome="success" if success else "failure",
    ).inc()


def record_anomaly(metric: str, anomaly_type: str) -> None:
    ANOMALIES_DETECTED.labels(metric=metric, type=anomaly_type).inc()
