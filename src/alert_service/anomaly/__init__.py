"""Anomaly detection over individual metric readings."""

from alert_service.anomaly.detector import (
    Anomaly,
    AnomalyDetector,
    AnomalyProfile,
    AnomalyType,
    calculate_slope,
)

__all__ = [
    "Anomaly",
    "AnomalyDetector",
    "AnomalyProfile",
    "AnomalyType",
    "calculate_slope",
]
