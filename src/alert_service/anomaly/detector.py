"""Anomaly Detection - Rolling statistical anomaly detection per metric.

Each metric keeps a bounded window of recent readings; mean and standard
deviation are computed over that window in two passes. A new reading is
classified against the window as it was before the reading arrived:
- spike / drop: z-score beyond the sensitivity-scaled threshold
- outlier: |z-score| beyond 1.5x that threshold
- trend_change: least-squares slope of the recent sub-window flips sign
  against the prior sub-window
"""

import logging
import math
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from alert_service import metrics
from alert_service.core.config import AnomalyConfig

logger = logging.getLogger(__name__)


class AnomalyType(Enum):
    """Kinds of anomalies reported by the detector."""

    SPIKE = "spike"
    DROP = "drop"
    TREND_CHANGE = "trend_change"
    OUTLIER = "outlier"


@dataclass(frozen=True)
class Anomaly:
    """A detected anomaly."""

    type: AnomalyType
    metric: str
    timestamp: float
    value: float
    expected_value: float
    deviation: float
    confidence: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "metric": self.metric,
            "timestamp": self.timestamp,
            "value": self.value,
            "expected_value": self.expected_value,
            "deviation": self.deviation,
            "confidence": self.confidence,
            "description": self.description,
        }


@dataclass
class AnomalyProfile:
    """Rolling window of one metric's readings and its latest sub-window slope sign."""

    window_size: int
    samples: deque[tuple[float, float]] = field(init=False, repr=False)
    slope_sign: int = 0

    def __post_init__(self) -> None:
        self.samples = deque(maxlen=self.window_size)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def mean(self) -> float:
        if not self.samples:
            return 0.0
        return sum(value for value, _ in self.samples) / len(self.samples)

    @property
    def std(self) -> float:
        """Population standard deviation of the window."""
        if not self.samples:
            return 0.0
        values = self.values()
        mean = sum(values) / len(values)
        variance = sum((x - mean) ** 2 for x in values) / len(values)
        return math.sqrt(variance)

    def values(self) -> list[float]:
        return [value for value, _ in self.samples]

    def add(self, value: float, timestamp: float) -> None:
        """Append a reading, evicting the oldest one at capacity."""
        self.samples.append((value, timestamp))

    def clear(self) -> None:
        self.samples.clear()
        self.slope_sign = 0


def calculate_slope(values: Sequence[float]) -> float:
    """Least-squares slope of values against their index.

    Args:
        values: Evenly spaced readings.

    Returns:
        Slope per sample; 0 for fewer than two readings.
    """
    n = len(values)
    if n < 2:
        return 0.0

    mean_x = (n - 1) / 2
    mean_y = sum(values) / n
    numerator = sum((i - mean_x) * (y - mean_y) for i, y in enumerate(values))
    denominator = sum((i - mean_x) ** 2 for i in range(n))
    return numerator / denominator


def _sign(value: float) -> int:
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


class AnomalyDetector:
    """Detect spikes, drops, outliers and trend changes in metric streams.

    Example:
        >>> detector = AnomalyDetector(AnomalyConfig(min_data_points=20))
        >>> for i, value in enumerate(readings):
        ...     for anomaly in detector.detect("latency_ms", value, i * 1000):
        ...         print(anomaly.type.value, anomaly.confidence)
    """

    def __init__(self, config: AnomalyConfig | None = None) -> None:
        """Initialize the detector.

        Args:
            config: Detector configuration; defaults to AnomalyConfig().
        """
        self.config = config or AnomalyConfig()
        self._profiles: dict[str, AnomalyProfile] = {}

    @property
    def effective_threshold(self) -> float:
        """z-score threshold after applying sensitivity (higher sensitivity, lower threshold)."""
        return self.config.std_dev_threshold * (1.5 - self.config.sensitivity)

    @property
    def trend_threshold(self) -> float:
        """Minimum normalized slope change for a trend change."""
        return 0.25 * (1.5 - self.config.sensitivity)

    def detect(self, metric: str, value: float, timestamp: float) -> list[Anomaly]:
        """Classify a new reading and add it to the metric's window.

        Args:
            metric: Metric name.
            value: New reading.
            timestamp: Reading timestamp in milliseconds.

        Returns:
            All anomalies found for this reading (possibly empty).
        """
        profile = self._profiles.get(metric)
        if profile is None:
            profile = AnomalyProfile(window_size=self.config.window_size)
            self._profiles[metric] = profile

        if len(profile) < self.config.min_data_points:
            profile.add(value, timestamp)
            return []

        mean = profile.mean
        std = profile.std
        z_score = self._z_score(value, mean, std)

        anomalies: list[Anomaly] = []
        if self.config.enable_spike:
            anomaly = self._detect_spike(metric, value, timestamp, mean, z_score)
            if anomaly is not None:
                anomalies.append(anomaly)

        if self.config.enable_drop:
            anomaly = self._detect_drop(metric, value, timestamp, mean, z_score)
            if anomaly is not None:
                anomalies.append(anomaly)

        if self.config.enable_outlier:
            anomaly = self._detect_outlier(metric, value, timestamp, mean, z_score)
            if anomaly is not None:
                anomalies.append(anomaly)

        if self.config.enable_trend_change:
            anomaly = self._detect_trend_change(metric, profile, value, timestamp, mean, std)
            if anomaly is not None:
                anomalies.append(anomaly)

        profile.add(value, timestamp)

        for anomaly in anomalies:
            metrics.record_anomaly(metric, anomaly.type.value)
            logger.info(f"Anomaly on {metric}: {anomaly.description}")

        return anomalies

    @staticmethod
    def _z_score(value: float, mean: float, std: float) -> float:
        if std > 0:
            return (value - mean) / std
        if value == mean:
            return 0.0
        # Flat history: any different reading is infinitely far from it
        return math.copysign(math.inf, value - mean)

    def _detect_spike(
        self, metric: str, value: float, timestamp: float, mean: float, z_score: float
    ) -> Anomaly | None:
        threshold = self.effective_threshold
        if z_score <= threshold:
            return None
        return Anomaly(
            type=AnomalyType.SPIKE,
            metric=metric,
            timestamp=timestamp,
            value=value,
            expected_value=mean,
            deviation=z_score,
            confidence=min(z_score / (2 * threshold), 1.0),
            description=(
                f"Value {value:.2f} is {z_score:.2f} standard deviations above mean {mean:.2f}"
            ),
        )

    def _detect_drop(
        self, metric: str, value: float, timestamp: float, mean: float, z_score: float
    ) -> Anomaly | None:
        threshold = self.effective_threshold
        if z_score >= -threshold:
            return None
        deviation = -z_score
        return Anomaly(
            type=AnomalyType.DROP,
            metric=metric,
            timestamp=timestamp,
            value=value,
            expected_value=mean,
            deviation=deviation,
            confidence=min(deviation / (2 * threshold), 1.0),
            description=(
                f"Value {value:.2f} is {deviation:.2f} standard deviations below mean {mean:.2f}"
            ),
        )

    def _detect_outlier(
        self, metric: str, value: float, timestamp: float, mean: float, z_score: float
    ) -> Anomaly | None:
        threshold = self.effective_threshold * 1.5
        magnitude = abs(z_score)
        if magnitude <= threshold:
            return None
        return Anomaly(
            type=AnomalyType.OUTLIER,
            metric=metric,
            timestamp=timestamp,
            value=value,
            expected_value=mean,
            deviation=magnitude,
            confidence=min(magnitude / (2 * threshold), 1.0),
            description=f"Value {value:.2f} is an outlier with z-score {magnitude:.2f}",
        )

    def _detect_trend_change(
        self,
        metric: str,
        profile: AnomalyProfile,
        value: float,
        timestamp: float,
        mean: float,
        std: float,
    ) -> Anomaly | None:
        window = self.config.trend_window
        if len(profile) + 1 < 2 * window:
            return None

        history = profile.values()
        recent = history[-(window - 1) :] + [value]
        prior = history[-(2 * window - 1) : -(window - 1)]

        prior_slope = calculate_slope(prior)
        recent_slope = calculate_slope(recent)
        last_sign = profile.slope_sign
        profile.slope_sign = _sign(recent_slope)
        if std <= 0:
            return None

        change = abs(recent_slope - prior_slope) / std
        threshold = self.trend_threshold
        # Reported once, on the reading where the recent slope turns
        flipped = (
            _sign(prior_slope) != 0
            and profile.slope_sign == -_sign(prior_slope)
            and last_sign != profile.slope_sign
        )
        if not flipped or change <= threshold:
            return None

        return Anomaly(
            type=AnomalyType.TREND_CHANGE,
            metric=metric,
            timestamp=timestamp,
            value=value,
            expected_value=mean,
            deviation=change,
            confidence=min(change / (2 * threshold), 1.0),
            description=f"Trend changed from {prior_slope:.3f} to {recent_slope:.3f} per sample",
        )

    def get_profile(self, metric: str) -> AnomalyProfile | None:
        """Get the rolling profile of a metric, if any readings were seen."""
        return self._profiles.get(metric)

    def get_config(self) -> AnomalyConfig:
        return self.config

    def reset(self) -> None:
        """Clear all metric profiles."""
        self._profiles.clear()

    def reset_metric(self, metric: str) -> None:
        """Clear one metric's profile.

        Args:
            metric: Metric name.
        """
        profile = self._profiles.pop(metric, None)
        if profile is not None:
            profile.clear()
