"""
Statistical anomaly detection over rolling per-metric sample windows.

Each call to AnomalyDetector.detect() appends the observation to the metric's
window (last 1000 samples) and, once the window holds min_data_points
samples, runs the enabled checks against the window's population mean and
standard deviation:

    spike         value > mean + k * std
    drop          value < mean - k * std
    outlier       |value - mean| / std > 1.5 * k
    trend_change  OLS slopes of the two window halves have opposite signs
                  and differ by more than 0.5 (needs 50 samples)

k is std_dev_threshold. Spike, drop and outlier are reported only when their
confidence reaches the configured sensitivity.
"""

import logging
from collections import deque
from dataclasses import dataclass, asdict, fields
from typing import Any, Deque, Dict, List, Optional

import numpy as np

from alert_engine.alerts.errors import ValidationError

logger = logging.getLogger(__name__)

MAX_HISTORY_SIZE = 1000
TREND_MIN_DATA_POINTS = 50
TREND_SLOPE_CHANGE_THRESHOLD = 0.5
OUTLIER_FACTOR = 1.5


class AnomalyType:
    """Anomaly type constants"""
    SPIKE = 'spike'
    DROP = 'drop'
    OUTLIER = 'outlier'
    TREND_CHANGE = 'trend_change'


@dataclass(frozen=True)
class AnomalyConfig:
    """Anomaly detector tuning"""
    sensitivity: float = 0.7  # 0-1, minimum confidence to report
    min_data_points: int = 20
    std_dev_threshold: float = 3.0
    enable_spike: bool = True
    enable_drop: bool = True
    enable_trend_change: bool = True
    enable_outlier: bool = True

    def __post_init__(self):
        if not 0 <= self.sensitivity <= 1:
            raise ValidationError(f"sensitivity must be between 0 and 1, got {self.sensitivity}")
        if self.min_data_points < 1:
            raise ValidationError(f"min_data_points must be >= 1, got {self.min_data_points}")
        if self.std_dev_threshold <= 0:
            raise ValidationError(f"std_dev_threshold must be > 0, got {self.std_dev_threshold}")

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'AnomalyConfig':
        """Create config from a mapping, ignoring unknown keys"""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in (data or {}).items() if k in known})


@dataclass(frozen=True)
class Anomaly:
    """Detected anomaly"""
    type: str
    timestamp: float
    value: float
    expected_value: float
    deviation: float
    confidence: float
    description: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class _Stats:
    mean: float
    variance: float
    std_dev: float


class AnomalyDetector:
    """Detects spikes, drops, outliers and trend changes in metric streams"""

    def __init__(self, config: Optional[AnomalyConfig] = None):
        """
        Initialize anomaly detector.

        Args:
            config: Detector configuration (defaults if omitted)
        """
        self.config = config or AnomalyConfig()
        self.data_history: Dict[str, Deque[float]] = {}

        logger.info(
            f"Anomaly detector initialized (sensitivity: {self.config.sensitivity}, "
            f"min_data_points: {self.config.min_data_points})"
        )

    def detect(self, metric: str, value: float, timestamp: float) -> List[Anomaly]:
        """
        Record an observation and check it for anomalies.

        Args:
            metric: Metric name
            value: Observed value
            timestamp: Observation time (epoch ms)

        Returns:
            Zero or more anomalies; empty until min_data_points samples are
            held, and for non-finite values (which are not recorded)
        """
        if not np.isfinite(value):
            logger.warning(f"Ignoring non-finite sample for {metric}: {value}")
            return []

        history = self.data_history.get(metric)
        if history is None:
            history = deque(maxlen=MAX_HISTORY_SIZE)
            self.data_history[metric] = history
        history.append(float(value))

        if len(history) < self.config.min_data_points:
            return []

        window = np.fromiter(history, dtype=float, count=len(history))
        stats = self._calculate_stats(window)

        anomalies = []

        if stats.std_dev > 0:
            if self.config.enable_spike:
                anomalies.extend(self._detect_spike(value, stats, timestamp))
            if self.config.enable_drop:
                anomalies.extend(self._detect_drop(value, stats, timestamp))
            if self.config.enable_outlier:
                anomalies.extend(self._detect_outlier(value, stats, timestamp))

        if self.config.enable_trend_change and len(window) >= TREND_MIN_DATA_POINTS:
            anomalies.extend(self._detect_trend_change(window, stats, timestamp))

        for anomaly in anomalies:
            logger.debug(f"Anomaly on {metric}: {anomaly.type} ({anomaly.description})")

        return anomalies

    def _detect_spike(self, value: float, stats: _Stats, timestamp: float) -> List[Anomaly]:
        k = self.config.std_dev_threshold
        if value <= stats.mean + k * stats.std_dev:
            return []

        deviation = (value - stats.mean) / stats.std_dev
        confidence = min(deviation / k, 1.0)
        if confidence < self.config.sensitivity:
            return []

        return [Anomaly(
            type=AnomalyType.SPIKE,
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=deviation,
            confidence=confidence,
            description=f"Value {value:.2f} is {deviation:.2f} standard deviations above mean",
        )]

    def _detect_drop(self, value: float, stats: _Stats, timestamp: float) -> List[Anomaly]:
        k = self.config.std_dev_threshold
        if value >= stats.mean - k * stats.std_dev:
            return []

        deviation = (stats.mean - value) / stats.std_dev
        confidence = min(deviation / k, 1.0)
        if confidence < self.config.sensitivity:
            return []

        return [Anomaly(
            type=AnomalyType.DROP,
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=deviation,
            confidence=confidence,
            description=f"Value {value:.2f} is {deviation:.2f} standard deviations below mean",
        )]

    def _detect_outlier(self, value: float, stats: _Stats, timestamp: float) -> List[Anomaly]:
        k = self.config.std_dev_threshold
        z_score = abs((value - stats.mean) / stats.std_dev)
        if z_score <= k * OUTLIER_FACTOR:
            return []

        confidence = min(z_score / (k * 2), 1.0)
        if confidence < self.config.sensitivity:
            return []

        return [Anomaly(
            type=AnomalyType.OUTLIER,
            timestamp=timestamp,
            value=value,
            expected_value=stats.mean,
            deviation=z_score,
            confidence=confidence,
            description=f"Value {value:.2f} is an outlier with z-score {z_score:.2f}",
        )]

    def _detect_trend_change(self, window: np.ndarray, stats: _Stats, timestamp: float) -> List[Anomaly]:
        mid_point = len(window) // 2
        first_slope = self._calculate_slope(window[:mid_point])
        second_slope = self._calculate_slope(window[mid_point:])

        slope_change = abs(second_slope - first_slope)
        reversed_direction = np.sign(first_slope) != np.sign(second_slope)
        if not (slope_change > TREND_SLOPE_CHANGE_THRESHOLD and reversed_direction):
            return []

        return [Anomaly(
            type=AnomalyType.TREND_CHANGE,
            timestamp=timestamp,
            value=float(window[-1]),
            expected_value=stats.mean,
            deviation=slope_change,
            confidence=self.config.sensitivity,
            description=f"Trend changed from {first_slope:.3f} to {second_slope:.3f}",
        )]

    def _calculate_stats(self, values: np.ndarray) -> _Stats:
        mean = float(np.mean(values))
        variance = float(np.var(values))
        return _Stats(mean=mean, variance=variance, std_dev=float(np.sqrt(variance)))

    def _calculate_slope(self, values: np.ndarray) -> float:
        """Ordinary least squares slope of value against sample index"""
        n = len(values)
        if n < 2:
            return 0.0

        x = np.arange(n, dtype=float)
        x_centered = x - x.mean()
        return float(np.dot(x_centered, values - values.mean()) / np.dot(x_centered, x_centered))

    def sample_count(self, metric: str) -> int:
        """Number of samples currently held for a metric"""
        history = self.data_history.get(metric)
        return len(history) if history is not None else 0

    def get_config(self) -> AnomalyConfig:
        return self.config

    def reset(self) -> None:
        """Forget all tracked metrics"""
        self.data_history.clear()

    def reset_metric(self, metric: str) -> None:
        """Forget one metric's history"""
        self.data_history.pop(metric, None)
