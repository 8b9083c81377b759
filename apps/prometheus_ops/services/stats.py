"""
Small numeric helpers shared by the analytics and prediction engines.

Everything here is a pure function over plain float sequences so it can be
exercised without building an engine.
"""

from __future__ import annotations

import math
from typing import Optional, Sequence

import numpy as np

from ..models.prediction_models import ConfidenceInterval, Trend

TREND_THRESHOLD = 0.1
DEFAULT_Z_SCORE = 1.96


def _classify(relative_change: float) -> Trend:
    if relative_change > TREND_THRESHOLD:
        return Trend.INCREASING
    if relative_change < -TREND_THRESHOLD:
        return Trend.DECREASING
    return Trend.STABLE


def _relative(change: float, baseline: float) -> float:
    # A zero baseline has no meaningful ratio; fall back to the sign.
    if baseline == 0:
        if change == 0:
            return 0.0
        return math.copysign(math.inf, change)
    return change / abs(baseline)


def calculate_trend(values: Sequence[float]) -> Trend:
    """
    Compare the most recent value against the window average.

    increasing if (recent - avg) / avg > 0.1, decreasing if < -0.1.
    """
    if len(values) < 2:
        return Trend.STABLE

    arr = np.asarray(values, dtype=float)
    average = float(np.mean(arr))
    recent = float(arr[-1])
    return _classify(_relative(recent - average, average))


def regression_trend(values: Sequence[float]) -> Trend:
    """
    Least-squares slope over index 0..n-1, normalised by the series mean.
    """
    if len(values) < 2:
        return Trend.STABLE

    arr = np.asarray(values, dtype=float)
    x = np.arange(len(arr), dtype=float)
    slope = float(np.polyfit(x, arr, 1)[0])
    return _classify(_relative(slope, float(np.mean(arr))))


def exponential_smoothing(values: Sequence[float], alpha: float = 0.3) -> Optional[float]:
    if not values:
        return None

    result = float(values[0])
    for value in values[1:]:
        result = alpha * float(value) + (1 - alpha) * result
    return result


def calculate_confidence_interval(
    values: Sequence[float],
    z_score: float = DEFAULT_Z_SCORE,
) -> Optional[ConfidenceInterval]:
    """Normal approximation: mean ± z * (s / sqrt(n)), s = sample stddev."""
    n = len(values)
    if n < 2:
        return None

    arr = np.asarray(values, dtype=float)
    mean = float(np.mean(arr))
    std_dev = float(np.std(arr, ddof=1))
    margin = (z_score * std_dev) / math.sqrt(n)

    return ConfidenceInterval(lower=mean - margin, upper=mean + margin, mean=mean)


def anomaly_severity(actual: float, expected: float, lower: float, upper: float) -> str:
    """
    Severity from deviation relative to the band width:
    > 3 critical, > 2 warning, otherwise info.
    """
    deviation = abs(actual - expected)
    band = upper - lower

    if band <= 0:
        ratio = math.inf if deviation > 0 else 0.0
    else:
        ratio = deviation / band

    if ratio > 3:
        return "critical"
    if ratio > 2:
        return "warning"
    return "info"


def mean_or_default(values: Sequence[float], default: float = 0.0) -> float:
    if not values:
        return default
    return float(np.mean(np.asarray(values, dtype=float)))
