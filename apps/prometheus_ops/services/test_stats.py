import pytest

from apps.prometheus_ops.models.prediction_models import Trend
from apps.prometheus_ops.services.stats import (
    anomaly_severity,
    calculate_confidence_interval,
    calculate_trend,
    exponential_smoothing,
    mean_or_default,
    regression_trend,
)


def test_trend_of_rising_series_is_increasing():
    assert calculate_trend([1, 2, 3, 4, 5, 6, 7, 8, 9, 10]) is Trend.INCREASING


def test_trend_of_flat_series_is_stable():
    assert calculate_trend([5, 5, 5, 5, 5]) is Trend.STABLE


def test_trend_of_falling_series_is_decreasing():
    assert calculate_trend([10, 9, 8, 7, 6, 5, 4, 3, 2, 1]) is Trend.DECREASING


@pytest.mark.parametrize("values", [[], [42.0]])
def test_trend_needs_two_values(values):
    assert calculate_trend(values) is Trend.STABLE


def test_trend_with_zero_average_uses_sign():
    # mean is 0, last value positive
    assert calculate_trend([-1, 0, 1]) is Trend.INCREASING
    assert calculate_trend([0, 0, 0]) is Trend.STABLE


def test_trend_with_negative_average_keeps_direction():
    # avg = -2, recent = -1: the series is rising toward zero
    assert calculate_trend([-3, -2, -1]) is Trend.INCREASING


def test_regression_trend_follows_slope():
    assert regression_trend([1, 2, 3, 4, 5]) is Trend.INCREASING
    assert regression_trend([5, 4, 3, 2, 1]) is Trend.DECREASING
    assert regression_trend([3, 3, 3]) is Trend.STABLE


def test_exponential_smoothing_empty_is_none():
    assert exponential_smoothing([]) is None


def test_exponential_smoothing_single_value_is_identity():
    assert exponential_smoothing([7.0], alpha=0.3) == 7.0


def test_exponential_smoothing_matches_recurrence():
    # 10 -> 0.5*20 + 0.5*10 = 15 -> 0.5*30 + 0.5*15 = 22.5
    assert exponential_smoothing([10, 20, 30], alpha=0.5) == pytest.approx(22.5)


@pytest.mark.parametrize("alpha", [0.1, 0.3, 0.9, 1.0])
def test_exponential_smoothing_stays_within_observed_range(alpha):
    values = [3.0, 9.0, 1.0, 7.5, 4.2, 8.8]
    result = exponential_smoothing(values, alpha)
    assert min(values) <= result <= max(values)


def test_confidence_interval_requires_two_values():
    assert calculate_confidence_interval([]) is None
    assert calculate_confidence_interval([1.0]) is None


def test_confidence_interval_is_ordered_around_mean():
    ci = calculate_confidence_interval([10, 12, 14, 16, 18])
    assert ci.lower <= ci.mean <= ci.upper
    assert ci.mean == pytest.approx(14.0)
    # s = sqrt(10), margin = 1.96 * s / sqrt(5)
    assert ci.upper - ci.mean == pytest.approx(1.96 * (10 ** 0.5) / (5 ** 0.5))


def test_confidence_interval_of_constant_series_collapses():
    ci = calculate_confidence_interval([4, 4, 4, 4])
    assert ci.lower == ci.mean == ci.upper == 4


def test_anomaly_severity_thresholds():
    # band width 2
    assert anomaly_severity(10.0, 10.0, 9.0, 11.0) == "info"
    assert anomaly_severity(14.5, 10.0, 9.0, 11.0) == "warning"
    assert anomaly_severity(17.0, 10.0, 9.0, 11.0) == "critical"


def test_anomaly_severity_is_monotonic_in_deviation():
    rank = {"info": 0, "warning": 1, "critical": 2}
    previous = -1
    for actual in [10, 12, 14, 15, 16, 17, 20, 40]:
        current = rank[anomaly_severity(actual, 10.0, 9.0, 11.0)]
        assert current >= previous
        previous = current


def test_anomaly_severity_with_zero_width_band():
    assert anomaly_severity(5.0, 4.0, 4.0, 4.0) == "critical"
    assert anomaly_severity(4.0, 4.0, 4.0, 4.0) == "info"


def test_mean_or_default():
    assert mean_or_default([]) == 0.0
    assert mean_or_default([], default=100.0) == 100.0
    assert mean_or_default([1, 2, 3]) == pytest.approx(2.0)
