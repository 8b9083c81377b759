from datetime import timedelta

import pytest

from apps.prometheus_ops.models.metric_models import (
    AnomalySeverity,
    AnomalyThresholds,
    MetricPoint,
    ThresholdAnomalyType,
)
from apps.prometheus_ops.models.notification_models import Severity
from apps.prometheus_ops.models.prediction_models import Trend
from apps.prometheus_ops.services.analytics_engine import AnalyticsEngine
from apps.prometheus_ops.services.automation_engine import default_rules


@pytest.fixture
def engine(clock, notifications):
    return AnalyticsEngine(notifications=notifications, clock=clock)


def test_latency_over_threshold_is_one_high_anomaly(engine):
    anomalies = engine.record_metric(
        MetricPoint(latency=250, errorRate=0.02, requestsPerMinute=10)
    )

    assert len(anomalies) == 1
    anomaly = anomalies[0]
    assert anomaly.type is ThresholdAnomalyType.LATENCY
    assert anomaly.value == 250
    assert anomaly.threshold == 200
    assert anomaly.severity is AnomalySeverity.HIGH


def test_request_spike_is_medium_and_notified_as_warning(engine, notifications):
    anomalies = engine.record_metric(MetricPoint(requestsPerMinute=150))

    assert [a.type for a in anomalies] == [ThresholdAnomalyType.REQUEST_SPIKE]
    assert anomalies[0].severity is AnomalySeverity.MEDIUM

    notification = notifications.get_notifications()[0]
    assert notification.severity is Severity.WARNING
    assert notification.category == "performance"
    assert notification.metadata["threshold"] == 100


def test_high_anomaly_is_notified_as_critical(engine, notifications):
    engine.record_metric(MetricPoint(errorRate=0.5))
    assert notifications.get_notifications()[0].severity is Severity.CRITICAL


def test_values_at_threshold_are_not_anomalies(engine, notifications):
    assert engine.record_metric(MetricPoint(latency=200, errorRate=0.1, requestsPerMinute=100)) == []
    assert len(notifications) == 0


def test_missing_fields_are_skipped(engine):
    assert engine.record_metric(MetricPoint(cpu=99)) == []


def test_points_outside_window_are_pruned(engine, clock):
    old = MetricPoint(timestamp=clock() - timedelta(hours=23), latency=10)
    engine.record_metric(old)
    assert len(engine.get_metrics()) == 1

    clock.advance(hours=2)
    engine.record_metric(MetricPoint(timestamp=clock(), latency=20))

    assert [m.latency for m in engine.get_metrics()] == [20]


def test_anomalies_older_than_an_hour_are_not_recent(engine, clock):
    engine.record_metric(MetricPoint(timestamp=clock(), latency=500))
    assert len(engine.get_recent_anomalies()) == 1

    clock.advance(minutes=61)
    assert engine.get_recent_anomalies() == []


def test_summary_of_empty_window(engine):
    summary = engine.calculate_summary_metrics()
    assert summary.averageLatency == 0
    assert summary.averageRequestsPerMinute == 0
    assert summary.averageSuccessRate == 100
    assert summary.totalRequests == 0


def test_summary_averages(engine):
    engine.record_metric(MetricPoint(latency=100, errorRate=0.0, requestsPerMinute=10))
    engine.record_metric(MetricPoint(latency=50, errorRate=0.1, requestsPerMinute=30))

    summary = engine.calculate_summary_metrics()
    assert summary.averageLatency == pytest.approx(75)
    assert summary.averageRequestsPerMinute == pytest.approx(20)
    assert summary.averageSuccessRate == pytest.approx(95)
    assert summary.totalRequests == pytest.approx(40)


def test_trends_need_two_points(engine):
    engine.record_metric(MetricPoint(latency=10))
    assert engine.calculate_trends() == {
        "latency": Trend.STABLE,
        "requestsPerMinute": Trend.STABLE,
        "errorRate": Trend.STABLE,
    }


def test_trends_follow_recent_window(engine):
    for latency in range(1, 11):
        engine.record_metric(MetricPoint(latency=latency * 10, requestsPerMinute=5))

    trends = engine.calculate_trends()
    assert trends["latency"] is Trend.INCREASING
    assert trends["requestsPerMinute"] is Trend.STABLE


def test_forecast_requires_minimum_points(clock):
    engine = AnalyticsEngine(clock=clock, min_forecast_points=24)
    for _ in range(23):
        engine.record_metric(MetricPoint(requestsPerMinute=10, latency=50))

    forecast = engine.generate_predictions()
    assert forecast.nextHourRequests is None
    assert forecast.potentialIssues == []


def test_forecast_projects_next_hour_and_flags_latency(clock):
    engine = AnalyticsEngine(clock=clock, min_forecast_points=24)
    for i in range(24):
        engine.record_metric(MetricPoint(requestsPerMinute=10, latency=10 + i * 5))

    forecast = engine.generate_predictions()
    assert forecast.nextHourRequests == 600
    assert [issue.type for issue in forecast.potentialIssues] == ["latency"]


def test_update_thresholds_merges(engine):
    engine.update_thresholds({"latency": 500})
    assert engine.thresholds == AnomalyThresholds(latency=500, errorRate=0.1, requestSpike=100)
    assert engine.record_metric(MetricPoint(latency=250)) == []


def test_analytics_and_rule_thresholds_are_independent(engine):
    # The error-rate threshold exists twice: once here and once in the
    # error-spike automation rule. Changing one must not move the other.
    rule = next(r for r in default_rules() if r.id == "error-spike")
    assert rule.expression == "errorRate > 0.1"
    assert engine.thresholds.errorRate == 0.1

    engine.update_thresholds({"errorRate": 0.5})

    rule = next(r for r in default_rules() if r.id == "error-spike")
    assert rule.expression == "errorRate > 0.1"


def test_get_analytics_shape(engine):
    engine.record_metric(MetricPoint(latency=300))
    analytics = engine.get_analytics()
    assert set(analytics) == {"summary", "trends", "anomalies", "predictions"}
    assert len(analytics["anomalies"]) == 1


def test_reset_clears_window(engine):
    engine.record_metric(MetricPoint(latency=300))
    engine.reset()
    assert engine.get_metrics() == []
    assert engine.get_recent_anomalies() == []


def test_timezone_less_point_does_not_break_later_records(engine, clock):
    engine.record_metric(MetricPoint.from_mapping({"latency": 10, "timestamp": "2024-01-01T11:30:00"}))
    engine.record_metric(MetricPoint(latency=20))

    assert [m.latency for m in engine.get_metrics()] == [10, 20]


def test_future_point_is_pruned_with_the_window(engine, clock):
    engine.record_metric(MetricPoint(timestamp=clock() + timedelta(days=365), latency=10))
    assert engine.get_metrics()[0].timestamp == clock()

    clock.advance(hours=25)
    engine.record_metric(MetricPoint(timestamp=clock(), latency=20))

    assert [m.latency for m in engine.get_metrics()] == [20]


def test_point_older_than_window_is_not_kept(engine, clock):
    engine.record_metric(MetricPoint(timestamp=clock() - timedelta(hours=30), latency=10))
    assert engine.get_metrics() == []
