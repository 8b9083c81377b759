from datetime import timedelta

import pytest

from apps.prometheus_ops.models.metric_models import MetricPoint
from apps.prometheus_ops.models.prediction_models import PredictionModel, Trend
from apps.prometheus_ops.services.prediction_engine import PredictionEngine


def _point(clock, **values):
    return MetricPoint(timestamp=clock(), **values)


@pytest.fixture
def engine(clock):
    return PredictionEngine(clock=clock)


def test_nine_points_produce_no_predictions(engine, clock):
    for i in range(9):
        engine.add_data_point(_point(clock, cpu=50 + i))

    assert engine.get_predictions() == {}


def test_tenth_point_populates_every_model(engine, clock):
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=50 + i))

    predictions = engine.get_predictions()
    assert set(predictions) == {"performance", "errors", "usage"}
    assert predictions["performance"].model == "Performance Predictor"
    assert predictions["performance"].horizon == 3_600_000
    assert predictions["errors"].confidence == 0.90


def test_feature_without_values_has_null_forecast(engine, clock):
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=50 + i))

    errors = engine.get_predictions()["errors"]
    assert errors.predictions["errorRate"] is None
    assert errors.intervals["errorRate"] is None
    assert errors.trends["errorRate"] is Trend.STABLE


def test_prediction_contents(engine, clock):
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=10 + i * 10, memory=40))

    usage = engine.get_predictions()["usage"]
    assert usage.trends["cpu"] is Trend.INCREASING
    assert usage.trends["memory"] is Trend.STABLE
    assert usage.predictions["memory"] == pytest.approx(40)
    assert 10 <= usage.predictions["cpu"] <= 100

    interval = usage.intervals["cpu"]
    assert interval.lower <= interval.mean <= interval.upper
    assert usage.timestamp == int(clock().timestamp() * 1000)


def test_only_last_ten_points_are_used(engine, clock):
    for _ in range(10):
        engine.add_data_point(_point(clock, memory=1000))
    for _ in range(10):
        engine.add_data_point(_point(clock, memory=5))

    usage = engine.get_predictions()["usage"]
    assert usage.predictions["memory"] == pytest.approx(5)


def test_history_outside_window_is_pruned(engine, clock):
    engine.add_data_point(_point(clock, cpu=1))
    clock.advance(hours=25)
    engine.add_data_point(_point(clock, cpu=2))

    assert [p.cpu for p in engine.get_history()] == [2]


def test_no_anomalies_before_predictions_exist(engine, clock):
    assert engine.detect_anomalies(_point(clock, cpu=1000)) == []


def _train(engine, clock):
    # cpu alternates 49/51: mean 50, narrow band
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=49 if i % 2 else 51))


def test_value_inside_band_is_not_anomalous(engine, clock):
    _train(engine, clock)
    assert engine.detect_anomalies(_point(clock, cpu=50)) == []


def test_far_outlier_is_critical(engine, clock):
    _train(engine, clock)

    anomalies = engine.detect_anomalies(_point(clock, cpu=90))

    # cpu is a feature of both the performance and usage models
    assert {a.model for a in anomalies} == {"performance", "usage"}
    for anomaly in anomalies:
        assert anomaly.feature == "cpu"
        assert anomaly.value == 90
        assert anomaly.severity == "critical"
        assert anomaly.bounds.upper < 90


def test_missing_feature_is_skipped(engine, clock):
    _train(engine, clock)
    assert engine.detect_anomalies(_point(clock, memory=999)) == []


def test_failing_model_does_not_block_others(clock):
    engine = PredictionEngine(
        models=[
            PredictionModel(key="ok", name="OK", features=["cpu"], horizon=1000, confidence=0.9),
            PredictionModel(key="broken", name="Broken", features=["cpu"], horizon=1000, confidence=0.9),
        ],
        clock=clock,
    )
    original = engine.generate_prediction

    def flaky(model):
        if model.key == "broken":
            raise RuntimeError("boom")
        return original(model)

    engine.generate_prediction = flaky
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=i))

    assert set(engine.get_predictions()) == {"ok"}


def test_anomaly_threshold_map_is_stored(engine):
    assert engine.update_anomaly_thresholds({"cpu": 3.0}) == {"cpu": 3.0}
    assert engine.get_anomaly_thresholds() == {"cpu": 3.0}


def test_reset(engine, clock):
    for i in range(10):
        engine.add_data_point(_point(clock, cpu=i))
    engine.reset()
    assert engine.get_predictions() == {}
    assert engine.get_history() == []


def test_timedelta_window_is_configurable(clock):
    engine = PredictionEngine(window=timedelta(minutes=5), clock=clock)
    engine.add_data_point(_point(clock, cpu=1))
    clock.advance(minutes=6)
    engine.add_data_point(_point(clock, cpu=2))
    assert len(engine.get_history()) == 1


def test_future_point_is_pruned_with_the_window(engine, clock):
    engine.add_data_point(MetricPoint(timestamp=clock() + timedelta(days=30), cpu=1))
    clock.advance(hours=25)
    engine.add_data_point(_point(clock, cpu=2))

    assert [p.cpu for p in engine.get_history()] == [2]


def test_timezone_less_point_is_accepted(engine, clock):
    engine.add_data_point(MetricPoint.from_mapping({"cpu": 1, "timestamp": "2024-01-01T11:00:00"}))
    engine.add_data_point(_point(clock, cpu=2))

    assert [p.cpu for p in engine.get_history()] == [1, 2]
