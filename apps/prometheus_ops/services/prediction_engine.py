"""
Forecasting engine for Prometheus Ops.

Keeps a trailing window of metric points and, for every registered model,
recomputes on each new point:
  - a trend label per feature (least-squares slope normalised by the mean)
  - an exponential-smoothing forecast per feature
  - a normal-approximation confidence interval per feature

Only the latest Prediction per model is retained. Deviation anomalies are
flagged when a live value falls outside the model's interval.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional

from opentelemetry import trace
from prometheus_client import Counter, Histogram

from ..config import settings
from ..models.metric_models import Bounds, ForecastAnomaly, MetricPoint, clamp_to_clock, utcnow
from ..models.prediction_models import Prediction, PredictionModel
from .stats import (
    anomaly_severity,
    calculate_confidence_interval,
    exponential_smoothing,
    regression_trend,
)

logger = logging.getLogger("prometheus_ops.prediction")
tracer = trace.get_tracer(__name__)

FORECAST_ANOMALIES_TOTAL = Counter(
    "prometheus_ops_forecast_anomalies_total",
    "Values that fell outside a model's confidence interval",
    ["model", "feature", "severity"],
)

PREDICTION_UPDATE_SECONDS = Histogram(
    "prometheus_ops_prediction_update_seconds",
    "Time spent recomputing every model forecast for one data point",
    buckets=(0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5),
)

PREDICTION_MODEL_ERRORS_TOTAL = Counter(
    "prometheus_ops_prediction_model_errors_total",
    "Model forecasts that raised during recomputation",
    ["model"],
)

# Fixed history slice every forecast is computed over.
RECENT_POINTS = 10


def default_models() -> List[PredictionModel]:
    return [
        PredictionModel(
            key="performance",
            name="Performance Predictor",
            features=["cpu", "memory", "latency", "requestRate"],
            horizon=3_600_000,
            confidence=0.95,
        ),
        PredictionModel(
            key="errors",
            name="Error Rate Predictor",
            features=["errorRate", "successRate", "latency"],
            horizon=1_800_000,
            confidence=0.90,
        ),
        PredictionModel(
            key="usage",
            name="Resource Usage Predictor",
            features=["cpu", "memory", "diskIO", "networkIO"],
            horizon=7_200_000,
            confidence=0.85,
        ),
    ]


class PredictionEngine:
    def __init__(
        self,
        models: Optional[List[PredictionModel]] = None,
        window: timedelta = timedelta(hours=settings.WINDOW_HOURS),
        min_points: int = settings.MIN_PREDICTION_POINTS,
        alpha: float = settings.SMOOTHING_ALPHA,
        z_score: float = settings.CONFIDENCE_Z_SCORE,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.window = window
        self.min_points = min_points
        self.alpha = alpha
        self.z_score = z_score
        self._clock = clock

        self._history: List[MetricPoint] = []
        self._models: Dict[str, PredictionModel] = {}
        self._predictions: Dict[str, Optional[Prediction]] = {}
        self._anomaly_thresholds: Dict[str, float] = {}

        for model in models if models is not None else default_models():
            self._models[model.key] = model

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def add_data_point(self, point: MetricPoint) -> None:
        now = self._clock()
        point = clamp_to_clock(point, now)

        cutoff = now - self.window
        self._history = [p for p in self._history if p.timestamp > cutoff]
        if point.timestamp > cutoff:
            self._history.append(point)

        self.update_predictions()

    def update_predictions(self) -> None:
        with PREDICTION_UPDATE_SECONDS.time():
            for key, model in self._models.items():
                try:
                    self._predictions[key] = self.generate_prediction(model)
                except Exception:  # noqa: BLE001
                    PREDICTION_MODEL_ERRORS_TOTAL.labels(model=key).inc()
                    logger.exception("Error updating predictions for %s", key)

    def generate_prediction(self, model: PredictionModel) -> Optional[Prediction]:
        if len(self._history) < self.min_points:
            return None

        recent = self._history[-RECENT_POINTS:]

        trends = {}
        forecasts = {}
        intervals = {}
        for feature in model.features:
            values = [p.value(feature) for p in recent]
            values = [v for v in values if v is not None]

            trends[feature] = regression_trend(values)
            forecasts[feature] = exponential_smoothing(values, self.alpha)
            intervals[feature] = calculate_confidence_interval(values, self.z_score)

        return Prediction(
            timestamp=int(self._clock().timestamp() * 1000),
            model=model.name,
            horizon=model.horizon,
            predictions=forecasts,
            trends=trends,
            intervals=intervals,
            confidence=model.confidence,
        )

    # ------------------------------------------------------------------
    # Deviation anomalies
    # ------------------------------------------------------------------

    def detect_anomalies(self, current: MetricPoint) -> List[ForecastAnomaly]:
        anomalies: List[ForecastAnomaly] = []

        with tracer.start_as_current_span("prometheus_ops.prediction.detect_anomalies") as span:
            for key, prediction in self._predictions.items():
                if prediction is None:
                    continue

                for feature in self._models[key].features:
                    value = current.value(feature)
                    interval = prediction.intervals.get(feature)
                    if value is None or interval is None:
                        continue

                    if interval.lower <= value <= interval.upper:
                        continue

                    expected = prediction.predictions.get(feature)
                    baseline = expected if expected is not None else interval.mean
                    severity = anomaly_severity(value, baseline, interval.lower, interval.upper)

                    anomalies.append(
                        ForecastAnomaly(
                            model=key,
                            feature=feature,
                            value=value,
                            expected=expected,
                            bounds=Bounds(lower=interval.lower, upper=interval.upper),
                            severity=severity,
                        )
                    )
                    FORECAST_ANOMALIES_TOTAL.labels(
                        model=key, feature=feature, severity=severity
                    ).inc()

            span.set_attribute("prometheus_ops.prediction.anomalies", len(anomalies))

        return anomalies

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_predictions(self) -> Dict[str, Prediction]:
        return {key: p for key, p in self._predictions.items() if p is not None}

    def get_models(self) -> List[PredictionModel]:
        return list(self._models.values())

    def get_history(self) -> List[MetricPoint]:
        return list(self._history)

    def get_anomaly_thresholds(self) -> Dict[str, float]:
        return dict(self._anomaly_thresholds)

    def update_anomaly_thresholds(self, thresholds: Dict[str, float]) -> Dict[str, float]:
        self._anomaly_thresholds.update(thresholds)
        logger.info("Updated prediction anomaly thresholds: %s", thresholds)
        return self.get_anomaly_thresholds()

    def reset(self) -> None:
        self._history = []
        self._predictions = {}
