import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from prometheus_client import Counter, Gauge

from ..config import settings
from ..models.metric_models import (
    AnomalyRecord,
    AnomalySeverity,
    AnomalyThresholds,
    MetricPoint,
    PotentialIssue,
    SummaryMetrics,
    ThresholdAnomalyType,
    TrafficForecast,
    clamp_to_clock,
    utcnow,
)
from ..models.notification_models import Severity
from ..models.prediction_models import Trend
from .notification_hub import NotificationHub
from .stats import calculate_trend, mean_or_default

logger = logging.getLogger("prometheus_ops.analytics")

THRESHOLD_ANOMALIES_TOTAL = Counter(
    "prometheus_ops_threshold_anomalies_total",
    "Anomalies flagged by static thresholds",
    ["type", "severity"],
)

ANALYTICS_WINDOW_SIZE = Gauge(
    "prometheus_ops_analytics_window_points",
    "Metric points currently retained in the analytics window",
)

TREND_FEATURES = ("latency", "requestsPerMinute", "errorRate")

_NOTIFICATION_SEVERITY = {
    AnomalySeverity.HIGH: Severity.CRITICAL,
    AnomalySeverity.MEDIUM: Severity.WARNING,
}


class AnalyticsEngine:
    """
    Rolling analytics over a trailing window of metric points.

    - record_metric: append + prune + threshold anomaly check
    - calculate_summary_metrics / calculate_trends: read models for dashboards
    - generate_predictions: naive next-hour request volume + latency warning
    """

    def __init__(
        self,
        thresholds: Optional[AnomalyThresholds] = None,
        notifications: Optional[NotificationHub] = None,
        window: timedelta = timedelta(hours=settings.WINDOW_HOURS),
        trend_window: int = settings.TREND_WINDOW,
        min_forecast_points: int = settings.MIN_FORECAST_POINTS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.thresholds = thresholds or AnomalyThresholds(
            latency=settings.LATENCY_THRESHOLD_MS,
            errorRate=settings.ERROR_RATE_THRESHOLD,
            requestSpike=settings.REQUEST_SPIKE_THRESHOLD,
        )
        self.notifications = notifications
        self.window = window
        self.trend_window = trend_window
        self.min_forecast_points = min_forecast_points
        self._clock = clock

        self._metrics: List[MetricPoint] = []
        self._anomalies: List[AnomalyRecord] = []

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    def record_metric(self, point: MetricPoint) -> List[AnomalyRecord]:
        now = self._clock()
        point = clamp_to_clock(point, now)

        cutoff = now - self.window
        self._metrics = [m for m in self._metrics if m.timestamp > cutoff]
        self._anomalies = [a for a in self._anomalies if a.timestamp > cutoff]
        if point.timestamp > cutoff:
            self._metrics.append(point)
        ANALYTICS_WINDOW_SIZE.set(len(self._metrics))

        return self.detect_anomalies(point)

    def detect_anomalies(self, point: MetricPoint) -> List[AnomalyRecord]:
        anomalies: List[AnomalyRecord] = []
        now = self._clock()

        checks = (
            (point.latency, self.thresholds.latency, ThresholdAnomalyType.LATENCY, AnomalySeverity.HIGH),
            (point.errorRate, self.thresholds.errorRate, ThresholdAnomalyType.ERROR_RATE, AnomalySeverity.HIGH),
            (
                point.requestsPerMinute,
                self.thresholds.requestSpike,
                ThresholdAnomalyType.REQUEST_SPIKE,
                AnomalySeverity.MEDIUM,
            ),
        )
        for value, threshold, anomaly_type, severity in checks:
            if value is not None and value > threshold:
                anomalies.append(
                    AnomalyRecord(
                        type=anomaly_type,
                        value=value,
                        threshold=threshold,
                        severity=severity,
                        timestamp=now,
                    )
                )

        if anomalies:
            self._handle_anomalies(anomalies)
        return anomalies

    def _handle_anomalies(self, anomalies: List[AnomalyRecord]) -> None:
        for anomaly in anomalies:
            self._anomalies.append(anomaly)
            THRESHOLD_ANOMALIES_TOTAL.labels(
                type=anomaly.type.value, severity=anomaly.severity.value
            ).inc()
            logger.warning(
                "Anomaly detected: type=%s value=%s threshold=%s severity=%s",
                anomaly.type.value,
                anomaly.value,
                anomaly.threshold,
                anomaly.severity.value,
            )

            if self.notifications is not None:
                self.notifications.notify_performance_issue(
                    message=(
                        f"{anomaly.type.value} at {anomaly.value:g} exceeds "
                        f"threshold {anomaly.threshold:g}"
                    ),
                    metric=anomaly.type.value,
                    value=anomaly.value,
                    threshold=anomaly.threshold,
                    severity=_NOTIFICATION_SEVERITY[anomaly.severity],
                )

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def calculate_summary_metrics(self) -> SummaryMetrics:
        if not self._metrics:
            return SummaryMetrics()

        latencies = [m.latency for m in self._metrics if m.latency is not None]
        requests = [m.requestsPerMinute for m in self._metrics if m.requestsPerMinute is not None]
        success = [(1 - m.errorRate) * 100 for m in self._metrics if m.errorRate is not None]

        return SummaryMetrics(
            averageLatency=mean_or_default(latencies),
            averageRequestsPerMinute=mean_or_default(requests),
            averageSuccessRate=mean_or_default(success, default=100.0),
            totalRequests=float(sum(requests)),
        )

    def calculate_trends(self) -> Dict[str, Trend]:
        if len(self._metrics) < 2:
            return {feature: Trend.STABLE for feature in TREND_FEATURES}

        recent = self._metrics[-self.trend_window:]
        return {
            feature: calculate_trend(self._series(recent, feature))
            for feature in TREND_FEATURES
        }

    def calculate_trend(self, values: List[float]) -> Trend:
        return calculate_trend(values)

    def generate_predictions(self) -> TrafficForecast:
        if len(self._metrics) < self.min_forecast_points:
            return TrafficForecast()

        recent = self._metrics[-self.min_forecast_points:]
        avg_requests = mean_or_default(self._series(recent, "requestsPerMinute"))
        forecast = TrafficForecast(nextHourRequests=round(avg_requests * 60))

        if calculate_trend(self._series(recent, "latency")) is Trend.INCREASING:
            forecast.potentialIssues.append(
                PotentialIssue(
                    type="latency",
                    severity="warning",
                    message="Latency is showing an upward trend",
                )
            )

        return forecast

    def get_recent_anomalies(self, within: timedelta = timedelta(hours=1)) -> List[AnomalyRecord]:
        cutoff = self._clock() - within
        return [a for a in self._anomalies if a.timestamp > cutoff]

    def get_analytics(self) -> Dict[str, Any]:
        return {
            "summary": self.calculate_summary_metrics(),
            "trends": self.calculate_trends(),
            "anomalies": self.get_recent_anomalies(),
            "predictions": self.generate_predictions(),
        }

    def get_metrics(self) -> List[MetricPoint]:
        return list(self._metrics)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def update_thresholds(self, updates: Dict[str, float]) -> AnomalyThresholds:
        self.thresholds = AnomalyThresholds(**{**self.thresholds.model_dump(), **updates})
        logger.info("Updated anomaly thresholds: %s", updates)
        return self.thresholds

    def reset(self) -> None:
        self._metrics = []
        self._anomalies = []
        ANALYTICS_WINDOW_SIZE.set(0)

    @staticmethod
    def _series(points: List[MetricPoint], feature: str) -> List[float]:
        values = []
        for point in points:
            value = point.value(feature)
            if value is not None:
                values.append(value)
        return values
