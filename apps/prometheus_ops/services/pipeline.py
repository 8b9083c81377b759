"""
Telemetry pipeline: fans one MetricPoint out to every engine.

Per point:
  1. deviation check against the forecasts that existed before the point
  2. AnalyticsEngine.record_metric (threshold anomalies → notifications)
  3. PredictionEngine.add_data_point (recompute forecasts)
  4. AutomationEngine.evaluate_metrics (rules → responses → notifications)

AI tasks run through the provider fallback chain and their outcome is fed
back in as a MetricPoint, so quota pressure can trigger automation.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional, Sequence

from opentelemetry import trace
from prometheus_client import Counter
from pydantic import BaseModel, Field

from ..errors import ProviderExhaustionError
from ..models.automation_models import AutomationResponse
from ..models.metric_models import AnomalyRecord, ForecastAnomaly, MetricPoint
from ..models.notification_models import Severity
from .analytics_engine import AnalyticsEngine
from .automation_engine import AutomationEngine
from .notification_hub import NotificationHub
from .prediction_engine import PredictionEngine
from .provider_health import ProviderHealthBoard
from .provider_registry import ProviderFallbackRegistry, ProviderTask

logger = logging.getLogger("prometheus_ops.pipeline")
tracer = trace.get_tracer(__name__)

POINTS_INGESTED_TOTAL = Counter(
    "prometheus_ops_points_ingested_total",
    "Metric points pushed through the pipeline",
    ["source"],  # source: api | provider_task | snapshot
)

AI_TASKS_TOTAL = Counter(
    "prometheus_ops_ai_tasks_total",
    "AI tasks executed through the provider fallback chain",
    ["status"],  # status: success | exhausted
)

_FORECAST_SEVERITY = {
    "critical": Severity.CRITICAL,
    "warning": Severity.WARNING,
}


class IngestResult(BaseModel):
    thresholdAnomalies: List[AnomalyRecord] = Field(default_factory=list)
    forecastAnomalies: List[ForecastAnomaly] = Field(default_factory=list)
    triggeredRules: List[str] = Field(default_factory=list)


class TelemetryPipeline:
    def __init__(
        self,
        analytics: AnalyticsEngine,
        predictions: PredictionEngine,
        automation: AutomationEngine,
        providers: ProviderFallbackRegistry,
        notifications: NotificationHub,
        provider_health: ProviderHealthBoard,
    ) -> None:
        self.analytics = analytics
        self.predictions = predictions
        self.automation = automation
        self.providers = providers
        self.notifications = notifications
        self.provider_health = provider_health

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def ingest(self, point: MetricPoint, source: str = "api") -> IngestResult:
        POINTS_INGESTED_TOTAL.labels(source=source).inc()

        with tracer.start_as_current_span("prometheus_ops.pipeline.ingest") as span:
            span.set_attribute("prometheus_ops.point.source", source)

            forecast_anomalies = self.predictions.detect_anomalies(point)
            self._publish_forecast_anomalies(forecast_anomalies)

            threshold_anomalies = self.analytics.record_metric(point)
            self.predictions.add_data_point(point)

            triggered = await self.automation.evaluate_metrics(point)

            span.set_attribute("prometheus_ops.anomalies.threshold", len(threshold_anomalies))
            span.set_attribute("prometheus_ops.anomalies.forecast", len(forecast_anomalies))
            span.set_attribute("prometheus_ops.rules.triggered", len(triggered))

        return IngestResult(
            thresholdAnomalies=threshold_anomalies,
            forecastAnomalies=forecast_anomalies,
            triggeredRules=triggered,
        )

    def _publish_forecast_anomalies(self, anomalies: List[ForecastAnomaly]) -> None:
        for anomaly in anomalies:
            severity = _FORECAST_SEVERITY.get(anomaly.severity)
            if severity is None:
                logger.info(
                    "Minor forecast deviation: model=%s feature=%s value=%s bounds=[%.3f, %.3f]",
                    anomaly.model,
                    anomaly.feature,
                    anomaly.value,
                    anomaly.bounds.lower,
                    anomaly.bounds.upper,
                )
                continue

            self.notifications.notify_performance_issue(
                message=(
                    f"{anomaly.feature} at {anomaly.value:g} is outside the "
                    f"{anomaly.model} forecast band"
                ),
                metric=anomaly.feature,
                value=anomaly.value,
                threshold=anomaly.bounds.upper if anomaly.value > anomaly.bounds.upper else anomaly.bounds.lower,
                severity=severity,
            )

    # ------------------------------------------------------------------
    # AI tasks
    # ------------------------------------------------------------------

    async def run_ai_task(
        self,
        task: ProviderTask,
        providers: Optional[Sequence[str]] = None,
    ) -> Any:
        started = time.time()
        try:
            result = await self.providers.execute_with_fallback(task, providers)
        except ProviderExhaustionError:
            AI_TASKS_TOTAL.labels(status="exhausted").inc()
            await self._record_task_outcome(started)
            raise

        AI_TASKS_TOTAL.labels(status="success").inc()
        await self._record_task_outcome(started)
        return result

    async def _record_task_outcome(self, started: float) -> None:
        for provider, stats in self.providers.get_provider_stats().items():
            self.provider_health.sync_remaining(provider, stats.requests)

        point = MetricPoint(
            latency=(time.time() - started) * 1000,
            errorRate=self.providers.error_rate(),
            quotaUsage=self.providers.quota_usage(),
        )
        await self.ingest(point, source="provider_task")

    # ------------------------------------------------------------------
    # Read models
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        """Current metrics view; the snapshot itself is recorded as a point."""
        summary = self.analytics.calculate_summary_metrics()
        current = {
            "timestamp": None,
            "requestsPerMinute": self.providers.total_requests(),
            "successRate": summary.averageSuccessRate,
            "latency": summary.averageLatency,
            "trends": self.analytics.calculate_trends(),
        }

        point = MetricPoint(
            requestsPerMinute=float(current["requestsPerMinute"]),
            successRate=current["successRate"],
            latency=current["latency"],
        )
        self.analytics.record_metric(point)
        POINTS_INGESTED_TOTAL.labels(source="snapshot").inc()
        current["timestamp"] = point.timestamp
        logger.info("Metrics collected: %s", point.features())
        return current

    def stats(self) -> Dict[str, Any]:
        analytics = self.analytics.get_analytics()
        summary = analytics["summary"]
        return {
            "current": {
                "dailyUsage": self.providers.total_requests(),
                "successRate": summary.averageSuccessRate,
                "averageLatency": summary.averageLatency,
            },
            "trends": analytics["trends"],
            "predictions": analytics["predictions"],
            "forecasts": self.predictions.get_predictions(),
            "anomalies": analytics["anomalies"],
            "providers": self.providers.get_provider_stats(),
        }

    def reset(self) -> None:
        self.analytics.reset()
        self.predictions.reset()
        self.automation.reset()
        self.providers.reset()
        self.provider_health.reset()
        self.notifications.clear_notifications()
        logger.info("System reset")


def wire_default_actions(
    automation: AutomationEngine,
    providers: ProviderFallbackRegistry,
) -> None:
    """Attach concrete handlers to the seeded responses that have one."""

    async def _quota_reset(response: AutomationResponse, point: MetricPoint) -> None:
        providers.reset_quotas()

    async def _fallback_provider(response: AutomationResponse, point: MetricPoint) -> None:
        # Demote the current primary so the next task starts on the fallback.
        if len(providers.default_order) > 1:
            primary = providers.default_order.pop(0)
            providers.default_order.append(primary)
            logger.info("Primary provider %s demoted; order is now %s", primary, providers.default_order)

    automation.register_action("quota-reset", _quota_reset)
    automation.register_action("fallback-provider", _fallback_provider)
