"""
Explicit, constructible holder for every Prometheus Ops component.

The FastAPI app builds one TelemetryContext at import time; tests build
their own so no state leaks between them.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Set

from .config import Settings, settings as default_settings
from .models.metric_models import AnomalyThresholds, utcnow
from .models.notification_models import Notification
from .services.analytics_engine import AnalyticsEngine
from .services.automation_engine import AutomationEngine
from .services.metrics_stream import MetricsStream
from .services.notification_hub import NotificationHub, Subscription
from .services.pipeline import TelemetryPipeline, wire_default_actions
from .services.prediction_engine import PredictionEngine
from .services.provider_health import ProviderHealthBoard
from .services.provider_registry import ProviderFallbackRegistry
from .services.websocket_hub import WebSocketHub

logger = logging.getLogger("prometheus_ops.context")

NOTIFICATIONS_TOPIC = "notifications"


@dataclass
class TelemetryContext:
    settings: Settings
    notifications: NotificationHub
    analytics: AnalyticsEngine
    predictions: PredictionEngine
    automation: AutomationEngine
    providers: ProviderFallbackRegistry
    provider_health: ProviderHealthBoard
    websocket: WebSocketHub
    metrics_stream: MetricsStream
    pipeline: TelemetryPipeline
    _subscriptions: List[Subscription] = field(default_factory=list)
    _pending: Set[asyncio.Task] = field(default_factory=set)

    def forward_notifications_to_websocket(self) -> Subscription:
        """Push every new notification to the ``notifications`` topic."""

        def _forward(notification: Notification) -> None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                # Published outside an event loop (e.g. sync tests): nobody to push to.
                return
            task = loop.create_task(
                self.websocket.broadcast(NOTIFICATIONS_TOPIC, notification.model_dump(mode="json"))
            )
            self._pending.add(task)
            task.add_done_callback(self._broadcast_done)

        subscription = self.notifications.subscribe(_forward)
        self._subscriptions.append(subscription)
        return subscription

    def _broadcast_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Notification broadcast failed: %s", task.exception())

    @property
    def pending_broadcasts(self) -> int:
        return len(self._pending)

    async def shutdown(self) -> None:
        await self.metrics_stream.stop()
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        self._pending.clear()


def build_context(
    config: Optional[Settings] = None,
    clock: Callable[[], datetime] = utcnow,
    action_delay_seconds: Optional[float] = None,
    stream_interval_seconds: Optional[float] = None,
) -> TelemetryContext:
    config = config or default_settings

    notifications = NotificationHub(capacity=config.NOTIFICATION_CAPACITY)
    analytics = AnalyticsEngine(
        thresholds=AnomalyThresholds(
            latency=config.LATENCY_THRESHOLD_MS,
            errorRate=config.ERROR_RATE_THRESHOLD,
            requestSpike=config.REQUEST_SPIKE_THRESHOLD,
        ),
        notifications=notifications,
        window=timedelta(hours=config.WINDOW_HOURS),
        trend_window=config.TREND_WINDOW,
        min_forecast_points=config.MIN_FORECAST_POINTS,
        clock=clock,
    )
    predictions = PredictionEngine(
        window=timedelta(hours=config.WINDOW_HOURS),
        min_points=config.MIN_PREDICTION_POINTS,
        alpha=config.SMOOTHING_ALPHA,
        z_score=config.CONFIDENCE_Z_SCORE,
        clock=clock,
    )
    automation = AutomationEngine(
        notifications=notifications,
        action_delay_seconds=(
            config.RESPONSE_ACTION_DELAY_SECONDS
            if action_delay_seconds is None
            else action_delay_seconds
        ),
        clock=clock,
    )
    providers = ProviderFallbackRegistry(
        limits=config.PROVIDER_LIMITS,
        default_limit=config.DEFAULT_PROVIDER_LIMIT,
        notifications=notifications,
        clock=clock,
    )
    wire_default_actions(automation, providers)

    provider_health = ProviderHealthBoard(clock=clock)
    websocket = WebSocketHub()
    metrics_stream = MetricsStream(
        websocket,
        interval_seconds=(
            config.METRICS_STREAM_INTERVAL_SECONDS
            if stream_interval_seconds is None
            else stream_interval_seconds
        ),
    )
    pipeline = TelemetryPipeline(
        analytics=analytics,
        predictions=predictions,
        automation=automation,
        providers=providers,
        notifications=notifications,
        provider_health=provider_health,
    )

    logger.info("Telemetry context built (env=%s)", config.ENVIRONMENT)
    return TelemetryContext(
        settings=config,
        notifications=notifications,
        analytics=analytics,
        predictions=predictions,
        automation=automation,
        providers=providers,
        provider_health=provider_health,
        websocket=websocket,
        metrics_stream=metrics_stream,
        pipeline=pipeline,
    )
