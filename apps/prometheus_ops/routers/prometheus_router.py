from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, status
from opentelemetry import trace
from pydantic import BaseModel, Field

from ..context import TelemetryContext
from ..models.prediction_models import Prediction
from ..models.provider_models import ProviderHealth, ProviderTaskResult
from ..services.provider_registry import simulated_provider_task
from .dependencies import get_context

logger = logging.getLogger("prometheus_ops.api")
tracer = trace.get_tracer(__name__)

router = APIRouter(
    prefix="/prometheus",
    tags=["prometheus"],
)


class AiTaskRequest(BaseModel):
    task: Any = Field(..., description="Opaque payload handed to the provider")
    providers: Optional[List[str]] = Field(
        None,
        description="Provider order override; defaults to the registry order",
    )


# ------------------------------------------------------------------------------
# Metrics / stats
# ------------------------------------------------------------------------------
@router.get("/metrics", summary="Current summary metrics and trends.")
def get_metrics(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    with tracer.start_as_current_span("prometheus.get_metrics"):
        return ctx.pipeline.snapshot()


@router.get("/stats", summary="Usage, trends, predictions and recent anomalies.")
def get_stats(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    with tracer.start_as_current_span("prometheus.get_stats"):
        return ctx.pipeline.stats()


@router.get("/predictions", summary="Latest forecast per prediction model.")
def get_predictions(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Prediction]:
    return ctx.predictions.get_predictions()


# ------------------------------------------------------------------------------
# Providers
# ------------------------------------------------------------------------------
@router.get("/health", summary="Provider health table.")
def get_health(ctx: TelemetryContext = Depends(get_context)) -> List[ProviderHealth]:
    return ctx.provider_health.list_providers()


@router.post("/providers/{provider}/toggle", summary="Flip a provider between active and down.")
def toggle_provider(provider: str, ctx: TelemetryContext = Depends(get_context)) -> ProviderHealth:
    with tracer.start_as_current_span("prometheus.toggle_provider") as span:
        span.set_attribute("prometheus_ops.provider", provider)
        card = ctx.provider_health.toggle(provider)

    ctx.notifications.notify_system_event(
        f"Provider {provider} is now {card.status.value}",
        metadata={"provider": provider, "status": card.status.value},
    )
    return card


@router.post("/providers/{provider}/reset-quota", summary="Restore a provider's daily quota.")
def reset_provider_quota(provider: str, ctx: TelemetryContext = Depends(get_context)) -> ProviderHealth:
    with tracer.start_as_current_span("prometheus.reset_provider_quota") as span:
        span.set_attribute("prometheus_ops.provider", provider)
        card = ctx.provider_health.reset_quota(provider)
        ctx.providers.reset_quota(provider)
    return card


@router.post(
    "/ai-task",
    summary="Run a task through the provider fallback chain.",
    response_description="Result from the first provider that succeeded.",
)
async def run_ai_task(
    body: AiTaskRequest,
    ctx: TelemetryContext = Depends(get_context),
) -> ProviderTaskResult:
    """
    Providers are tried in order; quota-exhausted ones are skipped. If none
    succeeds the request fails with 503. The outcome is fed back into the
    telemetry pipeline either way.
    """
    task = simulated_provider_task(
        body.task,
        failure_rate=ctx.settings.PROVIDER_FAILURE_RATE,
        max_latency_seconds=ctx.settings.PROVIDER_MAX_LATENCY_SECONDS,
    )
    return await ctx.pipeline.run_ai_task(task, body.providers)


# ------------------------------------------------------------------------------
# System
# ------------------------------------------------------------------------------
@router.post("/system/reset", summary="Reset every engine to its seeded state.")
def reset_system(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    with tracer.start_as_current_span("prometheus.reset_system"):
        ctx.pipeline.reset()
    logger.info("System reset requested via API")
    return {"success": True, "message": "System reset successful"}


@router.post(
    "/system/optimize",
    status_code=status.HTTP_200_OK,
    summary="Raise every provider's health score by 0.1 (capped at 1.0).",
)
async def optimize_system(ctx: TelemetryContext = Depends(get_context)) -> Dict[str, Any]:
    with tracer.start_as_current_span("prometheus.optimize_system"):
        providers = await ctx.provider_health.optimize(ctx.settings.OPTIMIZE_DELAY_SECONDS)

    ctx.notifications.notify_system_event("System optimization completed")
    return {
        "success": True,
        "message": "System optimization completed",
        "providers": providers,
    }
