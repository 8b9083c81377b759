from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from opentelemetry import trace
from pydantic import ValidationError

from ..context import TelemetryContext
from ..models.metric_models import MetricPoint
from ..services.pipeline import IngestResult
from .dependencies import get_context

logger = logging.getLogger("prometheus_ops.ingest")
tracer = trace.get_tracer(__name__)

router = APIRouter(
    prefix="/metrics",
    tags=["ingest"],
)


# ------------------------------------------------------------------------------
# POST /metrics/ingest
# ------------------------------------------------------------------------------
@router.post(
    "/ingest",
    status_code=status.HTTP_200_OK,
    summary="Push one metric sample through analytics, prediction and automation.",
)
async def ingest_metric(
    request: Request,
    payload: Dict[str, Any] = Body(...),
    ctx: TelemetryContext = Depends(get_context),
) -> IngestResult:
    """
    Accepts a flat JSON object of named numeric measurements, e.g.

        {"latency": 250, "errorRate": 0.02, "cpu": 91}

    Unknown numeric keys are kept as extra features; non-numeric values are
    ignored. The response lists threshold anomalies, forecast deviations and
    the rules that fired.
    """
    with tracer.start_as_current_span("ingest.metric") as span:
        if request.client is not None:
            span.set_attribute("http.client_ip", request.client.host)

        try:
            point = MetricPoint.from_mapping(payload)
        except ValidationError as exc:
            logger.warning("Rejected metric sample: %s", exc)
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail=exc.errors(include_url=False, include_context=False),
            )

        span.set_attribute("prometheus_ops.point.features", len(point.features()))
        return await ctx.pipeline.ingest(point, source="api")
