# apps/prometheus_ops/app.py

import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator

# OTEL setup
from apps.prometheus_ops.utils.otel import setup_otel

from apps.prometheus_ops.context import build_context
from apps.prometheus_ops.errors import NotFoundError, ProviderExhaustionError
from apps.prometheus_ops.rules.parser import ConditionSyntaxError

# Routers (absolute imports)
from apps.prometheus_ops.routers.automation_router import router as automation_router
from apps.prometheus_ops.routers.ingest_router import router as ingest_router
from apps.prometheus_ops.routers.metrics_router import router as metrics_router
from apps.prometheus_ops.routers.notifications_router import router as notifications_router
from apps.prometheus_ops.routers.prometheus_router import router as prometheus_router
from apps.prometheus_ops.routers.websocket_router import router as websocket_router

logger = logging.getLogger("prometheus_ops.app")


app = FastAPI(
    title="Prometheus Ops",
    description="Telemetry analytics, forecasting, automation and AI provider fallback",
    version="0.1.0",
)

app.state.context = build_context()

# ------------------------------------------------------------------
# OpenTelemetry
# ------------------------------------------------------------------
setup_otel(app)

# ------------------------------------------------------------------
# Prometheus Metrics
# ------------------------------------------------------------------
Instrumentator().instrument(app)
app.include_router(metrics_router)


# ------------------------------------------------------------------
# Business Routers
# ------------------------------------------------------------------
app.include_router(prometheus_router, prefix="/v1")
app.include_router(automation_router, prefix="/v1")
app.include_router(notifications_router, prefix="/v1")
app.include_router(ingest_router, prefix="/v1")
app.include_router(websocket_router, prefix="/v1")


# ------------------------------------------------------------------
# Error translation
# ------------------------------------------------------------------
@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(ProviderExhaustionError)
async def provider_exhaustion_handler(request: Request, exc: ProviderExhaustionError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "detail": str(exc),
            "skipped": exc.skipped,
            "failed": exc.failed,
        },
    )


@app.exception_handler(ConditionSyntaxError)
async def condition_syntax_handler(request: Request, exc: ConditionSyntaxError) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})


# ------------------------------------------------------------------
# Lifecycle Events
# ------------------------------------------------------------------
@app.on_event("startup")
async def startup_event():
    """Wire notifications to the live channel and start the metrics stream."""
    ctx = app.state.context
    ctx.forward_notifications_to_websocket()
    await ctx.metrics_stream.start()
    logger.info("Prometheus Ops started")


@app.on_event("shutdown")
async def shutdown_event():
    await app.state.context.shutdown()


@app.get("/healthz")
def health_check():
    return {"status": "ok", "service": "prometheus-ops"}
