"""
OpenTelemetry setup for Prometheus Ops.

- Configures OTLP exporter (gRPC) to collector.
- Instruments FastAPI + logging.
"""

from __future__ import annotations

import logging
import os

from fastapi import FastAPI

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from ..config import settings


def setup_otel(app: FastAPI) -> None:
    """
    Configure OpenTelemetry for the Prometheus Ops service.

    Reads OTLP endpoint from settings.OTEL_ENDPOINT
    (OTEL_EXPORTER_OTLP_ENDPOINT). With PROMETHEUS_OTEL_EXPORT=false spans
    are still created but never leave the process.
    """

    service_name = os.getenv("OTEL_SERVICE_NAME", "prometheus-ops")

    resource = Resource.create(
        {
            "service.name": service_name,
            "deployment.environment": settings.ENVIRONMENT,
            "service.version": "0.1.0",
            "prometheus_ops.component": "telemetry-core",
        }
    )

    provider = TracerProvider(resource=resource)
    trace.set_tracer_provider(provider)

    if settings.OTEL_EXPORT_ENABLED:
        span_exporter = OTLPSpanExporter(
            endpoint=settings.OTEL_ENDPOINT,
            insecure=True,
        )
        provider.add_span_processor(BatchSpanProcessor(span_exporter))

    FastAPIInstrumentor().instrument_app(app)

    LoggingInstrumentor().instrument(
        set_logging_format=True,
    )

    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )
