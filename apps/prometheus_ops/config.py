import os
from typing import Dict


def _env_float(name: str, default: str) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: str) -> int:
    return int(os.getenv(name, default))


class Settings:
    """
    Centralized Prometheus Ops configuration.

    Backed by environment variables so thresholds and limits can be tuned
    per environment (dev / stage / prod) without changing code.

    Groups:
      - Service: log level, OTLP endpoint, environment name
      - Analytics: window length, threshold defaults, forecast minimum
      - Prediction: minimum points, smoothing alpha, z-score
      - Automation: rule thresholds (independent from analytics thresholds)
      - Providers: daily limits, simulated failure rate
      - Notifications / streaming: log cap, stream interval
    """

    # ------------------------------------------------------------------
    # Service
    # ------------------------------------------------------------------
    ENVIRONMENT: str = os.getenv("PROMETHEUS_ENV", "dev")
    LOG_LEVEL: str = os.getenv("PROMETHEUS_LOG_LEVEL", "INFO")
    OTel_Endpoint: str = os.getenv(
        "OTEL_EXPORTER_OTLP_ENDPOINT",
        "http://prometheus-otelcol:4317",
    )

    # Disable to keep tracing in-process (local runs, tests).
    OTEL_EXPORT_ENABLED: bool = os.getenv("PROMETHEUS_OTEL_EXPORT", "true").lower() in ("1", "true", "yes")

    @property
    def OTEL_ENDPOINT(self) -> str:
        return self.OTel_Endpoint

    # ------------------------------------------------------------------
    # Analytics
    # ------------------------------------------------------------------
    WINDOW_HOURS: float = _env_float("PROMETHEUS_WINDOW_HOURS", "24")
    LATENCY_THRESHOLD_MS: float = _env_float("PROMETHEUS_LATENCY_THRESHOLD_MS", "200")
    ERROR_RATE_THRESHOLD: float = _env_float("PROMETHEUS_ERROR_RATE_THRESHOLD", "0.1")
    REQUEST_SPIKE_THRESHOLD: float = _env_float("PROMETHEUS_REQUEST_SPIKE_THRESHOLD", "100")
    # Points required before the next-hour request forecast is produced.
    MIN_FORECAST_POINTS: int = _env_int("PROMETHEUS_MIN_FORECAST_POINTS", "24")
    TREND_WINDOW: int = _env_int("PROMETHEUS_TREND_WINDOW", "10")

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------
    MIN_PREDICTION_POINTS: int = _env_int("PROMETHEUS_MIN_PREDICTION_POINTS", "10")
    SMOOTHING_ALPHA: float = _env_float("PROMETHEUS_SMOOTHING_ALPHA", "0.3")
    CONFIDENCE_Z_SCORE: float = _env_float("PROMETHEUS_CONFIDENCE_Z_SCORE", "1.96")

    # ------------------------------------------------------------------
    # Automation rules. Kept separate from the analytics thresholds above:
    # the two subsystems are tuned independently.
    # ------------------------------------------------------------------
    RULE_CPU_THRESHOLD: float = _env_float("PROMETHEUS_RULE_CPU_THRESHOLD", "80")
    RULE_ERROR_RATE_THRESHOLD: float = _env_float("PROMETHEUS_RULE_ERROR_RATE_THRESHOLD", "0.1")
    RULE_QUOTA_USAGE_THRESHOLD: float = _env_float("PROMETHEUS_RULE_QUOTA_USAGE_THRESHOLD", "90")
    # Simulated side-effect duration for responses without a concrete handler.
    RESPONSE_ACTION_DELAY_SECONDS: float = _env_float("PROMETHEUS_RESPONSE_ACTION_DELAY_SECONDS", "1.0")

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------
    PROVIDER_LIMITS: Dict[str, int] = {
        "HuggingFace": _env_int("PROMETHEUS_LIMIT_HUGGINGFACE", "10000"),
        "OpenAI": _env_int("PROMETHEUS_LIMIT_OPENAI", "200"),
        "Replicate": _env_int("PROMETHEUS_LIMIT_REPLICATE", "1000"),
    }
    DEFAULT_PROVIDER_LIMIT: int = _env_int("PROMETHEUS_DEFAULT_PROVIDER_LIMIT", "100")
    PROVIDER_FAILURE_RATE: float = _env_float("PROMETHEUS_PROVIDER_FAILURE_RATE", "0.1")
    PROVIDER_MAX_LATENCY_SECONDS: float = _env_float("PROMETHEUS_PROVIDER_MAX_LATENCY_SECONDS", "1.0")

    # ------------------------------------------------------------------
    # Notifications / streaming
    # ------------------------------------------------------------------
    NOTIFICATION_CAPACITY: int = _env_int("PROMETHEUS_NOTIFICATION_CAPACITY", "100")
    METRICS_STREAM_INTERVAL_SECONDS: float = _env_float("PROMETHEUS_METRICS_STREAM_INTERVAL_SECONDS", "5")
    OPTIMIZE_DELAY_SECONDS: float = _env_float("PROMETHEUS_OPTIMIZE_DELAY_SECONDS", "2.0")

    def __init__(self) -> None:
        # A smoothing factor outside (0, 1] would let the forecast leave the
        # observed range; clamp instead of failing at import time.
        if not 0.0 < self.SMOOTHING_ALPHA <= 1.0:
            self.SMOOTHING_ALPHA = 0.3
        if self.MIN_PREDICTION_POINTS < 2:
            self.MIN_PREDICTION_POINTS = 2
        self.PROVIDER_LIMITS = dict(self.PROVIDER_LIMITS)


settings = Settings()
