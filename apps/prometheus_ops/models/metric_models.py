"""
Pydantic models for metric ingestion and anomaly reporting.

These models are used across:
  - POST /v1/metrics/ingest
  - AnalyticsEngine (threshold anomalies)
  - PredictionEngine (forecast-deviation anomalies)
  - synthetic metrics stream
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# Every named feature a MetricPoint can carry as a first-class field.
METRIC_FIELDS = (
    "latency",
    "errorRate",
    "requestsPerMinute",
    "cpu",
    "memory",
    "quotaUsage",
    "requestRate",
    "successRate",
    "diskIO",
    "networkIO",
)


# ---------------------------------------------------------------------------
# MetricPoint
# ---------------------------------------------------------------------------

class MetricPoint(BaseModel):
    """
    One timestamped sample of named numeric measurements.

    Known features are explicit optional fields; anything else goes into
    ``extra``. Points are frozen once created.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utcnow)

    latency: Optional[float] = Field(None, description="Request latency in ms")
    errorRate: Optional[float] = Field(None, ge=0, description="Error ratio 0..1")
    requestsPerMinute: Optional[float] = Field(None, ge=0)
    cpu: Optional[float] = Field(None, description="CPU usage percent")
    memory: Optional[float] = Field(None, description="Memory usage percent")
    quotaUsage: Optional[float] = Field(None, description="Provider quota usage percent")
    requestRate: Optional[float] = None
    successRate: Optional[float] = None
    diskIO: Optional[float] = None
    networkIO: Optional[float] = None

    extra: Dict[str, float] = Field(default_factory=dict)

    @field_validator("timestamp")
    @classmethod
    def _timestamp_utc(cls, value: datetime) -> datetime:
        # Timezone-less timestamps are taken as UTC so they compare with the clock.
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    def value(self, feature: str) -> Optional[float]:
        if feature in METRIC_FIELDS:
            return getattr(self, feature)
        return self.extra.get(feature)

    def features(self) -> Dict[str, float]:
        """All present feature values, fields and extras merged."""
        values = {
            name: getattr(self, name)
            for name in METRIC_FIELDS
            if getattr(self, name) is not None
        }
        values.update(self.extra)
        return values

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "MetricPoint":
        """
        Build a point from an untyped record: known keys become fields,
        unknown numeric keys land in ``extra``, non-numeric values are dropped.
        """
        known: Dict[str, Any] = {}
        extra: Dict[str, float] = dict(data.get("extra") or {})
        for key, raw in data.items():
            if key == "extra":
                continue
            if key == "timestamp":
                known[key] = raw
                continue
            if not isinstance(raw, (int, float)) or isinstance(raw, bool):
                continue
            if key in METRIC_FIELDS:
                known[key] = raw
            else:
                extra[key] = float(raw)
        return cls(**known, extra=extra)


def clamp_to_clock(point: MetricPoint, now: datetime) -> MetricPoint:
    """Points stamped in the future are re-stamped at ``now`` so the window can prune them."""
    if point.timestamp > now:
        return point.model_copy(update={"timestamp": now})
    return point


# ---------------------------------------------------------------------------
# Anomalies
# ---------------------------------------------------------------------------

class ThresholdAnomalyType(str, Enum):
    LATENCY = "latency"
    ERROR_RATE = "error_rate"
    REQUEST_SPIKE = "request_spike"


class AnomalySeverity(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"


class AnomalyRecord(BaseModel):
    """Static-threshold anomaly produced by the AnalyticsEngine."""

    type: ThresholdAnomalyType
    value: float
    threshold: float
    severity: AnomalySeverity
    timestamp: datetime = Field(default_factory=utcnow)


class Bounds(BaseModel):
    lower: float
    upper: float


class ForecastAnomaly(BaseModel):
    """Deviation-from-forecast anomaly produced by the PredictionEngine."""

    model: str
    feature: str
    value: float
    expected: Optional[float] = None
    bounds: Bounds
    severity: str = Field(..., description="critical | warning | info")


class AnomalyThresholds(BaseModel):
    latency: float = 200.0
    errorRate: float = 0.1
    requestSpike: float = 100.0


# ---------------------------------------------------------------------------
# Analytics read models
# ---------------------------------------------------------------------------

class SummaryMetrics(BaseModel):
    averageLatency: float = 0.0
    averageRequestsPerMinute: float = 0.0
    averageSuccessRate: float = 100.0
    totalRequests: float = 0.0


class PotentialIssue(BaseModel):
    type: str
    severity: str
    message: str


class TrafficForecast(BaseModel):
    nextHourRequests: Optional[int] = None
    potentialIssues: List[PotentialIssue] = Field(default_factory=list)
