from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, Field

from .metric_models import utcnow


class ProviderQuota(BaseModel):
    provider: str
    requests: int = Field(0, ge=0)
    errors: int = Field(0, ge=0)
    lastReset: datetime = Field(default_factory=utcnow)


class ProviderStats(BaseModel):
    requests: int
    errors: int
    successRate: float = Field(..., description="Percent of successful requests")


class ProviderStatus(str, Enum):
    ACTIVE = "active"
    DOWN = "down"


class ProviderLimits(BaseModel):
    requestsPerMinute: int
    requestsPerDay: int
    remaining: int


class ProviderHealth(BaseModel):
    """Operator-facing provider card served by GET /health."""

    name: str
    status: ProviderStatus = ProviderStatus.ACTIVE
    healthScore: float = Field(1.0, ge=0, le=1)
    lastCheck: datetime = Field(default_factory=utcnow)
    limits: ProviderLimits
    capabilities: List[str] = Field(default_factory=list)


class ProviderTaskResult(BaseModel):
    success: bool = True
    provider: str
    result: Any = None
    timestamp: datetime = Field(default_factory=utcnow)
    latency_ms: Optional[float] = None
