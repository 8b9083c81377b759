from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Trend(str, Enum):
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class PredictionModel(BaseModel):
    """
    Forecasting model configuration. Immutable after the engine seeds it.

    horizon is expressed in milliseconds; confidence is the target level the
    model reports alongside its forecast.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    name: str
    features: List[str]
    horizon: int = Field(..., gt=0, description="Forecast horizon in ms")
    confidence: float = Field(..., gt=0, lt=1)


class ConfidenceInterval(BaseModel):
    lower: float
    upper: float
    mean: float


class Prediction(BaseModel):
    """Latest forecast for one model; superseded on every new point."""

    timestamp: int = Field(..., description="Epoch ms when the forecast was computed")
    model: str
    horizon: int
    predictions: Dict[str, Optional[float]]
    trends: Dict[str, Trend]
    intervals: Dict[str, Optional[ConfidenceInterval]]
    confidence: float
