from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from .metric_models import utcnow


class Severity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


# Lower rank is more severe.
SEVERITY_RANK: Dict[Severity, int] = {
    Severity.CRITICAL: 1,
    Severity.WARNING: 2,
    Severity.INFO: 3,
}


class NotificationCreate(BaseModel):
    """Caller-supplied part of a notification."""

    title: str
    message: str
    severity: Severity = Severity.INFO
    category: str = "system"
    metadata: Dict[str, Any] = Field(default_factory=dict)


class Notification(NotificationCreate):
    id: str
    timestamp: datetime = Field(default_factory=utcnow)
    read: bool = False
    read_at: Optional[datetime] = None
