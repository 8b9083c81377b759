"""
Pydantic models for the automation registry.

A Rule decides *whether* to act; an AutomationResponse defines and tracks
*what* was done. Rules point at responses through ``response_id``.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ResponseStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Rule(BaseModel):
    id: str
    name: str
    condition: str = Field(..., description="Human-readable condition")
    expression: str = Field(..., description="Condition DSL, e.g. 'cpu > 80'")
    action: str = Field(..., description="Human-readable action")
    response_id: str
    enabled: bool = True


class RuleUpdate(BaseModel):
    """Partial update body; unset fields are left untouched."""

    name: Optional[str] = None
    condition: Optional[str] = None
    expression: Optional[str] = None
    action: Optional[str] = None
    response_id: Optional[str] = None
    enabled: Optional[bool] = None

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AutomationResponse(BaseModel):
    id: str
    trigger: str
    action: str
    status: ResponseStatus = ResponseStatus.ACTIVE
    successCount: int = Field(0, ge=0)
    failureCount: int = Field(0, ge=0)
    lastTriggered: Optional[datetime] = None

