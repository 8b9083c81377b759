from __future__ import annotations

import logging
from typing import List

from fastapi import APIRouter, Depends
from opentelemetry import trace

from ..context import TelemetryContext
from ..models.automation_models import AutomationResponse, Rule, RuleUpdate
from .dependencies import get_context

logger = logging.getLogger("prometheus_ops.api")
tracer = trace.get_tracer(__name__)

router = APIRouter(
    prefix="/automation",
    tags=["automation"],
)


@router.get("/rules", summary="Registered automation rules, in evaluation order.")
def list_rules(ctx: TelemetryContext = Depends(get_context)) -> List[Rule]:
    return ctx.automation.get_rules()


@router.patch("/rules/{rule_id}", summary="Partially update a rule.")
def update_rule(
    rule_id: str,
    updates: RuleUpdate,
    ctx: TelemetryContext = Depends(get_context),
) -> Rule:
    """
    Only the fields present in the body change. A new ``expression`` is
    parsed before it is stored; a malformed one is rejected with 422.
    """
    with tracer.start_as_current_span("automation.update_rule") as span:
        span.set_attribute("prometheus_ops.rule.id", rule_id)
        return ctx.automation.update_rule(rule_id, updates)


@router.get("/responses", summary="Automated responses with their outcome counters.")
def list_responses(ctx: TelemetryContext = Depends(get_context)) -> List[AutomationResponse]:
    return ctx.automation.get_responses()


@router.post("/responses/{response_id}/toggle", summary="Activate or deactivate a response.")
def toggle_response(response_id: str, ctx: TelemetryContext = Depends(get_context)) -> AutomationResponse:
    return ctx.automation.toggle_response(response_id)
