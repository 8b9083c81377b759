import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from opentelemetry import trace
from prometheus_client import Counter, Histogram

from ..config import settings
from ..errors import NotFoundError, ResponseExecutionError, RuleEvaluationError
from ..models.automation_models import AutomationResponse, ResponseStatus, Rule, RuleUpdate
from ..models.metric_models import MetricPoint, utcnow
from ..rules.parser import matches, parse_expression
from .notification_hub import NotificationHub

logger = logging.getLogger("prometheus_ops.automation")
tracer = trace.get_tracer(__name__)

# --------------------------------------------------------------------------
# Prometheus metrics
# --------------------------------------------------------------------------

RULE_EVALUATIONS_TOTAL = Counter(
    "prometheus_ops_rule_evaluations_total",
    "Rule evaluations by outcome",
    ["rule", "result"],  # result: triggered | not_triggered | error
)

RESPONSE_EXECUTIONS_TOTAL = Counter(
    "prometheus_ops_response_executions_total",
    "Automated response executions by outcome",
    ["response", "status"],  # status: success | failed | skipped
)

RESPONSE_DURATION_SECONDS = Histogram(
    "prometheus_ops_response_duration_seconds",
    "Duration of automated response actions",
    ["response"],
    buckets=(0.01, 0.05, 0.1, 0.5, 1, 2, 5, 10),
)

ActionHandler = Callable[[AutomationResponse, MetricPoint], Awaitable[Any]]
Metrics = Union[MetricPoint, Dict[str, Any]]


def _as_point(metrics: Metrics) -> MetricPoint:
    if isinstance(metrics, MetricPoint):
        return metrics
    return MetricPoint.from_mapping(metrics)


def default_rules() -> List[Rule]:
    return [
        Rule(
            id="high-cpu",
            name="High CPU Usage Detection",
            condition=f"CPU Usage > {settings.RULE_CPU_THRESHOLD:g}% for 5 minutes",
            expression=f"cpu > {settings.RULE_CPU_THRESHOLD:g}",
            action="Trigger auto-scale response",
            response_id="auto-scale",
        ),
        Rule(
            id="error-spike",
            name="Error Rate Spike",
            condition=f"Error rate > {settings.RULE_ERROR_RATE_THRESHOLD * 100:g}% in last minute",
            expression=f"errorRate > {settings.RULE_ERROR_RATE_THRESHOLD:g}",
            action="Switch to fallback provider",
            response_id="fallback-provider",
        ),
        Rule(
            id="quota-limit",
            name="Quota Limit Approaching",
            condition=f"Provider quota usage > {settings.RULE_QUOTA_USAGE_THRESHOLD:g}%",
            expression=f"quotaUsage > {settings.RULE_QUOTA_USAGE_THRESHOLD:g}",
            action="Trigger quota reset",
            response_id="quota-reset",
        ),
    ]


def default_responses() -> List[AutomationResponse]:
    return [
        AutomationResponse(id="auto-scale", trigger="High CPU Usage", action="Scale up system resources"),
        AutomationResponse(id="fallback-provider", trigger="Provider Failure", action="Switch to fallback provider"),
        AutomationResponse(id="quota-reset", trigger="Quota Exceeded", action="Reset provider quota"),
    ]


class AutomationEngine:
    """
    Rule → response automation.

    Rules are evaluated in registration order; a rule that raises is logged
    and skipped. Matched responses then run sequentially, each awaited
    before the next starts. A failing response bumps its failureCount and
    is logged; the error never reaches the caller of evaluate_metrics.
    """

    def __init__(
        self,
        notifications: Optional[NotificationHub] = None,
        action_delay_seconds: float = settings.RESPONSE_ACTION_DELAY_SECONDS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.notifications = notifications
        self.action_delay_seconds = action_delay_seconds
        self._clock = clock

        self._rules: Dict[str, Rule] = {}
        self._responses: Dict[str, AutomationResponse] = {}
        self._handlers: Dict[str, ActionHandler] = {}
        self._seed()

    def _seed(self) -> None:
        self._rules = {rule.id: rule for rule in default_rules()}
        self._responses = {response.id: response for response in default_responses()}

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    async def evaluate_metrics(self, metrics: Metrics) -> List[str]:
        point = _as_point(metrics)
        triggers: List[str] = []

        with tracer.start_as_current_span("prometheus_ops.automation.evaluate") as span:
            for rule_id, rule in list(self._rules.items()):
                if not rule.enabled:
                    continue

                try:
                    triggered = self.evaluate_rule(rule, metrics)
                except RuleEvaluationError as exc:
                    RULE_EVALUATIONS_TOTAL.labels(rule=rule_id, result="error").inc()
                    span.record_exception(exc)
                    logger.error("Error evaluating rule %s: %s", rule_id, exc.reason)
                    continue

                RULE_EVALUATIONS_TOTAL.labels(
                    rule=rule_id, result="triggered" if triggered else "not_triggered"
                ).inc()
                if triggered:
                    triggers.append(rule_id)

            span.set_attribute("prometheus_ops.automation.triggered", len(triggers))

            for rule_id in triggers:
                await self.execute_response(self._rules[rule_id].response_id, point)

        return triggers

    def evaluate_rule(self, rule: Rule, metrics: Metrics) -> bool:
        try:
            return matches(parse_expression(rule.expression), metrics)
        except Exception as exc:  # noqa: BLE001
            raise RuleEvaluationError(rule.id, str(exc)) from exc

    async def execute_response(self, response_id: str, metrics: Metrics) -> bool:
        response = self._responses.get(response_id)
        if response is None or response.status is not ResponseStatus.ACTIVE:
            RESPONSE_EXECUTIONS_TOTAL.labels(response=response_id, status="skipped").inc()
            return False

        point = _as_point(metrics)
        start_time = time.time()

        with tracer.start_as_current_span(f"prometheus_ops.response.{response_id}") as span:
            span.set_attribute("prometheus_ops.response.id", response_id)
            span.set_attribute("prometheus_ops.response.action", response.action)

            try:
                await self.perform_action(response, point)
            except Exception as exc:  # noqa: BLE001
                error = ResponseExecutionError(response_id, exc)
                response.failureCount += 1
                span.record_exception(exc)
                span.set_attribute("prometheus_ops.response.status", "failed")
                RESPONSE_EXECUTIONS_TOTAL.labels(response=response_id, status="failed").inc()
                logger.error("Failed to execute response %s: %s", response_id, error)
                self._notify(response, success=False, details=str(exc))
                return False
            finally:
                RESPONSE_DURATION_SECONDS.labels(response=response_id).observe(time.time() - start_time)

            response.successCount += 1
            response.lastTriggered = self._clock()
            span.set_attribute("prometheus_ops.response.status", "success")
            RESPONSE_EXECUTIONS_TOTAL.labels(response=response_id, status="success").inc()
            logger.info("Successfully executed response %s", response_id)
            self._notify(response, success=True)
            return True

    async def perform_action(self, response: AutomationResponse, point: MetricPoint) -> Any:
        handler = self._handlers.get(response.id)
        if handler is not None:
            return await handler(response, point)

        # No concrete side effect wired for this response: simulate one.
        await asyncio.sleep(self.action_delay_seconds)
        logger.info("Performing action: %s metrics=%s", response.action, point.features())
        return True

    def register_action(self, response_id: str, handler: ActionHandler) -> None:
        if response_id not in self._responses:
            raise NotFoundError("Response", response_id)
        self._handlers[response_id] = handler

    def _notify(self, response: AutomationResponse, success: bool, details: Optional[str] = None) -> None:
        if self.notifications is None:
            return
        self.notifications.notify_automated_response(
            response_id=response.id,
            trigger=response.trigger,
            action=response.action,
            success=success,
            details=details,
        )

    # ------------------------------------------------------------------
    # Registry CRUD
    # ------------------------------------------------------------------

    def get_rules(self) -> List[Rule]:
        return [rule.model_copy() for rule in self._rules.values()]

    def get_rule(self, rule_id: str) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Rule", rule_id)
        return rule.model_copy()

    def add_rule(self, rule: Rule) -> Rule:
        parse_expression(rule.expression)
        self._rules[rule.id] = rule.model_copy()
        logger.info("Added rule %s (%s)", rule.id, rule.expression)
        return rule

    def update_rule(self, rule_id: str, updates: Union[RuleUpdate, Dict[str, Any]]) -> Rule:
        rule = self._rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Rule", rule_id)

        changes = updates.changes() if isinstance(updates, RuleUpdate) else dict(updates)
        changes.pop("id", None)
        if "expression" in changes:
            parse_expression(changes["expression"])

        updated = Rule(**{**rule.model_dump(), **changes})
        self._rules[rule_id] = updated

        logger.info("Updated rule %s: %s", rule_id, changes)
        return updated.model_copy()

    def remove_rule(self, rule_id: str) -> Rule:
        rule = self._rules.pop(rule_id, None)
        if rule is None:
            raise NotFoundError("Rule", rule_id)
        logger.info("Removed rule %s", rule_id)
        return rule

    def get_responses(self) -> List[AutomationResponse]:
        return [response.model_copy() for response in self._responses.values()]

    def get_response(self, response_id: str) -> AutomationResponse:
        response = self._responses.get(response_id)
        if response is None:
            raise NotFoundError("Response", response_id)
        return response.model_copy()

    def set_response_status(self, response_id: str, status: Union[ResponseStatus, str]) -> AutomationResponse:
        response = self._responses.get(response_id)
        if response is None:
            raise NotFoundError("Response", response_id)
        response.status = ResponseStatus(status)
        logger.info("Response %s is now %s", response_id, response.status.value)
        return response.model_copy()

    def toggle_response(self, response_id: str) -> AutomationResponse:
        response = self.get_response(response_id)
        target = (
            ResponseStatus.INACTIVE
            if response.status is ResponseStatus.ACTIVE
            else ResponseStatus.ACTIVE
        )
        return self.set_response_status(response_id, target)

    def reset(self) -> None:
        """Re-seed rules and responses; registered handlers are kept."""
        self._seed()
        logger.info("Automation registry reset")
