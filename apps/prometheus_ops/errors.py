"""
Exception taxonomy for the Prometheus Ops core.

Only ProviderExhaustionError and NotFoundError are expected to reach callers;
RuleEvaluationError and ResponseExecutionError are caught and logged inside
the AutomationEngine.
"""

from __future__ import annotations

from typing import List, Optional


class TelemetryError(Exception):
    """Base class for every error raised by the core."""


class NotFoundError(TelemetryError):
    """Unknown rule, response, provider or notification id."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found")


class RuleEvaluationError(TelemetryError):
    def __init__(self, rule_id: str, reason: str) -> None:
        self.rule_id = rule_id
        self.reason = reason
        super().__init__(f"Rule {rule_id} could not be evaluated: {reason}")


class ResponseExecutionError(TelemetryError):
    def __init__(self, response_id: str, cause: Optional[BaseException] = None) -> None:
        self.response_id = response_id
        self.cause = cause
        super().__init__(f"Response {response_id} failed: {cause}")


class ProviderExhaustionError(TelemetryError):
    """Every provider in the ordered list was skipped for quota or failed."""

    def __init__(self, providers: List[str], skipped: List[str], failed: List[str]) -> None:
        self.providers = list(providers)
        self.skipped = list(skipped)
        self.failed = list(failed)
        super().__init__(
            "All providers failed to execute task "
            f"(skipped={self.skipped}, failed={self.failed})"
        )
