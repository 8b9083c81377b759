from __future__ import annotations

from functools import lru_cache
from typing import Any, Optional

from lark import Lark, Transformer
from lark.exceptions import LarkError

from ..models.metric_models import MetricPoint
from .grammar import CONDITION_GRAMMAR
from .model import Condition, RuleExpression

_PARSER = Lark(CONDITION_GRAMMAR, start="start", parser="lalr")


class ConditionSyntaxError(ValueError):
    pass


class _ConditionTransformer(Transformer):
    def start(self, items):
        return list(items)

    def condition(self, items):
        field, op, value = items
        return Condition(field=str(field), op=str(op), value=float(value))


@lru_cache(maxsize=256)
def parse_expression(text: str) -> RuleExpression:
    """Parse ``cpu > 80 AND memory >= 70`` into a RuleExpression."""
    try:
        tree = _PARSER.parse(text)
    except LarkError as exc:
        raise ConditionSyntaxError(f"Invalid rule expression {text!r}: {exc}") from exc

    conditions = _ConditionTransformer().transform(tree)
    return RuleExpression(source=text, conditions=conditions)


def _compare(lhs: float, op: str, rhs: float) -> bool:
    if op == ">":
        return lhs > rhs
    if op == "<":
        return lhs < rhs
    if op == ">=":
        return lhs >= rhs
    if op == "<=":
        return lhs <= rhs
    if op == "==":
        return lhs == rhs
    if op == "!=":
        return lhs != rhs
    raise ConditionSyntaxError(f"Unsupported operator {op!r}")


def _resolve(point: Any, field: str) -> Optional[float]:
    if isinstance(point, MetricPoint):
        return point.value(field)
    return point.get(field)


def matches(expression: RuleExpression, point: Any) -> bool:
    """
    True when every condition holds. A field missing from the point makes
    its condition false rather than an error.
    """
    for cond in expression.conditions:
        lhs = _resolve(point, cond.field)
        if lhs is None:
            return False
        if not _compare(float(lhs), cond.op, cond.value):
            return False
    return True
