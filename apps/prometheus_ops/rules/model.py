from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: float


@dataclass(frozen=True)
class RuleExpression:
    source: str
    conditions: List[Condition]
