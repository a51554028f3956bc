# ============================================================================
# WORKFLOW EVALUATOR
# ============================================================================
# STATUS: Core - Step grouping and condition evaluation
# PURPOSE: Partition steps into execution groups; evaluate step conditions
# CREATED: 19 OCT 2026
# ============================================================================
"""
Workflow Evaluator

Stateless helpers used by the orchestrator:

- partition_steps: steps sharing a `parallel` tag form one group, untagged
  steps are singleton groups. Groups keep the position where their first
  member appears, so a tag interleaved with untagged steps still runs at
  its first appearance.
- ConditionEvaluator: evaluates step condition expressions against the
  workflow template dict (trigger, correlation, shared, steps, workflow).
"""

import logging
import operator
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from core.models import WorkflowStep

logger = logging.getLogger(__name__)


# ============================================================================
# GROUPING
# ============================================================================

@dataclass
class StepGroup:
    """Steps that run concurrently; groups run in order."""
    index: int
    tag: Optional[str] = None
    steps: List[WorkflowStep] = field(default_factory=list)

    @property
    def slugs(self) -> List[str]:
        return [s.task_slug for s in self.steps]


def partition_steps(steps: List[WorkflowStep]) -> List[StepGroup]:
    """
    Partition steps into ordered groups.

    Example:
        [a, b(p1), c, d(p1)] -> [[a], [b, d], [c]]
    """
    groups: List[StepGroup] = []
    by_tag: Dict[str, StepGroup] = {}

    for step in steps:
        if step.parallel is None:
            groups.append(StepGroup(index=len(groups), steps=[step]))
            continue

        group = by_tag.get(step.parallel)
        if group is None:
            group = StepGroup(index=len(groups), tag=step.parallel)
            by_tag[step.parallel] = group
            groups.append(group)
        group.steps.append(step)

    return groups


# ============================================================================
# CONDITION EVALUATOR
# ============================================================================

class ConditionEvaluator:
    """
    Evaluates conditional expressions.

    Supports:
    - Comparison operators: ==, !=, <, >, <=, >=, in, not_in, contains,
      starts_with, ends_with
    - Logical operators: and, or, not (and binds tighter than or)
    - Field access: shared.listing_data.city, steps.qc-assistant.success
    - Type checks: is_null(x), is_not_null(x)

    Any evaluation error counts as false.
    """

    OPERATORS = {
        "==": operator.eq,
        "!=": operator.ne,
        "<=": operator.le,
        ">=": operator.ge,
        "<": operator.lt,
        ">": operator.gt,
        "not_in": lambda a, b: a not in b,
        "in": lambda a, b: a in b,
        "contains": lambda a, b: b in a if isinstance(a, (str, list, dict)) else False,
        "starts_with": lambda a, b: a.startswith(b) if isinstance(a, str) else False,
        "ends_with": lambda a, b: a.endswith(b) if isinstance(a, str) else False,
    }

    _OR = re.compile(r"\s+or\s+")
    _AND = re.compile(r"\s+and\s+")

    def evaluate(
        self,
        condition: Optional[str],
        context: Dict[str, Any],
    ) -> bool:
        """
        Evaluate a condition expression.

        Args:
            condition: e.g. "is_not_null(shared.coordinates) and trigger.data.beds > 2"
            context: Template dict of the workflow context

        Returns:
            True if condition is met
        """
        if not condition or not condition.strip():
            return True

        try:
            return self._evaluate_or(condition.strip(), context)
        except Exception as e:
            logger.warning(f"Failed to evaluate condition '{condition}': {e}")
            return False

    def _evaluate_or(self, expr: str, context: Dict[str, Any]) -> bool:
        return any(self._evaluate_and(part.strip(), context) for part in self._OR.split(expr))

    def _evaluate_and(self, expr: str, context: Dict[str, Any]) -> bool:
        return all(self._evaluate_term(part.strip(), context) for part in self._AND.split(expr))

    def _evaluate_term(self, term: str, context: Dict[str, Any]) -> bool:
        if term.startswith("not "):
            return not self._evaluate_term(term[4:].strip(), context)

        if term.lower() == "true":
            return True
        if term.lower() == "false":
            return False

        if term.startswith("is_null(") and term.endswith(")"):
            return self._get_value(term[8:-1].strip(), context) is None

        if term.startswith("is_not_null(") and term.endswith(")"):
            return self._get_value(term[12:-1].strip(), context) is not None

        return self._evaluate_comparison(term, context)

    def _evaluate_comparison(
        self,
        condition: str,
        context: Dict[str, Any],
    ) -> bool:
        """Evaluate a comparison expression."""
        for op_str, op_func in self.OPERATORS.items():
            # Word operators need surrounding whitespace
            if op_str[0].isalpha():
                pattern = rf"\s+{re.escape(op_str)}\s+"
            else:
                pattern = re.escape(op_str)
            parts = re.split(pattern, condition, maxsplit=1)

            if len(parts) == 2:
                left_value = self._get_value(parts[0].strip(), context)
                right_value = self._parse_literal(parts[1].strip(), context)
                return op_func(left_value, right_value)

        # No operator found: treat as boolean field access
        return bool(self._get_value(condition, context))

    def _get_value(self, expr: str, context: Dict[str, Any]) -> Any:
        """Get value from context using dot notation."""
        value: Any = context

        for part in expr.split("."):
            if isinstance(value, dict):
                value = value.get(part)
            elif isinstance(value, list) and part.isdigit():
                index = int(part)
                value = value[index] if index < len(value) else None
            elif hasattr(value, part):
                value = getattr(value, part)
            else:
                return None

            if value is None:
                return None

        return value

    def _parse_literal(self, expr: str, context: Dict[str, Any]) -> Any:
        """Parse a literal value or field reference."""
        if (expr.startswith('"') and expr.endswith('"')) or \
           (expr.startswith("'") and expr.endswith("'")):
            return expr[1:-1]

        try:
            if "." in expr:
                return float(expr)
            return int(expr)
        except ValueError:
            pass

        if expr.lower() == "true":
            return True
        if expr.lower() == "false":
            return False
        if expr.lower() in ("null", "none"):
            return None

        return self._get_value(expr, context)


def resolve_path(data: Any, path: str) -> Any:
    """Dotted-path lookup shared by publish mappings."""
    return ConditionEvaluator()._get_value(path, data)


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "StepGroup",
    "partition_steps",
    "ConditionEvaluator",
    "resolve_path",
]
