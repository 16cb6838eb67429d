"""
Declarative condition evaluation for condition nodes.
"""

import logging
import math
from typing import Callable, Dict, List, Optional

from ..errors import ConditionEvaluationError, TemplateUnresolved
from ..models.nodes import ConditionConfig
from .templating import ContextLike, resolve

logger = logging.getLogger(__name__)


def _to_float(text: str) -> float:
    number = float(text.strip())
    if math.isnan(number):
        raise ValueError("NaN is not comparable")
    return number


def _greater_than(left: str, right: str) -> bool:
    return _to_float(left) > _to_float(right)


def _less_than(left: str, right: str) -> bool:
    return _to_float(left) < _to_float(right)


OPERATORS: Dict[str, Callable[[str, str], bool]] = {
    "equals": lambda left, right: left == right,
    "not_equals": lambda left, right: left != right,
    "contains": lambda left, right: right in left,
    "greater_than": _greater_than,
    "less_than": _less_than,
}


def evaluate_condition(
    condition: ConditionConfig,
    context: ContextLike,
    warnings: Optional[List[str]] = None,
) -> bool:
    """
    Evaluate a single comparison against the execution context.

    ``field`` is resolved as a template; ``value`` is compared as the literal
    string stored on the node. Numeric operators parse both sides as floats.
    Never raises: an unknown operator or an unparseable operand yields
    ``False`` and a warning.

    Args:
        condition: Condition node configuration
        context: Execution context
        warnings: Optional collector for evaluation and template warnings

    Returns:
        Boolean result
    """
    unresolved: List[str] = []
    try:
        left = resolve(condition.field, context, unresolved)
        right = condition.value
        if warnings is not None:
            warnings.extend(str(TemplateUnresolved(path)) for path in unresolved)

        operator = OPERATORS.get(condition.operator)
        if operator is None:
            raise ConditionEvaluationError(f"Unknown operator: {condition.operator}")

        try:
            return bool(operator(str(left), str(right)))
        except ValueError:
            raise ConditionEvaluationError(
                f"Cannot compare {left!r} {condition.operator} {right!r} as numbers"
            )
    except ConditionEvaluationError as e:
        logger.warning(f"Condition evaluated to false: {e.message}")
        if warnings is not None:
            warnings.append(e.message)
        return False
    except Exception as e:
        logger.warning(f"Condition evaluation error: {e}")
        if warnings is not None:
            warnings.append(f"Condition evaluation error: {e}")
        return False
