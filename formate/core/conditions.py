"""
Deterministic evaluator for branch conditions.

All condition logic is evaluated in code, never by the LLM. Evaluation
is total: a missing answer or an unresolvable field reference makes
``not_filled`` true and every other operator false, and non-numeric
operands make ``gt``/``lt`` false. Nothing here raises.
"""

from collections.abc import Iterable, Mapping
from typing import Any

from formate.core.answers import answer_members, is_filled
from formate.core.schema import Condition, ConditionOp
from formate.core.utils import scalar_text, to_number


def conditions_hold(conditions: Iterable[Condition], answers: Mapping[str, Any]) -> bool:
    """Return True if every condition holds (AND logic).

    Args:
        conditions: The conditions of one branch rule.
        answers: Answers collected so far, keyed by field ID.
    """
    for condition in conditions:
        if not evaluate_condition(condition, answers):
            return False

    return True


def evaluate_condition(condition: Condition, answers: Mapping[str, Any]) -> bool:
    """Evaluate a single condition against the current answers.

    Args:
        condition: The condition to evaluate.
        answers: Answers collected so far, keyed by field ID.

    Returns:
        True if the condition passes, False otherwise.
    """
    answer = answers.get(condition.field_id)
    filled = is_filled(answer)

    match condition.op:
        case ConditionOp.FILLED:
            return filled

        case ConditionOp.NOT_FILLED:
            return not filled

    # Every remaining operator needs an answer to compare against
    if not filled or condition.value is None:
        return False

    match condition.op:
        case ConditionOp.EQ:
            return _equals(answer, condition.value)

        case ConditionOp.NEQ:
            return not _equals(answer, condition.value)

        case ConditionOp.GT:
            return _compare_numbers(answer, condition.value, lambda a, b: a > b)

        case ConditionOp.LT:
            return _compare_numbers(answer, condition.value, lambda a, b: a < b)

        case ConditionOp.INCLUDES:
            return scalar_text(condition.value) in answer_members(answer)

        case ConditionOp.NOT_INCLUDES:
            return scalar_text(condition.value) not in answer_members(answer)

    return False


def _equals(answer: Any, value: Any) -> bool:
    """Scalar equality by canonical text; a list answer never equals a scalar."""
    if isinstance(answer, (list, tuple, dict)):
        return False
    return scalar_text(answer) == scalar_text(value)


def _compare_numbers(answer: Any, value: Any, comparator) -> bool:
    """Compare both sides as finite numbers; False if either side is not one."""
    left = to_number(answer)
    right = to_number(value)
    if left is None or right is None:
        return False
    return comparator(left, right)
