"""
Branch evaluator: decides the next step after a field is answered.

Rules are scanned in declaration order and the first rule whose
conditions all hold decides the jump. When no rule matches (or the
winning rule says ``next``) the conversation falls through to the field
following the one just answered, ending after the last field.
"""

import logging
from collections.abc import Mapping
from typing import Any

from formate.core.answers import unanswered_fields
from formate.core.conditions import conditions_hold
from formate.core.schema import GOTO_END, BranchRule, FormPlan, parse_goto
from formate.core.steps import EndReason, NextStep, build_end_step, build_field_step

logger = logging.getLogger(__name__)


def matching_rule(plan: FormPlan, answers: Mapping[str, Any]) -> BranchRule | None:
    """Return the first branch rule whose conditions all hold, or None."""
    for rule in plan.branching or []:
        if conditions_hold(rule.when, answers):
            return rule
    return None


def next_step(plan: FormPlan, answers: Mapping[str, Any], just_answered: str) -> NextStep:
    """Determine the next step after ``just_answered`` was answered.

    Args:
        plan: A validated FormPlan (never mutated).
        answers: Answers collected so far, keyed by field ID in the
            order the fields were asked.
        just_answered: The ID of the field that was just answered.

    Returns:
        A FieldStep for the next field, or an EndStep.
    """
    rule = matching_rule(plan, answers)

    if rule is not None:
        kind, target = parse_goto(rule.go_to)
        if kind == GOTO_END:
            logger.debug("Rule %s matched after '%s': end", rule.go_to, just_answered)
            return build_end_step(EndReason.BRANCH_END)
        if target is not None:
            if plan.get_field(target) is not None:
                logger.debug("Rule %s matched after '%s'", rule.go_to, just_answered)
                return build_field_step(target)
            logger.warning(
                "Branch target '%s' is not in the plan; falling through", target
            )

    return _sequential_step(plan, answers, just_answered)


def _sequential_step(
    plan: FormPlan, answers: Mapping[str, Any], just_answered: str
) -> NextStep:
    """The field after ``just_answered`` in declared order, or end."""
    index = plan.field_index(just_answered)

    if index is None:
        # Stale transcript: resume at the first field without an answer
        remaining = unanswered_fields(plan, answers.keys())
        if remaining:
            return build_field_step(remaining[0].id)
        return build_end_step(EndReason.FIELDS_EXHAUSTED)

    if index + 1 < len(plan.fields):
        return build_field_step(plan.fields[index + 1].id)

    return build_end_step(EndReason.FIELDS_EXHAUSTED)
