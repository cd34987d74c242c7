"""
Stopping evaluator: decides, independently of branching, whether the
conversation must end.

The hard question limit is enforced here. Ending early for a semantic
reason is the orchestrator's LLM call; this module only says whether a
given reason is permitted by the plan.
"""

import logging
from collections.abc import Mapping
from typing import Any

from formate.core.branching import next_step
from formate.core.schema import EarlyEndReason, FormPlan, StoppingPolicy
from formate.core.steps import EndReason, EndStep, NextStep, build_end_step

logger = logging.getLogger(__name__)

_DEFAULT_STOPPING = StoppingPolicy()


def effective_stopping(plan: FormPlan) -> StoppingPolicy:
    """The plan's stopping policy, or the defaults when it declares none."""
    return plan.stopping if plan.stopping is not None else _DEFAULT_STOPPING


def max_questions(plan: FormPlan) -> int:
    return effective_stopping(plan).hard_limit.max_questions


def questions_left(plan: FormPlan, questions_asked: int) -> int:
    """How many more questions may be asked before the hard limit."""
    return max(0, max_questions(plan) - questions_asked)


def check_hard_limit(plan: FormPlan, questions_asked: int) -> EndStep | None:
    """End with ``hard_limit`` once ``questions_asked`` reaches the limit.

    Returns:
        An EndStep if the limit is reached, otherwise None.
    """
    limit = max_questions(plan)
    if questions_asked >= limit:
        logger.debug("Hard limit reached: %d/%d questions", questions_asked, limit)
        return build_end_step(EndReason.HARD_LIMIT)
    return None


def may_end_early(plan: FormPlan, reason: EarlyEndReason | str) -> bool:
    """Whether the plan permits ending early for ``reason``.

    Only the permission is exposed; judging whether enough information
    was gathered is up to the orchestrator.
    """
    try:
        reason = EarlyEndReason(reason)
    except ValueError:
        return False

    stopping = effective_stopping(plan)
    return stopping.llm_may_end and reason in stopping.end_reasons


def decide_next(
    plan: FormPlan,
    answers: Mapping[str, Any],
    just_answered: str,
    questions_asked: int | None = None,
) -> NextStep:
    """Compose both evaluators the way the orchestrator does each turn.

    The hard limit is checked first; branching is consulted only when
    the conversation may continue.

    Args:
        plan: A validated FormPlan.
        answers: Answers collected so far, keyed by field ID.
        just_answered: The ID of the field that was just answered.
        questions_asked: Questions asked so far; defaults to the number
            of answers, which undercounts when a field was asked twice.
    """
    if questions_asked is None:
        questions_asked = len(answers)
    stop = check_hard_limit(plan, questions_asked)
    if stop is not None:
        return stop
    return next_step(plan, answers, just_answered)
