"""
Unit tests for the branch evaluator.

Tests cover:
- The three-question scenario: q2 == yes ends, q2 == no continues
- First matching rule wins, in declaration order
- goTo next and no match fall through to the following field
- Backward jumps
- The last field ends with fields_exhausted
- Stale just_answered ids resume at the first unanswered field
- The plan is never mutated
"""

from formate.core.branching import matching_rule, next_step
from formate.core.schema import FormPlan
from formate.core.steps import EndReason, EndStep, FieldStep, step_to_payload
from formate.core.validation import validate_plan


# --- Helpers ---


def plan_with_rules(rules: list[dict]) -> FormPlan:
    """Four text fields a..d with the given branching rules."""
    return validate_plan({
        "summary": "Branching",
        "fields": [
            {"id": field_id, "label": f"Question {field_id}", "type": "short_text"}
            for field_id in ("a", "b", "c", "d")
        ],
        "branching": rules,
    })


# =============================================================
# Test: Scenario plan
# =============================================================


class TestScenario:
    """q1 short text, q2 yes/no, q3 long text; q2 == yes ends."""

    def test_after_q1_goes_to_q2(self, scenario_plan):
        step = next_step(scenario_plan, {"q1": "engineer"}, "q1")
        assert step == FieldStep(field_id="q2")

    def test_yes_ends(self, scenario_plan):
        step = next_step(scenario_plan, {"q1": "engineer", "q2": "yes"}, "q2")
        assert step == EndStep(reason=EndReason.BRANCH_END)
        assert step_to_payload(step) == {"kind": "end", "reason": "branch_end"}

    def test_no_continues_to_q3(self, scenario_plan):
        step = next_step(scenario_plan, {"q1": "engineer", "q2": "no"}, "q2")
        assert step == FieldStep(field_id="q3")
        assert step_to_payload(step) == {"kind": "field", "fieldId": "q3"}

    def test_after_last_field_exhausted(self, scenario_plan):
        answers = {"q1": "engineer", "q2": "no", "q3": "more"}
        step = next_step(scenario_plan, answers, "q3")
        assert step == EndStep(reason=EndReason.FIELDS_EXHAUSTED)

    def test_plan_not_mutated(self, scenario_plan):
        before = scenario_plan.to_payload()
        next_step(scenario_plan, {"q1": "x", "q2": "yes"}, "q2")
        assert scenario_plan.to_payload() == before


# =============================================================
# Test: Rule ordering and fallthrough
# =============================================================


class TestRuleResolution:
    def test_first_match_wins(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "eq", "value": "x"}], "goTo": "field:d"},
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "end"},
        ])
        assert next_step(plan, {"a": "x"}, "a") == FieldStep(field_id="d")
        assert next_step(plan, {"a": "y"}, "a") == EndStep(reason=EndReason.BRANCH_END)

    def test_first_match_wins_across_fields(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "eq", "value": "x"}], "goTo": "field:c"},
            {"when": [{"fieldId": "b", "op": "eq", "value": "y"}], "goTo": "field:d"},
        ])
        assert next_step(plan, {"a": "x", "b": "y"}, "b") == FieldStep(field_id="c")

    def test_goto_next_falls_through(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "next"},
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "end"},
        ])
        assert next_step(plan, {"a": "x"}, "a") == FieldStep(field_id="b")

    def test_no_match_falls_through(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "eq", "value": "skip"}], "goTo": "field:d"},
        ])
        assert next_step(plan, {"a": "stay"}, "a") == FieldStep(field_id="b")

    def test_no_branching_is_sequential(self):
        plan = plan_with_rules([])
        assert next_step(plan, {"a": "x"}, "a") == FieldStep(field_id="b")
        assert next_step(plan, {"a": "x", "b": "y"}, "b") == FieldStep(field_id="c")

    def test_backward_jump(self):
        plan = plan_with_rules([
            {
                "when": [
                    {"fieldId": "c", "op": "eq", "value": "again"},
                    {"fieldId": "b", "op": "neq", "value": "retried"},
                ],
                "goTo": "field:b",
            },
        ])
        answers = {"a": "1", "b": "2", "c": "again"}
        assert next_step(plan, answers, "c") == FieldStep(field_id="b")

        answers["b"] = "retried"
        assert next_step(plan, answers, "b") == FieldStep(field_id="c")

    def test_rules_see_all_answers(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "eq", "value": "vip"}], "goTo": "end"},
        ])
        # The rule keys on ``a`` but fires after any later field too
        assert next_step(plan, {"a": "vip", "b": "x"}, "b") == EndStep(reason=EndReason.BRANCH_END)

    def test_case_insensitive_field_prefix(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "FIELD:c"},
        ])
        assert next_step(plan, {"a": "x"}, "a") == FieldStep(field_id="c")


# =============================================================
# Test: Stale transcripts
# =============================================================


class TestStaleJustAnswered:
    def test_unknown_id_resumes_at_first_unanswered(self):
        plan = plan_with_rules([])
        step = next_step(plan, {"a": "1", "removed": "2"}, "removed")
        assert step == FieldStep(field_id="b")

    def test_unknown_id_with_everything_answered(self):
        plan = plan_with_rules([])
        answers = {"a": "1", "b": "2", "c": "3", "d": "4"}
        step = next_step(plan, answers, "removed")
        assert step == EndStep(reason=EndReason.FIELDS_EXHAUSTED)


# =============================================================
# Test: matching_rule
# =============================================================


class TestMatchingRule:
    def test_returns_first_matching_rule(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "eq", "value": "x"}], "goTo": "field:c"},
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "end"},
        ])
        assert matching_rule(plan, {"a": "x"}).go_to == "field:c"
        assert matching_rule(plan, {"a": "z"}).go_to == "end"

    def test_returns_none_without_match(self):
        plan = plan_with_rules([
            {"when": [{"fieldId": "a", "op": "filled"}], "goTo": "end"},
        ])
        assert matching_rule(plan, {}) is None


# =============================================================
# Test: Example plan walkthroughs
# =============================================================


class TestExamplePlans:
    def test_feedback_abandoned_checkout_asks_blockers(self, feedback_plan):
        answers = {"name": "Ana", "completed_checkout": "no"}
        step = next_step(feedback_plan, answers, "completed_checkout")
        assert step == FieldStep(field_id="blockers")

    def test_feedback_other_blocker_asks_details(self, feedback_plan):
        answers = {"name": "Ana", "completed_checkout": "no", "blockers": ["price", "other"]}
        step = next_step(feedback_plan, answers, "blockers")
        assert step == FieldStep(field_id="blocker_details")

    def test_feedback_happy_customer_skips_to_recommend(self, feedback_plan):
        answers = {"name": "Ana", "completed_checkout": "yes", "satisfaction": 5}
        step = next_step(feedback_plan, answers, "satisfaction")
        assert step == FieldStep(field_id="recommend")

    def test_registration_not_attending_ends(self, registration_plan):
        step = next_step(registration_plan, {"attending": False}, "attending")
        assert step == EndStep(reason=EndReason.BRANCH_END)

    def test_registration_attending_continues(self, registration_plan):
        step = next_step(registration_plan, {"attending": True}, "attending")
        assert step == FieldStep(field_id="guests")
