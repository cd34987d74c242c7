"""
Shared test fixtures for the Formate test suite.

Provides the bundled example plans and the three-question scenario plan
used across the evaluator tests.
"""

import json
from pathlib import Path

import pytest

from formate.core.schema import FormPlan
from formate.core.validation import validate_plan

PLANS_DIR = Path(__file__).parent.parent / "plans"


def load_plan_payload(filename: str) -> dict:
    """Load a bundled example plan as a raw dict."""
    with open(PLANS_DIR / filename) as f:
        return json.load(f)


def scenario_payload() -> dict:
    """q1 short text, q2 yes/no choice, q3 long text; q2 == yes ends."""
    return {
        "summary": "Three-question scenario",
        "fields": [
            {"id": "q1", "label": "What is your role?", "type": "short_text"},
            {
                "id": "q2",
                "label": "Are you done?",
                "type": "multiple_choice",
                "options": [
                    {"id": "yes", "label": "Yes"},
                    {"id": "no", "label": "No"},
                ],
            },
            {"id": "q3", "label": "Tell us more", "type": "long_text"},
        ],
        "branching": [
            {"when": [{"fieldId": "q2", "op": "eq", "value": "yes"}], "goTo": "end"},
        ],
    }


@pytest.fixture
def scenario_plan() -> FormPlan:
    return validate_plan(scenario_payload())


@pytest.fixture
def feedback_plan() -> FormPlan:
    """The customer_feedback example plan."""
    return validate_plan(load_plan_payload("customer_feedback.json"))


@pytest.fixture
def registration_plan() -> FormPlan:
    """The event_registration example plan."""
    return validate_plan(load_plan_payload("event_registration.json"))
