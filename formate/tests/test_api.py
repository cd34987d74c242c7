"""
Integration tests for the FastAPI API layer.

Tests cover:
- POST /api/plans/validate with valid, invalid and legacy plans
- POST /api/plans/next-step across a transcript
- POST /api/plans/end-early permission checks
- Error responses for malformed plans
- GET /api/plans listing
- GET /api/plans/{filename}
- GET /api/health
"""

import json
from pathlib import Path

from fastapi import FastAPI
from fastapi.testclient import TestClient

from formate.api.routes import configure_routes, router

PLANS_DIR = Path(__file__).parent.parent / "plans"


# --- Fixtures ---


def _load_plan(filename: str) -> dict:
    with open(PLANS_DIR / filename) as f:
        return json.load(f)


def _create_test_app(plans_dir=None) -> TestClient:
    """Create a FastAPI test client serving the given plans directory."""
    app = FastAPI()
    configure_routes(plans_dir)
    app.include_router(router, prefix="/api")
    return TestClient(app)


# --- /api/plans/validate tests ---


class TestValidatePlan:
    """Tests for the POST /api/plans/validate endpoint."""

    def test_valid_plan(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/validate", json={"plan": _load_plan("customer_feedback.json")}
        )
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is True
        assert data["errors"] == []
        assert data["plan"]["fields"][0]["id"] == "name"

    def test_legacy_seed_plan_is_lifted(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/validate", json={"plan": _load_plan("discovery_interview.json")}
        )
        data = response.json()
        assert data["valid"] is True
        assert [f["id"] for f in data["plan"]["fields"]] == ["invoicing_today"]
        assert "seed" not in data["plan"]

    def test_invalid_plan_reports_kind_and_path(self):
        client = _create_test_app()
        plan = _load_plan("customer_feedback.json")
        plan["branching"][0]["goTo"] = "field:ghost"
        response = client.post("/api/plans/validate", json={"plan": plan})
        assert response.status_code == 200
        data = response.json()
        assert data["valid"] is False
        assert data["plan"] is None
        assert data["errors"][0]["kind"] == "dangling_reference"
        assert data["errors"][0]["path"] == "branching[0].goTo"

    def test_missing_plan(self):
        client = _create_test_app()
        response = client.post("/api/plans/validate", json={})
        data = response.json()
        assert data["valid"] is False
        assert data["errors"][0]["kind"] == "invalid_type"


# --- /api/plans/next-step tests ---


class TestNextStep:
    """Tests for the POST /api/plans/next-step endpoint."""

    def test_empty_transcript_starts_at_first_field(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={"plan": _load_plan("customer_feedback.json"), "answers": []},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["step"] == {"kind": "field", "fieldId": "name"}
        assert data["question"]["label"] == "What should we call you?"
        assert data["question"]["required"] is False
        assert data["questionsAsked"] == 0
        assert data["questionsLeft"] == 6

    def test_branch_jump(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={
                "plan": _load_plan("customer_feedback.json"),
                "answers": [
                    {"fieldId": "name", "answer": "Ana"},
                    {"fieldId": "completed_checkout", "answer": "no"},
                ],
            },
        )
        data = response.json()
        assert data["step"] == {"kind": "field", "fieldId": "blockers"}
        assert [o["id"] for o in data["question"]["options"]] == ["price", "account", "payment", "other"]
        assert data["questionsAsked"] == 2
        assert data["questionsLeft"] == 4

    def test_json_array_answer_is_coerced(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={
                "plan": _load_plan("customer_feedback.json"),
                "answers": [
                    {"fieldId": "completed_checkout", "answer": "no"},
                    {"fieldId": "blockers", "answer": '["other"]'},
                ],
                "justAnswered": "blockers",
            },
        )
        assert response.json()["step"] == {"kind": "field", "fieldId": "blocker_details"}

    def test_branch_end(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={
                "plan": _load_plan("event_registration.json"),
                "answers": [{"fieldId": "attending", "answer": "false"}],
            },
        )
        assert response.json()["step"] == {"kind": "end", "reason": "branch_end"}

    def test_hard_limit(self):
        client = _create_test_app()
        plan = _load_plan("customer_feedback.json")
        plan["stopping"]["hardLimit"]["maxQuestions"] = 2
        response = client.post(
            "/api/plans/next-step",
            json={
                "plan": plan,
                "answers": [
                    {"fieldId": "name", "answer": "Ana"},
                    {"fieldId": "completed_checkout", "answer": "no"},
                ],
            },
        )
        data = response.json()
        assert data["step"] == {"kind": "end", "reason": "hard_limit"}
        assert "question" not in data
        assert data["questionsLeft"] == 0

    def test_invalid_plan_is_400(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={"plan": {"summary": "No fields"}, "answers": []},
        )
        assert response.status_code == 400
        detail = response.json()["detail"]
        assert detail["message"] == "Invalid form plan"
        assert detail["errors"][0]["kind"] == "missing_field"
        assert detail["errors"][0]["path"] == "fields"

    def test_integer_too_large_for_float(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={
                "plan": _load_plan("event_registration.json"),
                "answers": [
                    {"fieldId": "attending", "answer": True},
                    {"fieldId": "guests", "answer": int("1" + "0" * 400)},
                ],
            },
        )
        assert response.status_code == 200
        assert response.json()["step"] == {"kind": "field", "fieldId": "arrival"}

    def test_malformed_answers_is_422(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/next-step",
            json={"plan": _load_plan("customer_feedback.json"), "answers": [{"answer": 1}]},
        )
        assert response.status_code == 422


# --- /api/plans/end-early tests ---


class TestEndEarly:
    def test_permitted(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/end-early",
            json={"plan": _load_plan("customer_feedback.json"), "reason": "trolling"},
        )
        assert response.json() == {"allowed": True}

    def test_not_listed(self):
        client = _create_test_app()
        response = client.post(
            "/api/plans/end-early",
            json={"plan": _load_plan("customer_feedback.json"), "reason": "enough_info"},
        )
        assert response.json() == {"allowed": False}


# --- /api/plans tests ---


class TestPlanFiles:
    def test_list_plans(self):
        client = _create_test_app()
        response = client.get("/api/plans")
        assert response.status_code == 200
        filenames = [p["filename"] for p in response.json()["plans"]]
        assert filenames == [
            "customer_feedback.json",
            "discovery_interview.json",
            "event_registration.json",
        ]

    def test_list_plans_custom_dir(self, tmp_path):
        (tmp_path / "one.json").write_text(json.dumps({"summary": "One"}))
        (tmp_path / "broken.json").write_text("{not json")
        client = _create_test_app(tmp_path)
        plans = client.get("/api/plans").json()["plans"]
        assert plans == [{"filename": "one.json", "summary": "One"}]

    def test_get_plan(self):
        client = _create_test_app()
        response = client.get("/api/plans/event_registration.json")
        assert response.status_code == 200
        data = response.json()
        assert data["filename"] == "event_registration.json"
        assert data["plan"]["fields"][0]["id"] == "attending"

    def test_get_missing_plan(self):
        client = _create_test_app()
        response = client.get("/api/plans/nope.json")
        assert response.status_code == 404


# --- /api/health ---


class TestHealth:
    def test_health(self):
        client = _create_test_app()
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}
