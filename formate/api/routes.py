"""
FastAPI routes for the Formate plan engine.

Endpoints:
- POST /plans/validate:    validate a raw plan payload
- POST /plans/next-step:   decide the next step for an answer history
- POST /plans/end-early:   check whether an early-end reason is permitted
- GET  /plans:             list bundled example plans (.json files)
- GET  /plans/{filename}:  get a specific example plan
- GET  /health:            health check
"""

import json
import logging
from pathlib import Path
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, Field

from formate.core.answers import coerce_answers
from formate.core.interview import TranscriptEntry
from formate.core.schema import FormPlan
from formate.core.steps import (
    FieldStep,
    NextStep,
    build_field_step,
    build_question_payload,
    step_to_payload,
)
from formate.core.stopping import decide_next, may_end_early, questions_left
from formate.core.validation import try_validate_plan

logger = logging.getLogger(__name__)

router = APIRouter()

DEFAULT_PLANS_DIR = Path(__file__).parent.parent / "plans"

# Injected by the app factory
_plans_dir: Path = DEFAULT_PLANS_DIR


def configure_routes(plans_dir: Path | str | None = None):
    """Inject the example plans directory into the routes module.

    Called by the app factory during startup.
    """
    global _plans_dir
    _plans_dir = Path(plans_dir) if plans_dir else DEFAULT_PLANS_DIR


# --- Request / Response Models ---


class ValidatePlanRequest(BaseModel):
    """Request body for the /plans/validate endpoint."""

    plan: Any = None


class NextStepRequest(BaseModel):
    """Request body for the /plans/next-step endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    plan: Any
    answers: list[TranscriptEntry] = Field(default_factory=list)
    just_answered: str | None = Field(default=None, alias="justAnswered")


class EndEarlyRequest(BaseModel):
    """Request body for the /plans/end-early endpoint."""

    plan: Any
    reason: str


# --- Endpoints ---


@router.post("/plans/validate")
async def validate_plan_endpoint(request: ValidatePlanRequest):
    """Validate a plan payload, returning the accepted plan or its issues."""
    plan, issues = try_validate_plan(request.plan)
    return {
        "valid": plan is not None,
        "plan": plan.to_payload() if plan is not None else None,
        "errors": [issue.model_dump(mode="json") for issue in issues],
    }


@router.post("/plans/next-step")
async def next_step_endpoint(request: NextStepRequest):
    """Decide the next step for a conversation.

    ``answers`` is the ordered transcript so far. ``justAnswered``
    defaults to the last transcript entry; with an empty transcript the
    first field of the plan is returned. Field steps carry the question
    payload for the renderer.
    """
    plan = _require_plan(request.plan)

    if not request.answers:
        return _step_response(plan, build_field_step(plan.seed.id), 0)

    ordered: dict[str, Any] = {}
    for entry in request.answers:
        ordered.pop(entry.field_id, None)
        ordered[entry.field_id] = entry.answer
    answers = coerce_answers(plan, ordered)

    just_answered = request.just_answered or request.answers[-1].field_id
    asked = len(request.answers)
    step = decide_next(plan, answers, just_answered, questions_asked=asked)
    return _step_response(plan, step, asked)


@router.post("/plans/end-early")
async def end_early_endpoint(request: EndEarlyRequest):
    """Report whether the plan permits ending early for ``reason``."""
    plan = _require_plan(request.plan)
    return {"allowed": may_end_early(plan, request.reason)}


@router.get("/plans")
async def list_plans():
    """List bundled example plans (.json)."""
    plans = []
    if _plans_dir.exists():
        for path in sorted(_plans_dir.glob("*.json")):
            try:
                data = json.loads(path.read_text(encoding="utf-8"))
            except (OSError, json.JSONDecodeError) as e:
                logger.warning("Skipping unreadable plan file %s: %s", path.name, e)
                continue
            summary = data.get("summary", "") if isinstance(data, dict) else ""
            plans.append({
                "filename": path.name,
                "summary": summary,
            })
    return {"plans": plans}


@router.get("/plans/{filename}")
async def get_plan(filename: str):
    """Get a specific example plan by filename."""
    path = _plans_dir / filename
    if path.parent != _plans_dir or not path.exists():
        raise HTTPException(status_code=404, detail=f"Plan '{filename}' not found")

    try:
        content = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        raise HTTPException(status_code=500, detail=f"Error reading plan file '{filename}'")
    return {"filename": filename, "plan": content}


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


def _step_response(plan: FormPlan, step: NextStep, asked: int) -> dict[str, Any]:
    response = {
        "step": step_to_payload(step),
        "questionsAsked": asked,
        "questionsLeft": questions_left(plan, asked),
    }
    if isinstance(step, FieldStep):
        response["question"] = build_question_payload(plan.get_field(step.field_id))
    return response


def _require_plan(payload: Any):
    plan, issues = try_validate_plan(payload)
    if plan is None:
        raise HTTPException(
            status_code=400,
            detail={
                "message": "Invalid form plan",
                "errors": [issue.model_dump(mode="json") for issue in issues],
            },
        )
    return plan
