"""
Next-step protocol: the decisions the evaluators hand to the orchestrator.

A step is either "ask this field" or "end, for this reason". The
orchestrator reads the step and, for field steps, hands the question
payload to the respondent-facing renderer.
"""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict

from formate.core.schema import CHOICE_FIELD_TYPES, FieldType, FormField, rating_levels


class EndReason(str, Enum):
    """Why a conversation ended."""

    BRANCH_END = "branch_end"
    FIELDS_EXHAUSTED = "fields_exhausted"
    HARD_LIMIT = "hard_limit"
    ENOUGH_INFO = "enough_info"
    TROLLING = "trolling"


class FieldStep(BaseModel):
    """Ask the given field next."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["field"] = "field"
    field_id: str


class EndStep(BaseModel):
    """The conversation is over; no further field is asked."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["end"] = "end"
    reason: EndReason


NextStep = FieldStep | EndStep


def build_field_step(field_id: str) -> FieldStep:
    return FieldStep(field_id=field_id)


def build_end_step(reason: EndReason | str) -> EndStep:
    return EndStep(reason=EndReason(reason))


def step_to_payload(step: NextStep) -> dict[str, Any]:
    """Serialize a step as ``{kind, fieldId}`` or ``{kind, reason}``."""
    if isinstance(step, FieldStep):
        return {"kind": step.kind, "fieldId": step.field_id}
    return {"kind": step.kind, "reason": step.reason.value}


def build_question_payload(field: FormField) -> dict[str, Any]:
    """Build the renderer payload for a field.

    Includes options for choice fields and the clamped level count for
    rating fields.

    Args:
        field: The form field to ask.

    Returns:
        A JSON-ready dict describing the question widget.
    """
    payload: dict[str, Any] = {
        "fieldId": field.id,
        "type": field.type.value,
        "label": field.label,
        "required": field.required,
    }

    if field.help_text:
        payload["helpText"] = field.help_text

    if field.type in CHOICE_FIELD_TYPES and field.options:
        payload["options"] = [{"id": o.id, "label": o.label} for o in field.options]

    if field.type == FieldType.RATING:
        payload["levels"] = rating_levels(field)

    if field.validation is not None:
        payload["validation"] = field.validation.model_dump(mode="json", exclude_none=True)

    return payload
