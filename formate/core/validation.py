"""
FormPlan acceptance gate.

Turns a raw payload (usually parsed JSON produced by a plan generator)
into a validated FormPlan, or rejects it with issues that name the
violated constraint and the offending path, e.g. ``fields[2].options[0].id``.
"""

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from formate.core.schema import FormPlan

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Categories of plan rejection."""

    MISSING_FIELD = "missing_field"
    LENGTH_OUT_OF_RANGE = "length_out_of_range"
    INVALID_ENUM = "invalid_enum"
    INVALID_TYPE = "invalid_type"
    DANGLING_REFERENCE = "dangling_reference"
    DUPLICATE_ID = "duplicate_id"
    INVALID_OPTION_SET = "invalid_option_set"
    INVALID_GOTO_FORMAT = "invalid_goto_format"


# pydantic-core error types -> ErrorKind. Custom errors raised by the
# schema validators already use ErrorKind values as their type.
_PYDANTIC_ERROR_KINDS: dict[str, ErrorKind] = {
    "missing": ErrorKind.MISSING_FIELD,
    "string_too_short": ErrorKind.LENGTH_OUT_OF_RANGE,
    "string_too_long": ErrorKind.LENGTH_OUT_OF_RANGE,
    "too_short": ErrorKind.LENGTH_OUT_OF_RANGE,
    "too_long": ErrorKind.LENGTH_OUT_OF_RANGE,
    "greater_than": ErrorKind.LENGTH_OUT_OF_RANGE,
    "greater_than_equal": ErrorKind.LENGTH_OUT_OF_RANGE,
    "less_than": ErrorKind.LENGTH_OUT_OF_RANGE,
    "less_than_equal": ErrorKind.LENGTH_OUT_OF_RANGE,
    "enum": ErrorKind.INVALID_ENUM,
    "literal_error": ErrorKind.INVALID_ENUM,
    "string_pattern_mismatch": ErrorKind.INVALID_GOTO_FORMAT,
}

_CUSTOM_ERROR_KINDS = {kind.value: kind for kind in ErrorKind}


class PlanIssue(BaseModel):
    """One violated constraint."""

    kind: ErrorKind
    path: str
    message: str


class PlanValidationError(Exception):
    """Raised when a payload cannot be accepted as a FormPlan.

    Carries every issue pydantic reported; ``kind``, ``path`` and
    ``message`` describe the first one.
    """

    def __init__(self, issues: list[PlanIssue]):
        if not issues:
            raise ValueError("PlanValidationError requires at least one issue")
        self.issues = issues
        first = issues[0]
        self.kind = first.kind
        self.path = first.path
        self.message = first.message
        super().__init__(f"{first.kind.value} at {first.path}: {first.message}")


def validate_plan(payload: Any) -> FormPlan:
    """Validate a raw payload into an immutable FormPlan.

    Args:
        payload: Untyped input, typically a dict decoded from JSON.
            An existing FormPlan is re-validated from its payload.

    Returns:
        The validated FormPlan.

    Raises:
        PlanValidationError: If any constraint or invariant is violated.
    """
    if isinstance(payload, FormPlan):
        payload = payload.to_payload()

    try:
        return FormPlan.model_validate(payload)
    except ValidationError as e:
        issues = issues_from_validation_error(e)
        logger.info(
            "Rejected form plan: %d issue(s), first %s at %s",
            len(issues),
            issues[0].kind.value,
            issues[0].path,
        )
        raise PlanValidationError(issues) from e


def try_validate_plan(payload: Any) -> tuple[FormPlan | None, list[PlanIssue]]:
    """Non-raising variant of ``validate_plan``.

    Returns:
        ``(plan, [])`` on success, ``(None, issues)`` on rejection.
    """
    try:
        return validate_plan(payload), []
    except PlanValidationError as e:
        return None, e.issues


def issues_from_validation_error(error: ValidationError) -> list[PlanIssue]:
    """Convert a pydantic ValidationError into PlanIssues."""
    issues = []
    for err in error.errors():
        ctx = err.get("ctx") or {}
        path = format_path(err["loc"])
        extra_path = ctx.get("path")
        if extra_path:
            path = f"{path}.{extra_path}" if path != "<root>" else extra_path
        issues.append(
            PlanIssue(
                kind=_error_kind(err["type"]),
                path=path,
                message=err["msg"],
            )
        )
    return issues


def format_path(loc: tuple[int | str, ...]) -> str:
    """Render a pydantic location as ``fields[2].options[0].id``."""
    path = ""
    for part in loc:
        if isinstance(part, int):
            path += f"[{part}]"
        elif path:
            path += f".{part}"
        else:
            path = str(part)
    return path or "<root>"


def _error_kind(error_type: str) -> ErrorKind:
    if error_type in _CUSTOM_ERROR_KINDS:
        return _CUSTOM_ERROR_KINDS[error_type]
    return _PYDANTIC_ERROR_KINDS.get(error_type, ErrorKind.INVALID_TYPE)
