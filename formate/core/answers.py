"""
Respondent answers: normalization at ingestion and per-type validation.

An answer is a scalar (str, int, float, bool), a list of scalars (multi
select), or None for a skipped optional question. Renderers and stored
transcripts may hand over loosely-typed values (numeric strings,
``"true"``, JSON-array strings, option labels); they are coerced here,
once, so the evaluators work on settled shapes.
"""

import logging
import re
from collections.abc import Iterable, Mapping
from typing import Any

from formate.core.schema import (
    CHOICE_FIELD_TYPES,
    MULTI_VALUE_FIELD_TYPES,
    TEXT_FIELD_TYPES,
    FieldType,
    FormField,
    FormPlan,
    rating_levels,
)
from formate.core.utils import parse_date, parse_json_list, scalar_text, to_number

logger = logging.getLogger(__name__)

Scalar = str | int | float | bool
Answer = Scalar | list[Scalar] | None


class AnswerValidationError(Exception):
    """Raised when an answer fails validation for its field type."""

    def __init__(self, field_id: str, message: str):
        self.field_id = field_id
        self.message = message
        super().__init__(f"Field '{field_id}': {message}")


# -----------------------------------------------------------------
# Shape helpers
# -----------------------------------------------------------------


def normalize_answer(raw: Any) -> Answer:
    """Settle a raw stored answer without knowing its field.

    Lists and tuples become lists; strings holding a JSON array are
    decoded; everything else passes through.
    """
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, str):
        decoded = parse_json_list(raw)
        if decoded is not None:
            return decoded
    return raw


def answer_members(value: Any) -> set[str]:
    """Set view of an answer for membership tests.

    Arrays are used as-is, JSON-array strings are decoded, any other
    value is a single-element set. Members compare by canonical text.
    """
    if value is None:
        return set()
    items = normalize_answer(value)
    if not isinstance(items, list):
        items = [items]
    return {scalar_text(item) for item in items if item is not None}


def is_filled(value: Any) -> bool:
    """An answer is filled unless it is None, empty text or an empty list."""
    if value is None:
        return False
    if isinstance(value, str):
        if value == "":
            return False
        decoded = parse_json_list(value)
        return decoded is None or len(decoded) > 0
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return True


def resolve_option_id(field: FormField, value: Any) -> str | None:
    """Map an option id or label (or their scalar form) to the option id."""
    if value is None or isinstance(value, (list, dict)):
        return None
    text = scalar_text(value)
    options = field.options or []
    for option in options:
        if option.id == text:
            return option.id
    for option in options:
        if option.label == text:
            return option.id
    return None


# -----------------------------------------------------------------
# Ingestion
# -----------------------------------------------------------------


def coerce_answer(field: FormField, raw: Any) -> Answer:
    """Coerce a loosely-typed answer to the shape its field expects.

    Values that cannot be coerced are returned unchanged so that
    ``validate_answer`` can report them.
    """
    if raw is None:
        return None

    match field.type:
        case FieldType.SHORT_TEXT | FieldType.LONG_TEXT | FieldType.DATE:
            if isinstance(raw, (int, float, bool)):
                return scalar_text(raw)
            return raw

        case FieldType.NUMBER | FieldType.RATING:
            if isinstance(raw, str):
                number = to_number(raw)
                if number is None:
                    return raw
                return int(number) if number.is_integer() else number
            return raw

        case FieldType.BOOLEAN:
            if isinstance(raw, str):
                lowered = raw.strip().lower()
                if lowered in ("true", "false"):
                    return lowered == "true"
                return raw
            if isinstance(raw, (int, float)) and not isinstance(raw, bool):
                return raw != 0
            return raw

        case FieldType.MULTIPLE_CHOICE:
            if raw == "":
                return raw
            return resolve_option_id(field, raw) or raw

        case FieldType.CHECKBOX | FieldType.MULTI_SELECT:
            items = normalize_answer(raw)
            if not isinstance(items, list):
                items = [] if items == "" else [items]
            return [resolve_option_id(field, item) or item for item in items]

    return raw


def coerce_answers(plan: FormPlan, answers: Mapping[str, Any]) -> dict[str, Answer]:
    """Coerce an answer mapping against a plan, preserving order.

    Answers keyed by ids the plan does not know are normalized
    generically and kept, so evaluation can still see them.
    """
    coerced: dict[str, Answer] = {}
    for field_id, raw in answers.items():
        field = plan.get_field(field_id)
        coerced[field_id] = coerce_answer(field, raw) if field else normalize_answer(raw)
    return coerced


# -----------------------------------------------------------------
# Validation per field type
# -----------------------------------------------------------------


def validate_answer(field: FormField, value: Any) -> None:
    """Validate an (already coerced) answer against its field.

    Args:
        field: The form field definition.
        value: The answer to validate.

    Raises:
        AnswerValidationError: If the value is invalid.
    """
    if not is_filled(value):
        if field.required:
            raise AnswerValidationError(field.id, "An answer is required")
        return

    if field.type in TEXT_FIELD_TYPES:
        _validate_text(field, value)
    elif field.type in MULTI_VALUE_FIELD_TYPES:
        _validate_multi_choice(field, value)
    elif field.type in CHOICE_FIELD_TYPES:
        _validate_single_choice(field, value)
    else:
        match field.type:
            case FieldType.NUMBER:
                _validate_number(field, value)
            case FieldType.RATING:
                _validate_rating(field, value)
            case FieldType.DATE:
                _validate_date(field, value)
            case FieldType.BOOLEAN:
                _validate_boolean(field, value)


def _validate_text(field: FormField, value: Any) -> None:
    """Text must be a non-blank string matching the optional regex."""
    if not isinstance(value, str):
        raise AnswerValidationError(field.id, "Text answer must be a string")
    if field.required and not value.strip():
        raise AnswerValidationError(field.id, "Text answer must not be empty")

    pattern = field.validation.regex if field.validation else None
    if not pattern:
        return
    try:
        compiled = re.compile(pattern)
    except re.error as e:
        logger.warning("Skipping uncompilable regex on field '%s': %s", field.id, e)
        return
    if compiled.fullmatch(value) is None:
        raise AnswerValidationError(field.id, f"'{value}' does not match the expected format")


def _validate_number(field: FormField, value: Any) -> None:
    """Number must be finite and within validation.min/max."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AnswerValidationError(field.id, "Number answer must be numeric")
    number = to_number(value)
    if number is None:
        raise AnswerValidationError(field.id, "Number answer must be finite")
    _check_bounds(field, number)


def _validate_rating(field: FormField, value: Any) -> None:
    """Rating must be a whole number between the minimum and the level count."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise AnswerValidationError(field.id, "Rating answer must be a number")
    number = to_number(value)
    if number is None or not number.is_integer():
        raise AnswerValidationError(field.id, "Rating answer must be a whole number")

    low = 1.0
    if field.validation and field.validation.min is not None:
        low = max(low, field.validation.min)
    high = rating_levels(field)
    if not (low <= number <= high):
        raise AnswerValidationError(
            field.id, f"Rating {scalar_text(number)} out of range ({scalar_text(low)} to {high})"
        )


def _validate_single_choice(field: FormField, value: Any) -> None:
    """Single choice must be one of the option ids."""
    if not isinstance(value, str):
        raise AnswerValidationError(field.id, "Choice answer must be an option id")
    if value not in field.option_ids():
        raise AnswerValidationError(
            field.id,
            f"'{value}' is not a valid option. Choose from: {field.option_ids()}",
        )


def _validate_multi_choice(field: FormField, value: Any) -> None:
    """Multi select must be a non-empty list of distinct option ids."""
    if not isinstance(value, list):
        raise AnswerValidationError(field.id, "Multi-select answer must be a list")
    if any(isinstance(v, (list, tuple, dict)) for v in value):
        raise AnswerValidationError(field.id, "Multi-select items must be option ids")
    valid = set(field.option_ids())
    invalid = [v for v in value if v not in valid]
    if invalid:
        raise AnswerValidationError(
            field.id,
            f"Invalid selections: {invalid}. Choose from: {field.option_ids()}",
        )
    if len(set(value)) != len(value):
        raise AnswerValidationError(field.id, "Multi-select answer has duplicate selections")


def _validate_date(field: FormField, value: Any) -> None:
    """Date must be a parseable date string."""
    if not isinstance(value, str):
        raise AnswerValidationError(field.id, "Date answer must be a string")
    if parse_date(value) is None:
        raise AnswerValidationError(field.id, f"'{value}' is not a valid date")


def _validate_boolean(field: FormField, value: Any) -> None:
    if not isinstance(value, bool):
        raise AnswerValidationError(field.id, "Yes/no answer must be a boolean")


def _check_bounds(field: FormField, number: float) -> None:
    if field.validation is None:
        return
    low, high = field.validation.min, field.validation.max
    if low is not None and number < low:
        raise AnswerValidationError(
            field.id, f"{scalar_text(number)} is below the minimum of {scalar_text(low)}"
        )
    if high is not None and number > high:
        raise AnswerValidationError(
            field.id, f"{scalar_text(number)} is above the maximum of {scalar_text(high)}"
        )


def unanswered_fields(plan: FormPlan, answered: Iterable[str]) -> list[FormField]:
    """Fields of the plan, in order, that have no recorded answer."""
    seen = set(answered)
    return [f for f in plan.fields if f.id not in seen]
