"""
FormPlan schema definition and validation models.

These Pydantic models define the contract between plan generation,
the conversation orchestrator and the respondent-facing renderer.
A validated FormPlan is the single source of truth for a survey's
fields, options, branching rules and stopping policy.

Payload keys are camelCase (``fieldId``, ``goTo``, ``helpText``...);
Python attributes are snake_case. Both spellings are accepted on input.
"""

import math
import re
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic_core import PydanticCustomError


# --- Limits ---

MAX_ID_LENGTH = 48
MAX_LABEL_LENGTH = 120
MAX_HELP_TEXT_LENGTH = 200
MAX_REGEX_LENGTH = 256
MAX_OPTIONS = 10
MAX_FIELDS = 20
MAX_BRANCH_RULES = 50
MAX_CONDITIONS_PER_RULE = 5
MAX_SUMMARY_LENGTH = 800
MAX_INTRO_OUTRO_LENGTH = 300

DEFAULT_MAX_QUESTIONS = 10
DEFAULT_RATING_LEVELS = 5
MAX_RATING_LEVELS = 10

GOTO_NEXT = "next"
GOTO_END = "end"
GOTO_FIELD_PREFIX = "field:"
GOTO_FIELD_PATTERN = re.compile(r"field:[\w-]{1,48}", re.IGNORECASE | re.ASCII)


# --- Enums ---


class FieldType(str, Enum):
    """Supported question types."""

    SHORT_TEXT = "short_text"
    LONG_TEXT = "long_text"
    MULTIPLE_CHOICE = "multiple_choice"
    CHECKBOX = "checkbox"
    MULTI_SELECT = "multi_select"
    RATING = "rating"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"


CHOICE_FIELD_TYPES = frozenset({
    FieldType.MULTIPLE_CHOICE,
    FieldType.CHECKBOX,
    FieldType.MULTI_SELECT,
})

MULTI_VALUE_FIELD_TYPES = frozenset({FieldType.CHECKBOX, FieldType.MULTI_SELECT})

TEXT_FIELD_TYPES = frozenset({FieldType.SHORT_TEXT, FieldType.LONG_TEXT})


class ConditionOp(str, Enum):
    """Operators for branch conditions.

    All operators are evaluated deterministically in code,
    never by the LLM.
    """

    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    LT = "lt"
    INCLUDES = "includes"
    NOT_INCLUDES = "not_includes"
    FILLED = "filled"
    NOT_FILLED = "not_filled"


VALUELESS_OPS = frozenset({ConditionOp.FILLED, ConditionOp.NOT_FILLED})


class EarlyEndReason(str, Enum):
    """Reasons the orchestrator's LLM may give for ending early."""

    ENOUGH_INFO = "enough_info"
    TROLLING = "trolling"


class _PlanModel(BaseModel):
    """Base for all plan models: immutable, alias-aware."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)


# --- Fields ---


class Option(_PlanModel):
    """A selectable option of a choice field."""

    id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH, strict=True)
    label: str = Field(..., min_length=1, max_length=MAX_LABEL_LENGTH, strict=True)


class FieldValidation(_PlanModel):
    """Optional answer constraints.

    ``min``/``max`` bound numeric answers (``number``, ``rating``);
    ``regex`` constrains text answers. For ``rating`` fields ``max``
    also sets the number of displayed levels, see ``rating_levels``.
    """

    min: float | None = Field(default=None, strict=True)
    max: float | None = Field(default=None, strict=True)
    regex: str | None = Field(default=None, max_length=MAX_REGEX_LENGTH, strict=True)


class FormField(_PlanModel):
    """Definition of a single question.

    Choice fields must include a non-empty option set with unique ids;
    other field types must not carry options.
    """

    id: str = Field(
        ...,
        min_length=1,
        max_length=MAX_ID_LENGTH,
        strict=True,
        description="Unique field identifier",
    )
    label: str = Field(
        ...,
        min_length=1,
        max_length=MAX_LABEL_LENGTH,
        strict=True,
        description="The question shown to the respondent",
    )
    type: FieldType = Field(
        ...,
        description="The widget type for this field",
    )
    required: bool = Field(
        default=True,
        strict=True,
        description="Whether this field must be answered",
    )
    help_text: str | None = Field(
        default=None,
        alias="helpText",
        max_length=MAX_HELP_TEXT_LENGTH,
        strict=True,
    )
    options: list[Option] | None = Field(
        default=None,
        description="Available options (required for choice types)",
    )
    validation: FieldValidation | None = None

    @model_validator(mode="after")
    def validate_options_for_type(self) -> "FormField":
        """Choice fields need a bounded, id-unique option set; others need none."""
        if self.type in CHOICE_FIELD_TYPES:
            if not self.options:
                raise PydanticCustomError(
                    "invalid_option_set",
                    "Field '{field_id}' of type '{field_type}' must have non-empty 'options'",
                    {"field_id": self.id, "field_type": self.type.value},
                )
            if len(self.options) > MAX_OPTIONS:
                raise PydanticCustomError(
                    "invalid_option_set",
                    "Field '{field_id}' has {count} options, at most {limit} allowed",
                    {"field_id": self.id, "count": len(self.options), "limit": MAX_OPTIONS},
                )
            seen: set[str] = set()
            for index, option in enumerate(self.options):
                if option.id in seen:
                    raise PydanticCustomError(
                        "invalid_option_set",
                        "Field '{field_id}' has duplicate option id '{option_id}'",
                        {
                            "field_id": self.id,
                            "option_id": option.id,
                            "path": f"options[{index}].id",
                        },
                    )
                seen.add(option.id)
        elif self.options is not None:
            raise PydanticCustomError(
                "invalid_option_set",
                "Field '{field_id}' of type '{field_type}' should not have 'options'",
                {"field_id": self.id, "field_type": self.type.value},
            )

        return self

    def option_ids(self) -> list[str]:
        return [o.id for o in self.options or []]


# --- Branching ---


class Condition(_PlanModel):
    """A single test against a previously answered field."""

    field_id: str = Field(
        ...,
        alias="fieldId",
        min_length=1,
        max_length=MAX_ID_LENGTH,
        strict=True,
        description="The field ID whose answer is tested",
    )
    op: ConditionOp
    value: Any = Field(
        default=None,
        description="Comparison value (ignored by filled/not_filled)",
    )

    @field_validator("value")
    @classmethod
    def validate_value_type(cls, value: Any) -> Any:
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise PydanticCustomError(
                "invalid_type",
                "Condition value must be a string, number or boolean, got {kind}",
                {"kind": type(value).__name__},
            )
        return value

    @model_validator(mode="after")
    def validate_value_presence(self) -> "Condition":
        if self.op not in VALUELESS_OPS and self.value is None:
            raise PydanticCustomError(
                "missing_field",
                "Condition on '{field_id}' with op '{op}' requires a 'value'",
                {"field_id": self.field_id, "op": self.op.value, "path": "value"},
            )
        return self


class BranchRule(_PlanModel):
    """A conditional jump applied after a field is answered.

    All conditions in ``when`` must hold (AND logic).
    """

    when: list[Condition] = Field(
        ...,
        min_length=1,
        max_length=MAX_CONDITIONS_PER_RULE,
        description="Conditions, all must hold (AND logic)",
    )
    go_to: str = Field(
        ...,
        alias="goTo",
        strict=True,
        description="'next', 'end' or 'field:<fieldId>'",
    )

    @field_validator("go_to")
    @classmethod
    def validate_go_to(cls, value: str) -> str:
        if value in (GOTO_NEXT, GOTO_END) or GOTO_FIELD_PATTERN.fullmatch(value):
            return value
        raise PydanticCustomError(
            "invalid_goto_format",
            "goTo '{go_to}' must be 'next', 'end' or 'field:<fieldId>'",
            {"go_to": value},
        )

    @property
    def target_field_id(self) -> str | None:
        """The jump target for ``field:<id>`` rules, else None."""
        kind, field_id = parse_goto(self.go_to)
        return field_id if kind == "field" else None


# --- Stopping ---


class HardLimit(_PlanModel):
    max_questions: int = Field(
        default=DEFAULT_MAX_QUESTIONS,
        alias="maxQuestions",
        ge=1,
        le=50,
        strict=True,
    )

    @field_validator("max_questions", mode="before")
    @classmethod
    def accept_integral_float(cls, value: Any) -> Any:
        """JSON numbers like 10.0 count as integers."""
        if isinstance(value, float) and value.is_integer():
            return int(value)
        return value


class StoppingPolicy(_PlanModel):
    """Hard question limit plus the LLM's permission to end early."""

    hard_limit: HardLimit = Field(default_factory=HardLimit, alias="hardLimit")
    llm_may_end: bool = Field(default=True, alias="llmMayEnd", strict=True)
    end_reasons: list[EarlyEndReason] = Field(
        default_factory=lambda: [EarlyEndReason.ENOUGH_INFO, EarlyEndReason.TROLLING],
        alias="endReasons",
        min_length=0,
        max_length=2,
    )


# --- Top-Level Plan ---


class FormPlan(_PlanModel):
    """Top-level survey definition.

    Validates bounds, field id uniqueness, and that every condition and
    jump target references an existing field.
    """

    summary: str = Field(..., min_length=1, max_length=MAX_SUMMARY_LENGTH, strict=True)
    intro: str | None = Field(default=None, max_length=MAX_INTRO_OUTRO_LENGTH, strict=True)
    outro: str | None = Field(default=None, max_length=MAX_INTRO_OUTRO_LENGTH, strict=True)
    fields: list[FormField] = Field(
        ...,
        min_length=1,
        max_length=MAX_FIELDS,
        description="Questions in nominal order (at least one required)",
    )
    branching: list[BranchRule] | None = Field(default=None, max_length=MAX_BRANCH_RULES)
    stopping: StoppingPolicy | None = None

    @model_validator(mode="before")
    @classmethod
    def lift_legacy_seed(cls, data: Any) -> Any:
        """Accept the older ``seed`` shape as a single-field plan."""
        if not isinstance(data, dict) or "seed" not in data:
            return data
        if "fields" in data:
            raise PydanticCustomError(
                "invalid_type",
                "Plan must carry either 'seed' or 'fields', not both",
                {"path": "seed"},
            )
        lifted = {k: v for k, v in data.items() if k != "seed"}
        lifted["fields"] = [data["seed"]]
        return lifted

    @model_validator(mode="after")
    def validate_cross_field_references(self) -> "FormPlan":
        """Validate field ID uniqueness and branch references."""
        field_ids: set[str] = set()

        for index, f in enumerate(self.fields):
            if f.id in field_ids:
                raise PydanticCustomError(
                    "duplicate_id",
                    "Duplicate field ID: '{field_id}'",
                    {"field_id": f.id, "path": f"fields[{index}].id"},
                )
            field_ids.add(f.id)

        for rule_index, rule in enumerate(self.branching or []):
            for cond_index, condition in enumerate(rule.when):
                if condition.field_id not in field_ids:
                    raise PydanticCustomError(
                        "dangling_reference",
                        "Condition references non-existent field '{field_id}'",
                        {
                            "field_id": condition.field_id,
                            "path": f"branching[{rule_index}].when[{cond_index}].fieldId",
                        },
                    )

            target = rule.target_field_id
            if target is not None and target not in field_ids:
                raise PydanticCustomError(
                    "dangling_reference",
                    "goTo references non-existent field '{field_id}'",
                    {"field_id": target, "path": f"branching[{rule_index}].goTo"},
                )

        return self

    # --- Lookups ---

    @property
    def seed(self) -> FormField:
        """The warm-up question: the first field of the plan."""
        return self.fields[0]

    def field_ids(self) -> list[str]:
        return [f.id for f in self.fields]

    def get_field(self, field_id: str) -> FormField | None:
        for f in self.fields:
            if f.id == field_id:
                return f
        return None

    def field_index(self, field_id: str) -> int | None:
        for index, f in enumerate(self.fields):
            if f.id == field_id:
                return index
        return None

    def to_payload(self) -> dict[str, Any]:
        """Export as a camelCase, JSON-ready dict."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- Helpers ---


def parse_goto(go_to: str) -> tuple[str, str | None]:
    """Split a goTo target into ``(kind, field_id)``.

    Returns ``("next", None)``, ``("end", None)`` or ``("field", id)``.
    Anything unrecognised is treated as ``next``.
    """
    if go_to == GOTO_END:
        return GOTO_END, None
    prefix_length = len(GOTO_FIELD_PREFIX)
    if go_to[:prefix_length].lower() == GOTO_FIELD_PREFIX:
        return "field", go_to[prefix_length:]
    return GOTO_NEXT, None


def rating_levels(field: FormField) -> int:
    """Number of rating levels shown for a field, clamped to [1, 10].

    This is a display/evaluation-time clamp on ``validation.max``,
    not a schema constraint.
    """
    raw = field.validation.max if field.validation else None
    if raw is None or not math.isfinite(raw):
        return DEFAULT_RATING_LEVELS
    return max(1, min(MAX_RATING_LEVELS, int(raw)))
