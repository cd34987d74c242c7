"""
Interview state for a single respondent conversation.

Tracks the ordered transcript of answers against an immutable FormPlan:
- Which field is being asked now
- Validation and coercion of each answer per field type
- The next step after every answer (hard limit first, then branching)
- Early endings permitted by the plan's stopping policy
- Undoing the last answer

Persistence of transcripts stays with the caller; ``replay`` rebuilds
an Interview from a stored transcript.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from formate.core.answers import (
    Answer,
    coerce_answer,
    normalize_answer,
    validate_answer,
)
from formate.core.schema import EarlyEndReason, FormField, FormPlan
from formate.core.steps import (
    EndReason,
    EndStep,
    FieldStep,
    NextStep,
    build_end_step,
    build_field_step,
)
from formate.core.stopping import check_hard_limit, decide_next, may_end_early, questions_left

logger = logging.getLogger(__name__)


class InterviewError(Exception):
    """Raised when an operation does not fit the interview's state."""


class TranscriptEntry(BaseModel):
    """One answered question."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    field_id: str = Field(..., alias="fieldId")
    answer: Any = None


class Interview:
    """Drives one conversation through a FormPlan.

    Args:
        plan: A validated FormPlan instance. It is never mutated.
    """

    def __init__(self, plan: FormPlan):
        self.plan = plan
        self.transcript: list[TranscriptEntry] = []
        self._current_field_id: str | None = None
        self._end: EndStep | None = None
        self._started = False

    # -----------------------------------------------------------------
    # State
    # -----------------------------------------------------------------

    @property
    def answers(self) -> dict[str, Answer]:
        """Latest answer per field, ordered by when it was last answered."""
        ordered: dict[str, Answer] = {}
        for entry in self.transcript:
            ordered.pop(entry.field_id, None)
            ordered[entry.field_id] = entry.answer
        return ordered

    @property
    def questions_asked(self) -> int:
        return len(self.transcript)

    @property
    def questions_left(self) -> int:
        return questions_left(self.plan, self.questions_asked)

    @property
    def current_field(self) -> FormField | None:
        """The field awaiting an answer, or None once the interview ended."""
        if self._end is not None or self._current_field_id is None:
            return None
        return self.plan.get_field(self._current_field_id)

    @property
    def end_reason(self) -> EndReason | None:
        return self._end.reason if self._end is not None else None

    def is_complete(self) -> bool:
        return self._end is not None

    def current_step(self) -> NextStep:
        if self._end is not None:
            return self._end
        if self._current_field_id is None:
            return self.start()
        return build_field_step(self._current_field_id)

    # -----------------------------------------------------------------
    # Transitions
    # -----------------------------------------------------------------

    def start(self) -> NextStep:
        """Open the interview at the plan's first field."""
        if self._started:
            return self.current_step()

        self._started = True
        return self._apply(
            check_hard_limit(self.plan, self.questions_asked)
            or build_field_step(self.plan.seed.id)
        )

    def answer(self, value: Any) -> NextStep:
        """Record an answer to the current field and advance.

        Args:
            value: The raw answer; coerced to the field's shape first.

        Returns:
            The next step.

        Raises:
            InterviewError: If the interview has already ended.
            AnswerValidationError: If the value is invalid for the field.
        """
        if not self._started:
            self.start()
        field = self.current_field
        if field is None:
            raise InterviewError(f"Interview already ended ({self.end_reason.value})")

        coerced = coerce_answer(field, value)
        validate_answer(field, coerced)
        return self._record(field.id, coerced)

    def end_early(self, reason: EarlyEndReason | str) -> EndStep:
        """End the interview for a reason the plan permits.

        Raises:
            InterviewError: If the plan does not permit ``reason`` or the
                interview has already ended.
        """
        if self._end is not None:
            raise InterviewError(f"Interview already ended ({self._end.reason.value})")
        if not may_end_early(self.plan, reason):
            raise InterviewError(f"Ending early for '{reason}' is not permitted by this plan")

        self._started = True
        self._end = build_end_step(EarlyEndReason(reason).value)
        logger.info("Interview ended early: %s", self._end.reason.value)
        return self._end

    def undo_last(self) -> NextStep:
        """Remove the last answer and ask its field again.

        Raises:
            InterviewError: If nothing has been answered yet.
        """
        if not self.transcript:
            raise InterviewError("No answer to undo")

        last = self.transcript.pop()
        self._end = None
        self._current_field_id = last.field_id
        return build_field_step(last.field_id)

    def to_transcript_payload(self) -> list[dict[str, Any]]:
        """Export the transcript as ``[{fieldId, answer}, ...]``."""
        return [entry.model_dump(mode="json", by_alias=True) for entry in self.transcript]

    # -----------------------------------------------------------------
    # Rehydration
    # -----------------------------------------------------------------

    @classmethod
    def replay(
        cls,
        plan: FormPlan,
        entries: Iterable[TranscriptEntry | Mapping[str, Any] | tuple[str, Any]],
    ) -> "Interview":
        """Rebuild an interview from a stored transcript.

        Stored answers are coerced to their field's shape (or normalized
        generically for fields the plan no longer has) but not
        re-validated, so a transcript from an older plan still loads.
        """
        interview = cls(plan)
        interview.start()

        for raw in entries:
            entry = _to_entry(raw)
            field = plan.get_field(entry.field_id)
            value = coerce_answer(field, entry.answer) if field else normalize_answer(entry.answer)
            interview._record(entry.field_id, value)

        return interview

    # -----------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------

    def _record(self, field_id: str, value: Answer) -> NextStep:
        self.transcript.append(TranscriptEntry(field_id=field_id, answer=value))
        step = decide_next(
            self.plan,
            self.answers,
            field_id,
            questions_asked=self.questions_asked,
        )
        return self._apply(step)

    def _apply(self, step: NextStep) -> NextStep:
        if isinstance(step, FieldStep):
            self._current_field_id = step.field_id
            self._end = None
        else:
            self._current_field_id = None
            self._end = step
            logger.info(
                "Interview ended after %d question(s): %s",
                self.questions_asked,
                step.reason.value,
            )
        return step


def _to_entry(raw: TranscriptEntry | Mapping[str, Any] | tuple[str, Any]) -> TranscriptEntry:
    if isinstance(raw, TranscriptEntry):
        return raw
    if isinstance(raw, tuple):
        field_id, answer = raw
        return TranscriptEntry(field_id=field_id, answer=answer)
    return TranscriptEntry.model_validate(raw)
