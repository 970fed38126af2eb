"""
Assessment lifecycle: Draft -> Submitted -> Locked, and Locked -> Draft on unlock.

Each function returns a new Assessment and leaves its argument untouched.
Department heads edit responses and comments only while an assessment is a
Draft; management overrides apply in any status.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from datetime import datetime, timezone

from ..infrastructure.exceptions import (
    AssessmentLockedError,
    InvalidStatusTransitionError,
    InvariantViolationError,
    ValidationError,
)
from .models import (
    Assessment,
    AssessmentStatus,
    AssessmentTemplate,
    DimensionScore,
    ResponseValue,
    SubQuestionResponse,
)
from .scoring import MAX_POINTS, count_answered

ALLOWED_TRANSITIONS: dict[AssessmentStatus, set[AssessmentStatus]] = {
    AssessmentStatus.DRAFT: {AssessmentStatus.SUBMITTED, AssessmentStatus.LOCKED},
    AssessmentStatus.SUBMITTED: {AssessmentStatus.LOCKED},
    AssessmentStatus.LOCKED: {AssessmentStatus.DRAFT},
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def create_initial_scores(template: AssessmentTemplate) -> list[DimensionScore]:
    return [
        DimensionScore(
            dimension_id=dim.id,
            responses=[
                SubQuestionResponse(sq.id, ResponseValue.UNANSWERED) for sq in dim.sub_questions
            ],
            comments="",
        )
        for dim in template.dimensions
    ]


def new_assessment(
    assessment_id: str,
    department_name: str,
    template: AssessmentTemplate,
    period: str,
    due_date: datetime | None = None,
    now: datetime | None = None,
) -> Assessment:
    """A fresh Draft with every sub-question unanswered."""
    return Assessment(
        id=assessment_id,
        department_name=department_name,
        period=period,
        status=AssessmentStatus.DRAFT,
        last_saved=now or _now(),
        scores=create_initial_scores(template),
        template_id=template.id,
        due_date=due_date,
    )


def _transition(assessment: Assessment, target: AssessmentStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[assessment.status]:
        raise InvalidStatusTransitionError(
            assessment.id, assessment.status.value, target.value
        )


def _require_draft(assessment: Assessment) -> None:
    if assessment.status != AssessmentStatus.DRAFT:
        raise AssessmentLockedError(assessment.id, assessment.status.value)


def _copy_with_dimension(
    assessment: Assessment, dimension_id: int
) -> tuple[Assessment, DimensionScore]:
    updated = replace(assessment, scores=copy.deepcopy(assessment.scores))
    dim_score = updated.score_for(dimension_id)
    if dim_score is None:
        raise InvariantViolationError(
            f"Assessment {assessment.id} has no dimension {dimension_id}",
            {"assessment_id": assessment.id, "dimension_id": dimension_id},
        )
    return updated, dim_score


def record_response(
    assessment: Assessment,
    dimension_id: int,
    sub_question_id: int,
    response: ResponseValue,
    now: datetime | None = None,
) -> Assessment:
    _require_draft(assessment)
    updated, dim_score = _copy_with_dimension(assessment, dimension_id)
    target = next((r for r in dim_score.responses if r.sub_question_id == sub_question_id), None)
    if target is None:
        raise InvariantViolationError(
            f"Sub-question {sub_question_id} is not part of dimension {dimension_id}",
            {"assessment_id": assessment.id, "dimension_id": dimension_id},
        )
    target.response = ResponseValue(response)
    updated.last_saved = now or _now()
    return updated


def set_comments(
    assessment: Assessment, dimension_id: int, comments: str, now: datetime | None = None
) -> Assessment:
    _require_draft(assessment)
    updated, dim_score = _copy_with_dimension(assessment, dimension_id)
    dim_score.comments = comments
    updated.last_saved = now or _now()
    return updated


def apply_override(
    assessment: Assessment,
    dimension_id: int,
    score: float | None,
    now: datetime | None = None,
) -> Assessment:
    """Set (or clear with None) the management override for one dimension."""
    if score is not None and not (0 <= score <= MAX_POINTS):
        raise ValidationError("overridden_score", "must be between 0 and 100", score)
    updated, dim_score = _copy_with_dimension(assessment, dimension_id)
    dim_score.overridden_score = score
    updated.last_saved = now or _now()
    return updated


def is_complete(assessment: Assessment) -> bool:
    answered, total = count_answered(assessment.scores)
    return answered == total


def submit(
    assessment: Assessment,
    notes: str | None = None,
    duration: int | None = None,
    now: datetime | None = None,
) -> Assessment:
    """
    Submit a Draft. Submitting with unanswered questions requires notes
    explaining the gaps.
    """
    _transition(assessment, AssessmentStatus.SUBMITTED)
    notes = notes.strip() if notes else None
    if not is_complete(assessment) and not (notes or assessment.submission_notes):
        raise ValidationError(
            "submission_notes", "required when submitting with unanswered questions"
        )
    return replace(
        assessment,
        status=AssessmentStatus.SUBMITTED,
        submission_notes=notes or assessment.submission_notes,
        duration=duration if duration is not None else assessment.duration,
        last_saved=now or _now(),
    )


def lock(assessment: Assessment) -> Assessment:
    _transition(assessment, AssessmentStatus.LOCKED)
    return replace(assessment, status=AssessmentStatus.LOCKED)


def unlock(assessment: Assessment) -> Assessment:
    _transition(assessment, AssessmentStatus.DRAFT)
    return replace(assessment, status=AssessmentStatus.DRAFT)
