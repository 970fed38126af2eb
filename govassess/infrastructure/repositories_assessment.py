# govassess/infrastructure/repositories_assessment.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError as SQLIntegrityError
from sqlalchemy.orm import Session, selectinload

from ..domain.models import (
    Assessment,
    AssessmentStatus,
    DimensionScore,
    ResponseValue,
    SubQuestionResponse,
)
from ..domain.scoring import sort_assessments_by_period
from .exceptions import AssessmentNotFoundError, handle_database_error
from .logging import get_logger, log_database_operation as log_op
from .models import AssessmentORM, DimensionScoreORM, ResponseORM
from .repositories_base import BaseRepository as GenericBaseRepository

logger = get_logger(__name__)


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def assessment_to_domain(row: AssessmentORM) -> Assessment:
    return Assessment(
        id=row.id,
        department_name=row.department_name,
        period=row.period,
        status=AssessmentStatus(row.status),
        last_saved=_as_utc(row.last_saved),
        scores=[
            DimensionScore(
                dimension_id=s.dimension_id,
                responses=[
                    SubQuestionResponse(r.sub_question_id, ResponseValue(r.response))
                    for r in s.responses
                ],
                comments=s.comments or "",
                overridden_score=s.overridden_score,
            )
            for s in row.scores
        ],
        template_id=row.template_id,
        submission_notes=row.submission_notes,
        duration=row.duration,
        due_date=_as_utc(row.due_date),
    )


def _score_to_orm(score: DimensionScore) -> DimensionScoreORM:
    return DimensionScoreORM(
        dimension_id=score.dimension_id,
        comments=score.comments,
        overridden_score=score.overridden_score,
        responses=[
            ResponseORM(sub_question_id=r.sub_question_id, response=r.response.value)
            for r in score.responses
        ],
    )


def _sync_scores(row: AssessmentORM, scores: list[DimensionScore]) -> None:
    """Update score rows in place so unique keys never collide mid-flush."""
    existing = {s.dimension_id: s for s in row.scores}
    wanted = {s.dimension_id for s in scores}

    for stale_id in set(existing) - wanted:
        row.scores.remove(existing.pop(stale_id))

    for score in scores:
        score_row = existing.get(score.dimension_id)
        if score_row is None:
            row.scores.append(_score_to_orm(score))
            continue
        score_row.comments = score.comments
        score_row.overridden_score = score.overridden_score

        responses = {r.sub_question_id: r for r in score_row.responses}
        keep = {r.sub_question_id for r in score.responses}
        for stale_id in set(responses) - keep:
            score_row.responses.remove(responses.pop(stale_id))
        for r in score.responses:
            response_row = responses.get(r.sub_question_id)
            if response_row is None:
                score_row.responses.append(
                    ResponseORM(sub_question_id=r.sub_question_id, response=r.response.value)
                )
            else:
                response_row.response = r.response.value


class AssessmentRepo(GenericBaseRepository[AssessmentORM]):
    """
    Department assessments keyed by id, one per (department, period).

    Reads return domain dataclasses; department histories come back in
    chronological period order.
    """

    model = AssessmentORM

    def __init__(self, session: Session):
        super().__init__(session)

    def _query(self):
        return self.s.query(AssessmentORM).options(
            selectinload(AssessmentORM.scores).selectinload(DimensionScoreORM.responses)
        )

    @log_op("assessment.get")
    def get_domain(self, assessment_id: str) -> Assessment | None:
        row = self._query().filter(AssessmentORM.id == assessment_id).one_or_none()
        return assessment_to_domain(row) if row is not None else None

    def get_required(self, assessment_id: str) -> Assessment:
        assessment = self.get_domain(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError(assessment_id)
        return assessment

    @log_op("assessment.list")
    def list_domain(self) -> list[Assessment]:
        rows = self._query().order_by(AssessmentORM.department_name, AssessmentORM.id).all()
        return [assessment_to_domain(r) for r in rows]

    @log_op("assessment.history")
    def list_for_department(self, department_name: str) -> list[Assessment]:
        rows = self._query().filter(AssessmentORM.department_name == department_name).all()
        return sort_assessments_by_period(assessment_to_domain(r) for r in rows)

    def latest_for_department(self, department_name: str) -> Assessment | None:
        history = self.list_for_department(department_name)
        return history[-1] if history else None

    def find(self, department_name: str, period: str) -> Assessment | None:
        row = (
            self._query()
            .filter(
                AssessmentORM.department_name == department_name,
                AssessmentORM.period == period,
            )
            .one_or_none()
        )
        return assessment_to_domain(row) if row is not None else None

    def count_for_template(self, template_id: str) -> int:
        return self.count(AssessmentORM.template_id == template_id)

    @log_op("assessment.create")
    def create(self, assessment: Assessment) -> Assessment:
        row = AssessmentORM(
            id=assessment.id,
            department_name=assessment.department_name,
            period=assessment.period,
            status=assessment.status.value,
            last_saved=assessment.last_saved,
            template_id=assessment.template_id,
            submission_notes=assessment.submission_notes,
            duration=assessment.duration,
            due_date=assessment.due_date,
            scores=[_score_to_orm(s) for s in assessment.scores],
        )
        try:
            self.add(row)
        except SQLIntegrityError as e:
            raise handle_database_error(e, "assessment.create") from e
        logger.info(
            "Created assessment %s for %s (%s)",
            assessment.id,
            assessment.department_name,
            assessment.period,
        )
        return assessment

    @log_op("assessment.save")
    def save(self, assessment: Assessment) -> Assessment:
        row = self._query().filter(AssessmentORM.id == assessment.id).one_or_none()
        if row is None:
            raise AssessmentNotFoundError(assessment.id)

        row.department_name = assessment.department_name
        row.period = assessment.period
        row.status = assessment.status.value
        row.last_saved = assessment.last_saved
        row.template_id = assessment.template_id
        row.submission_notes = assessment.submission_notes
        row.duration = assessment.duration
        row.due_date = assessment.due_date
        _sync_scores(row, assessment.scores)

        try:
            self.s.flush()
        except SQLIntegrityError as e:
            raise handle_database_error(e, "assessment.save") from e
        return assessment

    @log_op("assessment.delete")
    def delete_by_id(self, assessment_id: str) -> Assessment:
        row = self._query().filter(AssessmentORM.id == assessment_id).one_or_none()
        if row is None:
            raise AssessmentNotFoundError(assessment_id)
        removed = assessment_to_domain(row)
        self.delete(row)
        return removed
