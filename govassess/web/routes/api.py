from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.orm import Session

from govassess.application import api as app_api
from govassess.domain import models as domain
from govassess.domain.heatmap import DimensionHistory
from govassess.domain.scoring import (
    calculate_dimension_score,
    calculate_overall_score,
    completion_ratio,
    score_and_color,
)
from govassess.domain.schemas import ValidationResponse
from govassess.infrastructure.config import get_settings
from govassess.infrastructure.db import is_database_configured
from govassess.infrastructure.exceptions import (
    AssessmentLockedError,
    AssessmentNotFoundError,
    GovernanceAssessmentError,
    IntegrityError,
    InvalidStatusTransitionError,
    InvariantViolationError,
    TemplateInUseError,
    TemplateNotFoundError,
    ValidationError,
)
from govassess.web.dependencies import get_current_user, get_db_session
from govassess.web.schemas import (
    AssessmentCreateRequest,
    AssessmentDetail,
    AuditLogFilters,
    ChangeLogEntry,
    Dimension,
    DimensionComparison,
    DimensionScore,
    HealthResponse,
    HeatmapRow,
    OverrideRequest,
    PeriodCell,
    Response,
    ResponsesUpdateRequest,
    ScoreCell,
    SubmissionStatistics,
    SubmitRequest,
    SubQuestion,
    Template,
)

router = APIRouter(prefix="/api")
logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[GovernanceAssessmentError], int]] = [
    (AssessmentNotFoundError, status.HTTP_404_NOT_FOUND),
    (TemplateNotFoundError, status.HTTP_404_NOT_FOUND),
    (IntegrityError, status.HTTP_409_CONFLICT),
    (TemplateInUseError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
    (AssessmentLockedError, status.HTTP_409_CONFLICT),
    (ValidationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (InvariantViolationError, status.HTTP_422_UNPROCESSABLE_ENTITY),
]


def _to_http(exc: GovernanceAssessmentError) -> HTTPException:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.user_message)
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.user_message)


def _template_response(template: domain.AssessmentTemplate) -> Template:
    return Template(
        id=template.id,
        name=template.name,
        description=template.description,
        dimensions=[
            Dimension(
                id=d.id,
                name=d.name,
                sub_questions=[SubQuestion(id=sq.id, text=sq.text) for sq in d.sub_questions],
            )
            for d in template.dimensions
        ],
    )


def _assessment_response(
    assessment: domain.Assessment, template: domain.AssessmentTemplate | None = None
) -> AssessmentDetail:
    scores = []
    for dim_score in assessment.scores:
        value = calculate_dimension_score(dim_score)
        dimension = template.dimension_by_id(dim_score.dimension_id) if template else None
        scores.append(
            DimensionScore(
                dimension_id=dim_score.dimension_id,
                dimension_name=dimension.name if dimension is not None else None,
                score=value,
                color=score_and_color(value).color.value,
                overridden_score=dim_score.overridden_score,
                comments=dim_score.comments,
                responses=[
                    Response(sub_question_id=r.sub_question_id, response=r.response.value)
                    for r in dim_score.responses
                ],
            )
        )
    return AssessmentDetail(
        id=assessment.id,
        department_name=assessment.department_name,
        period=assessment.period,
        status=assessment.status.value,
        last_saved=assessment.last_saved,
        template_id=assessment.template_id,
        submission_notes=assessment.submission_notes,
        duration=assessment.duration,
        due_date=assessment.due_date,
        overall_score=calculate_overall_score(assessment.scores),
        completion=completion_ratio(assessment),
        scores=scores,
    )


def _heatmap_response(row: domain.HeatmapRow) -> HeatmapRow:
    return HeatmapRow(
        department_name=row.department_name,
        assessment_id=row.assessment_id,
        status=row.status.value,
        scores={
            name: ScoreCell(score=cell.score, color=cell.color.value)
            for name, cell in row.scores.items()
        },
        historical_overall_scores=row.historical_overall_scores,
        overall_score=row.overall_score,
        trend=row.trend.value,
    )


def _comparison_response(history: DimensionHistory) -> DimensionComparison:
    return DimensionComparison(
        dimension_name=history.dimension_name,
        cells=[
            PeriodCell(
                period=c.period, score=c.score, color=c.color.value, direction=c.direction
            )
            for c in history.cells
        ],
    )


def _changelog_response(entries: list[domain.ChangeLogEntry]) -> list[ChangeLogEntry]:
    return [
        ChangeLogEntry(
            id=e.id,
            timestamp=e.timestamp,
            user=e.user,
            change_description=e.change_description,
            period=e.period,
        )
        for e in entries
    ]


def _csv_response(payload: str, filename: str) -> StreamingResponse:
    headers = {"Content-Disposition": f"attachment; filename={filename}"}
    return StreamingResponse(iter([payload]), media_type="text/csv", headers=headers)


def _heatmap_query(
    period: str, search: str, status_filter: str, sort_key: str, sort_direction: str
) -> dict[str, str]:
    return {
        "period": period,
        "search": search,
        "status_filter": status_filter,
        "sort_key": sort_key,
        "sort_direction": sort_direction,
    }


def _committed(db: Session, assessment: domain.Assessment) -> AssessmentDetail:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    return _assessment_response(assessment, app_api.get_template(db, assessment.template_id))


@router.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    return HealthResponse(
        status="ok",
        environment=get_settings().app.environment,
        database_configured=is_database_configured(),
    )


# ----------------------------------------------------------------------------- dashboard


@router.get("/heatmap", response_model=list[HeatmapRow])
def get_heatmap(
    period: str = Query("all"),
    search: str = Query(""),
    status_filter: str = Query("all"),
    sort_key: str = Query("departmentName"),
    sort_direction: str = Query("ascending"),
    db: Session = Depends(get_db_session),
) -> list[HeatmapRow]:
    query = _heatmap_query(period, search, status_filter, sort_key, sort_direction)
    try:
        rows = app_api.get_dashboard(db, query)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return [_heatmap_response(row) for row in rows]


@router.get("/periods", response_model=list[str])
def list_periods(db: Session = Depends(get_db_session)) -> list[str]:
    try:
        return app_api.list_available_periods(db)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc


# ----------------------------------------------------------------------------- templates


@router.get("/templates", response_model=list[Template])
def list_templates(db: Session = Depends(get_db_session)) -> list[Template]:
    try:
        templates = app_api.list_templates(db)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return [_template_response(t) for t in templates]


@router.post("/templates/validate", response_model=ValidationResponse)
def validate_template(payload: dict = Body(...)) -> ValidationResponse:
    """Check a template draft without saving it."""
    return app_api.check_template(payload)


@router.put("/templates/{template_id}", response_model=Template)
def save_template(
    template_id: str,
    payload: Template,
    db: Session = Depends(get_db_session),
) -> Template:
    if payload.id != template_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Template ID mismatch")
    try:
        saved = app_api.save_template(db, payload.model_dump())
        db.commit()
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc
    return _template_response(saved)


@router.delete("/templates/{template_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_template(template_id: str, db: Session = Depends(get_db_session)) -> None:
    try:
        app_api.delete_template(db, template_id)
        db.commit()
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


# ----------------------------------------------------------------------------- departments


@router.get("/departments/{department_name}/history", response_model=list[AssessmentDetail])
def get_department_history(
    department_name: str, db: Session = Depends(get_db_session)
) -> list[AssessmentDetail]:
    try:
        history = app_api.get_department_history(db, department_name)
        templates = {t.id: t for t in app_api.list_templates(db)}
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return [_assessment_response(a, templates.get(a.template_id)) for a in history]


@router.get(
    "/departments/{department_name}/comparison", response_model=list[DimensionComparison]
)
def get_department_comparison(
    department_name: str, db: Session = Depends(get_db_session)
) -> list[DimensionComparison]:
    try:
        comparison = app_api.get_department_comparison(db, department_name)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return [_comparison_response(h) for h in comparison]


@router.get("/departments/{department_name}/changelog", response_model=list[ChangeLogEntry])
def get_department_changelog(
    department_name: str, db: Session = Depends(get_db_session)
) -> list[ChangeLogEntry]:
    try:
        entries = app_api.get_changelog(db, department_name)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return _changelog_response(entries)


@router.get("/departments/{department_name}/statistics", response_model=SubmissionStatistics)
def get_department_statistics(
    department_name: str, db: Session = Depends(get_db_session)
) -> SubmissionStatistics:
    try:
        stats = app_api.get_department_statistics(db, department_name)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return SubmissionStatistics(
        completed_count=stats.completed_count,
        best_time=stats.best_time,
        average_time=stats.average_time,
        on_time_rate=stats.on_time_rate,
    )


# ----------------------------------------------------------------------------- audit log


@router.get("/changelog", response_model=list[ChangeLogEntry])
def get_audit_log(
    user: str = Query("all"),
    period: str = Query("all"),
    search: str = Query(""),
    db: Session = Depends(get_db_session),
) -> list[ChangeLogEntry]:
    try:
        entries = app_api.get_audit_log(db, user=user, period=period, search=search)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return _changelog_response(entries)


@router.get("/changelog/filters", response_model=AuditLogFilters)
def get_audit_log_filters(db: Session = Depends(get_db_session)) -> AuditLogFilters:
    return AuditLogFilters(**app_api.audit_log_filters(db))


# ----------------------------------------------------------------------------- assessments


@router.post(
    "/assessments", response_model=AssessmentDetail, status_code=status.HTTP_201_CREATED
)
def create_assessment(
    payload: AssessmentCreateRequest,
    db: Session = Depends(get_db_session),
) -> AssessmentDetail:
    try:
        assessment = app_api.create_assessment_for_department(
            db,
            department_name=payload.department_name,
            period=payload.period,
            template_id=payload.template_id,
            due_date=payload.due_date,
        )
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.get("/assessments/{assessment_id}", response_model=AssessmentDetail)
def get_assessment(assessment_id: str, db: Session = Depends(get_db_session)) -> AssessmentDetail:
    try:
        assessment = app_api.get_assessment(db, assessment_id)
        template = app_api.get_template(db, assessment.template_id)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return _assessment_response(assessment, template)


@router.put("/assessments/{assessment_id}/responses", response_model=AssessmentDetail)
def save_responses(
    assessment_id: str,
    payload: ResponsesUpdateRequest,
    db: Session = Depends(get_db_session),
) -> AssessmentDetail:
    try:
        assessment = app_api.save_responses(db, assessment_id, payload.scores)
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.post("/assessments/{assessment_id}/submit", response_model=AssessmentDetail)
def submit_assessment(
    assessment_id: str,
    payload: Optional[SubmitRequest] = None,
    db: Session = Depends(get_db_session),
    user: str = Depends(get_current_user),
) -> AssessmentDetail:
    payload = payload or SubmitRequest()
    try:
        assessment = app_api.submit_assessment(
            db, assessment_id, notes=payload.notes, duration=payload.duration, user=user
        )
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.post("/assessments/{assessment_id}/lock", response_model=AssessmentDetail)
def lock_assessment(
    assessment_id: str,
    db: Session = Depends(get_db_session),
    user: str = Depends(get_current_user),
) -> AssessmentDetail:
    try:
        assessment = app_api.lock_assessment(db, assessment_id, user=user)
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.post("/assessments/{assessment_id}/unlock", response_model=AssessmentDetail)
def unlock_assessment(
    assessment_id: str,
    db: Session = Depends(get_db_session),
    user: str = Depends(get_current_user),
) -> AssessmentDetail:
    try:
        assessment = app_api.unlock_assessment(db, assessment_id, user=user)
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.put(
    "/assessments/{assessment_id}/dimensions/{dimension_id}/override",
    response_model=AssessmentDetail,
)
def override_dimension_score(
    assessment_id: str,
    dimension_id: int,
    payload: OverrideRequest,
    db: Session = Depends(get_db_session),
    user: str = Depends(get_current_user),
) -> AssessmentDetail:
    try:
        assessment = app_api.override_dimension_score(
            db, assessment_id, dimension_id, payload.overridden_score, user=user
        )
        return _committed(db, assessment)
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


@router.delete("/assessments/{assessment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assessment(
    assessment_id: str,
    db: Session = Depends(get_db_session),
    user: str = Depends(get_current_user),
) -> None:
    try:
        app_api.delete_assessment(db, assessment_id, user=user)
        db.commit()
    except GovernanceAssessmentError as exc:
        db.rollback()
        raise _to_http(exc) from exc


# ----------------------------------------------------------------------------- exports


@router.get("/export/assessments.csv")
def export_assessments(
    period: Optional[str] = Query(None), db: Session = Depends(get_db_session)
) -> StreamingResponse:
    try:
        payload = app_api.export_assessments_csv(db, period=period)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return _csv_response(payload, "governance_assessments.csv")


@router.get("/export/heatmap.csv")
def export_heatmap(
    period: str = Query("all"),
    search: str = Query(""),
    status_filter: str = Query("all"),
    sort_key: str = Query("departmentName"),
    sort_direction: str = Query("ascending"),
    db: Session = Depends(get_db_session),
) -> StreamingResponse:
    query = _heatmap_query(period, search, status_filter, sort_key, sort_direction)
    try:
        payload = app_api.export_heatmap_csv(db, query)
    except GovernanceAssessmentError as exc:
        raise _to_http(exc) from exc
    return _csv_response(payload, "governance_heatmap.csv")
