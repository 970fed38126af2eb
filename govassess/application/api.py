"""
Application API layer with error handling and validation.

High-level operations behind the management dashboard and the department
assessment workflow. Every function takes a SQLAlchemy session and leaves
commit/rollback to the caller (a route handler or a UnitOfWork).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from ..domain import workflow
from ..domain.heatmap import DimensionHistory, build_heatmap, compare_dimension_history
from ..domain.models import Assessment, AssessmentTemplate, ChangeLogEntry, HeatmapRow
from ..domain.schemas import (
    AssessmentCreationInput,
    HeatmapQuery,
    OverrideInput,
    ResponsesUpdateInput,
    SubmissionInput,
    TemplateInput,
    ValidationResponse,
    parse_input,
    validate_input,
)
from ..domain.scoring import available_periods, sort_periods, validate_assessment
from ..domain.sorting import filter_and_sort_rows
from ..domain.statistics import SubmissionStatistics, submission_statistics
from ..infrastructure.config import get_settings
from ..infrastructure.exceptions import (
    DEPARTMENT_PERIOD_CONSTRAINT,
    ExportError,
    GovernanceAssessmentError,
    IntegrityError,
    TemplateNotFoundError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.logging import get_logger, log_operation, set_context
from ..infrastructure.repositories import AssessmentRepo, ChangeLogRepo, TemplateRepo
from ..utils.exports import make_assessments_csv, make_heatmap_csv

logger = get_logger(__name__)

SYSTEM_USER = "system"


def _fail(e: Exception, message: str, context: dict[str, Any]) -> GovernanceAssessmentError:
    """Log ``e`` and return the error to raise: app errors as-is, others wrapped."""
    error_details = log_error_details(e, context)
    logger.error(message, extra=error_details)
    if isinstance(e, GovernanceAssessmentError):
        return e
    return GovernanceAssessmentError(
        f"{message}: {str(e)}",
        details=error_details,
        user_message=create_user_friendly_error_message(e),
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _templates_by_id(session: Session) -> dict[str, AssessmentTemplate]:
    return {t.id: t for t in TemplateRepo(session).list_domain()}


# --------------------------------------------------------------------------- templates


@log_operation("list_templates")
def list_templates(session: Session) -> list[AssessmentTemplate]:
    """All template versions, oldest first."""
    try:
        return TemplateRepo(session).list_domain()
    except Exception as e:
        raise _fail(e, "Failed to list templates", {}) from e


def get_template(session: Session, template_id: str) -> AssessmentTemplate:
    """
    Raises:
        TemplateNotFoundError: If no such template exists
    """
    return TemplateRepo(session).get_required(template_id)


@log_operation("save_template")
def save_template(session: Session, data: dict[str, Any]) -> AssessmentTemplate:
    """
    Validate and store a template version, replacing one with the same id.

    Raises:
        ValidationError: If the template payload is malformed
        TemplateInUseError: If assessments use the template and its questions would change
    """
    template = parse_input(TemplateInput, data).to_domain()
    try:
        return TemplateRepo(session).save(template)
    except Exception as e:
        raise _fail(e, "Failed to save template", {"template_id": template.id}) from e


def check_template(data: dict[str, Any]) -> ValidationResponse:
    """Field-by-field validation of a template draft, for editors that check before saving."""
    return validate_input(TemplateInput, data)


@log_operation("delete_template")
def delete_template(session: Session, template_id: str) -> None:
    """
    Raises:
        TemplateNotFoundError: If no such template exists
        TemplateInUseError: If any assessment still references it
    """
    try:
        TemplateRepo(session).delete_by_id(template_id)
        logger.info("Deleted template %s", template_id)
    except Exception as e:
        raise _fail(e, "Failed to delete template", {"template_id": template_id}) from e


# --------------------------------------------------------------------------- dashboard


@log_operation("get_dashboard")
def get_dashboard(
    session: Session, query: HeatmapQuery | dict[str, Any] | None = None
) -> list[HeatmapRow]:
    """
    Build the management heatmap for one period filter, then search, filter
    and sort the rows.

    Args:
        session: Database session
        query: HeatmapQuery or a dict of its fields; defaults to every
            department's latest assessment sorted by department name

    Example:
        >>> rows = get_dashboard(session, {"period": "Q2 2024", "status_filter": "needsAttention"})
        >>> [r.department_name for r in rows]
        ['Finance']
    """
    if query is None:
        query = HeatmapQuery()
    elif not isinstance(query, HeatmapQuery):
        query = parse_input(HeatmapQuery, query)

    try:
        set_context(period=query.period)
        rows = build_heatmap(
            AssessmentRepo(session).list_domain(),
            _templates_by_id(session),
            period_filter=query.period,
        )
        result = filter_and_sort_rows(
            rows,
            search=query.search,
            status_filter=query.status_filter,
            config=query.sort_config(),
        )
        logger.info("Dashboard for %r: %d of %d rows", query.period, len(result), len(rows))
        return result
    except Exception as e:
        raise _fail(e, "Failed to build dashboard", {"period": query.period}) from e


@log_operation("list_available_periods")
def list_available_periods(session: Session) -> list[str]:
    """``"all"`` followed by every period on record, newest first."""
    try:
        return available_periods(AssessmentRepo(session).list_domain())
    except Exception as e:
        raise _fail(e, "Failed to list periods", {}) from e


# --------------------------------------------------------------------------- departments


@log_operation("get_department_history")
def get_department_history(session: Session, department_name: str) -> list[Assessment]:
    """A department's assessments in chronological period order."""
    try:
        set_context(department=department_name)
        return AssessmentRepo(session).list_for_department(department_name)
    except Exception as e:
        raise _fail(e, "Failed to load department history", {"department": department_name}) from e


@log_operation("get_department_comparison")
def get_department_comparison(session: Session, department_name: str) -> list[DimensionHistory]:
    """Per-dimension scores across every period the department was assessed in."""
    try:
        set_context(department=department_name)
        history = AssessmentRepo(session).list_for_department(department_name)
        templates = TemplateRepo(session)
        pairs = [(a, templates.get_required(a.template_id)) for a in history]
        return compare_dimension_history(pairs)
    except Exception as e:
        raise _fail(
            e, "Failed to compare department periods", {"department": department_name}
        ) from e


@log_operation("get_department_statistics")
def get_department_statistics(session: Session, department_name: str) -> SubmissionStatistics:
    """Completion times and on-time rate over the department's finished assessments."""
    try:
        set_context(department=department_name)
        return submission_statistics(AssessmentRepo(session).list_for_department(department_name))
    except Exception as e:
        raise _fail(
            e, "Failed to compute submission statistics", {"department": department_name}
        ) from e


@log_operation("get_changelog")
def get_changelog(session: Session, department_name: str) -> list[ChangeLogEntry]:
    """Audit entries for one department, newest first."""
    try:
        return ChangeLogRepo(session).list_for_department(department_name)
    except Exception as e:
        raise _fail(e, "Failed to load changelog", {"department": department_name}) from e


@log_operation("get_audit_log")
def get_audit_log(
    session: Session, user: str | None = None, period: str | None = None, search: str = ""
) -> list[ChangeLogEntry]:
    """
    Every audit entry across departments, newest first, narrowed by user,
    period and a free-text search.

    Example:
        >>> [e.change_description for e in get_audit_log(session, search="lock")]
        ['Unlocked assessment for Finance', 'Locked assessment for Finance']
    """
    try:
        return ChangeLogRepo(session).list_all(user=user, period=period, search=search)
    except Exception as e:
        raise _fail(
            e, "Failed to load audit log", {"user": user, "period": period, "search": search}
        ) from e


def audit_log_filters(session: Session) -> dict[str, list[str]]:
    """Selector options for the audit log: ``"all"`` then each user A-Z, each period newest first."""
    repo = ChangeLogRepo(session)
    return {
        "users": ["all", *repo.distinct_users()],
        "periods": ["all", *sort_periods(repo.distinct_periods(), newest_first=True)],
    }


# --------------------------------------------------------------------------- assessments


@log_operation("get_assessment")
def get_assessment(session: Session, assessment_id: str) -> Assessment:
    """
    Raises:
        AssessmentNotFoundError: If no such assessment exists
    """
    return AssessmentRepo(session).get_required(assessment_id)


@log_operation("create_assessment_for_department")
def create_assessment_for_department(
    session: Session,
    department_name: str,
    period: str | None = None,
    template_id: str | None = None,
    due_date: datetime | None = None,
) -> Assessment:
    """
    Open a Draft assessment for a department with every question unanswered.

    Args:
        session: Database session
        department_name: Department being assessed
        period: Reporting period label; defaults to the configured default period
        template_id: Template to assess against; defaults to the oldest template
        due_date: Optional deadline

    Raises:
        ValidationError: If the department name or period is malformed
        TemplateNotFoundError: If the template is unknown or none exist
        IntegrityError: If the department already has an assessment for the period

    Example:
        >>> a = create_assessment_for_department(session, "Finance", "Q3 2024")
        >>> a.status.value
        'Draft'
    """
    validated = parse_input(
        AssessmentCreationInput,
        {
            "department_name": department_name,
            "period": period or get_settings().app.default_period,
            "template_id": template_id,
            "due_date": due_date,
        },
    )

    try:
        set_context(department=validated.department_name, period=validated.period)
        templates = TemplateRepo(session)
        if validated.template_id:
            template = templates.get_required(validated.template_id)
        else:
            template = templates.default()
            if template is None:
                raise TemplateNotFoundError("<default>")

        repo = AssessmentRepo(session)
        if repo.find(validated.department_name, validated.period) is not None:
            raise IntegrityError(
                f"{validated.department_name} already has an assessment for {validated.period}",
                constraint=DEPARTMENT_PERIOD_CONSTRAINT,
            )

        assessment = workflow.new_assessment(
            f"assessment-{uuid4().hex}",
            validated.department_name,
            template,
            validated.period,
            due_date=validated.due_date,
        )
        return repo.create(assessment)
    except Exception as e:
        raise _fail(
            e,
            "Failed to create assessment",
            {"department": department_name, "period": period},
        ) from e


@log_operation("save_responses")
def save_responses(
    session: Session, assessment_id: str, scores: list[dict[str, Any]]
) -> Assessment:
    """
    Record a department head's answers and comments on a Draft.

    Only the sub-questions listed are changed. Overrides are not touched
    here; use ``override_dimension_score``.

    Raises:
        ValidationError: If the payload is malformed
        AssessmentLockedError: If the assessment is not a Draft
        InvariantViolationError: If a dimension or sub-question is not in the template
    """
    update = parse_input(ResponsesUpdateInput, {"scores": scores})

    try:
        set_context(assessment_id=assessment_id)
        repo = AssessmentRepo(session)
        assessment = repo.get_required(assessment_id)
        template = TemplateRepo(session).get_required(assessment.template_id)

        now = _now()
        for dim_input in update.scores:
            for response in dim_input.responses:
                assessment = workflow.record_response(
                    assessment,
                    dim_input.dimension_id,
                    response.sub_question_id,
                    response.response,
                    now=now,
                )
            assessment = workflow.set_comments(
                assessment, dim_input.dimension_id, dim_input.comments, now=now
            )

        validate_assessment(assessment, template)
        return repo.save(assessment)
    except Exception as e:
        raise _fail(e, "Failed to save responses", {"assessment_id": assessment_id}) from e


def _record_change(
    session: Session, assessment: Assessment, description: str, user: str
) -> None:
    ChangeLogRepo(session).record(
        user=user,
        department_name=assessment.department_name,
        description=description,
        period=assessment.period,
    )


@log_operation("submit_assessment")
def submit_assessment(
    session: Session,
    assessment_id: str,
    notes: str | None = None,
    duration: int | None = None,
    user: str = SYSTEM_USER,
) -> Assessment:
    """
    Submit a Draft for management review.

    Raises:
        InvalidStatusTransitionError: If the assessment is not a Draft
        ValidationError: If questions are unanswered and no notes explain why
    """
    validated = parse_input(SubmissionInput, {"notes": notes, "duration": duration})

    try:
        set_context(assessment_id=assessment_id, user=user)
        repo = AssessmentRepo(session)
        submitted = workflow.submit(
            repo.get_required(assessment_id), notes=validated.notes, duration=validated.duration
        )
        repo.save(submitted)
        _record_change(
            session, submitted, f"Submitted assessment for {submitted.department_name}", user
        )
        return submitted
    except Exception as e:
        raise _fail(e, "Failed to submit assessment", {"assessment_id": assessment_id}) from e


@log_operation("lock_assessment")
def lock_assessment(session: Session, assessment_id: str, user: str = SYSTEM_USER) -> Assessment:
    try:
        set_context(assessment_id=assessment_id, user=user)
        repo = AssessmentRepo(session)
        locked = workflow.lock(repo.get_required(assessment_id))
        repo.save(locked)
        _record_change(session, locked, f"Locked assessment for {locked.department_name}", user)
        return locked
    except Exception as e:
        raise _fail(e, "Failed to lock assessment", {"assessment_id": assessment_id}) from e


@log_operation("unlock_assessment")
def unlock_assessment(
    session: Session, assessment_id: str, user: str = SYSTEM_USER
) -> Assessment:
    """Return a Locked assessment to Draft so the department can revise it."""
    try:
        set_context(assessment_id=assessment_id, user=user)
        repo = AssessmentRepo(session)
        unlocked = workflow.unlock(repo.get_required(assessment_id))
        repo.save(unlocked)
        _record_change(
            session, unlocked, f"Unlocked assessment for {unlocked.department_name}", user
        )
        return unlocked
    except Exception as e:
        raise _fail(e, "Failed to unlock assessment", {"assessment_id": assessment_id}) from e


@log_operation("override_dimension_score")
def override_dimension_score(
    session: Session,
    assessment_id: str,
    dimension_id: int,
    overridden_score: float | None,
    user: str = SYSTEM_USER,
) -> Assessment:
    """
    Set or clear (``None``) a management override on one dimension.

    Overrides apply in any status and replace the computed dimension score.
    """
    validated = parse_input(OverrideInput, {"overridden_score": overridden_score})

    try:
        set_context(assessment_id=assessment_id, user=user)
        repo = AssessmentRepo(session)
        assessment = repo.get_required(assessment_id)
        template = TemplateRepo(session).get_required(assessment.template_id)

        updated = workflow.apply_override(assessment, dimension_id, validated.overridden_score)
        validate_assessment(updated, template)
        repo.save(updated)

        dimension = template.dimension_by_id(dimension_id)
        label = dimension.name if dimension is not None else str(dimension_id)
        if validated.overridden_score is None:
            description = f"Cleared score override on '{label}' for {updated.department_name}"
        else:
            description = (
                f"Overrode '{label}' score to {validated.overridden_score:.1f}% "
                f"for {updated.department_name}"
            )
        _record_change(session, updated, description, user)
        return updated
    except Exception as e:
        raise _fail(
            e,
            "Failed to override dimension score",
            {"assessment_id": assessment_id, "dimension_id": dimension_id},
        ) from e


@log_operation("delete_assessment")
def delete_assessment(session: Session, assessment_id: str, user: str = SYSTEM_USER) -> None:
    try:
        set_context(assessment_id=assessment_id, user=user)
        removed = AssessmentRepo(session).delete_by_id(assessment_id)
        _record_change(
            session, removed, f"Deleted assessment for {removed.department_name}", user
        )
    except Exception as e:
        raise _fail(e, "Failed to delete assessment", {"assessment_id": assessment_id}) from e


# --------------------------------------------------------------------------- exports


@log_operation("export_assessments_csv")
def export_assessments_csv(session: Session, period: str | None = None) -> str:
    """
    Every assessment (or those of one period) flattened to one CSV row per
    sub-question. Empty string when nothing matches.
    """
    try:
        templates = _templates_by_id(session)
        export_data = [
            (a, templates[a.template_id])
            for a in AssessmentRepo(session).list_domain()
            if (period in (None, "all") or a.period == period) and a.template_id in templates
        ]
        logger.info("Exported %d assessments", len(export_data))
        return make_assessments_csv(export_data)
    except Exception as e:
        error_details = log_error_details(e, {"period": period})
        logger.error("Failed to export assessments", extra=error_details)

        if isinstance(e, GovernanceAssessmentError):
            raise

        raise ExportError(
            f"Failed to export assessments: {str(e)}", export_format="csv", details=error_details
        ) from e


@log_operation("export_heatmap_csv")
def export_heatmap_csv(
    session: Session, query: HeatmapQuery | dict[str, Any] | None = None
) -> str:
    """The dashboard exactly as ``get_dashboard`` returns it, as CSV."""
    rows = get_dashboard(session, query)
    try:
        dimension_names = None
        templates = TemplateRepo(session).list_domain()
        if templates:
            latest = templates[-1]
            dimension_names = [d.name for d in latest.dimensions]
            extra = [n for row in rows for n in row.scores if n not in dimension_names]
            dimension_names.extend(dict.fromkeys(extra))
        return make_heatmap_csv(rows, dimension_names)
    except Exception as e:
        error_details = log_error_details(e, {"rows": len(rows)})
        logger.error("Failed to export heatmap", extra=error_details)
        raise ExportError(
            f"Failed to export heatmap: {str(e)}", export_format="csv", details=error_details
        ) from e
