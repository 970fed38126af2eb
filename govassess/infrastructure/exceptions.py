"""
Exception hierarchy for the governance self-assessment service.

Every error carries a technical ``message`` for the log, structured
``details`` and a ``user_message`` that is safe to show a department head or
a manager. The web layer maps each class to an HTTP status.
"""

from __future__ import annotations

from typing import Any

# Name of the one-assessment-per-department-and-period constraint.
DEPARTMENT_PERIOD_CONSTRAINT = "uq_department_period"


class GovernanceAssessmentError(Exception):
    """Base exception for all application errors."""

    default_user_message = "Something went wrong. Please try again."

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        return self.default_user_message

    def __str__(self) -> str:
        return f"{type(self).__name__}: {self.message}"


class ValidationError(GovernanceAssessmentError):
    """Raised when a payload field is missing, malformed or out of range."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        label = field.replace("_", " ")
        super().__init__(
            message=f"Invalid value for '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Invalid {label}: {message}",
        )


class InvariantViolationError(GovernanceAssessmentError):
    """
    Raised when upstream data breaks a structural contract of the scoring model.

    For example a DimensionScore that answers a sub-question its dimension does
    not define. These are programming or data-integrity faults, not routine
    runtime conditions.
    """

    default_user_message = "The assessment data does not match its template."


class DatabaseError(GovernanceAssessmentError):
    """Raised when the store fails for a reason other than a constraint."""

    default_user_message = "The assessment store is unavailable. Please try again shortly."

    def __init__(self, message: str, operation: str, details: dict[str, Any] | None = None):
        self.operation = operation
        super().__init__(
            message=f"{operation} failed: {message}",
            details=details or {"operation": operation},
        )


class IntegrityError(DatabaseError):
    """Raised when a uniqueness or reference constraint rejects a write."""

    def __init__(
        self,
        message: str,
        constraint: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.constraint = constraint or ""
        super().__init__(message, "integrity_check", details or {"constraint": constraint})

    def _get_default_user_message(self) -> str:
        constraint = self.constraint.lower()
        if DEPARTMENT_PERIOD_CONSTRAINT in constraint:
            return "This department already has an assessment for that period."
        if "unique" in constraint:
            return "This item already exists."
        if "foreign" in constraint:
            return "The template or assessment it refers to no longer exists."
        return "The change conflicts with existing assessment data."


class AssessmentNotFoundError(GovernanceAssessmentError):
    """Raised when an assessment id does not resolve."""

    default_user_message = (
        "The selected assessment could not be found. Please refresh and try again."
    )

    def __init__(self, assessment_id: str):
        self.assessment_id = assessment_id
        super().__init__(
            message=f"Assessment {assessment_id} not found",
            details={"assessment_id": assessment_id},
        )


class TemplateNotFoundError(GovernanceAssessmentError):
    """Raised when a template id does not resolve."""

    default_user_message = "The selected template could not be found."

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(
            message=f"Template {template_id} not found",
            details={"template_id": template_id},
        )


class TemplateInUseError(GovernanceAssessmentError):
    """
    Raised when deleting a template that assessments still reference, or
    changing its dimensions or sub-questions. Publish a new template id instead.
    """

    def __init__(self, template_id: str, assessment_count: int, action: str = "delete"):
        self.template_id = template_id
        self.action = action
        super().__init__(
            message=(
                f"Cannot {action} template {template_id}: "
                f"used by {assessment_count} assessment(s)"
            ),
            details={
                "template_id": template_id,
                "assessment_count": assessment_count,
                "action": action,
            },
            user_message=(
                f"Cannot {action} template: it is currently in use by one or more assessments."
            ),
        )


class InvalidStatusTransitionError(GovernanceAssessmentError):
    """Raised when an assessment cannot move to the requested status."""

    def __init__(self, assessment_id: str, current: str, target: str):
        self.assessment_id = assessment_id
        self.current = current
        self.target = target
        super().__init__(
            message=f"Assessment {assessment_id} cannot move from {current} to {target}",
            details={"assessment_id": assessment_id, "current": current, "target": target},
            user_message=f"A {current.lower()} assessment cannot be marked as {target.lower()}.",
        )


class AssessmentLockedError(GovernanceAssessmentError):
    """Raised when a department head edits an assessment that is no longer a draft."""

    def __init__(self, assessment_id: str, status: str):
        self.assessment_id = assessment_id
        self.status = status
        super().__init__(
            message=f"Assessment {assessment_id} is {status} and read-only",
            details={"assessment_id": assessment_id, "status": status},
            user_message="This assessment is read-only. Ask management to unlock it first.",
        )


class ExportError(GovernanceAssessmentError):
    """Raised when a CSV export cannot be produced."""

    def __init__(
        self,
        message: str,
        export_format: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.export_format = export_format
        super().__init__(
            message=message,
            details=details or {"export_format": export_format},
            user_message="The export could not be generated. Please try again.",
        )


def handle_database_error(e: Exception, operation: str = "database operation") -> DatabaseError:
    """
    Translate a driver or SQLAlchemy exception into the app's error types.

    SQLite does not report constraint names, so a unique failure on the
    department and period columns is recognised by its column list.

    Example:
        >>> try:
        ...     session.flush()
        ... except SQLAlchemyError as e:
        ...     raise handle_database_error(e, "assessment.create") from e
    """
    error_msg = str(e).lower()

    if DEPARTMENT_PERIOD_CONSTRAINT in error_msg or (
        "unique" in error_msg and "department_name" in error_msg and "period" in error_msg
    ):
        return IntegrityError(str(e), constraint=DEPARTMENT_PERIOD_CONSTRAINT)
    if "unique constraint" in error_msg or "duplicate" in error_msg:
        return IntegrityError(str(e), constraint="unique")
    if "foreign key" in error_msg:
        return IntegrityError(str(e), constraint="foreign_key")
    if "check constraint" in error_msg:
        return IntegrityError(str(e), constraint="check")
    return DatabaseError(str(e), operation)


_GENERIC_MESSAGES = {
    ValueError: "Invalid input provided. Please check your data and try again.",
    KeyError: "Required information is missing. Please check your input.",
    TypeError: "Incorrect data type provided. Please check your input format.",
}


def create_user_friendly_error_message(error: Exception) -> str:
    """
    The message to show for ``error``: its own user message for app errors,
    a generic one otherwise.

    Example:
        >>> create_user_friendly_error_message(ValidationError("period", "must look like 'Q1 2024'"))
        "Invalid period: must look like 'Q1 2024'"
    """
    if isinstance(error, GovernanceAssessmentError):
        return error.user_message
    return _GENERIC_MESSAGES.get(
        type(error), "An unexpected error occurred. Please try again or contact support."
    )


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Structured ``extra`` payload for logging ``error``.

    Example:
        >>> details = log_error_details(AssessmentNotFoundError("a-1"), {"user": "Ada"})
        >>> details["error_type"]
        'AssessmentNotFoundError'
    """
    details: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }
    if isinstance(error, GovernanceAssessmentError):
        details["user_message"] = error.user_message
        details["error_details"] = error.details
    return details
