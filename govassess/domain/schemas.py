"""
Pydantic schemas for input validation at the service boundary.

Templates, assessments, responses and dashboard queries all pass through
these schemas before they reach the scoring core, so the core can assume
well-formed data.
"""

from __future__ import annotations

import re
from datetime import datetime
from html import unescape
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from ..infrastructure.exceptions import ValidationError
from .models import (
    AssessmentTemplate,
    Dimension,
    DimensionScore,
    ResponseValue,
    SubQuestion,
    SubQuestionResponse,
)
from .sorting import DEPARTMENT_KEY, SortConfig, SortDirection, StatusFilter

PERIOD_PATTERN = re.compile(r"^Q[1-4] \d{4}$")

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class BaseValidationSchema(BaseModel):
    """Base schema with common validation utilities."""

    model_config = ConfigDict(
        str_strip_whitespace=True,
        validate_assignment=True,
        use_enum_values=True,
    )

    @field_validator("*", mode="before")
    def sanitize_strings(cls, v):
        """Strip markup and control characters from free-text input."""
        if isinstance(v, str):
            cleaned = unescape(v.strip())
            cleaned = re.sub(
                r"<\s*script[^>]*>.*?<\s*/\s*script\s*>",
                "",
                cleaned,
                flags=re.IGNORECASE | re.DOTALL,
            )
            cleaned = re.sub(r"<[^>]+>", "", cleaned)
            # Keep \n and \t: comments may span lines.
            cleaned = re.sub(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f]", "", cleaned)
            return cleaned
        return v


class SubQuestionInput(BaseValidationSchema):
    id: int = Field(..., gt=0)
    text: str = Field(..., min_length=1, max_length=1000)


class DimensionInput(BaseValidationSchema):
    id: int = Field(..., gt=0)
    name: str = Field(..., min_length=1, max_length=255)
    sub_questions: list[SubQuestionInput] = Field(..., min_length=1)

    @field_validator("sub_questions")
    def unique_sub_question_ids(cls, v):
        ids = [sq.id for sq in v]
        if len(set(ids)) != len(ids):
            raise ValueError("Sub-question ids must be unique within a dimension")
        return v


class TemplateInput(BaseValidationSchema):
    """Validation schema for an assessment template version."""

    id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=255)
    description: str = Field("", max_length=5000)
    dimensions: list[DimensionInput] = Field(..., min_length=1)

    @model_validator(mode="after")
    def unique_dimensions(self):
        ids = [d.id for d in self.dimensions]
        if len(set(ids)) != len(ids):
            raise ValueError("Dimension ids must be unique within a template")
        names = [d.name for d in self.dimensions]
        if len(set(names)) != len(names):
            raise ValueError("Dimension names must be unique within a template")
        return self

    def to_domain(self) -> AssessmentTemplate:
        return AssessmentTemplate(
            id=self.id,
            name=self.name,
            description=self.description,
            dimensions=[
                Dimension(
                    id=d.id,
                    name=d.name,
                    sub_questions=[SubQuestion(sq.id, sq.text) for sq in d.sub_questions],
                )
                for d in self.dimensions
            ],
        )


class ResponseInput(BaseValidationSchema):
    sub_question_id: int = Field(..., gt=0)
    response: ResponseValue = ResponseValue.UNANSWERED


class DimensionScoreInput(BaseValidationSchema):
    """Responses and comments for one dimension, plus an optional override."""

    dimension_id: int = Field(..., gt=0)
    responses: list[ResponseInput] = Field(default_factory=list)
    comments: str = Field("", max_length=2000)
    overridden_score: float | None = Field(None, ge=0, le=100)

    @field_validator("responses")
    def one_response_per_sub_question(cls, v):
        ids = [r.sub_question_id for r in v]
        if len(set(ids)) != len(ids):
            raise ValueError("At most one response per sub-question")
        return v

    def to_domain(self) -> DimensionScore:
        return DimensionScore(
            dimension_id=self.dimension_id,
            responses=[
                SubQuestionResponse(r.sub_question_id, ResponseValue(r.response))
                for r in self.responses
            ],
            comments=self.comments,
            overridden_score=self.overridden_score,
        )


class ResponsesUpdateInput(BaseValidationSchema):
    scores: list[DimensionScoreInput] = Field(..., min_length=1)


class AssessmentCreationInput(BaseValidationSchema):
    """Validation schema for opening a department's assessment for a period."""

    department_name: str = Field(..., min_length=1, max_length=255)
    period: str = Field(..., description="Reporting period, e.g. 'Q3 2025'")
    template_id: str | None = Field(None, max_length=64)
    due_date: datetime | None = None

    @field_validator("period")
    def validate_period(cls, v):
        if not PERIOD_PATTERN.match(v):
            raise ValueError("Period must look like 'Q1 2024'")
        return v


class SubmissionInput(BaseValidationSchema):
    notes: str | None = Field(None, max_length=10000)
    duration: int | None = Field(None, ge=0, description="Seconds spent on the assessment")

    @field_validator("notes")
    def blank_notes_are_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class OverrideInput(BaseValidationSchema):
    overridden_score: float | None = Field(None, ge=0, le=100)


class HeatmapQuery(BaseValidationSchema):
    """Dashboard query: period filter, free-text search, status filter and sort."""

    period: str = Field("all", max_length=32)
    search: str = Field("", max_length=255)
    status_filter: StatusFilter = StatusFilter.ALL
    sort_key: str = Field(DEPARTMENT_KEY, min_length=1, max_length=255)
    sort_direction: SortDirection = SortDirection.ASCENDING

    def sort_config(self) -> SortConfig:
        return SortConfig(self.sort_key, SortDirection(self.sort_direction))


class ValidationErrorDetail(BaseModel):
    field: str
    message: str
    value: Any = None


class ValidationResponse(BaseModel):
    success: bool
    errors: list[ValidationErrorDetail] = []
    data: dict[str, Any] | None = None


def _error_details(exc: PydanticValidationError) -> list[ValidationErrorDetail]:
    return [
        ValidationErrorDetail(
            field=".".join(str(x) for x in error["loc"]) or "general",
            message=error["msg"],
            value=error.get("input"),
        )
        for error in exc.errors()
    ]


def validate_input(schema_class: type[BaseModel], data: dict[str, Any]) -> ValidationResponse:
    """
    Centralized validation function that returns structured validation results.

    Example:
        >>> result = validate_input(AssessmentCreationInput, {"department_name": "HR",
        ...                                                   "period": "Q1 2024"})
        >>> result.success
        True
    """
    try:
        validated = schema_class.model_validate(data)
        return ValidationResponse(success=True, data=validated.model_dump())
    except PydanticValidationError as e:
        return ValidationResponse(success=False, errors=_error_details(e))


def parse_input(schema_class: type[SchemaT], data: dict[str, Any]) -> SchemaT:
    """
    Validate ``data`` and return the schema instance.

    Raises:
        ValidationError: naming the first failing field, with every failure
            listed in ``details``
    """
    try:
        return schema_class.model_validate(data)
    except PydanticValidationError as e:
        errors = _error_details(e)
        first = errors[0]
        raise ValidationError(
            first.field,
            "; ".join(f"{err.field}: {err.message}" for err in errors),
            first.value,
            details={"errors": [err.model_dump() for err in errors]},
        ) from e
