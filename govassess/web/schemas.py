from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class SubQuestion(BaseModel):
    id: int
    text: str


class Dimension(BaseModel):
    id: int
    name: str
    sub_questions: list[SubQuestion]


class Template(BaseModel):
    id: str
    name: str
    description: str = ""
    dimensions: list[Dimension]


class Response(BaseModel):
    sub_question_id: int
    response: str


class DimensionScore(BaseModel):
    dimension_id: int
    dimension_name: Optional[str] = None
    score: Optional[float] = None
    color: str
    overridden_score: Optional[float] = None
    comments: str = ""
    responses: list[Response]


class AssessmentDetail(BaseModel):
    id: str
    department_name: str
    period: str
    status: Literal["Draft", "Submitted", "Locked"]
    last_saved: datetime
    template_id: str
    submission_notes: Optional[str] = None
    duration: Optional[int] = None
    due_date: Optional[datetime] = None
    overall_score: float
    completion: float
    scores: list[DimensionScore]


class ScoreCell(BaseModel):
    score: Optional[float] = None
    color: str


class HeatmapRow(BaseModel):
    department_name: str
    assessment_id: str
    status: str
    scores: dict[str, ScoreCell]
    historical_overall_scores: list[float]
    overall_score: float
    trend: Literal["improving", "declining", "stable", "new"]


class PeriodCell(BaseModel):
    period: str
    score: Optional[float] = None
    color: str
    direction: Optional[Literal["up", "down", "same"]] = None


class DimensionComparison(BaseModel):
    dimension_name: str
    cells: list[PeriodCell]


class ChangeLogEntry(BaseModel):
    id: int
    timestamp: datetime
    user: str
    change_description: str
    period: str


class AssessmentCreateRequest(BaseModel):
    department_name: str
    period: Optional[str] = None
    template_id: Optional[str] = None
    due_date: Optional[datetime] = None


class ResponsesUpdateRequest(BaseModel):
    scores: list[dict[str, Any]] = Field(default_factory=list)


class SubmitRequest(BaseModel):
    notes: Optional[str] = None
    duration: Optional[int] = None


class OverrideRequest(BaseModel):
    overridden_score: Optional[float] = None


class HealthResponse(BaseModel):
    status: Literal["ok"]
    environment: str
    database_configured: bool


class AuditLogFilters(BaseModel):
    users: list[str]
    periods: list[str]


class SubmissionStatistics(BaseModel):
    completed_count: int
    best_time: Optional[int] = None
    average_time: Optional[float] = None
    on_time_rate: Optional[float] = None
