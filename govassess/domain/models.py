from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class ResponseValue(str, Enum):
    YES = "Yes"
    WORK_IN_PROGRESS = "Work in Progress"
    NO = "No"
    UNANSWERED = "Unanswered"


class AssessmentStatus(str, Enum):
    DRAFT = "Draft"
    SUBMITTED = "Submitted"
    LOCKED = "Locked"


class Trend(str, Enum):
    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"
    NEW = "new"


class ScoreColor(str, Enum):
    GREEN = "#28a745"
    AMBER = "#ffc107"
    RED = "#dc3545"
    GRAY = "#e0e0e0"  # no data


@dataclass(slots=True)
class SubQuestion:
    id: int
    text: str


@dataclass(slots=True)
class Dimension:
    id: int
    name: str
    sub_questions: list[SubQuestion] = field(default_factory=list)

    def sub_question_ids(self) -> list[int]:
        return [sq.id for sq in self.sub_questions]


@dataclass(slots=True)
class AssessmentTemplate:
    id: str
    name: str
    description: str
    dimensions: list[Dimension] = field(default_factory=list)

    def dimension_by_id(self, dimension_id: int) -> Dimension | None:
        return next((d for d in self.dimensions if d.id == dimension_id), None)

    def dimension_by_name(self, name: str) -> Dimension | None:
        return next((d for d in self.dimensions if d.name == name), None)


@dataclass(slots=True)
class SubQuestionResponse:
    sub_question_id: int
    response: ResponseValue = ResponseValue.UNANSWERED


@dataclass(slots=True)
class DimensionScore:
    dimension_id: int
    responses: list[SubQuestionResponse] = field(default_factory=list)
    comments: str = ""
    overridden_score: float | None = None  # management override, 0..100


@dataclass(slots=True)
class Assessment:
    id: str
    department_name: str
    period: str  # e.g. "Q3 2025"
    status: AssessmentStatus
    last_saved: datetime
    scores: list[DimensionScore]
    template_id: str
    submission_notes: str | None = None
    duration: int | None = None  # seconds
    due_date: datetime | None = None

    def score_for(self, dimension_id: int) -> DimensionScore | None:
        return next((s for s in self.scores if s.dimension_id == dimension_id), None)


@dataclass(frozen=True, slots=True)
class ScoreAndColor:
    score: float | None  # None renders as "N/A"
    color: ScoreColor


@dataclass(slots=True)
class HeatmapRow:
    """One department's line on the management heatmap."""

    department_name: str
    assessment_id: str
    status: AssessmentStatus
    scores: dict[str, ScoreAndColor]  # keyed by dimension name, template order
    historical_overall_scores: list[float]  # oldest -> newest
    overall_score: float
    trend: Trend


@dataclass(slots=True)
class ChangeLogEntry:
    id: int | None
    timestamp: datetime
    user: str
    change_description: str
    period: str
