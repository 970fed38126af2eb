"""
Scoring rules for governance self-assessments.

Everything here is pure: functions take domain objects and return numbers or
labels, never touching storage. Unanswered sub-questions are excluded from a
dimension's average, dimensions without any answers are excluded from the
overall average, and a management override always wins over responses.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable, Sequence
from functools import cmp_to_key

from ..infrastructure.exceptions import InvariantViolationError
from .models import (
    Assessment,
    AssessmentTemplate,
    Dimension,
    DimensionScore,
    ResponseValue,
    ScoreAndColor,
    ScoreColor,
    Trend,
)

RESPONSE_POINTS: dict[ResponseValue, int] = {
    ResponseValue.YES: 100,
    ResponseValue.WORK_IN_PROGRESS: 50,
    ResponseValue.NO: 0,
    ResponseValue.UNANSWERED: 0,
}

MAX_POINTS = 100

# Colour bands. ATTENTION_THRESHOLD is also the "needs attention" cut-off.
GREEN_THRESHOLD = 80.0
ATTENTION_THRESHOLD = 50.0

_PERIOD_PART = re.compile(r"\d+", re.ASCII)


def calculate_dimension_score(dim_score: DimensionScore) -> float | None:
    """
    Percentage score for one dimension, or None when nothing is answered yet.

    An override is returned verbatim regardless of the responses. Otherwise the
    result is the mean of per-question points over answered questions only, so
    one YES out of five questions scores 100, not 20.
    """
    if dim_score.overridden_score is not None:
        return dim_score.overridden_score

    answered = [r for r in dim_score.responses if r.response != ResponseValue.UNANSWERED]
    if not answered:
        return None

    total_points = sum(RESPONSE_POINTS[r.response] for r in answered)
    max_points = len(answered) * MAX_POINTS
    return total_points / max_points * 100


def calculate_overall_score(scores: Iterable[DimensionScore]) -> float:
    """
    Unweighted mean of the dimension scores that have data; 0.0 when none do.
    """
    valid = [
        s
        for s in (calculate_dimension_score(ds) for ds in scores)
        if s is not None and not math.isnan(s)
    ]
    if not valid:
        return 0.0
    return sum(valid) / len(valid)


def _parse_period(label: str) -> tuple[int, int] | None:
    parts = label.split()
    if len(parts) != 2:
        return None
    quarter, year = parts
    if quarter.startswith("Q"):
        quarter = quarter[1:]
    if not (_PERIOD_PART.fullmatch(quarter) and _PERIOD_PART.fullmatch(year)):
        return None
    return int(year), int(quarter)


def compare_periods(a: str, b: str) -> int:
    """
    Order period labels such as "Q3 2025" chronologically.

    Year is compared first, then quarter. Labels that do not parse fall back to
    plain string ordering instead of raising.

    >>> compare_periods("Q4 2023", "Q1 2024") < 0
    True
    """
    parsed_a = _parse_period(a)
    parsed_b = _parse_period(b)
    if parsed_a is None or parsed_b is None:
        return (a > b) - (a < b)

    year_a, quarter_a = parsed_a
    year_b, quarter_b = parsed_b
    if year_a != year_b:
        return year_a - year_b
    return quarter_a - quarter_b


period_sort_key = cmp_to_key(compare_periods)


def sort_periods(periods: Iterable[str], newest_first: bool = False) -> list[str]:
    return sorted(periods, key=period_sort_key, reverse=newest_first)


def sort_assessments_by_period(assessments: Iterable[Assessment]) -> list[Assessment]:
    """Oldest first. Python's sort is stable, so equal periods keep input order."""
    return sorted(assessments, key=lambda a: period_sort_key(a.period))


def available_periods(assessments: Iterable[Assessment]) -> list[str]:
    """The period selector options: "all" followed by distinct periods, newest first."""
    distinct = dict.fromkeys(a.period for a in assessments)
    return ["all", *sort_periods(distinct, newest_first=True)]


def classify_trend(historical_overall_scores: Sequence[float]) -> Trend:
    """Label the movement between the two most recent overall scores."""
    if len(historical_overall_scores) < 2:
        return Trend.NEW
    previous, latest = historical_overall_scores[-2], historical_overall_scores[-1]
    if latest > previous:
        return Trend.IMPROVING
    if latest < previous:
        return Trend.DECLINING
    return Trend.STABLE


def score_and_color(score: float | None) -> ScoreAndColor:
    if score is None or math.isnan(score):
        return ScoreAndColor(None, ScoreColor.GRAY)
    if score >= GREEN_THRESHOLD:
        return ScoreAndColor(score, ScoreColor.GREEN)
    if score >= ATTENTION_THRESHOLD:
        return ScoreAndColor(score, ScoreColor.AMBER)
    return ScoreAndColor(score, ScoreColor.RED)


def needs_attention(score: float) -> bool:
    return score < ATTENTION_THRESHOLD


def count_answered(scores: Iterable[DimensionScore]) -> tuple[int, int]:
    """(answered, total) sub-question counts across the given dimension scores."""
    answered = total = 0
    for ds in scores:
        total += len(ds.responses)
        answered += sum(1 for r in ds.responses if r.response != ResponseValue.UNANSWERED)
    return answered, total


def completion_ratio(assessment: Assessment) -> float:
    answered, total = count_answered(assessment.scores)
    return answered / total if total else 0.0


def validate_dimension_score(dim_score: DimensionScore, dimension: Dimension) -> None:
    """
    Check that a score record matches its dimension's sub-questions exactly.

    Raises:
        InvariantViolationError: on an unknown, duplicate or missing sub-question
            response, a mismatched dimension id, or an override outside 0..100
    """
    details = {"dimension_id": dimension.id, "dimension_name": dimension.name}
    if dim_score.dimension_id != dimension.id:
        raise InvariantViolationError(
            f"Score for dimension {dim_score.dimension_id} checked against dimension "
            f"{dimension.id}",
            details,
        )

    expected = set(dimension.sub_question_ids())
    seen: set[int] = set()
    for r in dim_score.responses:
        if r.sub_question_id not in expected:
            raise InvariantViolationError(
                f"Sub-question {r.sub_question_id} is not part of dimension '{dimension.name}'",
                details,
            )
        if r.sub_question_id in seen:
            raise InvariantViolationError(
                f"Sub-question {r.sub_question_id} answered twice in dimension "
                f"'{dimension.name}'",
                details,
            )
        seen.add(r.sub_question_id)

    missing = expected - seen
    if missing:
        raise InvariantViolationError(
            f"Dimension '{dimension.name}' is missing responses for sub-questions "
            f"{sorted(missing)}",
            details,
        )

    override = dim_score.overridden_score
    if override is not None and not (0 <= override <= MAX_POINTS):
        raise InvariantViolationError(
            f"Override {override} for dimension '{dimension.name}' is outside 0-100",
            details,
        )


def validate_assessment(assessment: Assessment, template: AssessmentTemplate) -> None:
    """One well-formed DimensionScore per template dimension, and nothing else."""
    by_dimension: dict[int, DimensionScore] = {}
    for ds in assessment.scores:
        if ds.dimension_id in by_dimension:
            raise InvariantViolationError(
                f"Assessment {assessment.id} scores dimension {ds.dimension_id} twice",
                {"assessment_id": assessment.id},
            )
        by_dimension[ds.dimension_id] = ds

    for dimension in template.dimensions:
        ds = by_dimension.pop(dimension.id, None)
        if ds is None:
            raise InvariantViolationError(
                f"Assessment {assessment.id} has no score for dimension '{dimension.name}'",
                {"assessment_id": assessment.id, "dimension_id": dimension.id},
            )
        validate_dimension_score(ds, dimension)

    if by_dimension:
        raise InvariantViolationError(
            f"Assessment {assessment.id} scores dimensions {sorted(by_dimension)} "
            f"that template {template.id} does not define",
            {"assessment_id": assessment.id, "template_id": template.id},
        )
