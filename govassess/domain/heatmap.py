"""
Projection of assessment snapshots onto the management heatmap.

Rows are rebuilt from scratch on every call; nothing is cached between calls.
Dimensions are matched by name rather than id so departments assessed on
different template versions still line up column by column.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Literal

from ..infrastructure.logging import get_logger
from .models import (
    Assessment,
    AssessmentTemplate,
    HeatmapRow,
    ScoreAndColor,
    ScoreColor,
)
from .scoring import (
    calculate_dimension_score,
    calculate_overall_score,
    classify_trend,
    score_and_color,
    sort_assessments_by_period,
)

ALL_PERIODS = "all"

logger = get_logger(__name__)

Direction = Literal["up", "down", "same"]


def group_by_department(assessments: Iterable[Assessment]) -> dict[str, list[Assessment]]:
    """Department name -> its assessments, oldest period first."""
    groups: dict[str, list[Assessment]] = {}
    for a in assessments:
        groups.setdefault(a.department_name, []).append(a)
    return {name: sort_assessments_by_period(group) for name, group in groups.items()}


def select_assessment_for_period(
    history: list[Assessment], period_filter: str
) -> Assessment | None:
    if not history:
        return None
    if period_filter == ALL_PERIODS:
        return history[-1]
    return next((a for a in history if a.period == period_filter), None)


def dimension_scores_by_name(
    assessment: Assessment, template: AssessmentTemplate | None
) -> dict[str, ScoreAndColor]:
    """Scores for every template dimension, in template order. Empty without a template."""
    scores: dict[str, ScoreAndColor] = {}
    if template is None:
        return scores
    for dimension in template.dimensions:
        dim_score = assessment.score_for(dimension.id)
        value = calculate_dimension_score(dim_score) if dim_score is not None else None
        scores[dimension.name] = score_and_color(value)
    return scores


def build_heatmap(
    assessments: Iterable[Assessment],
    templates: Iterable[AssessmentTemplate] | Mapping[str, AssessmentTemplate],
    period_filter: str = ALL_PERIODS,
) -> list[HeatmapRow]:
    """
    One row per department that has an assessment for ``period_filter``.

    ``"all"`` selects each department's latest assessment. For a named period,
    departments without an assessment in that period are left out entirely.
    The overall-score history and trend always span every period.
    """
    if isinstance(templates, Mapping):
        template_map = dict(templates)
    else:
        template_map = {t.id: t for t in templates}

    rows: list[HeatmapRow] = []
    for department_name, history in group_by_department(assessments).items():
        selected = select_assessment_for_period(history, period_filter)
        if selected is None:
            continue

        template = template_map.get(selected.template_id)
        if template is None:
            logger.warning(
                "Template %s missing for assessment %s; dimension scores left empty",
                selected.template_id,
                selected.id,
            )

        historical = [calculate_overall_score(a.scores) for a in history]
        rows.append(
            HeatmapRow(
                department_name=department_name,
                assessment_id=selected.id,
                status=selected.status,
                scores=dimension_scores_by_name(selected, template),
                historical_overall_scores=historical,
                overall_score=calculate_overall_score(selected.scores),
                trend=classify_trend(historical),
            )
        )

    logger.debug("Built heatmap for period %r: %d rows", period_filter, len(rows))
    return rows


@dataclass(slots=True)
class PeriodCell:
    period: str
    score: float | None
    color: ScoreColor
    direction: Direction | None  # vs the previous period; None when either side lacks data


@dataclass(slots=True)
class DimensionHistory:
    dimension_name: str
    cells: list[PeriodCell]


def compare_dimension_history(
    history: list[tuple[Assessment, AssessmentTemplate]],
) -> list[DimensionHistory]:
    """
    Period-by-period scores for each dimension of the most recent template.

    ``history`` must already be in chronological order. Older assessments are
    matched by dimension name, so renumbered dimensions still compare.
    """
    if not history:
        return []

    _, latest_template = history[-1]
    result: list[DimensionHistory] = []
    for master in latest_template.dimensions:
        cells: list[PeriodCell] = []
        previous: float | None = None
        for index, (assessment, template) in enumerate(history):
            matching = template.dimension_by_name(master.name)
            dim_score = assessment.score_for(matching.id) if matching is not None else None
            score = calculate_dimension_score(dim_score) if dim_score is not None else None

            direction: Direction | None = None
            if index > 0 and score is not None and previous is not None:
                if score > previous:
                    direction = "up"
                elif score < previous:
                    direction = "down"
                else:
                    direction = "same"

            cells.append(
                PeriodCell(
                    period=assessment.period,
                    score=score,
                    color=score_and_color(score).color,
                    direction=direction,
                )
            )
            previous = score
        result.append(DimensionHistory(master.name, cells))
    return result
