from __future__ import annotations

import csv
from collections.abc import Iterable, Sequence

import pandas as pd

from ..domain.models import Assessment, AssessmentTemplate, HeatmapRow
from ..domain.scoring import calculate_dimension_score

ASSESSMENT_COLUMNS = [
    "Department Name",
    "Assessment Period",
    "Assessment Status",
    "Template Name",
    "Dimension Name",
    "Dimension Score (%)",
    "Sub-Question Text",
    "Response",
    "Dimension Comments",
]

NOT_AVAILABLE = "N/A"


def format_score(score: float | None) -> str:
    return f"{score:.1f}" if score is not None else NOT_AVAILABLE


def _to_csv(df: pd.DataFrame) -> str:
    # Minimal quoting: only fields holding a comma, quote or line break are
    # wrapped, with embedded quotes doubled.
    return df.to_csv(index=False, lineterminator="\n", quoting=csv.QUOTE_MINIMAL)


def assessment_rows(
    export_data: Iterable[tuple[Assessment, AssessmentTemplate]],
) -> list[dict[str, str]]:
    """One record per answered-or-not sub-question; unknown dimensions/questions are skipped."""
    records: list[dict[str, str]] = []
    for assessment, template in export_data:
        for dim_score in assessment.scores:
            dimension = template.dimension_by_id(dim_score.dimension_id)
            if dimension is None:
                continue
            questions = {sq.id: sq for sq in dimension.sub_questions}
            score_text = format_score(calculate_dimension_score(dim_score))

            for response in dim_score.responses:
                sub_question = questions.get(response.sub_question_id)
                if sub_question is None:
                    continue
                records.append(
                    {
                        "Department Name": assessment.department_name,
                        "Assessment Period": assessment.period,
                        "Assessment Status": assessment.status.value,
                        "Template Name": template.name,
                        "Dimension Name": dimension.name,
                        "Dimension Score (%)": score_text,
                        "Sub-Question Text": sub_question.text,
                        "Response": response.response.value,
                        "Dimension Comments": dim_score.comments,
                    }
                )
    return records


def make_assessments_csv(
    export_data: Iterable[tuple[Assessment, AssessmentTemplate]],
) -> str:
    """Flatten assessments to CSV text. Returns an empty string when there is nothing to export."""
    records = assessment_rows(export_data)
    if not records:
        return ""
    return _to_csv(pd.DataFrame(records, columns=ASSESSMENT_COLUMNS))


def make_heatmap_csv(
    rows: Sequence[HeatmapRow], dimension_names: Sequence[str] | None = None
) -> str:
    """
    Heatmap rows as CSV: department, status, one column per dimension, overall
    score and trend. Dimension columns default to every name seen, in order.
    """
    if not rows:
        return ""
    if dimension_names is None:
        dimension_names = list(dict.fromkeys(name for row in rows for name in row.scores))

    columns = ["Department", "Status", *dimension_names, "Overall Score (%)", "Trend"]
    records = []
    for row in rows:
        record = {"Department": row.department_name, "Status": row.status.value}
        for name in dimension_names:
            cell = row.scores.get(name)
            record[name] = format_score(cell.score if cell is not None else None)
        record["Overall Score (%)"] = format_score(row.overall_score)
        record["Trend"] = row.trend.value
        records.append(record)

    return _to_csv(pd.DataFrame(records, columns=columns))
