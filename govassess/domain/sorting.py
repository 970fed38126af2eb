from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any

from ..infrastructure.exceptions import ValidationError
from .models import AssessmentStatus, HeatmapRow, Trend
from .scoring import needs_attention


class StatusFilter(str, Enum):
    ALL = "all"
    DRAFT = "draft"
    SUBMITTED = "submitted"
    LOCKED = "locked"
    NEEDS_ATTENTION = "needsAttention"


class SortDirection(str, Enum):
    ASCENDING = "ascending"
    DESCENDING = "descending"


DEPARTMENT_KEY = "departmentName"
OVERALL_KEY = "overallScore"
STATUS_KEY = "status"
TREND_KEY = "trend"

STATUS_RANK: dict[AssessmentStatus, int] = {
    AssessmentStatus.DRAFT: 0,
    AssessmentStatus.SUBMITTED: 1,
    AssessmentStatus.LOCKED: 2,
}

TREND_RANK: dict[Trend, int] = {
    Trend.IMPROVING: 0,
    Trend.STABLE: 1,
    Trend.NEW: 2,
    Trend.DECLINING: 3,
}

# Rank for a dimension column the row has no score for ("N/A").
MISSING_SCORE = -1.0


@dataclass(frozen=True, slots=True)
class SortConfig:
    key: str = DEPARTMENT_KEY
    direction: SortDirection = SortDirection.ASCENDING

    def toggle(self, key: str) -> SortConfig:
        """Re-selecting the current key flips direction; a new key starts ascending."""
        if key == self.key and self.direction == SortDirection.ASCENDING:
            return SortConfig(key, SortDirection.DESCENDING)
        return SortConfig(key, SortDirection.ASCENDING)


def parse_status_filter(value: str | StatusFilter) -> StatusFilter:
    try:
        return StatusFilter(value)
    except ValueError as e:
        allowed = ", ".join(f.value for f in StatusFilter)
        raise ValidationError("status_filter", f"must be one of {allowed}", value) from e


def _status_predicate(status_filter: StatusFilter) -> Callable[[HeatmapRow], bool]:
    if status_filter == StatusFilter.ALL:
        return lambda row: True
    if status_filter == StatusFilter.NEEDS_ATTENTION:
        return lambda row: needs_attention(row.overall_score)
    return lambda row: row.status.value.lower() == status_filter.value


def filter_rows(
    rows: Iterable[HeatmapRow],
    search: str = "",
    status_filter: str | StatusFilter = StatusFilter.ALL,
) -> list[HeatmapRow]:
    """Keep rows passing the status filter and whose department name contains ``search``."""
    keep_status = _status_predicate(parse_status_filter(status_filter))
    needle = search.lower()
    return [
        row
        for row in rows
        if keep_status(row) and (not needle or needle in row.department_name.lower())
    ]


def sort_key_for(key: str) -> Callable[[HeatmapRow], Any]:
    if key == DEPARTMENT_KEY:
        return lambda row: row.department_name
    if key == OVERALL_KEY:
        return lambda row: row.overall_score
    if key == STATUS_KEY:
        return lambda row: STATUS_RANK[row.status]
    if key == TREND_KEY:
        return lambda row: TREND_RANK[row.trend]

    def dimension_score(row: HeatmapRow) -> float:
        cell = row.scores.get(key)
        if cell is None or cell.score is None:
            return MISSING_SCORE
        return cell.score

    return dimension_score


def sort_rows(rows: Iterable[HeatmapRow], config: SortConfig) -> list[HeatmapRow]:
    # sorted() stays stable with reverse=True, so ties keep their input order.
    return sorted(
        rows,
        key=sort_key_for(config.key),
        reverse=config.direction == SortDirection.DESCENDING,
    )


def filter_and_sort_rows(
    rows: Iterable[HeatmapRow],
    search: str = "",
    status_filter: str | StatusFilter = StatusFilter.ALL,
    config: SortConfig | None = None,
) -> list[HeatmapRow]:
    filtered = filter_rows(rows, search, status_filter)
    return sort_rows(filtered, config or SortConfig())
