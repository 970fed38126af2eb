"""
Per-department submission statistics: how long completed assessments took
and how many were in before their due date.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from .models import Assessment, AssessmentStatus

COMPLETED_STATUSES = (AssessmentStatus.SUBMITTED, AssessmentStatus.LOCKED)


@dataclass(frozen=True, slots=True)
class SubmissionStatistics:
    completed_count: int
    best_time: int | None  # seconds
    average_time: float | None  # seconds
    on_time_rate: float | None  # percent of completed assessments that had a due date


def _utc(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def submission_statistics(history: Iterable[Assessment]) -> SubmissionStatistics:
    """
    Summarise a department's completed assessments.

    An assessment counts as completed when it is Submitted or Locked and has
    a recorded duration. It is on time when it was last saved no later than
    its due date. Rates and times are ``None`` when nothing qualifies.

    Example:
        >>> submission_statistics([]).completed_count
        0
    """
    completed = [a for a in history if a.status in COMPLETED_STATUSES and a.duration]
    durations = [a.duration for a in completed if a.duration > 0]
    with_due_dates = [a for a in completed if a.due_date is not None]
    on_time = [a for a in with_due_dates if _utc(a.last_saved) <= _utc(a.due_date)]

    return SubmissionStatistics(
        completed_count=len(completed),
        best_time=min(durations) if durations else None,
        average_time=sum(durations) / len(durations) if durations else None,
        on_time_rate=len(on_time) / len(with_due_dates) * 100 if with_due_dates else None,
    )
