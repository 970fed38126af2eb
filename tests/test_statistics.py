from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from conftest import SAVED_AT, make_assessment
from govassess.domain.models import AssessmentStatus
from govassess.domain.statistics import submission_statistics

SUBMITTED = AssessmentStatus.SUBMITTED
LOCKED = AssessmentStatus.LOCKED


def finished(period, duration, status=SUBMITTED, due=None):
    return replace(
        make_assessment(f"a-{period}", "Finance", period, 50.0, status=status),
        duration=duration,
        due_date=due,
    )


class TestSubmissionStatistics:
    def test_no_history(self):
        stats = submission_statistics([])
        assert stats.completed_count == 0
        assert stats.best_time is None
        assert stats.average_time is None
        assert stats.on_time_rate is None

    def test_drafts_and_untimed_submissions_do_not_count(self):
        history = [
            make_assessment("d", "Finance", "Q1 2024", 40.0),
            finished("Q2 2024", None),
            finished("Q3 2024", 0),
        ]
        assert submission_statistics(history).completed_count == 0

    def test_times_over_submitted_and_locked(self):
        history = [
            finished("Q1 2024", 600, status=LOCKED),
            finished("Q2 2024", 1200),
            replace(finished("Q3 2024", 300), status=AssessmentStatus.DRAFT),
        ]
        stats = submission_statistics(history)
        assert stats.completed_count == 2
        assert stats.best_time == 600
        assert stats.average_time == pytest.approx(900.0)

    def test_on_time_rate_without_due_dates_is_none(self):
        stats = submission_statistics([finished("Q1 2024", 600)])
        assert stats.completed_count == 1
        assert stats.on_time_rate is None

    def test_on_time_rate_counts_only_dated_assessments(self):
        history = [
            finished("Q1 2024", 600, due=SAVED_AT + timedelta(days=1)),
            finished("Q2 2024", 600, due=SAVED_AT),  # saved exactly at the deadline
            finished("Q3 2024", 600, due=SAVED_AT - timedelta(days=1)),
            finished("Q4 2024", 600),
        ]
        assert submission_statistics(history).on_time_rate == pytest.approx(200 / 3)

    def test_naive_due_date_treated_as_utc(self):
        naive_due = datetime(2024, 3, 2)
        assert SAVED_AT.tzinfo is timezone.utc
        stats = submission_statistics([finished("Q1 2024", 60, due=naive_due)])
        assert stats.on_time_rate == 100.0
