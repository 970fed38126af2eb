from __future__ import annotations

from datetime import datetime, timezone

import pytest

from govassess.domain.models import (
    Assessment,
    AssessmentStatus,
    AssessmentTemplate,
    Dimension,
    DimensionScore,
    ResponseValue,
    SubQuestion,
    SubQuestionResponse,
)
from govassess.infrastructure.config import DatabaseConfig
from govassess.infrastructure.db import (
    create_database_engine,
    create_session_factory,
    initialise_database,
)

SAVED_AT = datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_template(template_id: str = "tpl-1", names: tuple[str, ...] = ("Rules", "Data")):
    """A small template: one dimension per name, two sub-questions each."""
    return AssessmentTemplate(
        id=template_id,
        name=f"Template {template_id}",
        description="",
        dimensions=[
            Dimension(
                id=i,
                name=name,
                sub_questions=[SubQuestion(1, f"{name} one?"), SubQuestion(2, f"{name} two?")],
            )
            for i, name in enumerate(names, start=1)
        ],
    )


def dim_score(dimension_id: int, *responses: ResponseValue, override: float | None = None):
    return DimensionScore(
        dimension_id=dimension_id,
        responses=[SubQuestionResponse(i, r) for i, r in enumerate(responses, start=1)],
        overridden_score=override,
    )


def make_assessment(
    assessment_id: str,
    department: str,
    period: str,
    *overrides: float | None,
    status: AssessmentStatus = AssessmentStatus.DRAFT,
    template_id: str = "tpl-1",
) -> Assessment:
    """
    One DimensionScore per override value. ``None`` leaves that dimension
    entirely unanswered.
    """
    unanswered = (ResponseValue.UNANSWERED, ResponseValue.UNANSWERED)
    return Assessment(
        id=assessment_id,
        department_name=department,
        period=period,
        status=status,
        last_saved=SAVED_AT,
        scores=[dim_score(i, *unanswered, override=v) for i, v in enumerate(overrides, start=1)],
        template_id=template_id,
    )


@pytest.fixture
def template() -> AssessmentTemplate:
    return make_template()


@pytest.fixture
def session_factory():
    engine = create_database_engine(DatabaseConfig(sqlite_path=":memory:"))
    initialise_database(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def session(session_factory):
    """An in-memory SQLite session."""
    s = session_factory()
    yield s
    s.close()
