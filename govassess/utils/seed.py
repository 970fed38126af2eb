from __future__ import annotations

import random
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..domain.models import (
    Assessment,
    AssessmentStatus,
    AssessmentTemplate,
    Dimension,
    DimensionScore,
    ResponseValue,
    SubQuestion,
    SubQuestionResponse,
)
from ..domain.workflow import new_assessment
from ..infrastructure.logging import get_logger
from ..infrastructure.repositories import AssessmentRepo, ChangeLogRepo, TemplateRepo

logger = get_logger(__name__)

DEFAULT_TEMPLATE_ID = "template-default-q1-2024"

DEFAULT_DIMENSIONS: list[tuple[str, list[str]]] = [
    (
        "Do We Know the Rules?",
        [
            "Have 80%+ of staff completed mandatory data governance training in the last 12 months?",
            "Are relevant industry and sector data regulations documented and accessible to all staff?",
            "Is there a Data Risk Register that is reviewed at least quarterly?",
            "Are new staff onboarded with data governance training within their first month?",
            "Do staff know who to contact for data governance questions?",
        ],
    ),
    (
        "What Data Do We Have?",
        [
            "Do you have an up-to-date inventory of all digital data records your department holds?",
            "Do you have an up-to-date inventory of all physical data records your department holds?",
            "Are retention schedules defined for all data types you hold?",
            "Are archival schedules defined and followed for data no longer actively used?",
            "Do you have secure deletion/destruction procedures for data you no longer need?",
        ],
    ),
    (
        "Where Is Our Data Sitting?",
        [
            "Have you listed all systems (cloud, on-premise, 3rd party) where your department's "
            "data resides?",
            "Do you have data flow diagrams showing internal data movement within your department?",
            "Do you have data flow diagrams showing external data flows "
            "(data leaving your department)?",
            "Are external parties you share data with assessed for their data governance standards?",
            "Do you know where backup copies of your data are stored?",
        ],
    ),
    (
        "Who Owns What Data?",
        [
            "Is there a named data owner/steward for each major data asset in your department?",
            "Do data owners have documented responsibilities and authority?",
            "Do data owners have the resources and training to fulfill their role?",
            "Is data ownership information easily accessible to staff who need it?",
            "Are data ownership assignments reviewed annually?",
        ],
    ),
    (
        "Who Can Access Our Data?",
        [
            "Are all data assets classified by sensitivity (e.g., Public, Internal, Confidential)?",
            "Is access to sensitive data controlled by role-based permissions?",
            "Are access permissions reviewed at least quarterly to remove inappropriate access?",
            "Are all access requests formally logged and approved?",
            "Is there segregation of duties for highly sensitive data "
            "(no single person has complete access)?",
        ],
    ),
    (
        "How Clean Is Our Data?",
        [
            "Are data quality standards defined for your department's key data assets?",
            "Do you have processes to measure data quality (accuracy, completeness, consistency)?",
            "Are data quality issues tracked and logged?",
            "Are there defined processes for remediating data quality issues?",
            "Is data quality reviewed regularly (at least quarterly)?",
        ],
    ),
    (
        "Are We Processing It Ethically?",
        [
            "Do you conduct Data Protection Impact Assessments (DPIAs) for new data processing "
            "activities?",
            "Are privacy and ethical considerations reviewed for all new technology initiatives?",
            "Do you apply Data Protection by Design principles in new systems/processes?",
            "Do you have clear procedures for responding to data breaches or incidents?",
            "Can data subjects (people whose data you hold) easily exercise their rights "
            "(access, correction, deletion)?",
        ],
    ),
]


def default_template() -> AssessmentTemplate:
    return AssessmentTemplate(
        id=DEFAULT_TEMPLATE_ID,
        name="Q1 2024 Standard Assessment",
        description=(
            "The standard data governance assessment template for the first quarter of 2024."
        ),
        dimensions=[
            Dimension(
                id=dim_id,
                name=name,
                sub_questions=[
                    SubQuestion(sq_id, text) for sq_id, text in enumerate(questions, start=1)
                ],
            )
            for dim_id, (name, questions) in enumerate(DEFAULT_DIMENSIONS, start=1)
        ],
    )


def seed_default_template(session: Session) -> bool:
    """
    Store the default template unless it already exists.

    Returns:
        True if the template was created, False if it was already present.
    """
    repo = TemplateRepo(session)
    if repo.get(DEFAULT_TEMPLATE_ID) is not None:
        logger.info("Default template already present")
        return False
    repo.save(default_template())
    return True


def _random_scores(
    template: AssessmentTemplate, rng: random.Random
) -> list[DimensionScore]:
    choices = [ResponseValue.YES, ResponseValue.WORK_IN_PROGRESS, ResponseValue.NO]
    return [
        DimensionScore(
            dimension_id=dim.id,
            responses=[SubQuestionResponse(sq.id, rng.choice(choices)) for sq in dim.sub_questions],
            comments=f"Some comments for dimension {dim.id}.",
        )
        for dim in template.dimensions
    ]


def demo_assessments(rng: random.Random | None = None) -> list[Assessment]:
    """
    Sample departments for local development: Engineering over two periods,
    a blank Sales draft and an incomplete Human Resources submission.
    """
    rng = rng or random.Random(2024)
    template = default_template()

    hr_scores = _random_scores(template, rng)
    for response in hr_scores[2].responses:
        response.response = ResponseValue.UNANSWERED

    return [
        Assessment(
            id="assessment-1",
            department_name="Engineering",
            period="Q4 2023",
            status=AssessmentStatus.LOCKED,
            last_saved=datetime(2023, 12, 15, 10, 0, tzinfo=timezone.utc),
            scores=_random_scores(template, rng),
            template_id=template.id,
        ),
        Assessment(
            id="assessment-2",
            department_name="Engineering",
            period="Q1 2024",
            status=AssessmentStatus.SUBMITTED,
            last_saved=datetime(2024, 3, 20, 14, 30, tzinfo=timezone.utc),
            scores=_random_scores(template, rng),
            template_id=template.id,
        ),
        new_assessment("assessment-3", "Sales", template, "Q1 2024"),
        Assessment(
            id="assessment-4",
            department_name="Human Resources",
            period="Q1 2024",
            status=AssessmentStatus.SUBMITTED,
            last_saved=datetime(2024, 3, 18, 11, 0, tzinfo=timezone.utc),
            scores=hr_scores,
            template_id=template.id,
            submission_notes=(
                "Submitted incomplete due to key personnel being on leave. "
                "Will finalize next quarter."
            ),
        ),
    ]


def seed_demo_assessments(session: Session, rng: random.Random | None = None) -> int:
    """
    Add the sample assessments (and the default template they need).
    Assessments whose id already exists are skipped.

    Returns:
        Number of assessments inserted.
    """
    seed_default_template(session)
    repo = AssessmentRepo(session)
    inserted = 0
    for assessment in demo_assessments(rng):
        if repo.get(assessment.id) is not None:
            continue
        repo.create(assessment)
        inserted += 1

    if inserted:
        ChangeLogRepo(session).record(
            user="Diana Prince",
            department_name="Engineering",
            description="Locked assessment for Engineering",
            period="Q4 2023",
            timestamp=datetime(2023, 12, 20, 9, 0, tzinfo=timezone.utc),
        )
    logger.info("Seeded %d demo assessments", inserted)
    return inserted
