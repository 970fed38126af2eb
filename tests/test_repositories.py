"""
Repository, seeding and unit-of-work tests against in-memory SQLite.
"""

from datetime import datetime, timezone

import pytest

from conftest import make_assessment, make_template
from govassess.domain import workflow
from govassess.domain.models import AssessmentStatus, ResponseValue
from govassess.infrastructure.exceptions import (
    AssessmentNotFoundError,
    IntegrityError,
    TemplateInUseError,
    TemplateNotFoundError,
)
from govassess.infrastructure.repositories import AssessmentRepo, ChangeLogRepo, TemplateRepo
from govassess.infrastructure.uow import UnitOfWork
from govassess.utils.seed import (
    DEFAULT_TEMPLATE_ID,
    default_template,
    seed_default_template,
    seed_demo_assessments,
)


def store(session, *assessments, template=None):
    TemplateRepo(session).save(template or make_template())
    repo = AssessmentRepo(session)
    for a in assessments:
        repo.create(a)
    return repo


class TestTemplateRepo:
    def test_round_trip(self, session):
        repo = TemplateRepo(session)
        repo.save(make_template())
        session.commit()

        loaded = repo.get_domain("tpl-1")
        assert loaded == make_template()

    def test_get_required_missing(self, session):
        with pytest.raises(TemplateNotFoundError):
            TemplateRepo(session).get_required("nope")

    def test_save_replaces_dimensions(self, session):
        repo = TemplateRepo(session)
        repo.save(make_template())
        session.commit()

        repo.save(make_template(names=("Data", "Rules", "Access")))
        session.commit()

        loaded = repo.get_domain("tpl-1")
        assert [d.name for d in loaded.dimensions] == ["Data", "Rules", "Access"]

    def test_default_is_oldest(self, session):
        repo = TemplateRepo(session)
        assert repo.default() is None
        repo.save(make_template("first"))
        repo.save(make_template("second"))
        session.commit()
        assert repo.default().id == "first"

    def test_delete_refused_while_in_use(self, session):
        store(session, make_assessment("a", "Finance", "Q1 2024", None, None))
        session.commit()

        with pytest.raises(TemplateInUseError):
            TemplateRepo(session).delete_by_id("tpl-1")

    def test_schema_frozen_while_in_use(self, session):
        store(session, make_assessment("a", "Finance", "Q1 2024", None, None))
        session.commit()
        repo = TemplateRepo(session)

        with pytest.raises(TemplateInUseError) as excinfo:
            repo.save(make_template(names=("Rules", "Data", "Access")))
        assert excinfo.value.action == "change"
        session.rollback()

        renamed = make_template()
        renamed.name = "Template tpl-1 (2024)"
        repo.save(renamed)
        session.commit()

        loaded = repo.get_domain("tpl-1")
        assert loaded.name == "Template tpl-1 (2024)"
        assert loaded.dimensions == make_template().dimensions

    def test_delete_unused(self, session):
        repo = TemplateRepo(session)
        repo.save(make_template())
        session.commit()

        repo.delete_by_id("tpl-1")
        session.commit()
        assert repo.get_domain("tpl-1") is None


class TestAssessmentRepo:
    def test_create_and_load(self, session):
        assessment = make_assessment("a", "Finance", "Q1 2024", None, 65.0)
        repo = store(session, assessment)
        session.commit()

        loaded = repo.get_required("a")
        assert loaded == assessment
        assert loaded.last_saved.tzinfo is not None

    def test_missing(self, session):
        with pytest.raises(AssessmentNotFoundError):
            AssessmentRepo(session).get_required("missing")

    def test_one_assessment_per_department_and_period(self, session):
        repo = store(session, make_assessment("a", "Finance", "Q1 2024", None, None))
        with pytest.raises(IntegrityError):
            repo.create(make_assessment("b", "Finance", "Q1 2024", None, None))

    def test_save_updates_in_place(self, session):
        repo = store(session, make_assessment("a", "Finance", "Q1 2024", None, None))
        session.commit()

        updated = workflow.record_response(repo.get_required("a"), 2, 1, ResponseValue.YES)
        updated = workflow.apply_override(updated, 1, 30.0)
        repo.save(workflow.submit(updated, notes="Partial"))
        session.commit()

        loaded = repo.get_required("a")
        assert loaded.status == AssessmentStatus.SUBMITTED
        assert loaded.submission_notes == "Partial"
        assert loaded.score_for(2).responses[0].response == ResponseValue.YES
        assert loaded.score_for(1).overridden_score == 30.0

    def test_history_is_chronological(self, session):
        repo = store(
            session,
            make_assessment("q2", "Finance", "Q2 2024", None, None),
            make_assessment("q4", "Finance", "Q4 2023", None, None),
            make_assessment("hr", "HR", "Q1 2024", None, None),
            make_assessment("q1", "Finance", "Q1 2024", None, None),
        )
        session.commit()

        assert [a.id for a in repo.list_for_department("Finance")] == ["q4", "q1", "q2"]
        assert repo.latest_for_department("Finance").id == "q2"
        assert repo.latest_for_department("Legal") is None
        assert repo.find("HR", "Q1 2024").id == "hr"
        assert repo.count_for_template("tpl-1") == 4

    def test_delete_returns_removed_assessment(self, session):
        repo = store(session, make_assessment("a", "Finance", "Q1 2024", None, None))
        session.commit()

        removed = repo.delete_by_id("a")
        session.commit()

        assert removed.department_name == "Finance"
        assert repo.get_domain("a") is None
        with pytest.raises(AssessmentNotFoundError):
            repo.delete_by_id("a")


class TestChangeLogRepo:
    def test_newest_first_per_department(self, session):
        repo = ChangeLogRepo(session)
        repo.record(
            "Diana", "Finance", "Locked assessment for Finance", "Q1 2024",
            timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
        repo.record(
            "Diana", "Finance", "Unlocked assessment for Finance", "Q1 2024",
            timestamp=datetime(2024, 2, 1, tzinfo=timezone.utc),
        )
        repo.record("Diana", "HR", "Locked assessment for HR", "Q1 2024")
        session.commit()

        entries = repo.list_for_department("Finance")
        assert [e.change_description for e in entries] == [
            "Unlocked assessment for Finance",
            "Locked assessment for Finance",
        ]
        assert entries[0].timestamp.tzinfo is not None

    @pytest.fixture
    def audit_log(self, session):
        repo = ChangeLogRepo(session)
        for day, (user, department, action, period) in enumerate(
            [
                ("Diana Prince", "Finance", "Locked", "Q4 2023"),
                ("Edward Nygma", "Sales", "Deleted", "Q1 2024"),
                ("Diana Prince", "Sales", "Unlocked", "Q1 2024"),
            ],
            start=1,
        ):
            repo.record(
                user, department, f"{action} assessment for {department}", period,
                timestamp=datetime(2024, 1, day, tzinfo=timezone.utc),
            )
        session.commit()
        return repo

    def test_list_all_newest_first(self, audit_log):
        assert [e.change_description for e in audit_log.list_all()] == [
            "Unlocked assessment for Sales",
            "Deleted assessment for Sales",
            "Locked assessment for Finance",
        ]

    def test_list_all_by_user(self, audit_log):
        entries = audit_log.list_all(user="Edward Nygma")
        assert [e.change_description for e in entries] == ["Deleted assessment for Sales"]
        assert len(audit_log.list_all(user="all")) == 3

    def test_list_all_by_period(self, audit_log):
        entries = audit_log.list_all(period="Q4 2023")
        assert [e.user for e in entries] == ["Diana Prince"]

    def test_list_all_search_is_case_insensitive(self, audit_log):
        assert len(audit_log.list_all(search="SALES")) == 2
        assert len(audit_log.list_all(search="nygma")) == 1
        assert len(audit_log.list_all(search="q4 2023")) == 1
        assert audit_log.list_all(search="100%") == []

    def test_filters_combine(self, audit_log):
        entries = audit_log.list_all(user="Diana Prince", period="Q1 2024", search="unlock")
        assert [e.change_description for e in entries] == ["Unlocked assessment for Sales"]

    def test_distinct_options(self, audit_log):
        assert audit_log.distinct_users() == ["Diana Prince", "Edward Nygma"]
        assert sorted(audit_log.distinct_periods()) == ["Q1 2024", "Q4 2023"]


class TestSeed:
    def test_default_template_shape(self):
        template = default_template()
        assert template.id == DEFAULT_TEMPLATE_ID
        assert len(template.dimensions) == 7
        assert template.dimensions[0].name == "Do We Know the Rules?"
        assert all(len(d.sub_questions) == 5 for d in template.dimensions)

    def test_seed_is_idempotent(self, session):
        assert seed_default_template(session) is True
        session.commit()
        assert seed_default_template(session) is False
        assert TemplateRepo(session).get_domain(DEFAULT_TEMPLATE_ID) == default_template()

    def test_demo_assessments(self, session):
        assert seed_demo_assessments(session) == 4
        session.commit()
        assert seed_demo_assessments(session) == 0

        repo = AssessmentRepo(session)
        assert [a.period for a in repo.list_for_department("Engineering")] == ["Q4 2023", "Q1 2024"]
        assert repo.get_required("assessment-4").submission_notes


class TestUnitOfWork:
    def test_commits_on_success(self, session_factory):
        with UnitOfWork(session_factory).begin() as s:
            TemplateRepo(s).save(make_template())

        with session_factory() as s:
            assert TemplateRepo(s).get_domain("tpl-1") is not None

    def test_rolls_back_on_error(self, session_factory):
        with pytest.raises(RuntimeError):
            with UnitOfWork(session_factory).begin() as s:
                TemplateRepo(s).save(make_template())
                raise RuntimeError("boom")

        with session_factory() as s:
            assert TemplateRepo(s).get_domain("tpl-1") is None
