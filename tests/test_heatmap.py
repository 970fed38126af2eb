from conftest import dim_score, make_assessment, make_template
from govassess.domain.heatmap import (
    build_heatmap,
    compare_dimension_history,
    group_by_department,
    select_assessment_for_period,
)
from govassess.domain.models import (
    AssessmentStatus,
    AssessmentTemplate,
    Dimension,
    ResponseValue,
    ScoreAndColor,
    ScoreColor,
    SubQuestion,
    Trend,
)
from govassess.domain.sorting import SortConfig, SortDirection, filter_and_sort_rows


def two_departments():
    """A scores 40 then 70; B scores 90 once."""
    return [
        make_assessment("a1", "A", "Q1 2024", 40.0),
        make_assessment("b1", "B", "Q2 2024", 90.0),
        make_assessment("a2", "A", "Q2 2024", 70.0),
    ]


class TestGrouping:
    def test_groups_keep_first_seen_order_and_sort_chronologically(self):
        groups = group_by_department(
            [
                make_assessment("x2", "X", "Q2 2024"),
                make_assessment("y1", "Y", "Q1 2024"),
                make_assessment("x1", "X", "Q4 2023"),
            ]
        )
        assert list(groups) == ["X", "Y"]
        assert [a.id for a in groups["X"]] == ["x1", "x2"]

    def test_select_latest_or_exact(self):
        history = [make_assessment("x1", "X", "Q4 2023"), make_assessment("x2", "X", "Q2 2024")]
        assert select_assessment_for_period(history, "all").id == "x2"
        assert select_assessment_for_period(history, "Q4 2023").id == "x1"
        assert select_assessment_for_period(history, "Q1 2024") is None


class TestBuildHeatmap:
    def test_end_to_end_scenario(self):
        rows = build_heatmap(two_departments(), [make_template()], period_filter="all")

        by_name = {r.department_name: r for r in rows}
        assert by_name["A"].overall_score == 70
        assert by_name["A"].trend == Trend.IMPROVING
        assert by_name["A"].historical_overall_scores == [40, 70]
        assert by_name["B"].overall_score == 90
        assert by_name["B"].trend == Trend.NEW

        ordered = filter_and_sort_rows(
            rows, config=SortConfig("overallScore", SortDirection.DESCENDING)
        )
        assert [r.department_name for r in ordered] == ["B", "A"]

    def test_period_filter_excludes_departments_without_that_period(self):
        rows = build_heatmap(two_departments(), [make_template()], period_filter="Q1 2024")

        assert [r.department_name for r in rows] == ["A"]
        row = rows[0]
        assert row.assessment_id == "a1"
        assert row.overall_score == 40
        # History and trend ignore the filter.
        assert row.historical_overall_scores == [40, 70]
        assert row.trend == Trend.IMPROVING

    def test_unknown_period_gives_no_rows(self):
        assert build_heatmap(two_departments(), [make_template()], period_filter="Q1 1999") == []

    def test_every_department_once_with_all_filter(self):
        rows = build_heatmap(two_departments(), [make_template()])
        filtered = filter_and_sort_rows(rows, search="", status_filter="all")
        assert sorted(r.department_name for r in filtered) == ["A", "B"]

    def test_scores_follow_template_order_by_name(self):
        template = make_template(names=("Rules", "Data", "Access"))
        assessment = make_assessment("a", "A", "Q1 2024", 85.0, 60.0, 10.0)
        row = build_heatmap([assessment], [template])[0]

        assert list(row.scores) == ["Rules", "Data", "Access"]
        assert row.scores["Rules"] == ScoreAndColor(85.0, ScoreColor.GREEN)
        assert row.scores["Data"] == ScoreAndColor(60.0, ScoreColor.AMBER)
        assert row.scores["Access"] == ScoreAndColor(10.0, ScoreColor.RED)

    def test_dimension_without_data_is_gray(self):
        row = build_heatmap([make_assessment("a", "A", "Q1 2024", 50.0, None)], [make_template()])[0]
        assert row.scores["Data"] == ScoreAndColor(None, ScoreColor.GRAY)
        assert row.overall_score == 50

    def test_missing_dimension_score_is_gray(self):
        row = build_heatmap([make_assessment("a", "A", "Q1 2024", 50.0)], [make_template()])[0]
        assert row.scores["Data"] == ScoreAndColor(None, ScoreColor.GRAY)

    def test_missing_template_gives_empty_scores(self):
        assessment = make_assessment("a", "A", "Q1 2024", 70.0, template_id="gone")
        row = build_heatmap([assessment], [make_template()])[0]
        assert row.scores == {}
        assert row.overall_score == 70

    def test_templates_may_be_a_mapping(self):
        template = make_template()
        rows = build_heatmap(two_departments(), {template.id: template})
        assert len(rows) == 2

    def test_status_is_taken_from_selected_assessment(self):
        locked = make_assessment("a", "A", "Q1 2024", 70.0, status=AssessmentStatus.LOCKED)
        row = build_heatmap([locked], [make_template()])[0]
        assert row.status == AssessmentStatus.LOCKED

    def test_is_deterministic(self):
        data = two_departments()
        assert build_heatmap(data, [make_template()]) == build_heatmap(data, [make_template()])


class TestDimensionHistory:
    def test_directions_between_periods(self):
        template = make_template()
        history = [
            (make_assessment("a1", "A", "Q1 2024", 40.0, 80.0), template),
            (make_assessment("a2", "A", "Q2 2024", 70.0, 80.0), template),
            (make_assessment("a3", "A", "Q3 2024", 50.0, None), template),
        ]
        result = compare_dimension_history(history)

        rules, data = result
        assert rules.dimension_name == "Rules"
        assert [c.score for c in rules.cells] == [40.0, 70.0, 50.0]
        assert [c.direction for c in rules.cells] == [None, "up", "down"]
        assert [c.direction for c in data.cells] == [None, "same", None]
        assert data.cells[2].color == ScoreColor.GRAY

    def test_matches_dimensions_by_name_across_templates(self):
        old = AssessmentTemplate(
            id="old",
            name="Old",
            description="",
            dimensions=[Dimension(id=7, name="Data", sub_questions=[SubQuestion(1, "q")])],
        )
        new = make_template("new")
        older = make_assessment("a1", "A", "Q4 2023", template_id="old")
        older.scores = [dim_score(7, ResponseValue.UNANSWERED, override=30.0)]
        latest = make_assessment("a2", "A", "Q1 2024", 60.0, 45.0, template_id="new")

        result = compare_dimension_history([(older, old), (latest, new)])

        assert [h.dimension_name for h in result] == ["Rules", "Data"]
        rules, data = result
        assert rules.cells[0].score is None
        assert data.cells[0].score == 30.0
        assert data.cells[1].direction == "up"

    def test_empty_history(self):
        assert compare_dimension_history([]) == []
