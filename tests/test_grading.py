import pytest

from app.services import grading


@pytest.mark.parametrize(
    "percentage,letter",
    [
        (100, "A+"),
        (95, "A+"),
        (94.99, "A"),
        (90, "A"),
        (85, "B+"),
        (80, "B"),
        (75, "C+"),
        (70, "C"),
        (60, "D"),
        (59.99, "F"),
        (0, "F"),
    ],
)
def test_grade_letter_boundaries(percentage, letter):
    assert grading.grade_letter(percentage) == letter


def test_percentage_is_rounded_half_up():
    assert grading.calculate_percentage(47, 50) == 94.0
    assert grading.calculate_percentage(2, 3) == 66.67
    assert grading.round2(2.675) == 2.68


def test_percentage_requires_positive_total():
    with pytest.raises(ValueError):
        grading.calculate_percentage(10, 0)


def test_subject_average_uses_weightage():
    assessments = [
        {"percentage": 80, "weightage": 40},
        {"percentage": 90, "weightage": 60},
    ]
    assert grading.subject_average(assessments) == 86.0


def test_subject_average_falls_back_to_plain_mean():
    assessments = [
        {"percentage": 70, "weightage": 0},
        {"percentage": 91, "weightage": 0},
    ]
    assert grading.subject_average(assessments) == 80.5
    assert grading.subject_average([]) == 0.0


def test_summarize_grades_groups_by_subject():
    rows = [
        {"subject_id": "math", "subject_name": "Mathematics", "percentage": 80, "weightage": 40},
        {"subject_id": "math", "subject_name": "Mathematics", "percentage": 90, "weightage": 60},
        {"subject_id": "sci", "subject_name": "Science", "percentage": 70, "weightage": 100},
    ]
    summary = grading.summarize_grades(rows)

    assert [s["subject_name"] for s in summary["subjects"]] == ["Mathematics", "Science"]
    assert summary["subjects"][0]["percentage"] == 86.0
    assert summary["subjects"][0]["grade"] == "B+"
    assert summary["subjects"][0]["assessment_count"] == 2
    assert summary["overall_percentage"] == 78.0
    assert summary["overall_grade"] == "C+"


def test_class_rank_counts_strictly_higher_results():
    assert grading.class_rank(85, []) == 1
    assert grading.class_rank(85, [90, 85, 70]) == 2
    assert grading.class_rank(60, [90, 85, 70]) == 4


def test_rank_all_shares_rank_on_ties():
    ranks = grading.rank_all({"a": 90.0, "b": 90.0, "c": 80.0})
    assert ranks == {"a": 1, "b": 1, "c": 3}
