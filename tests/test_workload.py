from app.services import workload


def test_weekly_hours_counts_homeroom_and_default_credit_hours():
    assert workload.weekly_hours(True, [4, None]) == 12
    assert workload.weekly_hours(False, []) == 0


def test_workload_status_bands():
    assert workload.workload_status(31) == "overloaded"
    assert workload.workload_status(26) == "high"
    assert workload.workload_status(25) == "normal"
    assert workload.workload_status(15) == "normal"
    assert workload.workload_status(14) == "light"


def test_workload_intensity_is_capped():
    assert workload.workload_intensity(12.5) == 50.0
    assert workload.workload_intensity(40) == 100


def test_check_conflicts_allows_light_teacher():
    result = workload.check_conflicts(
        assignment_count=1, current_hours=8, new_subject_hours=4, same_grade_sections=0, is_qualified=True
    )
    assert result["can_assign"] is True
    assert result["conflicts"] == []
    assert result["warnings"] == []
    assert result["projected_hours"] == 12


def test_check_conflicts_warns_before_blocking():
    result = workload.check_conflicts(
        assignment_count=6, current_hours=18, new_subject_hours=3, same_grade_sections=2, is_qualified=True
    )
    assert result["can_assign"] is True
    assert len(result["warnings"]) == 3


def test_check_conflicts_blocks_hard_limits():
    result = workload.check_conflicts(
        assignment_count=8,
        current_hours=24,
        new_subject_hours=3,
        same_grade_sections=3,
        is_qualified=False,
        already_assigned=True,
    )
    assert result["can_assign"] is False
    assert len(result["conflicts"]) == 5
    assert "Teacher is not qualified to teach this subject" in result["conflicts"]


def test_rank_candidates_orders_by_score():
    ranked = workload.rank_candidates(
        [
            {"teacher_id": "busy", "assignment_count": 6, "projected_hours": 26, "same_grade_sections": 2},
            {"teacher_id": "free", "assignment_count": 0, "projected_hours": 4, "same_grade_sections": 0},
            {"teacher_id": "some", "assignment_count": 4, "projected_hours": 21, "same_grade_sections": 1},
        ]
    )
    assert [c["teacher_id"] for c in ranked] == ["free", "some", "busy"]
    assert ranked[0]["score"] == 100
    assert ranked[0]["recommendation"] == "excellent"
    assert ranked[1]["score"] == 55
    assert ranked[1]["recommendation"] == "caution"
    assert ranked[2]["score"] == 5
    assert ranked[2]["recommendation"] == "not_recommended"
