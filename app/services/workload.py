"""Teacher workload heuristics. Pure functions over counts pulled by TeacherService."""
from typing import Dict, Iterable, List, Optional

HOMEROOM_HOURS = 5
DEFAULT_SUBJECT_HOURS = 3
STANDARD_WEEKLY_HOURS = 25

MAX_ASSIGNMENTS = 8
WARN_ASSIGNMENTS = 6
MAX_WEEKLY_HOURS = 25
WARN_WEEKLY_HOURS = 20
MAX_SAME_GRADE_SECTIONS = 3
WARN_SAME_GRADE_SECTIONS = 2


def subject_hours(credit_hours: Optional[int]) -> int:
    return credit_hours if credit_hours else DEFAULT_SUBJECT_HOURS


def weekly_hours(is_homeroom: bool, assignment_credit_hours: Iterable[Optional[int]]) -> int:
    total = HOMEROOM_HOURS if is_homeroom else 0
    return total + sum(subject_hours(h) for h in assignment_credit_hours)


def workload_intensity(hours: float) -> float:
    return round(min(hours / STANDARD_WEEKLY_HOURS * 100, 100), 2)


def workload_status(hours: float) -> str:
    if hours > 30:
        return "overloaded"
    if hours > 25:
        return "high"
    if hours < 15:
        return "light"
    return "normal"


def check_conflicts(
    assignment_count: int,
    current_hours: int,
    new_subject_hours: int,
    same_grade_sections: int,
    is_qualified: bool,
    already_assigned: bool = False,
) -> Dict:
    """Evaluate a proposed class-subject assignment against hard limits and soft warnings."""
    conflicts: List[str] = []
    warnings: List[str] = []
    projected_hours = current_hours + new_subject_hours

    if already_assigned:
        conflicts.append("Teacher is already assigned to this class-subject combination")
    if not is_qualified:
        conflicts.append("Teacher is not qualified to teach this subject")
    if assignment_count >= MAX_ASSIGNMENTS:
        conflicts.append(f"Teacher has reached the maximum of {MAX_ASSIGNMENTS} assignments")
    elif assignment_count >= WARN_ASSIGNMENTS:
        warnings.append(f"Teacher already has {assignment_count} assignments")

    if projected_hours > MAX_WEEKLY_HOURS:
        conflicts.append(
            f"Assignment would raise weekly hours to {projected_hours} (limit {MAX_WEEKLY_HOURS})"
        )
    elif projected_hours > WARN_WEEKLY_HOURS:
        warnings.append(f"Weekly hours would reach {projected_hours}")

    if same_grade_sections >= MAX_SAME_GRADE_SECTIONS:
        conflicts.append(
            f"Teacher already teaches {same_grade_sections} sections in this grade"
        )
    elif same_grade_sections >= WARN_SAME_GRADE_SECTIONS:
        warnings.append(f"Teacher already teaches {same_grade_sections} sections in this grade")

    return {
        "can_assign": not conflicts,
        "conflicts": conflicts,
        "warnings": warnings,
        "current_assignments": assignment_count,
        "current_hours": current_hours,
        "projected_hours": projected_hours,
        "same_grade_sections": same_grade_sections,
    }


def suggestion_score(assignment_count: int, projected_hours: int, same_grade_sections: int) -> int:
    score = 100
    if assignment_count >= 6:
        score -= 30
    elif assignment_count >= 4:
        score -= 15

    if projected_hours > 25:
        score -= 40
    elif projected_hours > 20:
        score -= 20

    if same_grade_sections >= 2:
        score -= 25
    elif same_grade_sections >= 1:
        score -= 10

    if assignment_count == 0:
        score += 10
    return max(0, min(score, 100))


def recommendation(score: int) -> str:
    if score >= 85:
        return "excellent"
    if score >= 70:
        return "good"
    if score >= 50:
        return "caution"
    return "not_recommended"


def rank_candidates(candidates: List[Dict]) -> List[Dict]:
    """Score candidates (dicts with assignment_count, projected_hours, same_grade_sections), best first."""
    ranked = []
    for candidate in candidates:
        score = suggestion_score(
            candidate["assignment_count"],
            candidate["projected_hours"],
            candidate["same_grade_sections"],
        )
        ranked.append({**candidate, "score": score, "recommendation": recommendation(score)})
    return sorted(ranked, key=lambda c: c["score"], reverse=True)
