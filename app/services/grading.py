"""Grade arithmetic shared by grade entry and report cards."""
from collections import OrderedDict
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List

GRADE_CUTOFFS = (
    (95, "A+"),
    (90, "A"),
    (85, "B+"),
    (80, "B"),
    (75, "C+"),
    (70, "C"),
    (60, "D"),
)


def round2(value) -> float:
    # half-up, not banker's rounding
    return float(Decimal(str(value)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def calculate_percentage(marks_obtained, total_marks) -> float:
    if total_marks is None or float(total_marks) <= 0:
        raise ValueError("total_marks must be greater than zero")
    return round2(float(marks_obtained) / float(total_marks) * 100)


def grade_letter(percentage) -> str:
    for cutoff, letter in GRADE_CUTOFFS:
        if percentage >= cutoff:
            return letter
    return "F"


def subject_average(assessments: Iterable[Dict]) -> float:
    """Weighted mean of assessment percentages, or the plain mean when weightages sum to 0.

    Each assessment is a mapping with ``percentage`` and ``weightage``.
    """
    assessments = list(assessments)
    if not assessments:
        return 0.0
    total_weight = sum(float(a.get("weightage") or 0) for a in assessments)
    if total_weight > 0:
        weighted = sum(float(a["percentage"]) * float(a.get("weightage") or 0) for a in assessments)
        return round2(weighted / total_weight)
    return round2(sum(float(a["percentage"]) for a in assessments) / len(assessments))


def summarize_grades(grades: Iterable[Dict]) -> Dict:
    """Group grade rows by subject and compute subject and overall results.

    Rows carry ``subject_id``, ``subject_name``, ``percentage`` and ``weightage``.
    """
    by_subject: "OrderedDict[str, Dict]" = OrderedDict()
    for row in grades:
        key = str(row["subject_id"])
        entry = by_subject.setdefault(
            key, {"subject_id": key, "subject_name": row.get("subject_name"), "assessments": []}
        )
        entry["assessments"].append(row)

    subjects: List[Dict] = []
    for entry in by_subject.values():
        percentage = subject_average(entry["assessments"])
        subjects.append(
            {
                "subject_id": entry["subject_id"],
                "subject_name": entry["subject_name"],
                "percentage": percentage,
                "grade": grade_letter(percentage),
                "assessment_count": len(entry["assessments"]),
            }
        )

    overall = round2(sum(s["percentage"] for s in subjects) / len(subjects)) if subjects else 0.0
    return {
        "subjects": subjects,
        "overall_percentage": overall,
        "overall_grade": grade_letter(overall),
    }


def class_rank(percentage, other_percentages: Iterable) -> int:
    """1 + the number of existing results strictly above ``percentage``."""
    return 1 + sum(1 for other in other_percentages if float(other) > float(percentage))


def rank_all(percentages: Dict[str, float]) -> Dict[str, int]:
    values = list(percentages.values())
    return {key: class_rank(value, values) for key, value in percentages.items()}
