import pytest

from app.core.config import settings
from app.core.errors import AppError
from app.models import ReportCard, Subject
from app.services.grade_service import GradeService
from app.services.report_card_service import ReportCardService

from conftest import auth_headers, make_student

API = settings.API_V1_STR


def _grade(db, school, student, assessment_type, marks, total=100):
    return GradeService(db).create(
        {
            "student_id": str(student.id),
            "subject_id": str(school.subject.id),
            "assessment_type_id": str(assessment_type.id),
            "semester_id": str(school.semester.id),
            "marks_obtained": marks,
            "total_marks": total,
        },
        school.admin,
    )


def _generate(db, school, student):
    return ReportCardService(db).generate(
        {"student_id": str(student.id), "semester_id": str(school.semester.id)}, school.admin
    )


def test_teacher_records_grade_for_taught_subject(client, db, school):
    student = make_student(db, school.class_)

    response = client.post(
        f"{API}/grades/",
        json={
            "studentId": str(student.id),
            "subjectId": str(school.subject.id),
            "assessmentTypeId": str(school.midterm.id),
            "semesterId": str(school.semester.id),
            "marksObtained": 47,
            "totalMarks": 50,
        },
        headers=auth_headers(school.teacher_user),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["percentage"] == 94.0
    assert data["gradeLetter"] == "A"


def test_marks_cannot_exceed_total(client, db, school):
    student = make_student(db, school.class_)
    response = client.post(
        f"{API}/grades/",
        json={
            "studentId": str(student.id),
            "subjectId": str(school.subject.id),
            "assessmentTypeId": str(school.midterm.id),
            "semesterId": str(school.semester.id),
            "marksObtained": 51,
            "totalMarks": 50,
        },
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Validation error"


def test_teacher_cannot_grade_subject_they_do_not_teach(client, db, school):
    student = make_student(db, school.class_)
    art = Subject(alt_id=900, name="Art", code="ART100", credit_hours=2, is_active=True)
    db.add(art)
    db.commit()

    response = client.post(
        f"{API}/grades/",
        json={
            "studentId": str(student.id),
            "subjectId": str(art.id),
            "assessmentTypeId": str(school.midterm.id),
            "semesterId": str(school.semester.id),
            "marksObtained": 40,
            "totalMarks": 50,
        },
        headers=auth_headers(school.teacher_user),
    )
    assert response.status_code == 403


def test_duplicate_grade_is_rejected(client, db, school):
    student = make_student(db, school.class_)
    _grade(db, school, student, school.midterm, 80)

    response = client.post(
        f"{API}/grades/",
        json={
            "studentId": str(student.id),
            "subjectId": str(school.subject.id),
            "assessmentTypeId": str(school.midterm.id),
            "semesterId": str(school.semester.id),
            "marksObtained": 70,
            "totalMarks": 100,
        },
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 409


def test_report_card_uses_weighted_subject_average(db, school):
    student = make_student(db, school.class_)
    _grade(db, school, student, school.midterm, 80)
    _grade(db, school, student, school.final, 90)

    card = _generate(db, school, student)

    assert float(card.overall_percentage) == 86.0
    assert card.overall_grade == "B+"
    assert card.class_rank == 1
    assert card.total_students == 1


def test_report_card_requires_grades_and_is_unique(db, school):
    student = make_student(db, school.class_)

    with pytest.raises(AppError) as exc:
        _generate(db, school, student)
    assert exc.value.status_code == 400
    assert exc.value.message == "No grades found for this student in the specified semester"

    _grade(db, school, student, school.final, 75)
    _generate(db, school, student)
    with pytest.raises(AppError) as exc:
        _generate(db, school, student)
    assert exc.value.status_code == 409
    assert db.query(ReportCard).count() == 1


def test_ranks_are_refreshed_on_demand(client, db, school):
    first = make_student(db, school.class_, "Ann", "First")
    second = make_student(db, school.class_, "Bo", "Second")
    _grade(db, school, first, school.midterm, 80)
    _grade(db, school, first, school.final, 90)
    _grade(db, school, second, school.midterm, 95)
    _grade(db, school, second, school.final, 97)

    first_card = _generate(db, school, first)
    second_card = _generate(db, school, second)

    assert float(second_card.overall_percentage) == 96.2
    assert second_card.overall_grade == "A+"
    assert second_card.class_rank == 1
    assert second_card.total_students == 2
    # the earlier card keeps its stored rank until ranks are recalculated
    db.refresh(first_card)
    assert first_card.class_rank == 1

    response = client.post(
        f"{API}/report-cards/recalculate-ranks",
        json={"classId": str(school.class_.id), "semesterId": str(school.semester.id)},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 200
    assert response.json()["data"]["updated"] == 2

    db.refresh(first_card)
    assert first_card.class_rank == 2
    assert first_card.total_students == 2


def test_report_card_detail_and_pdf(client, db, school):
    student = make_student(db, school.class_)
    _grade(db, school, student, school.midterm, 80)
    _grade(db, school, student, school.final, 90)
    card = _generate(db, school, student)

    detail = client.get(f"{API}/report-cards/{card.id}", headers=auth_headers(student.user))
    assert detail.status_code == 200
    data = detail.json()["data"]
    assert data["reportCard"]["overallGrade"] == "B+"
    assert data["subjects"][0]["subjectName"] == "Mathematics"
    assert data["subjects"][0]["assessmentCount"] == 2
    assert len(data["grades"]) == 2

    pdf = client.get(f"{API}/report-cards/{card.id}/pdf", headers=auth_headers(school.admin))
    assert pdf.status_code == 200
    assert pdf.headers["content-type"] == "application/pdf"
    assert pdf.content.startswith(b"%PDF")
