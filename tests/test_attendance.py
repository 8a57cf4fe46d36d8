from datetime import date

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.config import settings
from app.models import Attendance
from app.models.enums import AttendanceStatus, UserRole
from app.services.attendance_service import AttendanceService

from conftest import auth_headers, make_class, make_student, make_user

API = settings.API_V1_STR


def _mark(client, user, student, class_, status="present", on="2025-09-01", subject_id=None):
    payload = {"studentId": str(student.id), "classId": str(class_.id), "date": on, "status": status}
    if subject_id:
        payload["subjectId"] = str(subject_id)
    return client.post(f"{API}/attendance/", json=payload, headers=auth_headers(user))


def test_mark_attendance(client, db, school):
    student = make_student(db, school.class_)

    response = _mark(client, school.teacher_user, student, school.class_, "late")

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["status"] == "late"
    assert data["markedBy"] == str(school.teacher_user.id)


def test_duplicate_attendance_is_rejected(client, db, school):
    student = make_student(db, school.class_)
    assert _mark(client, school.admin, student, school.class_).status_code == 201

    response = _mark(client, school.admin, student, school.class_, "absent")

    assert response.status_code == 409
    assert response.json()["message"] == "Attendance already marked for this student, class, and date"
    assert db.query(Attendance).count() == 1


def test_subject_attendance_is_separate_from_daily(client, db, school):
    student = make_student(db, school.class_)
    assert _mark(client, school.admin, student, school.class_).status_code == 201

    response = _mark(client, school.admin, student, school.class_, subject_id=school.subject.id)
    assert response.status_code == 201


def test_student_must_belong_to_class(client, db, school):
    other = make_class(db, school.year, "7", "C")
    student = make_student(db, other)

    response = _mark(client, school.admin, student, school.class_)
    assert response.status_code == 400
    assert response.json()["message"] == "Student is not enrolled in this class"


def test_unrelated_teacher_cannot_mark(client, db, school):
    stranger = make_user(db, UserRole.teacher, "no.classes@greenfield.edu", "Noel", "Free")
    student = make_student(db, school.class_)

    response = _mark(client, stranger, student, school.class_)
    assert response.status_code == 403


def test_bulk_marking_skips_duplicates(client, db, school):
    first = make_student(db, school.class_, "Ann", "One")
    second = make_student(db, school.class_, "Ben", "Two")
    outsider = make_student(db, make_class(db, school.year, "8", "D"), "Cal", "Three")
    assert _mark(client, school.admin, first, school.class_).status_code == 201

    response = client.post(
        f"{API}/attendance/bulk",
        json={
            "classId": str(school.class_.id),
            "date": "2025-09-01",
            "records": [
                {"studentId": str(first.id), "status": "present"},
                {"studentId": str(second.id), "status": "absent"},
                {"studentId": str(outsider.id), "status": "present"},
            ],
        },
        headers=auth_headers(school.staff_user),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["marked"] == 1
    assert len(data["skipped"]) == 2
    assert data["records"][0]["studentId"] == str(second.id)


def test_student_attendance_summary(client, db, school):
    student = make_student(db, school.class_)
    for day, status in (("2025-09-01", "present"), ("2025-09-02", "late"), ("2025-09-03", "absent"), ("2025-09-04", "excused")):
        assert _mark(client, school.admin, student, school.class_, status, on=day).status_code == 201

    response = client.get(f"{API}/attendance/student/{student.id}/summary", headers=auth_headers(school.admin))

    assert response.status_code == 200
    summary = response.json()["data"]
    assert summary["totalDays"] == 4
    assert summary["present"] == 1
    assert summary["absent"] == 1
    assert summary["attendancePercentage"] == 50.0


def test_database_rejects_a_second_daily_mark(db, school):
    student = make_student(db, school.class_)
    for _ in range(2):
        db.add(Attendance(
            student_id=student.id, class_id=school.class_.id, date=date(2025, 9, 1), status=AttendanceStatus.present
        ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_database_allows_one_mark_per_subject(db, school):
    student = make_student(db, school.class_)
    db.add(Attendance(
        student_id=student.id, class_id=school.class_.id, date=date(2025, 9, 1), status=AttendanceStatus.present
    ))
    db.add(Attendance(
        student_id=student.id, class_id=school.class_.id, subject_id=school.subject.id,
        date=date(2025, 9, 1), status=AttendanceStatus.late,
    ))
    db.commit()

    db.add(Attendance(
        student_id=student.id, class_id=school.class_.id, subject_id=school.subject.id,
        date=date(2025, 9, 1), status=AttendanceStatus.absent,
    ))
    with pytest.raises(IntegrityError):
        db.commit()
    db.rollback()


def test_concurrent_duplicate_maps_to_conflict(client, db, school, monkeypatch):
    student = make_student(db, school.class_)
    assert _mark(client, school.admin, student, school.class_).status_code == 201
    # a second request that passed the existence check before the first one committed
    monkeypatch.setattr(AttendanceService, "_already_marked", lambda self, *args, **kwargs: False)

    single = _mark(client, school.admin, student, school.class_, "absent")
    assert single.status_code == 409
    assert single.json()["message"] == "Attendance already marked for this student, class, and date"

    bulk = client.post(
        f"{API}/attendance/bulk",
        json={"classId": str(school.class_.id), "date": "2025-09-01", "records": [{"studentId": str(student.id), "status": "late"}]},
        headers=auth_headers(school.admin),
    )
    assert bulk.status_code == 409
    assert db.query(Attendance).count() == 1
