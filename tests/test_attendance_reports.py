from datetime import date

from app.core.config import settings
from app.models import Attendance
from app.models.enums import AttendanceStatus, UserRole
from app.services.attendance_report_service import stat_range
from app.utils.dates import today

from conftest import auth_headers, make_class, make_student, make_user

API = f"{settings.API_V1_STR}/attendance-reports"


def _add(db, student, class_, on, status, subject=None):
    db.add(Attendance(
        student_id=student.id,
        class_id=class_.id,
        subject_id=subject.id if subject else None,
        date=on,
        status=AttendanceStatus(status),
    ))


def _september(db, school):
    ann = make_student(db, school.class_, "Ann", "One")
    ben = make_student(db, school.class_, "Ben", "Two")
    for day, status in ((1, "present"), (2, "absent"), (3, "late"), (8, "absent")):
        _add(db, ann, school.class_, date(2025, 9, day), status)
    for day in (1, 2):
        _add(db, ben, school.class_, date(2025, 9, day), "present")
    db.commit()
    return ann, ben


def _report(client, user, **params):
    query = {"startDate": "2025-09-01", "endDate": "2025-09-30", **params}
    return client.get(f"{API}/report", params=query, headers=auth_headers(user))


def test_report_by_student(client, db, school):
    ann, ben = _september(db, school)

    response = _report(client, school.admin)

    assert response.status_code == 200
    body = response.json()["data"]
    assert [row["studentName"] for row in body["data"]] == ["Ann One", "Ben Two"]
    first = body["data"][0]
    assert first["studentId"] == str(ann.id)
    assert first["totalDays"] == 4
    assert first["absentDays"] == 2
    assert first["attendancePercentage"] == 50.0
    assert body["metadata"]["title"] == "Attendance Report - student wise"
    assert body["metadata"]["generatedBy"] == str(school.admin.id)
    aggregations = body["summary"]["aggregations"]
    assert aggregations["totalRecords"] == 6
    assert aggregations["totalDays"] == 4
    assert aggregations["overallAttendancePercentage"] == 66.67


def test_minimum_percentage_filters_students(client, db, school):
    _, ben = _september(db, school)

    body = _report(client, school.admin, minAttendancePercentage=75).json()["data"]

    assert [row["studentId"] for row in body["data"]] == [str(ben.id)]
    assert body["summary"]["totalRecords"] == 1


def test_report_by_date_and_subject(client, db, school):
    ann, _ = _september(db, school)
    _add(db, ann, school.class_, date(2025, 9, 1), "late", subject=school.subject)
    db.commit()

    by_date = _report(client, school.admin, groupBy="date").json()["data"]["data"]
    assert by_date[0]["date"] == "2025-09-01"
    assert by_date[0]["totalStudents"] == 2
    assert by_date[0]["totalRecords"] == 3

    by_subject = _report(client, school.admin, groupBy="subject").json()["data"]["data"]
    assert by_subject[0]["subjectId"] == "general"
    assert by_subject[0]["totalRecords"] == 6
    assert by_subject[1]["subjectCode"] == "MATH101"
    assert by_subject[1]["lateCount"] == 1


def test_inactive_students_are_left_out_unless_asked(client, db, school):
    ann, _ = _september(db, school)
    ann.is_active = False
    db.commit()

    assert len(_report(client, school.admin).json()["data"]["data"]) == 1
    assert len(_report(client, school.admin, includeInactive="true").json()["data"]["data"]) == 2


def test_start_after_end_is_rejected(client, db, school):
    response = _report(client, school.admin, startDate="2025-10-01", endDate="2025-09-01")

    assert response.status_code == 400
    assert response.json()["message"] == "Start date cannot be after end date"


def test_teacher_only_sees_own_classes(client, db, school):
    _september(db, school)
    other = make_class(db, school.year, "9", "Z")
    _add(db, make_student(db, other, "Cy", "Far"), other, date(2025, 9, 1), "present")
    db.commit()

    admin_view = _report(client, school.admin, groupBy="class").json()["data"]["data"]
    teacher_view = _report(client, school.teacher_user, groupBy="class").json()["data"]["data"]

    assert len(admin_view) == 2
    assert [row["classId"] for row in teacher_view] == [str(school.class_.id)]


def test_unlinked_parent_gets_an_empty_report(client, db, school):
    _september(db, school)
    parent = make_user(db, UserRole.parent, "pia.parent@greenfield.edu", "Pia", "Parent")
    db.commit()

    body = _report(client, parent).json()["data"]
    assert body["data"] == []
    assert body["summary"]["aggregations"]["totalRecords"] == 0


def test_weekly_trends(client, db, school):
    ann, _ = _september(db, school)

    response = client.get(
        f"{API}/trends",
        params={"startDate": "2025-09-01", "endDate": "2025-09-30", "period": "weekly"},
        headers=auth_headers(school.staff_user),
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert [t["period"] for t in data["trends"]] == ["2025-09-01", "2025-09-08"]
    assert data["trends"][0]["totalRecords"] == 5
    assert data["trends"][0]["attendancePercentage"] == 80.0
    assert data["trends"][1]["attendancePercentage"] == 0.0
    assert [a["studentId"] for a in data["lowAttendanceAlerts"]] == [str(ann.id)]
    monday = data["dayPatterns"][0]
    assert monday["dayName"] == "Monday"
    assert monday["totalRecords"] == 3
    assert monday["attendancePercentage"] == 66.67


def test_trends_need_both_dates(client, db, school):
    response = client.get(f"{API}/trends", params={"startDate": "2025-09-01"}, headers=auth_headers(school.admin))

    assert response.status_code == 400
    assert response.json()["details"][0]["field"] == "endDate"


def test_statistics_for_today(client, db, school):
    student = make_student(db, school.class_)
    _add(db, student, school.class_, today(), "late")
    _add(db, student, school.class_, date(2025, 9, 1), "absent")
    db.commit()

    response = client.get(f"{API}/statistics", headers=auth_headers(school.admin))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["period"] == "today"
    assert data["overview"]["totalRecords"] == 1
    assert data["overview"]["lateCount"] == 1
    assert data["overview"]["overallAttendancePercentage"] == 100.0
    assert data["topPerformingClasses"][0]["className"] == "Grade 5A"
    assert data["recentActivities"][0]["studentNumber"] == student.student_id


def test_statistics_periods():
    wednesday = date(2025, 9, 3)

    assert stat_range("today", wednesday) == (wednesday, wednesday)
    assert stat_range("week", wednesday) == (date(2025, 8, 31), wednesday)
    assert stat_range("week", date(2025, 8, 31)) == (date(2025, 8, 31), date(2025, 8, 31))
    assert stat_range("month", wednesday) == (date(2025, 9, 1), wednesday)
    assert stat_range("semester", wednesday) == (date(2025, 7, 1), wednesday)
    assert stat_range("semester", date(2025, 3, 9)) == (date(2025, 1, 1), date(2025, 3, 9))


def test_json_export(client, db, school):
    _september(db, school)

    response = client.get(
        f"{API}/export", params={"format": "json", "status": "absent"}, headers=auth_headers(school.admin)
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["exportInfo"]["recordCount"] == 2
    assert [row["date"] for row in data["data"]] == ["2025-09-08", "2025-09-02"]
    assert data["data"][0]["subjectName"] == "General"


def test_csv_export_is_a_download(client, db, school):
    _september(db, school)

    response = client.get(f"{API}/export", headers=auth_headers(school.admin))

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert "attachment" in response.headers["content-disposition"]
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Date,Student ID,Student")
    assert len(lines) == 7


def test_unknown_export_format(client, db, school):
    response = client.get(f"{API}/export", params={"format": "pdf"}, headers=auth_headers(school.admin))

    assert response.status_code == 400
