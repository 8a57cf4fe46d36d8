from app.core.config import settings
from app.models import Class, Student, StudentClassHistory

from conftest import auth_headers, make_class, make_student

API = settings.API_V1_STR


def _student_payload(school, email, code, class_id=None):
    return {
        "firstName": "Liam",
        "lastName": "Hart",
        "email": email,
        "studentId": code,
        "classId": str(class_id or school.class_.id),
        "enrollmentDate": "2025-08-20",
        "guardianName": "Maya Hart",
    }


def test_create_student_enrolls_into_class(client, db, school):
    response = client.post(
        f"{API}/students/",
        json=_student_payload(school, "liam.hart@greenfield.edu", "STU-2025-900"),
        headers=auth_headers(school.admin),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["studentId"] == "STU-2025-900"
    assert data["user"]["email"] == "liam.hart@greenfield.edu"
    assert data["class"]["section"] == "A"

    db.refresh(school.class_)
    assert school.class_.current_enrollment == 1
    assert db.query(StudentClassHistory).filter_by(reason="Initial enrollment").count() == 1


def test_class_capacity_is_enforced(client, db, school):
    almost_full = make_class(db, school.year, "6", "B", capacity=30, current_enrollment=29)
    db.commit()
    headers = auth_headers(school.staff_user)

    first = client.post(
        f"{API}/students/",
        json=_student_payload(school, "last.seat@greenfield.edu", "STU-2025-901", almost_full.id),
        headers=headers,
    )
    assert first.status_code == 201
    db.refresh(almost_full)
    assert almost_full.current_enrollment == 30

    second = client.post(
        f"{API}/students/",
        json=_student_payload(school, "no.seat@greenfield.edu", "STU-2025-902", almost_full.id),
        headers=headers,
    )
    assert second.status_code == 409
    assert second.json()["message"] == "Class is at full capacity"
    # the rejected request left no user or student behind
    assert db.query(Student).filter_by(student_id="STU-2025-902").count() == 0


def test_duplicate_student_code_is_rejected(client, db, school):
    existing = make_student(db, school.class_)
    response = client.post(
        f"{API}/students/",
        json=_student_payload(school, "fresh@greenfield.edu", existing.student_id),
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Student ID already exists"


def test_teacher_cannot_create_students(client, school):
    response = client.post(
        f"{API}/students/",
        json=_student_payload(school, "x.y@greenfield.edu", "STU-2025-903"),
        headers=auth_headers(school.teacher_user),
    )
    assert response.status_code == 403


def test_transfer_moves_enrollment_and_history(client, db, school):
    student = make_student(db, school.class_)
    other = make_class(db, school.year, "5", "B")
    db.commit()

    response = client.put(
        f"{API}/students/{student.id}",
        json={"classId": str(other.id)},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 200

    db.refresh(school.class_)
    db.refresh(other)
    assert school.class_.current_enrollment == 0
    assert other.current_enrollment == 1

    history = client.get(f"{API}/students/{student.id}/history", headers=auth_headers(school.admin)).json()["data"]
    assert len(history) == 2
    closed = [h for h in history if h["endDate"] is not None]
    assert len(closed) == 1
    assert closed[0]["classId"] == str(school.class_.id)


def test_delete_deactivates_and_frees_seat(client, db, school):
    student = make_student(db, school.class_)

    response = client.delete(f"{API}/students/{student.id}", headers=auth_headers(school.admin))
    assert response.status_code == 200

    db.refresh(student)
    db.refresh(school.class_)
    assert student.is_active is False
    assert student.user.is_active is False
    assert school.class_.current_enrollment == 0

    again = client.delete(f"{API}/students/{student.id}", headers=auth_headers(school.admin))
    assert again.status_code == 404


def test_bulk_reactivation_reclaims_seat(client, db, school):
    student = make_student(db, school.class_)
    headers = auth_headers(school.admin)
    client.delete(f"{API}/students/{student.id}", headers=headers)

    response = client.patch(
        f"{API}/students/bulk",
        json={"studentIds": [str(student.id)], "isActive": True},
        headers=headers,
    )
    assert response.status_code == 200
    assert response.json()["data"] == {"updated": 1}
    assert db.get(Class, school.class_.id).current_enrollment == 1


def test_student_can_only_read_own_record(client, db, school):
    me = make_student(db, school.class_, "Mia", "Reed")
    classmate = make_student(db, school.class_, "Leo", "Park")
    headers = auth_headers(me.user)

    mine = client.get(f"{API}/students/{me.id}", headers=headers)
    assert mine.status_code == 200
    assert mine.json()["data"]["attendance"]["totalDays"] == 0

    theirs = client.get(f"{API}/students/{classmate.id}", headers=headers)
    assert theirs.status_code == 403
    assert theirs.json()["message"] == "You can only view your own records"


def test_list_students_filters_and_paginates(client, db, school):
    for first, last in (("Zoe", "Adams"), ("Yara", "Brook"), ("Xavi", "Cole")):
        make_student(db, school.class_, first, last)

    response = client.get(
        f"{API}/students/",
        params={"search": "brook", "limit": 2},
        headers=auth_headers(school.teacher_user),
    )
    assert response.status_code == 200
    body = response.json()
    assert [s["user"]["lastName"] for s in body["data"]] == ["Brook"]
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 1, "totalPages": 1}

    page = client.get(f"{API}/students/", params={"limit": 2, "page": 2}, headers=auth_headers(school.admin))
    assert page.json()["pagination"]["total"] == 3
    assert len(page.json()["data"]) == 1


def test_csv_import_reports_bad_rows(client, db, school):
    csv = (
        "first_name,last_name,email,student_id,class_id,enrollment_date\n"
        f"Ivy,Lane,ivy.lane@greenfield.edu,STU-2025-950,{school.class_.id},2025-08-20\n"
        f"Ivy,Lane,ivy.lane@greenfield.edu,STU-2025-951,{school.class_.id},2025-08-20\n"
    )
    response = client.post(
        f"{API}/students/import",
        files={"file": ("students.csv", csv.encode(), "text/csv")},
        headers=auth_headers(school.admin),
    )

    assert response.status_code == 201
    data = response.json()["data"]
    assert data["created"] == 1
    assert data["failed"] == 1
    assert db.query(Student).filter_by(student_id="STU-2025-950").count() == 1


def test_csv_import_requires_csv_file(client, school):
    response = client.post(
        f"{API}/students/import",
        files={"file": ("students.txt", b"hello", "text/plain")},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 400


def test_class_listing_reflects_new_enrollment(client, school):
    headers = auth_headers(school.admin)
    before = client.get(f"{API}/classes/", headers=headers).json()["data"]
    assert before[0]["currentEnrollment"] == 0

    created = client.post(
        f"{API}/students/", json=_student_payload(school, "ivy.reed@greenfield.edu", "STU-2025-950"), headers=headers
    )
    assert created.status_code == 201

    after = client.get(f"{API}/classes/", headers=headers).json()["data"]
    assert after[0]["currentEnrollment"] == 1
