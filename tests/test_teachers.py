from app.core.config import settings
from app.models import Class, ClassSubject, Subject, TeacherSubject
from app.models.enums import UserRole

from conftest import auth_headers, make_class, make_user

API = settings.API_V1_STR


def _check(client, school, class_, subject):
    return client.post(
        f"{API}/teachers/assignments/check-conflicts",
        json={"teacherId": str(school.teacher.id), "classId": str(class_.id), "subjectId": str(subject.id)},
        headers=auth_headers(school.admin),
    )


def test_workload_reflects_assignments_and_homeroom(client, db, school):
    headers = auth_headers(school.staff_user)

    before = client.get(f"{API}/teachers/{school.teacher.id}/workload", headers=headers).json()["data"]
    assert before["totalAssignments"] == 1
    assert before["weeklyHours"] == 4
    assert before["workloadIntensity"] == 16.0
    assert before["status"] == "light"

    homeroom = client.post(
        f"{API}/teachers/assignments/homeroom",
        json={"teacherId": str(school.teacher.id), "classId": str(school.class_.id)},
        headers=auth_headers(school.admin),
    )
    assert homeroom.status_code == 200

    after = client.get(f"{API}/teachers/{school.teacher.id}/workload", headers=headers).json()["data"]
    assert after["weeklyHours"] == 9
    assert after["homeroomClasses"][0]["name"] == "Grade 5A"


def test_one_homeroom_class_per_teacher(client, db, school):
    other = make_class(db, school.year, "5", "B")
    db.commit()
    headers = auth_headers(school.admin)
    payload = {"teacherId": str(school.teacher.id), "classId": str(school.class_.id)}
    assert client.post(f"{API}/teachers/assignments/homeroom", json=payload, headers=headers).status_code == 200

    response = client.post(
        f"{API}/teachers/assignments/homeroom",
        json={"teacherId": str(school.teacher.id), "classId": str(other.id)},
        headers=headers,
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Teacher is already assigned as homeroom teacher to another class"


def test_conflict_check_for_a_clean_assignment(client, db, school):
    other = make_class(db, school.year, "5", "B")
    db.commit()

    result = _check(client, school, other, school.subject).json()["data"]

    assert result["canAssign"] is True
    assert result["projectedHours"] == 8
    assert result["sameGradeSections"] == 1
    assert result["warnings"] == []


def test_conflict_check_blocks_unqualified_and_repeat_assignments(client, db, school):
    art = Subject(alt_id=7001, name="Art", code="ART100", credit_hours=2, is_active=True)
    db.add(art)
    db.commit()

    unqualified = _check(client, school, school.class_, art).json()["data"]
    assert unqualified["canAssign"] is False
    assert unqualified["conflicts"] == ["Teacher is not qualified to teach this subject"]

    repeat = _check(client, school, school.class_, school.subject).json()["data"]
    assert "Teacher is already assigned to this class-subject combination" in repeat["conflicts"]

    response = client.post(
        f"{API}/teachers/assignments/class-subject",
        json={"teacherId": str(school.teacher.id), "classId": str(school.class_.id), "subjectId": str(art.id)},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 409
    assert response.json()["code"] == "ASSIGNMENT_CONFLICT"


def test_assignment_and_suggestions(client, db, school):
    other = make_class(db, school.year, "6", "A")
    db.commit()
    headers = auth_headers(school.admin)

    assigned = client.post(
        f"{API}/teachers/assignments/class-subject",
        json={"teacherId": str(school.teacher.id), "classId": str(other.id), "subjectId": str(school.subject.id)},
        headers=headers,
    )
    assert assigned.status_code == 201
    assert db.query(ClassSubject).filter_by(class_id=other.id, teacher_id=school.teacher.id).count() == 1

    third = make_class(db, school.year, "7", "A")
    db.commit()
    suggestions = client.get(
        f"{API}/teachers/assignments/suggestions",
        params={"classId": str(third.id), "subjectId": str(school.subject.id)},
        headers=headers,
    ).json()["data"]
    assert len(suggestions) == 1
    assert suggestions[0]["teacherId"] == str(school.teacher.id)
    assert suggestions[0]["projectedHours"] == 12
    assert suggestions[0]["score"] == 100
    assert suggestions[0]["recommendation"] == "excellent"


def test_subject_in_use_cannot_be_removed_from_teacher(client, db, school):
    response = client.delete(
        f"{API}/teachers/assignments/subject/{school.teacher.id}/{school.subject.id}",
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 409
    assert db.query(TeacherSubject).count() == 1


def test_teacher_with_homeroom_cannot_be_deleted(client, db, school):
    db.get(Class, school.class_.id).teacher_id = school.teacher.id
    db.commit()

    response = client.delete(f"{API}/teachers/{school.teacher.id}", headers=auth_headers(school.admin))
    assert response.status_code == 409


def test_parents_cannot_view_teachers(client, db, school):
    parent = make_user(db, UserRole.parent, "pat.parent@greenfield.edu", "Pat", "Parent")
    db.commit()

    response = client.get(f"{API}/teachers/{school.teacher.id}", headers=auth_headers(parent))
    assert response.status_code == 403
