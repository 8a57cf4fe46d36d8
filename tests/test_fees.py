from app.core.config import settings
from app.models import StudentFee
from app.models.enums import FeeStatus

from conftest import auth_headers, make_student, make_student_fee

API = settings.API_V1_STR


def _category(client, school, name="Library fee", amount=250):
    response = client.post(
        f"{API}/fees/categories",
        json={"name": name, "amount": amount, "frequency": "annual", "academicYearId": str(school.year.id)},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 201
    return response.json()["data"]


def test_category_names_are_unique_per_year(client, school):
    _category(client, school)

    response = client.post(
        f"{API}/fees/categories",
        json={"name": "Library fee", "amount": 90, "frequency": "one-time", "academicYearId": str(school.year.id)},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 409


def test_assign_to_class_skips_students_already_billed(client, db, school):
    first = make_student(db, school.class_, "Ada", "North")
    second = make_student(db, school.class_, "Bea", "South")
    category = _category(client, school)
    headers = auth_headers(school.staff_user)

    single = client.post(
        f"{API}/fees/assign",
        json={"feeCategoryId": category["id"], "studentIds": [str(first.id)], "dueDate": "2030-03-01"},
        headers=headers,
    )
    assert single.status_code == 201
    assert single.json()["data"]["assigned"] == 1

    whole_class = client.post(
        f"{API}/fees/assign/class",
        json={"feeCategoryId": category["id"], "classId": str(school.class_.id), "dueDate": "2030-03-01", "discount": 50},
        headers=headers,
    )
    assert whole_class.status_code == 201
    data = whole_class.json()["data"]
    assert data["assigned"] == 1
    assert data["skippedStudentIds"] == [str(first.id)]

    fee = db.query(StudentFee).filter_by(student_id=second.id).one()
    assert float(fee.amount) == 200.0
    assert float(fee.discount) == 50.0
    assert fee.status == FeeStatus.pending


def test_discount_cannot_exceed_amount(client, db, school):
    student = make_student(db, school.class_)
    category = _category(client, school, amount=100)

    response = client.post(
        f"{API}/fees/assign",
        json={"feeCategoryId": category["id"], "studentIds": [str(student.id)], "dueDate": "2030-03-01", "discount": 150},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 400
    assert response.json()["message"] == "Discount cannot exceed fee amount"


def test_waiving_is_the_only_direct_status_change(client, db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student)
    headers = auth_headers(school.staff_user)

    paid = client.put(f"{API}/fees/student-fees/{fee.id}", json={"status": "paid"}, headers=headers)
    assert paid.status_code == 400

    waived = client.put(f"{API}/fees/student-fees/{fee.id}", json={"status": "waived"}, headers=headers)
    assert waived.status_code == 200
    assert waived.json()["data"]["status"] == "waived"

    # later edits keep the waiver
    moved = client.put(f"{API}/fees/student-fees/{fee.id}", json={"dueDate": "2031-01-31"}, headers=headers)
    assert moved.json()["data"]["status"] == "waived"


def test_students_only_see_their_own_fees(client, db, school):
    me = make_student(db, school.class_, "Kit", "Moss")
    other = make_student(db, school.class_, "Rex", "Pine")
    make_student_fee(db, school, me)
    make_student_fee(db, school, other)

    response = client.get(f"{API}/fees/student-fees", headers=auth_headers(me.user))
    assert response.status_code == 200
    fees = response.json()["data"]
    assert [f["studentId"] for f in fees] == [str(me.id)]

    all_fees = client.get(f"{API}/fees/student-fees", headers=auth_headers(school.admin)).json()
    assert all_fees["pagination"]["total"] == 2


def test_overdue_fees_are_flagged_by_reminders(client, db, school):
    student = make_student(db, school.class_)
    fee = make_student_fee(db, school, student, due_date=school.year.start_date)

    response = client.post(f"{API}/fees/reminders", headers=auth_headers(school.admin))
    assert response.status_code == 200
    assert response.json()["data"]["total"] == 1

    db.refresh(fee)
    assert fee.status == FeeStatus.overdue
