import os
import uuid

from app.core.config import settings
from app.models import Subject
from app.models.enums import UserRole

from conftest import auth_headers, make_user

API = settings.API_V1_STR


def test_root_and_health(client):
    assert client.get("/").json()["health"] == "/health"

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["data"]["status"] == "ok"

    ready = client.get("/health/ready")
    assert ready.status_code == 200
    assert ready.json()["data"]["database"]["status"] == "up"


def test_detailed_health_is_admin_only(client, school):
    assert client.get("/health/detailed", headers=auth_headers(school.staff_user)).status_code == 403

    response = client.get("/health/detailed", headers=auth_headers(school.admin))
    assert response.status_code == 200
    data = response.json()["data"]
    assert data["counts"]["activeTeachers"] == 1
    assert data["cache"]["enabled"] is True


def test_responses_carry_timing_header(client):
    assert client.get("/health/live").headers["X-Response-Time"].endswith("ms")


def test_not_found_uses_error_envelope(client, school):
    response = client.get(f"{API}/students/{uuid.uuid4()}", headers=auth_headers(school.admin))

    assert response.status_code == 404
    assert response.json() == {"success": False, "message": "Student not found"}


def test_lookup_by_numeric_alt_id(client, school):
    response = client.get(f"{API}/subjects/{school.subject.alt_id}", headers=auth_headers(school.admin))
    assert response.status_code == 200
    assert response.json()["data"]["code"] == "MATH101"


def test_validation_errors_list_fields(client, school):
    response = client.post(
        f"{API}/subjects/",
        json={"name": "Physics", "code": "", "creditHours": 12},
        headers=auth_headers(school.admin),
    )

    assert response.status_code == 400
    body = response.json()
    assert body["message"] == "Validation error"
    assert {d["field"] for d in body["details"]} == {"code", "creditHours"}


def test_invalid_token_is_rejected(client):
    response = client.get(f"{API}/auth/profile", headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid token"


def test_role_checks(client, db, school):
    parent = make_user(db, UserRole.parent, "paula.parent@greenfield.edu", "Paula", "Parent")
    db.commit()

    response = client.get(f"{API}/users/", headers=auth_headers(parent))
    assert response.status_code == 403
    assert response.json()["message"] == "Role 'parent' is not allowed to access this resource"

    assert client.get(f"{API}/users/", headers=auth_headers(school.admin)).status_code == 200


def test_pagination_meta_and_clamping(client, db, school):
    for n in range(3):
        db.add(Subject(alt_id=5000 + n, name=f"Elective {n}", code=f"ELC{n}", credit_hours=2, is_active=True))
    db.commit()
    headers = auth_headers(school.admin)

    first = client.get(f"{API}/subjects/", params={"page": 1, "limit": 2, "sortBy": "code", "sortOrder": "asc"}, headers=headers)
    assert first.status_code == 200
    body = first.json()
    assert body["pagination"] == {"page": 1, "limit": 2, "total": 4, "totalPages": 2}
    assert [s["code"] for s in body["data"]] == ["ELC0", "ELC1"]

    clamped = client.get(f"{API}/subjects/", params={"page": 0, "limit": 500}, headers=headers).json()
    assert clamped["pagination"]["page"] == 1
    assert clamped["pagination"]["limit"] == 100


def test_subject_list_cache_is_invalidated_on_create(client, school):
    headers = auth_headers(school.admin)
    assert client.get(f"{API}/subjects/", headers=headers).json()["pagination"]["total"] == 1

    created = client.post(
        f"{API}/subjects/", json={"name": "Biology", "code": "bio201", "creditHours": 3}, headers=headers
    )
    assert created.status_code == 201
    assert created.json()["data"]["code"] == "BIO201"

    assert client.get(f"{API}/subjects/", headers=headers).json()["pagination"]["total"] == 2


def test_duplicate_subject_code_conflicts(client, school):
    response = client.post(
        f"{API}/subjects/", json={"name": "Maths again", "code": "math101"}, headers=auth_headers(school.admin)
    )
    assert response.status_code == 409
    assert response.json()["message"] == "Subject with this code already exists"


def test_sql_injection_in_query_is_blocked(client, school):
    response = client.get(
        f"{API}/students/", params={"search": "x' OR '1'='1"}, headers=auth_headers(school.admin)
    )
    assert response.status_code == 400
    assert response.json()["code"] == "SQLI_DETECTED"


def test_sql_injection_in_json_body_is_blocked(client, school):
    response = client.post(
        f"{API}/subjects/",
        json={"name": "Robotics; DROP TABLE subjects", "code": "ROB1"},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 400
    assert response.json()["code"] == "SQLI_DETECTED"


def test_cache_admin_endpoints(client, school):
    headers = auth_headers(school.admin)
    client.get(f"{API}/subjects/", headers=headers)

    stats = client.get(f"{API}/cache/stats", headers=headers)
    assert stats.status_code == 200
    assert stats.json()["data"]["keys"] == 1

    cleared = client.delete(f"{API}/cache/", params={"pattern": "subjects:*"}, headers=headers)
    assert cleared.json()["data"] == {"removed": 1}


def test_uploaded_files_are_not_served_statically(client):
    upload_dir = os.path.join(settings.UPLOAD_DIR, "students")
    os.makedirs(upload_dir, exist_ok=True)
    with open(os.path.join(upload_dir, "report.pdf"), "wb") as f:
        f.write(b"%PDF-1.4")

    assert client.get("/uploads/students/report.pdf").status_code == 404
