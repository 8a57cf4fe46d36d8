from app.core.config import settings
from app.models import LoginAttempt, User, UserSession
from app.models.enums import UserRole

from conftest import PASSWORD, auth_headers, make_user

API = settings.API_V1_STR


def _login(client, email, password):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


def test_register_creates_student_account(client, db):
    response = client.post(
        f"{API}/auth/register",
        json={
            "firstName": "Nora",
            "lastName": "Quill",
            "email": "Nora.Quill@greenfield.edu",
            "password": "longenough1",
        },
    )

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["data"]["email"] == "nora.quill@greenfield.edu"
    assert body["data"]["role"] == "student"
    assert "passwordHash" not in body["data"]


def test_register_rejects_duplicate_email(client, school):
    response = client.post(
        f"{API}/auth/register",
        json={"firstName": "Ada", "lastName": "Again", "email": "admin@greenfield.edu", "password": "longenough1"},
    )
    assert response.status_code == 409
    assert response.json()["message"] == "User with this email already exists"


def test_only_admin_can_register_admin(client, school):
    payload = {
        "firstName": "Eve",
        "lastName": "Root",
        "email": "eve.root@greenfield.edu",
        "password": "longenough1",
        "role": "admin",
    }
    assert client.post(f"{API}/auth/register", json=payload).status_code == 403

    response = client.post(f"{API}/auth/register", json=payload, headers=auth_headers(school.admin))
    assert response.status_code == 201
    assert response.json()["data"]["role"] == "admin"


def test_login_returns_tokens_and_sets_cookies(client, db, school):
    response = _login(client, "admin@greenfield.edu", PASSWORD)

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["email"] == "admin@greenfield.edu"
    assert data["tokenType"] == "bearer"
    assert data["accessToken"] and data["refreshToken"]
    assert "access_token" in response.cookies
    assert "refresh_token" in response.cookies

    assert db.query(UserSession).filter(UserSession.user_id == school.admin.id).count() == 1
    attempt = db.query(LoginAttempt).one()
    assert attempt.success is True


def test_wrong_password_reports_remaining_attempts(client, school):
    response = _login(client, "admin@greenfield.edu", "not-the-password")

    assert response.status_code == 401
    body = response.json()
    assert body["success"] is False
    assert body["code"] == "INVALID_CREDENTIALS"
    assert body["context"]["remaining_attempts"] == 4


def test_login_locks_out_after_five_failures(client, school):
    for _ in range(5):
        assert _login(client, "admin@greenfield.edu", "wrong-password").status_code == 401

    response = _login(client, "admin@greenfield.edu", PASSWORD)

    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["context"]["remaining_attempts"] == 0
    assert int(response.headers["Retry-After"]) > 0


def test_inactive_account_cannot_login(client, db, school):
    school.staff_user.is_active = False
    db.commit()

    response = _login(client, "office@greenfield.edu", PASSWORD)
    assert response.status_code == 403
    assert response.json()["code"] == "ACCOUNT_INACTIVE"


def test_refresh_rotates_the_session(client, db, school):
    tokens = _login(client, "admin@greenfield.edu", PASSWORD).json()["data"]

    response = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert response.status_code == 200
    rotated = response.json()["data"]
    assert rotated["refreshToken"] != tokens["refreshToken"]

    # the old refresh token no longer matches a session
    stale = client.post(f"{API}/auth/refresh", json={"refreshToken": tokens["refreshToken"]})
    assert stale.status_code == 401


def test_refresh_requires_a_token(client):
    client.cookies.clear()
    response = client.post(f"{API}/auth/refresh")
    assert response.status_code == 401
    assert response.json()["code"] == "MISSING_REFRESH_TOKEN"


def test_profile_includes_role_record(client, school):
    response = client.get(f"{API}/auth/profile", headers=auth_headers(school.teacher_user))

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["user"]["role"] == "teacher"
    assert data["teacher"]["employeeId"] == "EMP-001"


def test_profile_requires_authentication(client):
    client.cookies.clear()
    response = client.get(f"{API}/auth/profile")
    assert response.status_code == 401
    assert response.json() == {"success": False, "message": "Not authenticated"}


def test_change_password(client, db, school):
    headers = auth_headers(school.staff_user)
    wrong = client.put(
        f"{API}/auth/change-password",
        json={"currentPassword": "nope-nope", "newPassword": "Brand-new-pass1"},
        headers=headers,
    )
    assert wrong.status_code == 400

    response = client.put(
        f"{API}/auth/change-password",
        json={"currentPassword": PASSWORD, "newPassword": "Brand-new-pass1"},
        headers=headers,
    )
    assert response.status_code == 200
    assert _login(client, "office@greenfield.edu", "Brand-new-pass1").status_code == 200


def test_password_reset_with_otp(client, db, monkeypatch):
    user = make_user(db, UserRole.parent, "pat.parent@greenfield.edu", "Pat", "Parent")
    db.commit()
    monkeypatch.setattr("app.core.security.generate_otp", lambda length=6: "123456")

    response = client.post(f"{API}/auth/forgot-password", json={"email": "pat.parent@greenfield.edu"})
    assert response.status_code == 200

    bad = client.post(
        f"{API}/auth/reset-password",
        json={"email": "pat.parent@greenfield.edu", "otpCode": "654321", "newPassword": "Reset-pass-99"},
    )
    assert bad.status_code == 400

    good = client.post(
        f"{API}/auth/reset-password",
        json={"email": "pat.parent@greenfield.edu", "otpCode": "123456", "newPassword": "Reset-pass-99"},
    )
    assert good.status_code == 200
    db.refresh(user)
    assert _login(client, "pat.parent@greenfield.edu", "Reset-pass-99").status_code == 200


def test_forgot_password_does_not_reveal_unknown_accounts(client):
    response = client.post(f"{API}/auth/forgot-password", json={"email": "nobody@greenfield.edu"})
    assert response.status_code == 200
    assert response.json()["success"] is True


def test_deactivated_user_token_is_refused(client, db, school):
    headers = auth_headers(school.staff_user)
    db.query(User).filter(User.id == school.staff_user.id).update({"is_active": False})
    db.commit()

    response = client.get(f"{API}/auth/profile", headers=headers)
    assert response.status_code == 403
