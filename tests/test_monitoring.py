import pytest

from app.core.audit import REDACTED, AuditEvent, AuditLogger, audit, redact
from app.core.config import settings
from app.main import app
from app.models import RateLimitEntry
from app.services.monitoring_service import RequestStats

from conftest import PASSWORD, auth_headers

API = settings.API_V1_STR


@pytest.fixture(autouse=True)
def fresh_trail():
    audit.clear()
    app.state.request_stats.clear()
    yield
    audit.clear()


def _login(client, email, password):
    return client.post(f"{API}/auth/login", json={"email": email, "password": password})


@pytest.mark.parametrize("path", ["/monitoring/dashboard", "/monitoring/requests", "/audit/logs", "/monitoring/rate-limits"])
def test_monitoring_is_admin_only(client, school, path):
    response = client.get(f"{API}{path}", headers=auth_headers(school.staff_user))
    assert response.status_code == 403


def test_request_stats_track_each_call(client, school):
    headers = auth_headers(school.admin)
    for _ in range(2):
        assert client.get(f"{API}/auth/profile", headers=headers).status_code == 200

    stats = client.get(f"{API}/monitoring/requests", headers=headers).json()["data"]

    assert stats["totalRequests"] == 2
    assert stats["byEndpoint"][f"GET {API}/auth/profile"]["count"] == 2
    assert stats["recentRequests"][0]["statusCode"] == 200

    assert client.delete(f"{API}/monitoring/requests", headers=headers).status_code == 200
    after = client.get(f"{API}/monitoring/requests", headers=headers).json()["data"]
    # only the clearing call itself
    assert after["totalRequests"] == 1


def test_request_summary_flags_slow_and_failed_requests():
    stats = RequestStats(max_requests=3)
    stats.record("GET", "/a", 200, 10.0)
    stats.record("GET", "/a", 500, 1500.0)
    stats.record("POST", "/b", 201, 30.0)
    stats.record("POST", "/b", 201, 50.0)

    summary = stats.summary()

    assert summary["totalRequests"] == 3
    assert summary["slowRequests"] == 1
    assert summary["errorRequests"] == 1
    assert summary["minResponseTime"] == 30.0
    assert summary["slowestRequests"][0]["duration"] == 1500.0
    assert summary["byEndpoint"]["POST /b"] == {"count": 2, "maxDuration": 50.0, "avgDuration": 40.0}


def test_database_and_cache_metrics(client, school):
    headers = auth_headers(school.admin)

    database = client.get(f"{API}/monitoring/database", headers=headers).json()["data"]
    assert database["status"] == "up"
    assert database["dialect"] == "sqlite"
    assert database["rowCounts"]["users"] == 3
    assert database["rowCounts"]["classes"] == 1

    cache = client.get(f"{API}/monitoring/cache", headers=headers).json()["data"]
    assert cache["maxEntries"] == settings.CACHE_MAX_ENTRIES

    dashboard = client.get(f"{API}/monitoring/dashboard", headers=headers).json()["data"]
    assert set(dashboard) == {"requestStats", "dbMetrics", "cacheStats", "systemMetrics", "timestamp"}
    assert dashboard["systemMetrics"]["process"]["pid"] > 0


def test_block_and_unblock_through_the_api(client, db, school):
    headers = auth_headers(school.admin)

    blocked = client.post(
        f"{API}/monitoring/rate-limits/block",
        json={"identifier": "203.0.113.7", "endpoint": "login", "minutes": 30, "reason": "credential stuffing"},
        headers=headers,
    )
    assert blocked.status_code == 200
    assert blocked.json()["data"]["reason"] == "credential stuffing"
    assert client.get(f"{API}/monitoring/rate-limits", headers=headers).json()["data"]["currently_blocked"] == 1

    unblocked = client.post(
        f"{API}/monitoring/rate-limits/unblock", json={"identifier": "203.0.113.7"}, headers=headers
    )
    assert unblocked.json()["data"]["unblocked"] == 1
    assert db.query(RateLimitEntry).filter_by(identifier="203.0.113.7", is_blocked=True).count() == 0

    trail = [e["eventType"] for e in audit.events()]
    assert trail[:2] == [AuditEvent.SECURITY_UNBLOCK, AuditEvent.SECURITY_BLOCK]


def test_block_payload_is_validated(client, school):
    response = client.post(
        f"{API}/monitoring/rate-limits/block",
        json={"identifier": "203.0.113.7", "endpoint": "login", "minutes": 0, "reason": "x"},
        headers=auth_headers(school.admin),
    )
    assert response.status_code == 400


def test_login_statistics_and_cleanup(client, school):
    _login(client, school.teacher_user.email, "wrong-password")
    assert _login(client, school.teacher_user.email, PASSWORD).status_code == 200
    headers = auth_headers(school.admin)

    stats = client.get(f"{API}/monitoring/logins", headers=headers).json()["data"]
    assert stats["total_attempts"] == 2
    assert stats["failed_attempts"] == 1
    assert stats["success_rate"] == 50.0

    suspicious = client.get(f"{API}/monitoring/logins/suspicious", headers=headers).json()["data"]
    assert suspicious["suspicious_ips"] == []

    cleaned = client.delete(f"{API}/monitoring/logins", headers=headers).json()["data"]
    assert cleaned["deleted"] == 0


def test_failed_login_is_audited(client, school):
    _login(client, school.teacher_user.email, "wrong-password")

    response = client.get(f"{API}/audit/alerts", headers=auth_headers(school.admin))

    alerts = response.json()["data"]
    assert alerts[0]["eventType"] == AuditEvent.AUTH_FAILED_ATTEMPT
    assert alerts[0]["userEmail"] == school.teacher_user.email
    assert alerts[0]["success"] is False


def test_forbidden_role_is_audited(client, school):
    assert client.get(f"{API}/audit/stats", headers=auth_headers(school.teacher_user)).status_code == 403

    events = audit.events(event_type=AuditEvent.SECURITY_UNAUTHORIZED)
    assert events[0]["userId"] == str(school.teacher_user.id)
    assert events[0]["endpoint"] == f"{API}/audit/stats"

    stats = client.get(f"{API}/audit/stats", headers=auth_headers(school.admin)).json()["data"]
    assert stats["byEventType"][AuditEvent.SECURITY_UNAUTHORIZED] == 1


def test_successful_login_is_filtered_by_user(client, school):
    assert _login(client, school.admin.email, PASSWORD).status_code == 200

    logs = client.get(
        f"{API}/audit/logs",
        params={"eventType": AuditEvent.AUTH_LOGIN, "userId": str(school.admin.id)},
        headers=auth_headers(school.admin),
    ).json()["data"]

    assert len(logs) == 1
    assert logs[0]["details"] == {"role": "admin"}


def test_credentials_are_redacted():
    masked = redact({
        "email": "a@b.c",
        "password": "secret1",
        "nested": {"accessToken": "t", "refresh_token": "r", "items": [{"newPassword": "x", "name": "ok"}]},
    })

    assert masked["email"] == "a@b.c"
    assert masked["password"] == REDACTED
    assert masked["nested"]["accessToken"] == REDACTED
    assert masked["nested"]["refresh_token"] == REDACTED
    assert masked["nested"]["items"] == [{"newPassword": REDACTED, "name": "ok"}]


def test_trail_is_bounded():
    trail = AuditLogger(max_events=2)
    for action in ("one", "two", "three"):
        trail.log(AuditEvent.DATA_CREATE, action)

    assert [e["action"] for e in trail.events()] == ["three", "two"]
    assert trail.stats()["totalEvents"] == 2
