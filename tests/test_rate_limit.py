from app.core.config import settings
from app.models import RateLimitEntry
from app.services.rate_limit_service import LoginRateLimitService, RateLimitingService

API = settings.API_V1_STR


def test_requests_within_window_are_allowed(db):
    limiter = RateLimitingService(db)
    results = [limiter.check("10.0.0.1", "reports") for _ in range(10)]

    assert all(r["allowed"] for r in results)
    assert results[-1]["remaining"] == 0

    over = limiter.check("10.0.0.1", "reports")
    assert over["allowed"] is False
    assert over["retry_after"] > 0


def test_counters_are_per_identifier_and_endpoint(db):
    limiter = RateLimitingService(db)
    for _ in range(10):
        limiter.check("10.0.0.1", "reports")

    assert limiter.check("10.0.0.2", "reports")["allowed"] is True
    assert limiter.check("10.0.0.1", "users")["allowed"] is True


def test_blocking_rule_keeps_identifier_blocked(db):
    limiter = RateLimitingService(db)
    for _ in range(5):
        assert limiter.check("10.0.0.9", "login")["allowed"] is True

    assert limiter.check("10.0.0.9", "login")["allowed"] is False
    entry = db.query(RateLimitEntry).filter_by(identifier="10.0.0.9", endpoint="login").one()
    assert entry.is_blocked is True
    assert entry.block_reason == "Exceeded 5 requests in 15 minutes"

    # still blocked on the next request, without counting it
    again = limiter.check("10.0.0.9", "login")
    assert again["allowed"] is False
    assert again["remaining"] == 0


def test_unblock_identifier_resets_counters(db):
    limiter = RateLimitingService(db)
    limiter.block_identifier("10.0.0.5", "register", 60, "manual block")
    assert limiter.check("10.0.0.5", "register")["allowed"] is False

    assert limiter.unblock_identifier("10.0.0.5") == 1
    assert limiter.check("10.0.0.5", "register")["allowed"] is True


def test_unknown_endpoint_uses_default_rule(db):
    limiter = RateLimitingService(db)
    assert limiter.rule_for("something-else") == RateLimitingService.RULES["*"]


def test_login_limiter_warns_before_lockout(db):
    limiter = LoginRateLimitService(db)
    for _ in range(3):
        limiter.record_attempt("kid@greenfield.edu", "10.0.0.3", False)
    db.commit()

    status = limiter.check_login_allowed("KID@greenfield.edu", "10.0.0.4")
    assert status["attempt_count"] == 3
    assert status["remaining_attempts"] == 2
    assert status["warning"] is True


def test_login_stats(db):
    limiter = LoginRateLimitService(db)
    limiter.record_attempt("a@greenfield.edu", "10.0.0.1", True)
    limiter.record_attempt("a@greenfield.edu", "10.0.0.2", False)
    limiter.record_attempt("b@greenfield.edu", "10.0.0.2", False)
    db.commit()

    stats = limiter.get_login_stats()
    assert stats["total_attempts"] == 3
    assert stats["failed_attempts"] == 2
    assert stats["unique_emails"] == 2
    assert stats["unique_ips"] == 2


def test_rate_limited_endpoint_returns_429(client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", True)
    payload = {"email": "nobody@greenfield.edu"}

    for _ in range(5):
        assert client.post(f"{API}/auth/forgot-password", json=payload).status_code == 200

    response = client.post(f"{API}/auth/forgot-password", json=payload)
    assert response.status_code == 429
    body = response.json()
    assert body["code"] == "RATE_LIMITED"
    assert body["context"]["remaining"] == 0
    assert "Retry-After" in response.headers
