import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Optional

from sqlalchemy import distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import AppError
from app.models.auth import LoginAttempt, RateLimitEntry
from app.utils.dates import as_utc, utcnow

logger = logging.getLogger(__name__)


class LoginRateLimitService:
    """Failed-login counting per email and per IP over a fixed 15 minute window."""

    MAX_ATTEMPTS = 5
    WINDOW = timedelta(minutes=15)
    LOCKOUT = timedelta(minutes=15)
    WARNING_THRESHOLD = MAX_ATTEMPTS - 2

    def __init__(self, db: Session):
        self.db = db

    def _failures(self, column, value, since):
        count, last = (
            self.db.query(func.count(LoginAttempt.id), func.max(LoginAttempt.attempted_at))
            .filter(column == value, LoginAttempt.success.is_(False), LoginAttempt.attempted_at >= since)
            .one()
        )
        return count or 0, as_utc(last)

    def check_login_allowed(self, email: str, ip_address: str) -> Dict:
        """Raise 429 while either counter is locked out; otherwise report how close we are."""
        now = utcnow()
        since = now - self.WINDOW
        email = email.lower()

        worst = 0
        for label, column, value in (
            ("email", LoginAttempt.email, email),
            ("ip", LoginAttempt.ip_address, ip_address),
        ):
            count, last_failure = self._failures(column, value, since)
            worst = max(worst, count)
            if count >= self.MAX_ATTEMPTS and last_failure is not None:
                lockout_end = last_failure + self.LOCKOUT
                if now < lockout_end:
                    logger.warning("Login locked out for %s=%s (%d failures)", label, value, count)
                    raise AppError(
                        "Too many failed login attempts. Please try again later.",
                        429,
                        code="RATE_LIMITED",
                        context={
                            "attempt_count": count,
                            "remaining_attempts": 0,
                            "lockout_time": lockout_end.isoformat(),
                            "retry_after": int((lockout_end - now).total_seconds()) + 1,
                        },
                    )

        remaining = max(self.MAX_ATTEMPTS - worst, 0)
        return {
            "attempt_count": worst,
            "remaining_attempts": remaining,
            "warning": worst >= self.WARNING_THRESHOLD,
        }

    def record_attempt(self, email: str, ip_address: str, success: bool, user_agent: Optional[str] = None) -> LoginAttempt:
        attempt = LoginAttempt(
            email=email.lower(),
            ip_address=ip_address,
            user_agent=user_agent,
            success=success,
            attempted_at=utcnow(),
        )
        self.db.add(attempt)
        return attempt

    def cleanup(self, older_than_hours: int = 24) -> int:
        cutoff = utcnow() - timedelta(hours=older_than_hours)
        deleted = (
            self.db.query(LoginAttempt)
            .filter(LoginAttempt.attempted_at < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        logger.info("Removed %d login attempts older than %dh", deleted, older_than_hours)
        return deleted

    def get_login_stats(self, hours: int = 24) -> Dict:
        since = utcnow() - timedelta(hours=hours)
        base = self.db.query(LoginAttempt).filter(LoginAttempt.attempted_at >= since)
        total = base.count()
        successful = base.filter(LoginAttempt.success.is_(True)).count()
        unique_emails = (
            self.db.query(func.count(distinct(LoginAttempt.email)))
            .filter(LoginAttempt.attempted_at >= since)
            .scalar()
        )
        unique_ips = (
            self.db.query(func.count(distinct(LoginAttempt.ip_address)))
            .filter(LoginAttempt.attempted_at >= since)
            .scalar()
        )
        return {
            "period_hours": hours,
            "total_attempts": total,
            "successful_attempts": successful,
            "failed_attempts": total - successful,
            "success_rate": round(successful / total * 100, 2) if total else 0.0,
            "unique_emails": unique_emails or 0,
            "unique_ips": unique_ips or 0,
        }

    def detect_suspicious_activity(self, hours: int = 1) -> Dict:
        since = utcnow() - timedelta(hours=hours)
        noisy_ips = (
            self.db.query(LoginAttempt.ip_address, func.count(LoginAttempt.id))
            .filter(LoginAttempt.success.is_(False), LoginAttempt.attempted_at >= since)
            .group_by(LoginAttempt.ip_address)
            .having(func.count(LoginAttempt.id) >= 10)
            .all()
        )
        targeted_emails = (
            self.db.query(LoginAttempt.email, func.count(distinct(LoginAttempt.ip_address)))
            .filter(LoginAttempt.success.is_(False), LoginAttempt.attempted_at >= since)
            .group_by(LoginAttempt.email)
            .having(func.count(distinct(LoginAttempt.ip_address)) >= 3)
            .all()
        )
        return {
            "suspicious_ips": [{"ip_address": ip, "failed_attempts": n} for ip, n in noisy_ips],
            "targeted_emails": [{"email": email, "distinct_ips": n} for email, n in targeted_emails],
        }


@dataclass(frozen=True)
class RateLimitRule:
    window_minutes: int
    max_requests: int
    block_minutes: int = 0


class RateLimitingService:
    """Fixed-window request counting per (identifier, endpoint) persisted in rate_limit_entries."""

    RULES: Dict[str, RateLimitRule] = {
        "login": RateLimitRule(window_minutes=15, max_requests=5, block_minutes=15),
        "register": RateLimitRule(window_minutes=60, max_requests=10, block_minutes=60),
        "refresh": RateLimitRule(window_minutes=5, max_requests=20),
        "password_reset": RateLimitRule(window_minutes=60, max_requests=5),
        "users": RateLimitRule(window_minutes=15, max_requests=100),
        "reports": RateLimitRule(window_minutes=10, max_requests=10),
        "*": RateLimitRule(window_minutes=1, max_requests=100),
    }

    def __init__(self, db: Session):
        self.db = db

    def rule_for(self, endpoint: str) -> RateLimitRule:
        return self.RULES.get(endpoint, self.RULES["*"])

    def check(self, identifier: str, endpoint: str) -> Dict:
        """Count this request. Database failures let the request through."""
        try:
            return self._check(identifier, endpoint)
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning("Rate limiter unavailable for %s on %s: %s", identifier, endpoint, e)
            rule = self.rule_for(endpoint)
            return {"allowed": True, "remaining": rule.max_requests, "reset_time": None, "retry_after": None}

    def _check(self, identifier: str, endpoint: str) -> Dict:
        rule = self.rule_for(endpoint)
        now = utcnow()
        window = timedelta(minutes=rule.window_minutes)
        entry = (
            self.db.query(RateLimitEntry)
            .filter(RateLimitEntry.identifier == identifier, RateLimitEntry.endpoint == endpoint)
            .first()
        )

        if entry is not None and entry.is_blocked:
            blocked_until = as_utc(entry.blocked_until)
            if blocked_until is not None and now < blocked_until:
                return {
                    "allowed": False,
                    "remaining": 0,
                    "reset_time": blocked_until.isoformat(),
                    "retry_after": int((blocked_until - now).total_seconds()) + 1,
                }

        if entry is None:
            entry = RateLimitEntry(
                identifier=identifier,
                endpoint=endpoint,
                request_count=1,
                window_start=now,
                window_end=now + window,
                last_request=now,
            )
            self.db.add(entry)
        elif now >= as_utc(entry.window_end) or entry.is_blocked:
            entry.request_count = 1
            entry.window_start = now
            entry.window_end = now + window
            entry.is_blocked = False
            entry.blocked_until = None
            entry.block_reason = None
            entry.last_request = now
        else:
            entry.request_count += 1
            entry.last_request = now

        window_end = as_utc(entry.window_end)
        allowed = entry.request_count <= rule.max_requests
        retry_after = None
        reset_time = window_end
        if not allowed:
            if rule.block_minutes:
                entry.is_blocked = True
                entry.blocked_until = now + timedelta(minutes=rule.block_minutes)
                entry.block_reason = f"Exceeded {rule.max_requests} requests in {rule.window_minutes} minutes"
                reset_time = entry.blocked_until
            retry_after = int((reset_time - now).total_seconds()) + 1
            logger.warning("Rate limit exceeded by %s on %s", identifier, endpoint)
        self.db.commit()

        return {
            "allowed": allowed,
            "remaining": max(rule.max_requests - entry.request_count, 0),
            "reset_time": reset_time.isoformat(),
            "retry_after": retry_after,
        }

    def block_identifier(self, identifier: str, endpoint: str, minutes: int, reason: str) -> RateLimitEntry:
        now = utcnow()
        entry = (
            self.db.query(RateLimitEntry)
            .filter(RateLimitEntry.identifier == identifier, RateLimitEntry.endpoint == endpoint)
            .first()
        )
        if entry is None:
            entry = RateLimitEntry(
                identifier=identifier,
                endpoint=endpoint,
                request_count=0,
                window_start=now,
                window_end=now,
            )
            self.db.add(entry)
        entry.is_blocked = True
        entry.blocked_until = now + timedelta(minutes=minutes)
        entry.block_reason = reason
        self.db.commit()
        logger.warning("Blocked %s on %s for %d minutes: %s", identifier, endpoint, minutes, reason)
        return entry

    def unblock_identifier(self, identifier: str, endpoint: Optional[str] = None) -> int:
        query = self.db.query(RateLimitEntry).filter(RateLimitEntry.identifier == identifier)
        if endpoint:
            query = query.filter(RateLimitEntry.endpoint == endpoint)
        count = 0
        for entry in query.all():
            entry.is_blocked = False
            entry.blocked_until = None
            entry.block_reason = None
            entry.request_count = 0
            count += 1
        self.db.commit()
        return count

    def cleanup(self, older_than_days: int = 7) -> int:
        cutoff = utcnow() - timedelta(days=older_than_days)
        deleted = (
            self.db.query(RateLimitEntry)
            .filter(RateLimitEntry.last_request < cutoff)
            .delete(synchronize_session=False)
        )
        self.db.commit()
        return deleted

    def stats(self) -> Dict:
        now = utcnow()
        rows = (
            self.db.query(RateLimitEntry.endpoint, func.count(RateLimitEntry.id), func.sum(RateLimitEntry.request_count))
            .group_by(RateLimitEntry.endpoint)
            .all()
        )
        blocked = (
            self.db.query(RateLimitEntry)
            .filter(RateLimitEntry.is_blocked.is_(True), RateLimitEntry.blocked_until > now)
            .count()
        )
        return {
            "endpoints": [
                {"endpoint": endpoint, "identifiers": n, "requests": int(total or 0)}
                for endpoint, n, total in rows
            ],
            "currently_blocked": blocked,
        }
