"""Audit trail for security-relevant events.

Each event is written as one JSON line to the ``app.audit`` logger, so where it
ends up (console, file, collector) is decided by logging configuration. The
most recent events are also kept in memory for the admin audit endpoints.
"""
import json
import logging
import threading
from collections import Counter, deque
from typing import Any, Dict, List, Optional

from fastapi import Request

from app.utils.dates import utcnow

logger = logging.getLogger("app.audit")

REDACTED = "[REDACTED]"
SENSITIVE_KEYS = {"password", "token", "accesstoken", "refreshtoken", "authorization", "auth", "secret", "otpcode"}
SENSITIVE_SUFFIXES = ("password", "token", "secret")
# reads are only recorded for these
SENSITIVE_RESOURCES = {"users", "payments", "fees"}


class AuditEvent:
    AUTH_LOGIN = "AUTH_LOGIN"
    AUTH_FAILED_ATTEMPT = "AUTH_FAILED_ATTEMPT"
    AUTH_PASSWORD_CHANGE = "AUTH_PASSWORD_CHANGE"
    DATA_CREATE = "DATA_CREATE"
    DATA_UPDATE = "DATA_UPDATE"
    DATA_DELETE = "DATA_DELETE"
    DATA_ACCESS = "DATA_ACCESS"
    SECURITY_SUSPICIOUS = "SECURITY_SUSPICIOUS"
    SECURITY_RATE_LIMIT = "SECURITY_RATE_LIMIT"
    SECURITY_UNAUTHORIZED = "SECURITY_UNAUTHORIZED"
    SECURITY_BLOCK = "SECURITY_BLOCK"
    SECURITY_UNBLOCK = "SECURITY_UNBLOCK"


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def _is_sensitive(key: str) -> bool:
    normalized = key.replace("_", "").replace("-", "").lower()
    return normalized in SENSITIVE_KEYS or normalized.endswith(SENSITIVE_SUFFIXES)


def redact(value: Any) -> Any:
    """Copy ``value`` with credential-looking keys masked at any depth."""
    if isinstance(value, dict):
        return {k: REDACTED if _is_sensitive(str(k)) else redact(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(item) for item in value]
    return value


class AuditLogger:
    def __init__(self, max_events: int = 500):
        self._events = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def log(
        self,
        event_type: str,
        action: str,
        success: bool = True,
        request: Optional[Request] = None,
        user=None,
        user_email: Optional[str] = None,
        resource: Optional[str] = None,
        resource_id: Optional[Any] = None,
        details: Optional[Dict] = None,
    ) -> Dict:
        entry = {
            "timestamp": utcnow().isoformat(),
            "eventType": event_type,
            "action": action,
            "success": success,
            "userId": str(user.id) if user is not None else None,
            "userEmail": user.email if user is not None else user_email,
            "resource": resource,
            "resourceId": str(resource_id) if resource_id is not None else None,
        }
        if request is not None:
            entry.update(
                ipAddress=client_ip(request),
                userAgent=request.headers.get("user-agent"),
                method=request.method,
                endpoint=request.url.path,
            )
        if details:
            entry["details"] = redact(details)
        entry = {k: v for k, v in entry.items() if v is not None}

        with self._lock:
            self._events.append(entry)
        logger.log(logging.INFO if success else logging.WARNING, json.dumps(entry, default=str))
        return entry

    def events(self, event_type: Optional[str] = None, user_id: Optional[str] = None, limit: int = 100) -> List[Dict]:
        """Newest first."""
        with self._lock:
            entries = list(self._events)
        if event_type:
            entries = [e for e in entries if e["eventType"] == event_type]
        if user_id:
            entries = [e for e in entries if e.get("userId") == user_id]
        return entries[::-1][:limit]

    def stats(self) -> Dict:
        with self._lock:
            entries = list(self._events)
        return {
            "totalEvents": len(entries),
            "failedEvents": sum(1 for e in entries if not e["success"]),
            "byEventType": dict(Counter(e["eventType"] for e in entries)),
            "capacity": self._events.maxlen,
        }

    def alerts(self, limit: int = 50) -> List[Dict]:
        """Failed logins and rejected requests, newest first."""
        with self._lock:
            entries = list(self._events)
        flagged = [
            e for e in entries
            if not e["success"]
            and (e["eventType"].startswith("SECURITY_") or e["eventType"] == AuditEvent.AUTH_FAILED_ATTEMPT)
        ]
        return flagged[::-1][:limit]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()

    # shorthands used by the routes

    def login(self, request: Request, user) -> Dict:
        return self.log(AuditEvent.AUTH_LOGIN, "LOGIN", request=request, user=user, details={"role": user.role.value})

    def failed_login(self, request: Request, email: str, reason: str) -> Dict:
        return self.log(
            AuditEvent.AUTH_FAILED_ATTEMPT, "FAILED_LOGIN", False, request, user_email=email, details={"reason": reason}
        )

    def password_change(self, request: Request, user, success: bool) -> Dict:
        return self.log(AuditEvent.AUTH_PASSWORD_CHANGE, "PASSWORD_CHANGE", success, request, user=user)

    def data(self, request: Request, user, action: str, resource: str, resource_id, details: Optional[Dict] = None) -> Dict:
        event_type = {
            "CREATE": AuditEvent.DATA_CREATE,
            "UPDATE": AuditEvent.DATA_UPDATE,
            "DELETE": AuditEvent.DATA_DELETE,
        }[action]
        return self.log(event_type, action, True, request, user, resource=resource, resource_id=resource_id, details=details)

    def access(self, request: Request, user, resource: str, resource_id) -> Optional[Dict]:
        if resource not in SENSITIVE_RESOURCES:
            return None
        return self.log(AuditEvent.DATA_ACCESS, "ACCESS", True, request, user, resource=resource, resource_id=resource_id)

    def rate_limited(self, request: Request, limit_type: str) -> Dict:
        return self.log(
            AuditEvent.SECURITY_RATE_LIMIT, "RATE_LIMIT_EXCEEDED", False, request, details={"limitType": limit_type}
        )

    def unauthorized(self, request: Request, user, reason: str) -> Dict:
        return self.log(
            AuditEvent.SECURITY_UNAUTHORIZED, "UNAUTHORIZED_ACCESS", False, request, user, details={"reason": reason}
        )

    def suspicious(self, request: Request, action: str, details: Optional[Dict] = None) -> Dict:
        return self.log(AuditEvent.SECURITY_SUSPICIOUS, action, False, request, details=details)


audit = AuditLogger()
