from typing import Any

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.core.audit import AuditEvent, audit
from app.models.auth import User
from app.schemas import RateLimitBlock, RateLimitUnblock, ok
from app.services.monitoring_service import MonitoringService
from app.services.rate_limit_service import LoginRateLimitService, RateLimitingService
from app.utils.dates import as_utc

router = APIRouter()


def _service(request: Request, db: Session, cache) -> MonitoringService:
    return MonitoringService(db, cache, getattr(request.app.state, "request_stats", None))


@router.get("/dashboard")
def dashboard(
    request: Request,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_service(request, db, cache).dashboard())


@router.get("/requests")
def request_stats(
    request: Request,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_service(request, db, None).request_stats())


@router.delete("/requests")
def clear_request_stats(
    request: Request,
    current_user: User = Depends(deps.admin_only),
) -> Any:
    request.app.state.request_stats.clear()
    return ok(None, "Request statistics cleared")


@router.get("/system")
def system_metrics(
    request: Request,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_service(request, db, None).system())


@router.get("/database")
def database_metrics(
    request: Request,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_service(request, db, None).database())


@router.get("/cache")
def cache_metrics(
    request: Request,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(_service(request, db, cache).cache_metrics())


# rate limiting

@router.get("/rate-limits")
def rate_limit_stats(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(RateLimitingService(db).stats())


@router.post("/rate-limits/block")
def block_identifier(
    request: Request,
    payload: RateLimitBlock,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    entry = RateLimitingService(db).block_identifier(payload.identifier, payload.endpoint, payload.minutes, payload.reason)
    audit.log(
        AuditEvent.SECURITY_BLOCK, "BLOCK_IDENTIFIER", True, request, current_user,
        resource="rate_limits", resource_id=payload.identifier, details=payload.model_dump(),
    )
    data = {
        "identifier": entry.identifier,
        "endpoint": entry.endpoint,
        "blockedUntil": as_utc(entry.blocked_until).isoformat(),
        "reason": entry.block_reason,
    }
    return ok(data, f"Blocked {payload.identifier} on {payload.endpoint}")


@router.post("/rate-limits/unblock")
def unblock_identifier(
    request: Request,
    payload: RateLimitUnblock,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    count = RateLimitingService(db).unblock_identifier(payload.identifier, payload.endpoint)
    audit.log(
        AuditEvent.SECURITY_UNBLOCK, "UNBLOCK_IDENTIFIER", True, request, current_user,
        resource="rate_limits", resource_id=payload.identifier, details={"entries": count},
    )
    return ok({"unblocked": count}, f"Unblocked {count} rate limit entries")


@router.delete("/rate-limits")
def cleanup_rate_limits(
    older_than_days: int = Query(7, alias="olderThanDays", ge=1),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    deleted = RateLimitingService(db).cleanup(older_than_days)
    return ok({"deleted": deleted}, f"Removed {deleted} stale rate limit entries")


# login attempts

@router.get("/logins")
def login_stats(
    hours: int = Query(24, ge=1, le=24 * 30),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(LoginRateLimitService(db).get_login_stats(hours))


@router.get("/logins/suspicious")
def suspicious_logins(
    hours: int = Query(1, ge=1, le=24 * 7),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(LoginRateLimitService(db).detect_suspicious_activity(hours))


@router.delete("/logins")
def cleanup_login_attempts(
    older_than_hours: int = Query(24, alias="olderThanHours", ge=1),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    deleted = LoginRateLimitService(db).cleanup(older_than_hours)
    return ok({"deleted": deleted}, f"Removed {deleted} old login attempts")
