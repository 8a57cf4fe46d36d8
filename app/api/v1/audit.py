from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from app.api import deps
from app.core.audit import audit
from app.models.auth import User
from app.schemas import ok

router = APIRouter()


@router.get("/logs")
def audit_logs(
    event_type: Optional[str] = Query(None, alias="eventType"),
    user_id: Optional[str] = Query(None, alias="userId"),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    """
    Most recent audit events held in memory, newest first. The full trail goes to the app.audit logger.
    """
    return ok(audit.events(event_type=event_type, user_id=user_id, limit=limit))


@router.get("/stats")
def audit_stats(current_user: User = Depends(deps.admin_only)) -> Any:
    return ok(audit.stats())


@router.get("/alerts")
def security_alerts(
    limit: int = Query(50, ge=1, le=500),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(audit.alerts(limit))
