import logging
import time
from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.api import deps
from app.core.config import settings
from app.models.academics import Class
from app.models.auth import User
from app.models.users import Staff, Student, Teacher
from app.schemas import ok
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

router = APIRouter()

STARTED_AT = time.monotonic()


def _ping(db: Session) -> dict:
    start = time.perf_counter()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed: %s", e)
        return {"status": "down", "error": str(e.__class__.__name__)}
    return {"status": "up", "responseTimeMs": round((time.perf_counter() - start) * 1000, 2)}


@router.get("")
def health() -> Any:
    return ok({"status": "ok", "service": settings.PROJECT_NAME, "timestamp": utcnow().isoformat()})


@router.get("/live")
def liveness() -> Any:
    return ok({"status": "alive", "uptimeSeconds": round(time.monotonic() - STARTED_AT, 1)})


@router.get("/ready")
def readiness(db: Session = Depends(deps.get_db)) -> Any:
    database = _ping(db)
    if database["status"] != "up":
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Service not ready", "data": {"database": database}},
        )
    return ok({"status": "ready", "database": database})


@router.get("/detailed")
def detailed(
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    database = _ping(db)
    counts = {}
    if database["status"] == "up":
        counts = {
            "users": db.query(User).count(),
            "activeStudents": db.query(Student).filter(Student.is_active.is_(True)).count(),
            "activeTeachers": db.query(Teacher).filter(Teacher.is_active.is_(True)).count(),
            "activeStaff": db.query(Staff).filter(Staff.is_active.is_(True)).count(),
            "activeClasses": db.query(Class).filter(Class.is_active.is_(True)).count(),
        }
    return ok(
        {
            "status": "ok" if database["status"] == "up" else "degraded",
            "timestamp": utcnow().isoformat(),
            "uptimeSeconds": round(time.monotonic() - STARTED_AT, 1),
            "database": database,
            "cache": cache.stats() if cache is not None else {"enabled": False},
            "counts": counts,
        }
    )
