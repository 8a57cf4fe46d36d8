from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import FileResponse
from sqlalchemy.orm import Session

from app.api import deps
from app.api.v1.exports import MEDIA_TYPES
from app.core.config import settings
from app.models.auth import User
from app.models.enums import AttendanceStatus
from app.schemas import ok
from app.services.attendance_report_service import AttendanceReportService

router = APIRouter(dependencies=[Depends(deps.RateLimit("reports"))])


@router.get("/report")
def attendance_report(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    group_by: str = Query("student", alias="groupBy", pattern="^(student|class|date|subject)$"),
    class_id: Optional[str] = Query(None, alias="classId"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    status: Optional[AttendanceStatus] = None,
    min_attendance_percentage: Optional[float] = Query(None, alias="minAttendancePercentage", ge=0, le=100),
    include_inactive: bool = Query(False, alias="includeInactive"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    """
    Attendance counts between two dates grouped by student, class, date or subject.
    """
    options = {
        "start_date": start_date,
        "end_date": end_date,
        "group_by": group_by,
        "class_id": class_id,
        "student_id": student_id,
        "subject_id": subject_id,
        "status": status,
        "min_attendance_percentage": min_attendance_percentage,
        "include_inactive": include_inactive,
    }
    return ok(AttendanceReportService(db).report(options, current_user), "Attendance report generated successfully")


@router.get("/trends")
def attendance_trends(
    start_date: date = Query(..., alias="startDate"),
    end_date: date = Query(..., alias="endDate"),
    period: str = Query("daily", pattern="^(daily|weekly|monthly)$"),
    class_id: Optional[str] = Query(None, alias="classId"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    result = AttendanceReportService(db).trends(
        current_user, start_date, end_date, period, class_id=class_id, student_id=student_id
    )
    return ok(result, "Attendance trends retrieved successfully")


@router.get("/statistics")
def attendance_statistics(
    period: str = Query("today", pattern="^(today|week|month|semester)$"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(AttendanceReportService(db).statistics(current_user, period), "Attendance statistics retrieved successfully")


@router.get("/export")
def export_attendance(
    format: str = Query("csv", pattern="^(csv|json|excel)$"),
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    class_id: Optional[str] = Query(None, alias="classId"),
    student_id: Optional[str] = Query(None, alias="studentId"),
    status: Optional[AttendanceStatus] = None,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    options = {
        "start_date": start_date,
        "end_date": end_date,
        "class_id": class_id,
        "student_id": student_id,
        "status": status,
    }
    result = AttendanceReportService(db, settings).export(format, options, current_user)
    if format == "json":
        return ok(result, "Attendance data exported successfully")
    return FileResponse(result["path"], media_type=MEDIA_TYPES[result["format"]], filename=result["filename"])
