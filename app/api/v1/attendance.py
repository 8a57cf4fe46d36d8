from datetime import date
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.models.enums import AttendanceStatus
from app.schemas import (
    AttendanceBulkCreate,
    AttendanceCreate,
    AttendanceResponse,
    AttendanceUpdate,
    dump,
    dump_list,
    ok,
)
from app.services.attendance_service import AttendanceService
from app.services.base import PageParams
from app.utils.dates import today

router = APIRouter()


@router.post("/", status_code=201)
def mark_attendance(
    attendance_in: AttendanceCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    record = AttendanceService(db, email).mark(attendance_in.model_dump(), current_user)
    return ok(dump(AttendanceResponse, record), "Attendance marked successfully")


@router.post("/bulk", status_code=201)
def bulk_mark_attendance(
    payload: AttendanceBulkCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    result = AttendanceService(db, email).bulk_mark(payload.model_dump(), current_user)
    result["records"] = dump_list(AttendanceResponse, result["records"])
    return ok(result, f"Attendance marked for {result['marked']} student(s)")


@router.get("/")
def list_attendance(
    params: PageParams = Depends(deps.page_params),
    student_id: Optional[str] = Query(None, alias="studentId"),
    class_id: Optional[str] = Query(None, alias="classId"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    status: Optional[AttendanceStatus] = None,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    records, meta = AttendanceService(db).list(
        params,
        current_user,
        student_id=student_id,
        class_id=class_id,
        subject_id=subject_id,
        status=status,
        start_date=start_date,
        end_date=end_date,
    )
    return ok(dump_list(AttendanceResponse, records), pagination=meta)


@router.get("/class/{class_id}")
def class_roster(
    class_id: str,
    on: Optional[date] = Query(None, alias="date"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    return ok(AttendanceService(db).class_roster(class_id, on or today(), current_user, subject_id=subject_id))


@router.get("/student/{student_id}/summary")
def student_attendance_summary(
    student_id: str,
    start_date: Optional[date] = Query(None, alias="startDate"),
    end_date: Optional[date] = Query(None, alias="endDate"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(AttendanceService(db).student_summary(student_id, current_user, start_date, end_date))


@router.get("/{record_id}")
def read_attendance(
    record_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(AttendanceResponse, AttendanceService(db).get(record_id, current_user)))


@router.put("/{record_id}")
def update_attendance(
    record_id: str,
    attendance_in: AttendanceUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    record = AttendanceService(db).update(record_id, attendance_in.model_dump(exclude_unset=True), current_user)
    return ok(dump(AttendanceResponse, record), "Attendance updated successfully")


@router.delete("/{record_id}")
def delete_attendance(
    record_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    AttendanceService(db).delete(record_id, current_user)
    return ok(None, "Attendance record deleted successfully")
