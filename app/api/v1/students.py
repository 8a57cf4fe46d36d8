from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from app.api import deps
from app.core.errors import AppError
from app.models.auth import User
from app.schemas import (
    ClassHistoryResponse,
    StudentBulkUpdate,
    StudentCreate,
    StudentResponse,
    StudentUpdate,
    dump,
    dump_list,
    ok,
)
from app.services.base import PageParams
from app.services.student_service import StudentService, attendance_summary

router = APIRouter()


@router.post("/", status_code=201)
def create_student(
    student_in: StudentCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    student = StudentService(db, email, cache).create(student_in.model_dump())
    return ok(dump(StudentResponse, student), "Student created successfully")


@router.post("/import", status_code=201)
def import_students(
    file: UploadFile = File(...),
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    """
    Bulk enrollment from a CSV upload. Rows that fail are reported back, the rest are created.
    """
    if not (file.filename or "").lower().endswith(".csv"):
        raise AppError("Only CSV files are supported", 400)
    result = StudentService(db, cache=cache).import_csv(file.file.read())
    return ok(result, f"Imported {result['created']} student(s)")


@router.get("/")
def list_students(
    params: PageParams = Depends(deps.page_params),
    is_active: Optional[bool] = Query(True, alias="isActive"),
    search: Optional[str] = None,
    class_id: Optional[str] = Query(None, alias="classId"),
    grade: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    students, meta = StudentService(db).list(params, is_active=is_active, search=search, class_id=class_id, grade=grade)
    return ok(dump_list(StudentResponse, students), pagination=meta)


@router.patch("/bulk")
def bulk_update_students(
    payload: StudentBulkUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    result = StudentService(db, cache=cache).bulk_update(payload.student_ids, is_active=payload.is_active, class_id=payload.class_id)
    return ok(result, f"{result['updated']} student(s) updated")


@router.get("/{student_id}")
def read_student(
    student_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    student = StudentService(db).get(student_id, current_user)
    data = dump(StudentResponse, student)
    data["attendance"] = attendance_summary(db, student.id)
    return ok(data)


@router.get("/{student_id}/summary")
def read_student_summary(
    student_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    summary = StudentService(db).get_summary(student_id, current_user)
    summary["student"] = dump(StudentResponse, summary["student"])
    return ok(summary)


@router.get("/{student_id}/history")
def read_class_history(
    student_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    history = StudentService(db).get_class_history(student_id, current_user)
    return ok(dump_list(ClassHistoryResponse, history))


@router.put("/{student_id}")
def update_student(
    student_id: str,
    student_in: StudentUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    student = StudentService(db, cache=cache).update(student_id, student_in.model_dump(exclude_unset=True))
    return ok(dump(StudentResponse, student), "Student updated successfully")


@router.delete("/{student_id}")
def delete_student(
    student_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    StudentService(db, cache=cache).delete(student_id)
    return ok(None, "Student deactivated successfully")
