from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import (
    ClassResponse,
    ClassSubjectAssignment,
    HomeroomAssignment,
    SubjectAssignment,
    TeacherCreate,
    TeacherResponse,
    TeacherUpdate,
    dump,
    ok,
    dump_list,
)
from app.services.base import PageParams
from app.services.teacher_service import TeacherService

router = APIRouter()


@router.post("/", status_code=201)
def create_teacher(
    teacher_in: TeacherCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    teacher = TeacherService(db, cache, email).create(teacher_in.model_dump())
    return ok(dump(TeacherResponse, teacher), "Teacher created successfully")


@router.get("/")
def list_teachers(
    params: PageParams = Depends(deps.page_params),
    search: Optional[str] = None,
    specialization: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    teachers, meta = TeacherService(db).list(params, search=search, specialization=specialization, is_active=is_active)
    return ok(dump_list(TeacherResponse, teachers), pagination=meta)


# Assignment routes come before /{teacher_id} so the literal paths win

@router.get("/assignments")
def list_assignments(
    params: PageParams = Depends(deps.page_params),
    teacher_id: Optional[str] = Query(None, alias="teacherId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    assignments, meta = TeacherService(db).list_assignments(params, teacher_id=teacher_id)
    return ok(assignments, pagination=meta)


@router.post("/assignments/check-conflicts")
def check_conflicts(
    payload: ClassSubjectAssignment,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    result = TeacherService(db).check_conflicts(payload.teacher_id, payload.class_id, payload.subject_id)
    return ok(result)


@router.get("/assignments/suggestions")
def suggest_teachers(
    class_id: str = Query(..., alias="classId"),
    subject_id: str = Query(..., alias="subjectId"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(TeacherService(db).suggest_teachers(class_id, subject_id))


@router.post("/assignments/class-subject", status_code=201)
def assign_class_subject(
    payload: ClassSubjectAssignment,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    result = TeacherService(db, cache).assign_class_subject(payload.teacher_id, payload.class_id, payload.subject_id)
    return ok(result, "Teacher assigned to class subject successfully")


@router.delete("/assignments/class-subject/{class_id}/{subject_id}")
def remove_class_subject(
    class_id: str,
    subject_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    TeacherService(db, cache).remove_class_subject(class_id, subject_id)
    return ok(None, "Teacher removed from class subject successfully")


@router.post("/assignments/subject", status_code=201)
def assign_subject(
    payload: SubjectAssignment,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    link = TeacherService(db).assign_subject(payload.teacher_id, payload.subject_id)
    return ok({"id": str(link.id), "teacherId": str(link.teacher_id), "subjectId": str(link.subject_id)},
              "Subject assigned to teacher successfully")


@router.delete("/assignments/subject/{teacher_id}/{subject_id}")
def remove_subject(
    teacher_id: str,
    subject_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    TeacherService(db).remove_subject(teacher_id, subject_id)
    return ok(None, "Subject removed from teacher successfully")


@router.post("/assignments/homeroom")
def assign_homeroom(
    payload: HomeroomAssignment,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    class_ = TeacherService(db, cache).assign_homeroom(payload.teacher_id, payload.class_id)
    return ok(dump(ClassResponse, class_), "Homeroom teacher assigned successfully")


@router.delete("/assignments/homeroom/{class_id}")
def remove_homeroom(
    class_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    TeacherService(db, cache).remove_homeroom(class_id)
    return ok(None, "Homeroom teacher removed successfully")


@router.get("/{teacher_id}")
def read_teacher(
    teacher_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    detail = TeacherService(db).get_detail(teacher_id)
    detail["teacher"] = dump(TeacherResponse, detail["teacher"])
    return ok(detail)


@router.get("/{teacher_id}/workload")
def read_workload(
    teacher_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    return ok(TeacherService(db, cache).get_workload(teacher_id))


@router.put("/{teacher_id}")
def update_teacher(
    teacher_id: str,
    teacher_in: TeacherUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    teacher = TeacherService(db).update(teacher_id, teacher_in.model_dump(exclude_unset=True))
    return ok(dump(TeacherResponse, teacher), "Teacher updated successfully")


@router.delete("/{teacher_id}")
def delete_teacher(
    teacher_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    TeacherService(db, cache).delete(teacher_id)
    return ok(None, "Teacher deactivated successfully")
