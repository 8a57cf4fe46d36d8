from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import ClassCreate, ClassResponse, ClassUpdate, StudentResponse, dump, dump_list, ok
from app.services.base import PageParams
from app.services.cache_service import CacheKeys
from app.services.class_service import ClassService

router = APIRouter()


@router.post("/", status_code=201)
def create_class(
    class_in: ClassCreate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    class_ = ClassService(db, cache).create(class_in.model_dump())
    return ok(dump(ClassResponse, class_), "Class created successfully")


@router.get("/")
def list_classes(
    params: PageParams = Depends(deps.page_params),
    grade: Optional[str] = None,
    academic_year_id: Optional[str] = Query(None, alias="academicYearId"),
    teacher_id: Optional[str] = Query(None, alias="teacherId"),
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    service = ClassService(db, cache)

    def load():
        classes, meta = service.list(
            params, grade=grade, academic_year_id=academic_year_id, teacher_id=teacher_id, search=search,
            is_active=is_active,
        )
        return {"items": dump_list(ClassResponse, classes), "pagination": meta}

    parts = (params.page, params.limit, params.sort_by, params.sort_order, grade, academic_year_id, teacher_id,
             search, is_active)
    result = service.cached(CacheKeys.CLASSES, parts, load)
    return ok(result["items"], pagination=result["pagination"])


@router.get("/{class_id}")
def read_class(
    class_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    detail = ClassService(db).get_detail(class_id)
    detail["class"] = dump(ClassResponse, detail["class"])
    return ok(detail)


@router.get("/{class_id}/students")
def read_class_students(
    class_id: str,
    params: PageParams = Depends(deps.page_params),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.school_staff),
) -> Any:
    students, meta = ClassService(db).get_students(class_id, params)
    return ok(dump_list(StudentResponse, students), pagination=meta)


@router.put("/{class_id}")
def update_class(
    class_id: str,
    class_in: ClassUpdate,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    class_ = ClassService(db, cache).update(class_id, class_in.model_dump(exclude_unset=True))
    return ok(dump(ClassResponse, class_), "Class updated successfully")


@router.delete("/{class_id}")
def delete_class(
    class_id: str,
    db: Session = Depends(deps.get_db),
    cache=Depends(deps.get_cache),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    ClassService(db, cache).delete(class_id)
    return ok(None, "Class deactivated successfully")


@router.post("/{class_id}/subjects/{subject_id}", status_code=201)
def add_class_subject(
    class_id: str,
    subject_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    link = ClassService(db).add_subject(class_id, subject_id)
    return ok({"id": str(link.id), "classId": str(link.class_id), "subjectId": str(link.subject_id)},
              "Subject added to class successfully")


@router.delete("/{class_id}/subjects/{subject_id}")
def remove_class_subject(
    class_id: str,
    subject_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    ClassService(db).remove_subject(class_id, subject_id)
    return ok(None, "Subject removed from class successfully")
