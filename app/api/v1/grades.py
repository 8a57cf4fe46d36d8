from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import GradeCreate, GradeResponse, GradeUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.grade_service import GradeService

router = APIRouter()


@router.post("/", status_code=201)
def create_grade(
    grade_in: GradeCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    grade = GradeService(db, email).create(grade_in.model_dump(), current_user)
    return ok(dump(GradeResponse, grade), "Grade recorded successfully")


@router.get("/")
def list_grades(
    params: PageParams = Depends(deps.page_params),
    student_id: Optional[str] = Query(None, alias="studentId"),
    subject_id: Optional[str] = Query(None, alias="subjectId"),
    semester_id: Optional[str] = Query(None, alias="semesterId"),
    assessment_type_id: Optional[str] = Query(None, alias="assessmentTypeId"),
    class_id: Optional[str] = Query(None, alias="classId"),
    min_percentage: Optional[float] = Query(None, alias="minPercentage", ge=0, le=100),
    max_percentage: Optional[float] = Query(None, alias="maxPercentage", ge=0, le=100),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    grades, meta = GradeService(db).list(
        params,
        current_user,
        student_id=student_id,
        subject_id=subject_id,
        semester_id=semester_id,
        assessment_type_id=assessment_type_id,
        class_id=class_id,
        min_percentage=min_percentage,
        max_percentage=max_percentage,
    )
    return ok(dump_list(GradeResponse, grades), pagination=meta)


@router.get("/{grade_id}")
def read_grade(
    grade_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(GradeResponse, GradeService(db).get(grade_id, current_user)))


@router.put("/{grade_id}")
def update_grade(
    grade_id: str,
    grade_in: GradeUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    grade = GradeService(db).update(grade_id, grade_in.model_dump(exclude_unset=True), current_user)
    return ok(dump(GradeResponse, grade), "Grade updated successfully")


@router.delete("/{grade_id}")
def delete_grade(
    grade_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.teacher_or_admin),
) -> Any:
    GradeService(db).delete(grade_id, current_user)
    return ok(None, "Grade deleted successfully")
