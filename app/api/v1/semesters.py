from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import SemesterCreate, SemesterResponse, SemesterUpdate, dump, dump_list, ok
from app.services.academic_service import SemesterService
from app.services.base import PageParams

router = APIRouter()


@router.post("/", status_code=201)
def create_semester(
    semester_in: SemesterCreate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    semester = SemesterService(db).create(semester_in.model_dump())
    return ok(dump(SemesterResponse, semester), "Semester created successfully")


@router.get("/")
def list_semesters(
    params: PageParams = Depends(deps.page_params),
    academic_year_id: Optional[str] = Query(None, alias="academicYearId"),
    is_active: Optional[bool] = Query(None, alias="isActive"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    semesters, meta = SemesterService(db).list(params, academic_year_id=academic_year_id, is_active=is_active)
    return ok(dump_list(SemesterResponse, semesters), pagination=meta)


@router.get("/active")
def read_active_semester(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(SemesterResponse, SemesterService(db).get_active()))


@router.get("/{semester_id}")
def read_semester(
    semester_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    return ok(dump(SemesterResponse, SemesterService(db).get_or_404(semester_id)))


@router.put("/{semester_id}")
def update_semester(
    semester_id: str,
    semester_in: SemesterUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    semester = SemesterService(db).update(semester_id, semester_in.model_dump(exclude_unset=True))
    return ok(dump(SemesterResponse, semester), "Semester updated successfully")


@router.delete("/{semester_id}")
def delete_semester(
    semester_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    SemesterService(db).delete(semester_id)
    return ok(None, "Semester deleted successfully")
