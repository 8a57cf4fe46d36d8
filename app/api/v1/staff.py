from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.schemas import StaffCreate, StaffResponse, StaffUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.staff_service import StaffService

router = APIRouter()


@router.post("/", status_code=201)
def create_staff(
    staff_in: StaffCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    staff = StaffService(db, email).create(staff_in.model_dump())
    return ok(dump(StaffResponse, staff), "Staff member created successfully")


@router.get("/")
def list_staff(
    params: PageParams = Depends(deps.page_params),
    department: Optional[str] = None,
    position: Optional[str] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    staff, meta = StaffService(db).list(
        params, department=department, position=position, search=search, is_active=is_active
    )
    return ok(dump_list(StaffResponse, staff), pagination=meta)


@router.get("/departments/summary")
def department_summary(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    return ok(StaffService(db).department_summary())


@router.get("/{staff_id}")
def read_staff(
    staff_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    return ok(dump(StaffResponse, StaffService(db).get_or_404(staff_id)))


@router.put("/{staff_id}")
def update_staff(
    staff_id: str,
    staff_in: StaffUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    staff = StaffService(db).update(staff_id, staff_in.model_dump(exclude_unset=True))
    return ok(dump(StaffResponse, staff), "Staff member updated successfully")


@router.delete("/{staff_id}")
def delete_staff(
    staff_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    StaffService(db).delete(staff_id)
    return ok(None, "Staff member deactivated successfully")


@router.patch("/{staff_id}/reactivate")
def reactivate_staff(
    staff_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    staff = StaffService(db).reactivate(staff_id)
    return ok(dump(StaffResponse, staff), "Staff member reactivated successfully")
