from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.api import deps
from app.models.auth import User
from app.models.enums import UserRole
from app.schemas import (
    ParentCreate,
    ParentUpdate,
    StudentParentLink,
    StudentParentResponse,
    StudentParentUpdate,
    UserResponse,
    dump,
    dump_list,
    ok,
)
from app.services.base import PageParams
from app.services.parent_service import ParentService

router = APIRouter()

parent_or_admin = deps.RoleChecker([UserRole.parent])


@router.post("/", status_code=201)
def create_parent(
    parent_in: ParentCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    parent = ParentService(db, email).create(parent_in.model_dump())
    return ok(dump(UserResponse, parent), "Parent created successfully")


@router.get("/")
def list_parents(
    params: PageParams = Depends(deps.page_params),
    search: Optional[str] = None,
    is_active: Optional[bool] = Query(True, alias="isActive"),
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    parents, meta = ParentService(db).list(params, search=search, is_active=is_active)
    return ok(dump_list(UserResponse, parents), pagination=meta)


@router.post("/links", status_code=201)
def link_student(
    link_in: StudentParentLink,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    link = ParentService(db).link(link_in.model_dump())
    return ok(dump(StudentParentResponse, link), "Parent linked to student successfully")


@router.put("/links/{student_id}/{parent_id}")
def update_link(
    student_id: str,
    parent_id: str,
    link_in: StudentParentUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    link = ParentService(db).update_link(student_id, parent_id, link_in.model_dump(exclude_unset=True))
    return ok(dump(StudentParentResponse, link), "Relationship updated successfully")


@router.delete("/links/{student_id}/{parent_id}")
def unlink_student(
    student_id: str,
    parent_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    ParentService(db).unlink(student_id, parent_id)
    return ok(None, "Parent unlinked from student successfully")


@router.get("/me/dashboard")
def my_dashboard(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(parent_or_admin),
) -> Any:
    return ok(ParentService(db).dashboard(current_user.id, current_user))


@router.get("/{parent_id}")
def read_parent(
    parent_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    detail = ParentService(db).get_detail(parent_id)
    detail["parent"] = dump(UserResponse, detail["parent"])
    return ok(detail)


@router.get("/{parent_id}/dashboard")
def read_dashboard(
    parent_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(parent_or_admin),
) -> Any:
    return ok(ParentService(db).dashboard(parent_id, current_user))


@router.put("/{parent_id}")
def update_parent(
    parent_id: str,
    parent_in: ParentUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.staff_or_admin),
) -> Any:
    parent = ParentService(db).update(parent_id, parent_in.model_dump(exclude_unset=True))
    return ok(dump(UserResponse, parent), "Parent updated successfully")
