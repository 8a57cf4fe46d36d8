from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from app.api import deps
from app.core.audit import audit
from app.models.auth import User
from app.models.enums import UserRole
from app.schemas import UserResponse, UserUpdate, dump, dump_list, ok
from app.services.base import PageParams
from app.services.user_service import UserService

router = APIRouter(dependencies=[Depends(deps.RateLimit("users"))])


@router.get("/")
def list_users(
    params: PageParams = Depends(deps.page_params),
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = Query(None, alias="isActive"),
    search: Optional[str] = None,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    users, meta = UserService(db).list_users(params, role=role, is_active=is_active, search=search)
    return ok(dump_list(UserResponse, users), pagination=meta)


@router.get("/{user_id}")
def read_user(
    request: Request,
    user_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    user = UserService(db).get_or_404(user_id)
    audit.access(request, current_user, "users", user.id)
    return ok(dump(UserResponse, user))


@router.put("/{user_id}")
def update_user(
    request: Request,
    user_id: str,
    user_in: UserUpdate,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    changes = user_in.model_dump(exclude_unset=True)
    user = UserService(db).update_user(user_id, changes)
    audit.data(request, current_user, "UPDATE", "users", user.id, {"changes": changes})
    return ok(dump(UserResponse, user), "User updated successfully")


@router.delete("/{user_id}")
def delete_user(
    request: Request,
    user_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    user = UserService(db).set_active(user_id, False, current_user)
    audit.data(request, current_user, "DELETE", "users", user.id)
    return ok(None, "User deactivated successfully")


@router.patch("/{user_id}/reactivate")
def reactivate_user(
    user_id: str,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.admin_only),
) -> Any:
    user = UserService(db).set_active(user_id, True, current_user)
    return ok(dump(UserResponse, user), "User reactivated successfully")
