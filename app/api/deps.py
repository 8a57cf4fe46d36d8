import logging
from typing import List, Optional

from fastapi import Depends, HTTPException, Query, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core import security
from app.core.audit import audit, client_ip
from app.core.config import settings
from app.core.database import get_db
from app.core.errors import AppError
from app.models.auth import User
from app.models.enums import UserRole
from app.schemas.auth import TokenPayload
from app.services.base import PageParams, parse_uuid
from app.services.rate_limit_service import RateLimitingService

logger = logging.getLogger(__name__)

# Token from the Authorization header; the access_token cookie is the fallback
reusable_oauth2 = OAuth2PasswordBearer(
    tokenUrl=f"{settings.API_V1_STR}/auth/login",
    auto_error=False,
)


def get_current_user(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2),
) -> User:
    if not token:
        token = request.cookies.get("access_token")

    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        payload = security.decode_token(token, "access")
        token_data = TokenPayload(**payload)
    except ValidationError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
        )
    user_id = parse_uuid(token_data.sub)
    if user_id is None:
        raise JWTError("Invalid subject")
    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
    if not user.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Account is inactive")
    return user


def get_optional_user(
    request: Request,
    db: Session = Depends(get_db),
    token: Optional[str] = Depends(reusable_oauth2),
) -> Optional[User]:
    if not token and not request.cookies.get("access_token"):
        return None
    return get_current_user(request, db, token)


class RoleChecker:
    def __init__(self, allowed_roles: List[UserRole]):
        self.allowed_roles = allowed_roles

    def __call__(self, request: Request, current_user: User = Depends(get_current_user)) -> User:
        if current_user.role not in self.allowed_roles and current_user.role != UserRole.admin:
            message = f"Role '{current_user.role.value}' is not allowed to access this resource"
            audit.unauthorized(request, current_user, message)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=message)
        return current_user


admin_only = RoleChecker([UserRole.admin])
staff_or_admin = RoleChecker([UserRole.staff])
teacher_or_admin = RoleChecker([UserRole.teacher])
school_staff = RoleChecker([UserRole.teacher, UserRole.staff])


def get_cache(request: Request):
    return getattr(request.app.state, "cache", None)


def get_email(request: Request):
    return getattr(request.app.state, "email", None)


def page_params(
    page: int = Query(1),
    limit: int = Query(10),
    sort_by: Optional[str] = Query(None, alias="sortBy"),
    sort_order: Optional[str] = Query("desc", alias="sortOrder"),
) -> PageParams:
    return PageParams(page=page, limit=limit, sort_by=sort_by, sort_order=sort_order)


class RateLimit:
    """General request limiter keyed by client IP and a named rule."""

    def __init__(self, endpoint: str):
        self.endpoint = endpoint

    def __call__(self, request: Request, db: Session = Depends(get_db)) -> None:
        if not settings.RATE_LIMIT_ENABLED:
            return
        result = RateLimitingService(db).check(client_ip(request), self.endpoint)
        if not result["allowed"]:
            audit.rate_limited(request, self.endpoint)
            raise AppError(
                "Too many requests. Please try again later.",
                429,
                code="RATE_LIMITED",
                context={
                    "remaining": 0,
                    "reset_time": result["reset_time"],
                    "retry_after": result["retry_after"],
                },
            )
