from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Request, Response
from sqlalchemy.orm import Session

from app.api import deps
from app.core.audit import audit
from app.core.config import settings
from app.core.errors import AppError
from app.models.auth import User
from app.schemas import (
    ChangePassword,
    Login,
    PasswordResetConfirm,
    PasswordResetRequest,
    RefreshTokenRequest,
    StaffResponse,
    StudentResponse,
    TeacherResponse,
    UserCreate,
    UserResponse,
    dump,
    dump_list,
    ok,
)
from app.services.auth_service import AuthService

router = APIRouter()


def _set_auth_cookies(response: Response, tokens: dict) -> None:
    response.set_cookie(
        key="access_token",
        value=tokens["access_token"],
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )
    response.set_cookie(
        key="refresh_token",
        value=tokens["refresh_token"],
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite="lax",
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _token_body(tokens: dict) -> dict:
    return {
        "accessToken": tokens["access_token"],
        "refreshToken": tokens["refresh_token"],
        "tokenType": tokens["token_type"],
        "expiresIn": tokens["expires_in"],
    }


@router.post("/register", status_code=201, dependencies=[Depends(deps.RateLimit("register"))])
def register(
    user_in: UserCreate,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
    current_user: Optional[User] = Depends(deps.get_optional_user),
) -> Any:
    user = AuthService(db, email).register(user_in.model_dump(), actor=current_user)
    return ok(dump(UserResponse, user), "User registered successfully")


@router.post("/login", dependencies=[Depends(deps.RateLimit("login"))])
def login(
    request: Request,
    response: Response,
    credentials: Login,
    db: Session = Depends(deps.get_db),
) -> Any:
    """
    Login with email and password. Tokens are returned in the body and set as HTTP-only cookies.
    """
    try:
        result = AuthService(db).login(
            credentials.email,
            credentials.password,
            deps.client_ip(request),
            request.headers.get("user-agent"),
        )
    except AppError as e:
        if e.status_code == 429:
            audit.rate_limited(request, "login")
        else:
            audit.failed_login(request, credentials.email, e.message)
        raise
    audit.login(request, result["user"])
    _set_auth_cookies(response, result)
    return ok({"user": dump(UserResponse, result["user"]), **_token_body(result)}, "Login successful")


@router.post("/refresh", dependencies=[Depends(deps.RateLimit("refresh"))])
def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshTokenRequest] = Body(None),
    db: Session = Depends(deps.get_db),
) -> Any:
    """
    Rotate the token pair. The refresh token comes from the body or the refresh_token cookie.
    """
    token = (body.refresh_token if body else None) or request.cookies.get("refresh_token")
    if not token:
        raise AppError("Refresh token is required", 401, code="MISSING_REFRESH_TOKEN")
    tokens = AuthService(db).refresh(token)
    _set_auth_cookies(response, tokens)
    return ok(_token_body(tokens), "Token refreshed successfully")


@router.post("/logout")
def logout(
    response: Response,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    AuthService(db).logout(current_user)
    response.delete_cookie("access_token")
    response.delete_cookie("refresh_token")
    return ok(None, "Logged out successfully")


@router.get("/profile")
def read_profile(
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    profile = AuthService(db).profile(current_user)
    data = {"user": dump(UserResponse, profile["user"])}
    if profile["student"] is not None:
        data["student"] = dump(StudentResponse, profile["student"])
    if profile["teacher"] is not None:
        data["teacher"] = dump(TeacherResponse, profile["teacher"])
    if profile["staff"] is not None:
        data["staff"] = dump(StaffResponse, profile["staff"])
    if profile["children"]:
        data["children"] = dump_list(StudentResponse, profile["children"])
    return ok(data)


@router.put("/change-password")
def change_password(
    request: Request,
    payload: ChangePassword,
    db: Session = Depends(deps.get_db),
    current_user: User = Depends(deps.get_current_user),
) -> Any:
    try:
        AuthService(db).change_password(current_user, payload.current_password, payload.new_password)
    except AppError:
        audit.password_change(request, current_user, False)
        raise
    audit.password_change(request, current_user, True)
    return ok(None, "Password changed successfully")


@router.post("/forgot-password", dependencies=[Depends(deps.RateLimit("password_reset"))])
def forgot_password(
    payload: PasswordResetRequest,
    db: Session = Depends(deps.get_db),
    email=Depends(deps.get_email),
) -> Any:
    AuthService(db, email).forgot_password(payload.email)
    return ok(None, "If an account exists for this email, a reset code has been sent")


@router.post("/reset-password", dependencies=[Depends(deps.RateLimit("password_reset"))])
def reset_password(
    payload: PasswordResetConfirm,
    db: Session = Depends(deps.get_db),
) -> Any:
    AuthService(db).reset_password(payload.email, payload.otp_code, payload.new_password)
    return ok(None, "Password reset successfully")
