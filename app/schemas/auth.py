from datetime import date, datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from app.models.enums import UserRole
from app.schemas.common import CamelModel


class TokenPayload(BaseModel):
    sub: Optional[str] = None
    type: Optional[str] = None


class Login(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=1)


class RefreshTokenRequest(CamelModel):
    refresh_token: Optional[str] = None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetConfirm(CamelModel):
    email: EmailStr
    otp_code: str = Field(..., min_length=6, max_length=6)
    new_password: str = Field(..., min_length=8)


class ChangePassword(CamelModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class UserBase(CamelModel):
    first_name: str = Field(..., min_length=2)
    last_name: str = Field(..., min_length=2)
    email: EmailStr
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None


class UserCreate(UserBase):
    password: str = Field(..., min_length=8)
    role: UserRole = UserRole.student


class UserUpdate(CamelModel):
    first_name: Optional[str] = Field(None, min_length=2)
    last_name: Optional[str] = Field(None, min_length=2)
    phone: Optional[str] = None
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    role: Optional[UserRole] = None


class UserBrief(CamelModel):
    id: UUID
    first_name: str
    last_name: str
    email: str
    phone: Optional[str] = None


class UserResponse(UserBrief):
    alt_id: Optional[int] = None
    role: UserRole
    date_of_birth: Optional[date] = None
    address: Optional[str] = None
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class RateLimitBlock(CamelModel):
    identifier: str = Field(..., min_length=1)
    endpoint: str = Field(..., min_length=1)
    minutes: int = Field(60, ge=1, le=7 * 24 * 60)
    reason: str = Field(..., min_length=3, max_length=255)


class RateLimitUnblock(CamelModel):
    identifier: str = Field(..., min_length=1)
    endpoint: Optional[str] = None
