import logging
from datetime import timedelta
from typing import Dict, Optional

from app.core import security
from app.core.config import settings
from app.core.errors import AppError
from app.models.auth import PasswordResetOTP, User, UserSession
from app.models.enums import UserRole
from app.models.users import Staff, Student, StudentParent, Teacher
from app.services.base import BaseService
from app.services.rate_limit_service import LoginRateLimitService
from app.services.user_service import UserService
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class AuthService(BaseService):
    model = User
    entity_name = "User"

    def __init__(self, db, email=None):
        super().__init__(db)
        self.email = email
        self.login_limiter = LoginRateLimitService(db)

    def register(self, data: Dict, actor: Optional[User] = None) -> User:
        role = data.get("role") or UserRole.student
        if role == UserRole.admin and (actor is None or actor.role != UserRole.admin):
            raise AppError("Only administrators can create admin accounts", 403)
        with self.transaction():
            user = UserService(self.db).create_user(data, role, data["password"])
        self.db.refresh(user)
        if self.email:
            self.email.send_welcome_email(user.email, user.full_name, user.role.value)
        logger.info("Registered %s user %s", user.role.value, user.email)
        return user

    def _issue_session(self, user: User, ip_address: Optional[str], user_agent: Optional[str]) -> Dict:
        access_token = security.create_access_token(user.id)
        refresh_token = security.create_refresh_token(user.id)
        # one active refresh token per user
        self.db.query(UserSession).filter(UserSession.user_id == user.id).delete()
        self.db.add(
            UserSession(
                user_id=user.id,
                refresh_token=refresh_token,
                user_agent=user_agent,
                ip_address=ip_address,
                expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            )
        )
        return {
            "access_token": access_token,
            "refresh_token": refresh_token,
            "token_type": "bearer",
            "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        }

    def login(self, email: str, password: str, ip_address: str, user_agent: Optional[str] = None) -> Dict:
        status = self.login_limiter.check_login_allowed(email, ip_address)

        user = self.db.query(User).filter(User.email == email.lower()).first()
        if not user or not security.verify_password(password, user.password_hash):
            self.login_limiter.record_attempt(email, ip_address, False, user_agent)
            self.db.commit()
            remaining = max(status["remaining_attempts"] - 1, 0)
            context = {"remaining_attempts": remaining}
            if remaining <= LoginRateLimitService.MAX_ATTEMPTS - LoginRateLimitService.WARNING_THRESHOLD:
                context["warning"] = f"{remaining} attempt(s) remaining before temporary lockout"
            raise AppError("Invalid email or password", 401, code="INVALID_CREDENTIALS", context=context)

        if not user.is_active:
            self.login_limiter.record_attempt(email, ip_address, False, user_agent)
            self.db.commit()
            raise AppError("Account is inactive", 403, code="ACCOUNT_INACTIVE")

        self.login_limiter.record_attempt(email, ip_address, True, user_agent)
        user.last_login = utcnow()
        tokens = self._issue_session(user, ip_address, user_agent)
        self.db.commit()
        self.db.refresh(user)
        logger.info("User %s logged in from %s", user.email, ip_address)
        return {**tokens, "user": user}

    def refresh(self, refresh_token: str) -> Dict:
        payload = security.decode_token(refresh_token, expected_type="refresh")
        session = (
            self.db.query(UserSession)
            .filter(
                UserSession.refresh_token == refresh_token,
                UserSession.expires_at > utcnow(),
            )
            .first()
        )
        if not session or str(session.user_id) != payload.get("sub"):
            raise AppError("Invalid or expired refresh token", 401, code="INVALID_REFRESH_TOKEN")
        user = session.user
        if not user.is_active:
            raise AppError("Account is inactive", 403, code="ACCOUNT_INACTIVE")

        tokens = self._issue_session(user, session.ip_address, session.user_agent)
        self.db.commit()
        return tokens

    def logout(self, user: User) -> None:
        self.db.query(UserSession).filter(UserSession.user_id == user.id).delete()
        self.db.commit()

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not security.verify_password(current_password, user.password_hash):
            raise AppError("Current password is incorrect", 400)
        if current_password == new_password:
            raise AppError("New password must be different from the current password", 400)
        user.password_hash = security.get_password_hash(new_password)
        user.updated_at = utcnow()
        self.db.commit()

    def forgot_password(self, email: str) -> None:
        """Issue a reset OTP. Unknown addresses are ignored so callers cannot tell which accounts exist."""
        user = self.db.query(User).filter(User.email == email.lower()).first()
        if not user or not user.is_active:
            logger.info("Password reset requested for unknown or inactive email")
            return

        self.db.query(PasswordResetOTP).filter(
            PasswordResetOTP.email == user.email, PasswordResetOTP.is_used.is_(False)
        ).update({"is_used": True}, synchronize_session=False)
        otp = security.generate_otp()
        self.db.add(
            PasswordResetOTP(
                email=user.email,
                otp_code=otp,
                expires_at=utcnow() + timedelta(minutes=settings.PASSWORD_RESET_OTP_MINUTES),
            )
        )
        self.db.commit()
        if self.email:
            self.email.send_password_reset_email(
                user.email, user.full_name, otp, settings.PASSWORD_RESET_OTP_MINUTES
            )

    def reset_password(self, email: str, otp_code: str, new_password: str) -> None:
        email = email.lower()
        record = (
            self.db.query(PasswordResetOTP)
            .filter(
                PasswordResetOTP.email == email,
                PasswordResetOTP.otp_code == otp_code,
                PasswordResetOTP.is_used.is_(False),
                PasswordResetOTP.expires_at > utcnow(),
            )
            .first()
        )
        user = self.db.query(User).filter(User.email == email).first()
        if not record or not user:
            raise AppError("Invalid or expired OTP", 400)

        record.is_used = True
        user.password_hash = security.get_password_hash(new_password)
        user.updated_at = utcnow()
        self.db.query(UserSession).filter(UserSession.user_id == user.id).delete()
        self.db.commit()
        logger.info("Password reset for %s", user.email)

    def profile(self, user: User) -> Dict:
        """The user plus the role record behind it (student, teacher or staff row, or linked children)."""
        profile: Dict = {"user": user, "student": None, "teacher": None, "staff": None, "children": []}
        if user.role == UserRole.student:
            profile["student"] = self.db.query(Student).filter(Student.user_id == user.id).first()
        elif user.role == UserRole.teacher:
            profile["teacher"] = self.db.query(Teacher).filter(Teacher.user_id == user.id).first()
        elif user.role == UserRole.staff:
            profile["staff"] = self.db.query(Staff).filter(Staff.user_id == user.id).first()
        elif user.role == UserRole.parent:
            profile["children"] = (
                self.db.query(Student)
                .join(StudentParent, StudentParent.student_id == Student.id)
                .filter(StudentParent.parent_user_id == user.id)
                .all()
            )
        return profile
