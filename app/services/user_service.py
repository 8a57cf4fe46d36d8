import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_

from app.core import security
from app.core.errors import AppError
from app.models.auth import User, UserSession
from app.models.enums import UserRole
from app.services.base import BaseService, PageParams

logger = logging.getLogger(__name__)

USER_FIELDS = ("first_name", "last_name", "phone", "date_of_birth", "address")


class UserService(BaseService):
    model = User
    entity_name = "User"
    sort_fields = {
        "created_at": User.created_at,
        "first_name": User.first_name,
        "last_name": User.last_name,
        "email": User.email,
        "role": User.role,
    }

    def create_user(self, data: Dict, role: UserRole, password: str) -> User:
        """Insert a user row inside the caller's transaction. Email must be unused."""
        email = data["email"].lower()
        if self.exists(User, User.email == email):
            raise AppError("User with this email already exists", 409)
        user = User(
            alt_id=self.next_alt_id(User),
            first_name=data["first_name"],
            last_name=data["last_name"],
            email=email,
            password_hash=security.get_password_hash(password),
            role=role,
            phone=data.get("phone"),
            date_of_birth=data.get("date_of_birth"),
            address=data.get("address"),
            is_active=True,
        )
        self.db.add(user)
        self.db.flush()
        return user

    def update_user_fields(self, user: User, data: Dict) -> Dict:
        changes = {k: data[k] for k in USER_FIELDS if data.get(k) is not None}
        for key, value in changes.items():
            setattr(user, key, value)
        return changes

    def list_users(
        self,
        params: PageParams,
        role: Optional[UserRole] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
    ) -> Tuple[List[User], Dict]:
        query = self.db.query(User)
        if role is not None:
            query = query.filter(User.role == role)
        if is_active is not None:
            query = query.filter(User.is_active.is_(is_active))
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(User.first_name.ilike(term), User.last_name.ilike(term), User.email.ilike(term))
            )
        return self.paginate(query, params, default_sort=User.created_at)

    def update_user(self, user_id: str, data: Dict) -> User:
        user = self.get_or_404(user_id)
        self.apply_updates(user, data, allowed=USER_FIELDS + ("role",))
        self.db.commit()
        self.db.refresh(user)
        return user

    def set_active(self, user_id: str, is_active: bool, actor: User) -> User:
        user = self.get_or_404(user_id)
        if not is_active and user.id == actor.id:
            raise AppError("You cannot deactivate your own account", 400)
        if user.is_active == is_active:
            state = "active" if is_active else "inactive"
            raise AppError(f"User is already {state}", 400)
        user.is_active = is_active
        if not is_active:
            self.db.query(UserSession).filter(UserSession.user_id == user.id).delete()
        self.db.commit()
        self.db.refresh(user)
        logger.info("User %s %s by %s", user.email, "reactivated" if is_active else "deactivated", actor.email)
        return user
