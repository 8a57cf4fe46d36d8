import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func, or_

from app.core.errors import AppError
from app.models.auth import User
from app.models.enums import UserRole
from app.models.users import Staff
from app.services.base import BaseService, PageParams, to_float
from app.services.user_service import UserService
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

STAFF_FIELDS = ("department", "position", "salary", "responsibilities")


class StaffService(BaseService):
    model = Staff
    entity_name = "Staff member"
    sort_fields = {
        "employee_id": Staff.employee_id,
        "department": Staff.department,
        "position": Staff.position,
        "joining_date": Staff.joining_date,
        "created_at": Staff.created_at,
        "first_name": User.first_name,
        "last_name": User.last_name,
    }

    def __init__(self, db, email=None):
        super().__init__(db)
        self.email = email
        self.users = UserService(db)

    def create(self, data: Dict) -> Staff:
        with self.transaction():
            if self.exists(Staff, Staff.employee_id == data["employee_id"]):
                raise AppError("Employee ID already exists", 409)
            user = self.users.create_user(data, UserRole.staff, data["password"])
            staff = Staff(
                alt_id=self.next_alt_id(),
                user_id=user.id,
                employee_id=data["employee_id"],
                joining_date=data["joining_date"],
                is_active=True,
                **{k: data.get(k) for k in STAFF_FIELDS},
            )
            self.db.add(staff)
        self.db.refresh(staff)
        logger.info("Created staff member %s in %s", staff.employee_id, staff.department)
        if self.email:
            self.email.send_welcome_email(user.email, user.full_name, "staff")
        return staff

    def list(
        self,
        params: PageParams,
        department: Optional[str] = None,
        position: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> Tuple[List[Staff], Dict]:
        query = self.db.query(Staff).join(User, User.id == Staff.user_id)
        if is_active is not None:
            query = query.filter(Staff.is_active.is_(is_active))
        if department:
            query = query.filter(Staff.department.ilike(f"%{department}%"))
        if position:
            query = query.filter(Staff.position.ilike(f"%{position}%"))
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(
                    User.first_name.ilike(term),
                    User.last_name.ilike(term),
                    User.email.ilike(term),
                    Staff.employee_id.ilike(term),
                )
            )
        return self.paginate(query, params, default_sort=Staff.created_at)

    def department_summary(self) -> List[Dict]:
        rows = (
            self.db.query(Staff.department, func.count(Staff.id), func.avg(Staff.salary))
            .filter(Staff.is_active.is_(True))
            .group_by(Staff.department)
            .order_by(Staff.department)
            .all()
        )
        return [
            {"department": department, "staffCount": count, "averageSalary": round(to_float(avg), 2)}
            for department, count, avg in rows
        ]

    def update(self, staff_id: str, data: Dict) -> Staff:
        staff = self.get_or_404(staff_id)
        with self.transaction():
            user_changes = self.users.update_user_fields(staff.user, data)
            changes = {k: data[k] for k in STAFF_FIELDS if data.get(k) is not None}
            if not user_changes and not changes:
                raise AppError("No fields to update", 400)
            for key, value in changes.items():
                setattr(staff, key, value)
            staff.updated_at = utcnow()
        self.db.refresh(staff)
        return staff

    def delete(self, staff_id: str) -> None:
        staff = self.get_or_404(staff_id, active_only=True)
        staff.is_active = False
        staff.user.is_active = False
        self.db.commit()
        logger.info("Deactivated staff member %s", staff.employee_id)

    def reactivate(self, staff_id: str) -> Staff:
        staff = self.get_or_404(staff_id)
        if staff.is_active:
            raise AppError("Staff member is already active", 400)
        staff.is_active = True
        staff.user.is_active = True
        staff.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(staff)
        return staff
