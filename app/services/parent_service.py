import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func

from app.core.errors import AppError
from app.models.auth import User
from app.models.enums import FeeStatus, UserRole
from app.models.finance import Payment, StudentFee
from app.models.users import Student, StudentParent
from app.services.base import BaseService, PageParams, to_float
from app.services.grading import round2
from app.services.student_service import attendance_summary
from app.services.user_service import UserService
from app.utils.dates import today, utcnow

logger = logging.getLogger(__name__)


class ParentService(BaseService):
    model = User
    entity_name = "Parent"

    def __init__(self, db, email=None):
        super().__init__(db)
        self.email = email
        self.users = UserService(db)

    def _parent_or_404(self, parent_id) -> User:
        parent = self.get_or_404(parent_id)
        if parent.role != UserRole.parent:
            raise AppError("Parent not found", 404)
        return parent

    def create(self, data: Dict) -> User:
        with self.transaction():
            parent = self.users.create_user(data, UserRole.parent, data["password"])
        self.db.refresh(parent)
        if self.email:
            self.email.send_welcome_email(parent.email, parent.full_name, "parent")
        return parent

    def list(self, params: PageParams, search: Optional[str] = None, is_active: Optional[bool] = True) -> Tuple[List[User], Dict]:
        return self.users.list_users(params, role=UserRole.parent, is_active=is_active, search=search)

    def _children(self, parent: User) -> List[Tuple[StudentParent, Student]]:
        return (
            self.db.query(StudentParent, Student)
            .join(Student, Student.id == StudentParent.student_id)
            .filter(StudentParent.parent_user_id == parent.id)
            .order_by(StudentParent.is_primary.desc(), Student.student_id)
            .all()
        )

    @staticmethod
    def _child_dict(link: StudentParent, student: Student) -> Dict:
        return {
            "linkId": str(link.id),
            "studentId": str(student.id),
            "studentCode": student.student_id,
            "name": student.user.full_name,
            "classId": str(student.class_id) if student.class_id else None,
            "className": student.class_.name if student.class_ else None,
            "relationshipType": link.relationship_type.value,
            "isPrimary": bool(link.is_primary),
            "isActive": bool(student.is_active),
        }

    def get_detail(self, parent_id) -> Dict:
        parent = self._parent_or_404(parent_id)
        return {"parent": parent, "children": [self._child_dict(l, s) for l, s in self._children(parent)]}

    def update(self, parent_id, data: Dict) -> User:
        parent = self._parent_or_404(parent_id)
        if not self.users.update_user_fields(parent, data):
            raise AppError("No fields to update", 400)
        parent.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(parent)
        return parent

    def _clear_primary(self, student_id, keep_id=None) -> None:
        query = self.db.query(StudentParent).filter(
            StudentParent.student_id == student_id, StudentParent.is_primary.is_(True)
        )
        if keep_id is not None:
            query = query.filter(StudentParent.id != keep_id)
        query.update({"is_primary": False}, synchronize_session=False)

    def link(self, data: Dict) -> StudentParent:
        student = self.get_or_404(data["student_id"], model=Student, name="Student")
        parent = self._parent_or_404(data["parent_user_id"])
        if self.exists(
            StudentParent, StudentParent.student_id == student.id, StudentParent.parent_user_id == parent.id
        ):
            raise AppError("Parent is already linked to this student", 409)
        with self.transaction():
            if data.get("is_primary"):
                self._clear_primary(student.id)
            link = StudentParent(
                student_id=student.id,
                parent_user_id=parent.id,
                relationship_type=data["relationship_type"],
                is_primary=bool(data.get("is_primary")),
            )
            self.db.add(link)
        self.db.refresh(link)
        logger.info("Linked parent %s to student %s", parent.email, student.student_id)
        return link

    def _link_or_404(self, student_id, parent_id) -> StudentParent:
        student = self.get_or_404(student_id, model=Student, name="Student")
        parent = self._parent_or_404(parent_id)
        link = (
            self.db.query(StudentParent)
            .filter(StudentParent.student_id == student.id, StudentParent.parent_user_id == parent.id)
            .first()
        )
        if link is None:
            raise AppError("Parent-student relationship not found", 404)
        return link

    def update_link(self, student_id, parent_id, data: Dict) -> StudentParent:
        link = self._link_or_404(student_id, parent_id)
        if data.get("relationship_type") is None and data.get("is_primary") is None:
            raise AppError("No fields to update", 400)
        with self.transaction():
            if data.get("relationship_type") is not None:
                link.relationship_type = data["relationship_type"]
            if data.get("is_primary") is not None:
                if data["is_primary"]:
                    self._clear_primary(link.student_id, keep_id=link.id)
                link.is_primary = data["is_primary"]
            link.updated_at = utcnow()
        self.db.refresh(link)
        return link

    def unlink(self, student_id, parent_id) -> None:
        link = self._link_or_404(student_id, parent_id)
        self.db.delete(link)
        self.db.commit()

    def dashboard(self, parent_id, viewer: User) -> Dict:
        """Children of a parent with attendance and fee standing. Parents only see their own."""
        parent = self._parent_or_404(parent_id)
        if viewer.role == UserRole.parent and viewer.id != parent.id:
            raise AppError("You can only view your own dashboard", 403)
        on = today()
        children = []
        for link, student in self._children(parent):
            fees = self.db.query(StudentFee).filter(StudentFee.student_id == student.id).all()
            paid = 0.0
            if fees:
                paid = to_float(
                    self.db.query(func.sum(Payment.amount))
                    .filter(Payment.student_fee_id.in_([f.id for f in fees]))
                    .scalar()
                )
            owed = sum(to_float(f.amount) for f in fees if f.status != FeeStatus.waived)
            children.append(
                {
                    **self._child_dict(link, student),
                    "attendance": attendance_summary(self.db, student.id),
                    "fees": {
                        "totalAmount": round2(owed),
                        "paidAmount": round2(paid),
                        "remainingAmount": round2(max(owed - paid, 0)),
                        "pendingCount": sum(1 for f in fees if f.status in (FeeStatus.pending, FeeStatus.partial)),
                        "overdueCount": sum(
                            1
                            for f in fees
                            if f.status not in (FeeStatus.paid, FeeStatus.waived) and f.due_date < on
                        ),
                    },
                }
            )
        return {"parent": {"id": str(parent.id), "name": parent.full_name, "email": parent.email}, "children": children}
