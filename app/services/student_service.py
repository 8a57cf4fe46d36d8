import io
import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

import pandas as pd
from sqlalchemy import func, or_

from app.core.errors import AppError
from app.models.academics import Attendance, Class, Semester
from app.models.auth import User
from app.models.enums import AttendanceStatus, FeeStatus, UserRole
from app.models.exams import Grade
from app.models.finance import Payment, StudentFee
from app.models.users import Student, StudentClassHistory
from app.services.access import assert_student_access
from app.services.base import BaseService, PageParams, parse_uuid, to_float
from app.services.cache_service import CacheKeys
from app.services.grading import round2
from app.services.user_service import UserService
from app.utils.dates import today, utcnow

logger = logging.getLogger(__name__)

STUDENT_FIELDS = (
    "guardian_name",
    "guardian_phone",
    "guardian_email",
    "emergency_contact",
    "medical_info",
)


def attendance_summary(db, student_id, start: Optional[date] = None, end: Optional[date] = None) -> Dict:
    query = db.query(Attendance.status, func.count(Attendance.id)).filter(Attendance.student_id == student_id)
    if start:
        query = query.filter(Attendance.date >= start)
    if end:
        query = query.filter(Attendance.date <= end)
    counts = {status.value: 0 for status in AttendanceStatus}
    for status, n in query.group_by(Attendance.status).all():
        counts[status.value if hasattr(status, "value") else status] = n
    total = sum(counts.values())
    attended = counts["present"] + counts["late"]
    return {
        "totalDays": total,
        "present": counts["present"],
        "absent": counts["absent"],
        "late": counts["late"],
        "excused": counts["excused"],
        "attendancePercentage": round2(attended / total * 100) if total else 0.0,
    }


class StudentService(BaseService):
    model = Student
    entity_name = "Student"
    sort_fields = {
        "student_id": Student.student_id,
        "enrollment_date": Student.enrollment_date,
        "created_at": Student.created_at,
        "first_name": User.first_name,
        "last_name": User.last_name,
    }

    def __init__(self, db, email=None, cache=None):
        super().__init__(db, cache)
        self.email = email
        self.users = UserService(db)

    # enrollment counters

    def _enroll(self, student: Student, class_: Class, start: date, reason: str, full_message: str) -> None:
        if class_.current_enrollment >= class_.capacity:
            raise AppError(full_message, 409)
        class_.current_enrollment += 1
        student.class_id = class_.id
        self.db.add(
            StudentClassHistory(student_id=student.id, class_id=class_.id, start_date=start, reason=reason)
        )

    def _unenroll(self, student: Student, end: date) -> None:
        if student.class_id is None:
            return
        old_class = self.db.get(Class, student.class_id)
        if old_class is not None and old_class.current_enrollment > 0:
            old_class.current_enrollment -= 1
        self.db.query(StudentClassHistory).filter(
            StudentClassHistory.student_id == student.id,
            StudentClassHistory.class_id == student.class_id,
            StudentClassHistory.end_date.is_(None),
        ).update({"end_date": end}, synchronize_session=False)

    def _enrollment_changed(self) -> None:
        # class listings carry currentEnrollment
        self.invalidate(f"{CacheKeys.CLASSES}*")

    def _active_class(self, class_id) -> Class:
        return self.get_or_404(class_id, model=Class, name="Class", active_only=True)

    def _create(self, data: Dict) -> Tuple[Student, str]:
        """Run every check before the first write so a rejection leaves nothing behind."""
        student_code = data["student_id"]
        if self.exists(User, User.email == data["email"].lower()):
            raise AppError("User with this email already exists", 409)
        if self.exists(Student, Student.student_id == student_code):
            raise AppError("Student ID already exists", 409)
        class_ = self._active_class(data["class_id"])
        if class_.current_enrollment >= class_.capacity:
            raise AppError("Class is at full capacity", 409)

        password = data.get("password") or f"student{student_code}"
        user = self.users.create_user(data, UserRole.student, password)
        student = Student(
            alt_id=self.next_alt_id(),
            user_id=user.id,
            student_id=student_code,
            enrollment_date=data["enrollment_date"],
            is_active=True,
            **{k: data.get(k) for k in STUDENT_FIELDS},
        )
        self.db.add(student)
        self.db.flush()
        self._enroll(student, class_, data["enrollment_date"], "Initial enrollment", "Class is at full capacity")
        return student, password

    def create(self, data: Dict) -> Student:
        with self.transaction():
            student, password = self._create(data)
        self.db.refresh(student)
        self._enrollment_changed()
        logger.info("Enrolled student %s in class %s", student.student_id, student.class_id)
        if self.email:
            temp_password = password if not data.get("password") else None
            self.email.send_welcome_email(student.user.email, student.user.full_name, "student", temp_password)
        return student

    def import_csv(self, content: bytes) -> Dict:
        """Bulk enrollment from CSV. Rows that fail validation are reported and skipped."""
        try:
            df = pd.read_csv(io.BytesIO(content), dtype=str)
        except Exception as e:
            raise AppError(f"Could not parse CSV file: {e}", 400)
        required = {"first_name", "last_name", "email", "student_id", "class_id", "enrollment_date"}
        missing = required - set(df.columns)
        if missing:
            raise AppError(f"Missing required columns: {', '.join(sorted(missing))}", 400)
        df = df.where(pd.notnull(df), None)

        created, errors = [], []
        for index, row in df.iterrows():
            record = {k: (v.strip() if isinstance(v, str) else v) for k, v in row.to_dict().items()}
            try:
                class_id = parse_uuid(record["class_id"])
                if class_id is None:
                    raise AppError("Invalid class_id", 400)
                record["class_id"] = class_id
                record["enrollment_date"] = date.fromisoformat(record["enrollment_date"])
                record["password"] = None
                student, _ = self._create(record)
                created.append(student.student_id)
            except (AppError, ValueError) as e:
                errors.append({"row": int(index) + 2, "studentId": record.get("student_id"), "error": str(e)})
        self.db.commit()
        self._enrollment_changed()
        logger.info("CSV import: %d created, %d failed", len(created), len(errors))
        return {"created": len(created), "failed": len(errors), "studentIds": created, "errors": errors}

    def list(
        self,
        params: PageParams,
        is_active: Optional[bool] = True,
        search: Optional[str] = None,
        class_id: Optional[str] = None,
        grade: Optional[str] = None,
    ) -> Tuple[List[Student], Dict]:
        query = (
            self.db.query(Student)
            .join(User, User.id == Student.user_id)
            .outerjoin(Class, Class.id == Student.class_id)
        )
        if is_active is not None:
            query = query.filter(Student.is_active.is_(is_active))
        if class_id:
            class_ = self.get_or_404(class_id, model=Class, name="Class")
            query = query.filter(Student.class_id == class_.id)
        if grade:
            query = query.filter(Class.grade == grade)
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(
                    User.first_name.ilike(term),
                    User.last_name.ilike(term),
                    User.email.ilike(term),
                    Student.student_id.ilike(term),
                )
            )
        return self.paginate(query, params, default_sort=Student.created_at)

    def get(self, student_id: str, viewer: User) -> Student:
        student = self.get_or_404(student_id)
        assert_student_access(self.db, viewer, student)
        return student

    def get_summary(self, student_id: str, viewer: User) -> Dict:
        student = self.get(student_id, viewer)

        semester_rows = (
            self.db.query(Semester.id, Semester.name, func.avg(Grade.percentage), func.count(Grade.id))
            .join(Grade, Grade.semester_id == Semester.id)
            .filter(Grade.student_id == student.id)
            .group_by(Semester.id, Semester.name, Semester.start_date)
            .order_by(Semester.start_date)
            .all()
        )
        fees = self.db.query(StudentFee).filter(StudentFee.student_id == student.id).all()
        paid_by_fee = {}
        if fees:
            paid_by_fee = dict(
                self.db.query(Payment.student_fee_id, func.sum(Payment.amount))
                .filter(Payment.student_fee_id.in_([f.id for f in fees]))
                .group_by(Payment.student_fee_id)
                .all()
            )
        total_owed = sum(to_float(f.amount) for f in fees if f.status != FeeStatus.waived)
        total_paid = sum(to_float(v) for v in paid_by_fee.values())
        on = today()
        return {
            "student": student,
            "grades": [
                {
                    "semesterId": str(sid),
                    "semesterName": name,
                    "averagePercentage": round2(avg) if avg is not None else 0.0,
                    "gradeCount": count,
                }
                for sid, name, avg, count in semester_rows
            ],
            "attendance": attendance_summary(self.db, student.id),
            "fees": {
                "totalAmount": round2(total_owed),
                "paidAmount": round2(total_paid),
                "remainingAmount": round2(max(total_owed - total_paid, 0)),
                "overdueCount": sum(
                    1 for f in fees if f.status not in (FeeStatus.paid, FeeStatus.waived) and f.due_date < on
                ),
            },
        }

    def get_class_history(self, student_id: str, viewer: User) -> List[StudentClassHistory]:
        student = self.get(student_id, viewer)
        return (
            self.db.query(StudentClassHistory)
            .filter(StudentClassHistory.student_id == student.id)
            .order_by(StudentClassHistory.start_date.desc(), StudentClassHistory.created_at.desc())
            .all()
        )

    def _transfer(self, student: Student, class_id) -> None:
        new_class = self._active_class(class_id)
        if new_class.id == student.class_id:
            return
        on = today()
        self._unenroll(student, on)
        self._enroll(student, new_class, on, "Class transfer", "New class is at full capacity")

    def update(self, student_id: str, data: Dict) -> Student:
        student = self.get_or_404(student_id)
        with self.transaction():
            user_changes = self.users.update_user_fields(student.user, data)
            student_changes = {k: data[k] for k in STUDENT_FIELDS if data.get(k) is not None}
            if not user_changes and not student_changes and not data.get("class_id"):
                raise AppError("No fields to update", 400)
            for key, value in student_changes.items():
                setattr(student, key, value)
            if data.get("class_id"):
                if not student.is_active:
                    raise AppError("Cannot change class of an inactive student", 400)
                self._transfer(student, data["class_id"])
            student.updated_at = utcnow()
        self.db.refresh(student)
        if data.get("class_id"):
            self._enrollment_changed()
        return student

    def _deactivate(self, student: Student) -> None:
        self._unenroll(student, today())
        student.is_active = False
        student.user.is_active = False

    def _reactivate(self, student: Student) -> None:
        if student.class_id is None:
            raise AppError("Student has no class to return to", 400)
        class_ = self._active_class(student.class_id)
        student.is_active = True
        student.user.is_active = True
        self._enroll(student, class_, today(), "Reactivated", "Class is at full capacity")

    def bulk_update(self, student_ids: List, is_active: Optional[bool] = None, class_id=None) -> Dict:
        if is_active is None and class_id is None:
            raise AppError("No fields to update", 400)
        students = self.db.query(Student).filter(Student.id.in_(student_ids)).all()
        found = {s.id for s in students}
        missing = [str(sid) for sid in student_ids if sid not in found]
        if missing:
            raise AppError(f"Students not found: {', '.join(missing)}", 404)

        with self.transaction():
            for student in students:
                if is_active is False and student.is_active:
                    self._deactivate(student)
                elif is_active is True and not student.is_active:
                    self._reactivate(student)
                if class_id is not None and student.is_active:
                    self._transfer(student, class_id)
                student.updated_at = utcnow()
        self._enrollment_changed()
        return {"updated": len(students)}

    def delete(self, student_id: str) -> None:
        student = self.get_or_404(student_id, active_only=True)
        with self.transaction():
            self._deactivate(student)
        self._enrollment_changed()
        logger.info("Deactivated student %s", student.student_id)
