import logging
from datetime import date
from typing import Dict, List, Optional, Tuple

from sqlalchemy.exc import IntegrityError

from app.core.errors import AppError
from app.models.academics import Attendance, Class, Subject
from app.models.auth import User
from app.models.enums import AttendanceStatus, UserRole
from app.models.users import Student
from app.services.access import (
    assert_student_access,
    is_homeroom_teacher,
    scope_class_ids,
    scope_student_ids,
    teacher_for_user,
    teaches_class,
)
from app.services.base import BaseService, PageParams
from app.services.student_service import attendance_summary
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

DUPLICATE_MESSAGE = "Attendance already marked for this student, class, and date"


class AttendanceService(BaseService):
    model = Attendance
    entity_name = "Attendance record"
    sort_fields = {
        "date": Attendance.date,
        "status": Attendance.status,
        "created_at": Attendance.created_at,
    }

    def __init__(self, db, email=None):
        super().__init__(db)
        self.email = email

    def _assert_can_mark(self, actor: User, class_id) -> None:
        if actor.role in (UserRole.admin, UserRole.staff):
            return
        teacher = teacher_for_user(self.db, actor)
        if actor.role == UserRole.teacher and teacher is not None and (
            teaches_class(self.db, teacher, class_id) or is_homeroom_teacher(self.db, teacher, class_id)
        ):
            return
        raise AppError("You are not authorized to mark attendance for this class", 403)

    def _already_marked(self, student_id, class_id, on: date, subject_id=None) -> bool:
        criteria = [Attendance.student_id == student_id, Attendance.class_id == class_id, Attendance.date == on]
        if subject_id is None:
            criteria.append(Attendance.subject_id.is_(None))
        else:
            criteria.append(Attendance.subject_id == subject_id)
        return self.exists(Attendance, *criteria)

    def _resolve(self, class_id, subject_id) -> Tuple[Class, Optional[Subject]]:
        class_ = self.get_or_404(class_id, model=Class, name="Class", active_only=True)
        subject = None
        if subject_id:
            subject = self.get_or_404(subject_id, model=Subject, name="Subject", active_only=True)
        return class_, subject

    def _alert(self, student: Student, record: Attendance, class_: Class) -> None:
        if not self.email or not student.guardian_email:
            return
        if record.status not in (AttendanceStatus.absent, AttendanceStatus.late):
            return
        self.email.send_attendance_alert(
            student.guardian_email,
            student.user.full_name,
            {
                "status": record.status.value,
                "date": record.date.isoformat(),
                "class_name": class_.name,
                "remarks": record.remarks,
            },
        )

    def mark(self, data: Dict, actor: User) -> Attendance:
        student = self.get_or_404(data["student_id"], model=Student, name="Student", active_only=True)
        class_, subject = self._resolve(data["class_id"], data.get("subject_id"))
        self._assert_can_mark(actor, class_.id)
        if student.class_id != class_.id:
            raise AppError("Student is not enrolled in this class", 400)
        subject_id = subject.id if subject else None
        if self._already_marked(student.id, class_.id, data["date"], subject_id):
            raise AppError(DUPLICATE_MESSAGE, 409)

        record = Attendance(
            student_id=student.id,
            class_id=class_.id,
            subject_id=subject_id,
            date=data["date"],
            status=data["status"],
            marked_by=actor.id,
            remarks=data.get("remarks"),
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise AppError(DUPLICATE_MESSAGE, 409)
        self.db.refresh(record)
        self._alert(student, record, class_)
        return record

    def bulk_mark(self, data: Dict, actor: User) -> Dict:
        """Mark a whole class in one transaction. Duplicates and strangers are skipped and reported.

        A duplicate that slips past the pre-check fails the whole batch with 409.
        """
        class_, subject = self._resolve(data["class_id"], data.get("subject_id"))
        self._assert_can_mark(actor, class_.id)
        subject_id = subject.id if subject else None
        on = data["date"]

        created: List[Tuple[Student, Attendance]] = []
        skipped = []
        try:
            with self.transaction():
                for entry in data["records"]:
                    student = self.db.get(Student, entry["student_id"])
                    if student is None or not student.is_active or student.class_id != class_.id:
                        skipped.append({"studentId": str(entry["student_id"]), "reason": "Student not found in this class"})
                        continue
                    if self._already_marked(student.id, class_.id, on, subject_id):
                        skipped.append({"studentId": str(student.id), "reason": DUPLICATE_MESSAGE})
                        continue
                    record = Attendance(
                        student_id=student.id,
                        class_id=class_.id,
                        subject_id=subject_id,
                        date=on,
                        status=entry["status"],
                        marked_by=actor.id,
                        remarks=entry.get("remarks"),
                    )
                    self.db.add(record)
                    self.db.flush()
                    created.append((student, record))
        except IntegrityError:
            raise AppError(DUPLICATE_MESSAGE, 409)
        logger.info("Bulk attendance for %s on %s: %d marked, %d skipped", class_.name, on, len(created), len(skipped))
        for student, record in created:
            self._alert(student, record, class_)
        return {"marked": len(created), "skipped": skipped, "records": [record for _, record in created]}

    def list(
        self,
        params: PageParams,
        viewer: User,
        student_id: Optional[str] = None,
        class_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        status: Optional[AttendanceStatus] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
    ) -> Tuple[List[Attendance], Dict]:
        query = self.db.query(Attendance)
        student_scope = scope_student_ids(self.db, viewer)
        if student_scope is not None:
            query = query.filter(Attendance.student_id.in_(student_scope))
        class_scope = scope_class_ids(self.db, viewer)
        if class_scope is not None:
            query = query.filter(Attendance.class_id.in_(class_scope))
        if student_id:
            query = query.filter(Attendance.student_id == self.get_or_404(student_id, model=Student, name="Student").id)
        if class_id:
            query = query.filter(Attendance.class_id == self.get_or_404(class_id, model=Class, name="Class").id)
        if subject_id:
            query = query.filter(Attendance.subject_id == self.get_or_404(subject_id, model=Subject, name="Subject").id)
        if status is not None:
            query = query.filter(Attendance.status == status)
        if start_date:
            query = query.filter(Attendance.date >= start_date)
        if end_date:
            query = query.filter(Attendance.date <= end_date)
        return self.paginate(query, params, default_sort=Attendance.date)

    def get(self, record_id: str, viewer: User) -> Attendance:
        record = self.get_or_404(record_id)
        assert_student_access(self.db, viewer, record.student)
        return record

    def update(self, record_id: str, data: Dict, actor: User) -> Attendance:
        record = self.get_or_404(record_id)
        self._assert_can_mark(actor, record.class_id)
        self.apply_updates(record, data, allowed=("status", "remarks"))
        record.marked_by = actor.id
        self.db.commit()
        self.db.refresh(record)
        return record

    def delete(self, record_id: str, actor: User) -> None:
        record = self.get_or_404(record_id)
        self._assert_can_mark(actor, record.class_id)
        self.db.delete(record)
        self.db.commit()

    def class_roster(self, class_id: str, on: date, actor: User, subject_id: Optional[str] = None) -> Dict:
        """Every active student of the class with their status for the day (None when unmarked)."""
        class_, subject = self._resolve(class_id, subject_id)
        self._assert_can_mark(actor, class_.id)
        students = (
            self.db.query(Student)
            .join(User, User.id == Student.user_id)
            .filter(Student.class_id == class_.id, Student.is_active.is_(True))
            .order_by(User.last_name, User.first_name)
            .all()
        )
        query = self.db.query(Attendance).filter(Attendance.class_id == class_.id, Attendance.date == on)
        if subject is None:
            query = query.filter(Attendance.subject_id.is_(None))
        else:
            query = query.filter(Attendance.subject_id == subject.id)
        by_student = {record.student_id: record for record in query.all()}

        roster = []
        counts = {status.value: 0 for status in AttendanceStatus}
        for student in students:
            record = by_student.get(student.id)
            if record is not None:
                counts[record.status.value] += 1
            roster.append(
                {
                    "studentId": str(student.id),
                    "studentCode": student.student_id,
                    "name": student.user.full_name,
                    "attendanceId": str(record.id) if record else None,
                    "status": record.status.value if record else None,
                    "remarks": record.remarks if record else None,
                }
            )
        return {
            "classId": str(class_.id),
            "className": class_.name,
            "date": on.isoformat(),
            "subjectId": str(subject.id) if subject else None,
            "totalStudents": len(students),
            "marked": len(by_student),
            "summary": counts,
            "students": roster,
        }

    def student_summary(
        self, student_id: str, viewer: User, start_date: Optional[date] = None, end_date: Optional[date] = None
    ) -> Dict:
        student = self.get_or_404(student_id, model=Student, name="Student")
        assert_student_access(self.db, viewer, student)
        return {
            "studentId": str(student.id),
            "studentCode": student.student_id,
            "name": student.user.full_name,
            **attendance_summary(self.db, student.id, start_date, end_date),
        }
