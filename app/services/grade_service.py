import logging
from typing import Dict, List, Optional, Tuple

from app.core.errors import AppError
from app.models.academics import Class, Semester, Subject
from app.models.auth import User
from app.models.enums import UserRole
from app.models.exams import AssessmentType, Grade
from app.models.users import Student
from app.services import grading
from app.services.access import assert_student_access, scope_class_ids, scope_student_ids, teacher_for_user, teaches_class
from app.services.base import BaseService, PageParams
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class GradeService(BaseService):
    model = Grade
    entity_name = "Grade"
    sort_fields = {
        "percentage": Grade.percentage,
        "marks_obtained": Grade.marks_obtained,
        "created_at": Grade.created_at,
    }

    def __init__(self, db, email=None):
        super().__init__(db)
        self.email = email

    def _assert_can_record(self, actor: User, student: Student, subject_id) -> None:
        if actor.role == UserRole.admin:
            return
        teacher = teacher_for_user(self.db, actor)
        if (
            actor.role != UserRole.teacher
            or teacher is None
            or student.class_id is None
            or not teaches_class(self.db, teacher, student.class_id, subject_id)
        ):
            raise AppError("You are not authorized to enter grades for this student and subject", 403)

    def create(self, data: Dict, actor: User) -> Grade:
        student = self.get_or_404(data["student_id"], model=Student, name="Student", active_only=True)
        subject = self.get_or_404(data["subject_id"], model=Subject, name="Subject", active_only=True)
        assessment_type = self.get_or_404(
            data["assessment_type_id"], model=AssessmentType, name="Assessment type", active_only=True
        )
        semester = self.get_or_404(data["semester_id"], model=Semester, name="Semester", active_only=True)
        self._assert_can_record(actor, student, subject.id)

        if self.exists(
            Grade,
            Grade.student_id == student.id,
            Grade.subject_id == subject.id,
            Grade.assessment_type_id == assessment_type.id,
            Grade.semester_id == semester.id,
        ):
            raise AppError("Grade already exists for this student, subject, assessment type, and semester", 409)

        percentage = grading.calculate_percentage(data["marks_obtained"], data["total_marks"])
        grade = Grade(
            student_id=student.id,
            subject_id=subject.id,
            assessment_type_id=assessment_type.id,
            semester_id=semester.id,
            marks_obtained=data["marks_obtained"],
            total_marks=data["total_marks"],
            percentage=percentage,
            grade_letter=grading.grade_letter(percentage),
            recorded_by=actor.id,
            remarks=data.get("remarks"),
        )
        self.db.add(grade)
        self.db.commit()
        self.db.refresh(grade)
        logger.info("Recorded %s grade for student %s in %s", assessment_type.name, student.student_id, subject.code)
        self._notify(student, subject, assessment_type, grade)
        return grade

    def _notify(self, student: Student, subject: Subject, assessment_type: AssessmentType, grade: Grade) -> None:
        if not self.email or not student.guardian_email:
            return
        self.email.send_grade_notification(
            student.guardian_email,
            student.user.full_name,
            {
                "subject": subject.name,
                "assessment_type": assessment_type.name,
                "marks_obtained": float(grade.marks_obtained),
                "total_marks": float(grade.total_marks),
                "grade_letter": grade.grade_letter,
                "percentage": float(grade.percentage),
            },
        )

    def list(
        self,
        params: PageParams,
        viewer: User,
        student_id: Optional[str] = None,
        subject_id: Optional[str] = None,
        semester_id: Optional[str] = None,
        assessment_type_id: Optional[str] = None,
        class_id: Optional[str] = None,
        min_percentage: Optional[float] = None,
        max_percentage: Optional[float] = None,
    ) -> Tuple[List[Grade], Dict]:
        query = self.db.query(Grade).join(Student, Student.id == Grade.student_id)

        student_scope = scope_student_ids(self.db, viewer)
        if student_scope is not None:
            query = query.filter(Grade.student_id.in_(student_scope))
        class_scope = scope_class_ids(self.db, viewer)
        if class_scope is not None:
            query = query.filter(Student.class_id.in_(class_scope))

        if student_id:
            query = query.filter(Grade.student_id == self.get_or_404(student_id, model=Student, name="Student").id)
        if subject_id:
            query = query.filter(Grade.subject_id == self.get_or_404(subject_id, model=Subject, name="Subject").id)
        if semester_id:
            query = query.filter(Grade.semester_id == self.get_or_404(semester_id, model=Semester, name="Semester").id)
        if assessment_type_id:
            at = self.get_or_404(assessment_type_id, model=AssessmentType, name="Assessment type")
            query = query.filter(Grade.assessment_type_id == at.id)
        if class_id:
            query = query.filter(Student.class_id == self.get_or_404(class_id, model=Class, name="Class").id)
        if min_percentage is not None:
            query = query.filter(Grade.percentage >= min_percentage)
        if max_percentage is not None:
            query = query.filter(Grade.percentage <= max_percentage)
        return self.paginate(query, params, default_sort=Grade.created_at)

    def get(self, grade_id: str, viewer: User) -> Grade:
        grade = self.get_or_404(grade_id)
        assert_student_access(self.db, viewer, grade.student)
        return grade

    def update(self, grade_id: str, data: Dict, actor: User) -> Grade:
        grade = self.get_or_404(grade_id)
        self._assert_can_record(actor, grade.student, grade.subject_id)
        if all(data.get(k) is None for k in ("marks_obtained", "total_marks", "remarks")):
            raise AppError("No fields to update", 400)

        marks = data["marks_obtained"] if data.get("marks_obtained") is not None else grade.marks_obtained
        total = data["total_marks"] if data.get("total_marks") is not None else grade.total_marks
        if float(marks) > float(total):
            raise AppError("Marks obtained cannot exceed total marks", 400)
        percentage = grading.calculate_percentage(marks, total)
        grade.marks_obtained = marks
        grade.total_marks = total
        grade.percentage = percentage
        grade.grade_letter = grading.grade_letter(percentage)
        if data.get("remarks") is not None:
            grade.remarks = data["remarks"]
        grade.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(grade)
        return grade

    def delete(self, grade_id: str, actor: User) -> None:
        grade = self.get_or_404(grade_id)
        self._assert_can_record(actor, grade.student, grade.subject_id)
        self.db.delete(grade)
        self.db.commit()
