"""Semester report cards: weighted subject averages, overall grade and class rank.

Ranks are computed against the cards that exist when a card is generated or
regenerated; other cards keep their stored rank until ``recalculate_ranks``
is run for the class and semester.
"""
import logging
from typing import Dict, List, Optional, Tuple

from app.core.errors import AppError
from app.models.academics import Class, Semester, Subject
from app.models.auth import User
from app.models.enums import UserRole
from app.models.exams import AssessmentType, Grade, ReportCard
from app.models.users import Student
from app.services import grading
from app.services.access import assert_student_access, scope_class_ids, scope_student_ids, teacher_for_user, teaches_class
from app.services.base import BaseService, PageParams, camelize
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)


class ReportCardService(BaseService):
    model = ReportCard
    entity_name = "Report card"
    sort_fields = {
        "overall_percentage": ReportCard.overall_percentage,
        "class_rank": ReportCard.class_rank,
        "generated_at": ReportCard.generated_at,
        "created_at": ReportCard.created_at,
    }

    def _grade_rows(self, student_id, semester_id) -> List[Dict]:
        rows = (
            self.db.query(Grade, Subject.name, AssessmentType.name, AssessmentType.weightage)
            .join(Subject, Subject.id == Grade.subject_id)
            .join(AssessmentType, AssessmentType.id == Grade.assessment_type_id)
            .filter(Grade.student_id == student_id, Grade.semester_id == semester_id)
            .order_by(Subject.name, AssessmentType.name)
            .all()
        )
        return [
            {
                "grade_id": str(grade.id),
                "subject_id": grade.subject_id,
                "subject_name": subject_name,
                "assessment_type": assessment_name,
                "marks_obtained": float(grade.marks_obtained),
                "total_marks": float(grade.total_marks),
                "percentage": float(grade.percentage),
                "grade_letter": grade.grade_letter,
                "weightage": float(weightage or 0),
            }
            for grade, subject_name, assessment_name, weightage in rows
        ]

    def _peer_percentages(self, class_id, semester_id, exclude_id=None) -> List[float]:
        query = self.db.query(ReportCard.overall_percentage).filter(
            ReportCard.class_id == class_id, ReportCard.semester_id == semester_id
        )
        if exclude_id is not None:
            query = query.filter(ReportCard.id != exclude_id)
        return [float(row[0]) for row in query.all()]

    def _assert_can_generate(self, actor: User, student: Student) -> None:
        if actor.role == UserRole.admin:
            return
        teacher = teacher_for_user(self.db, actor)
        if actor.role != UserRole.teacher or teacher is None or not teaches_class(self.db, teacher, student.class_id):
            raise AppError("You are not authorized to generate report cards for this class", 403)

    def generate(self, data: Dict, actor: User) -> ReportCard:
        student = self.get_or_404(data["student_id"], model=Student, name="Student", active_only=True)
        semester = self.get_or_404(data["semester_id"], model=Semester, name="Semester", active_only=True)
        if student.class_id is None:
            raise AppError("Student is not assigned to a class", 400)
        self._assert_can_generate(actor, student)
        if self.exists(ReportCard, ReportCard.student_id == student.id, ReportCard.semester_id == semester.id):
            raise AppError("Report card already exists for this student and semester", 409)

        rows = self._grade_rows(student.id, semester.id)
        if not rows:
            raise AppError("No grades found for this student in the specified semester", 400)
        summary = grading.summarize_grades(rows)
        peers = self._peer_percentages(student.class_id, semester.id)

        card = ReportCard(
            student_id=student.id,
            semester_id=semester.id,
            class_id=student.class_id,
            overall_percentage=summary["overall_percentage"],
            overall_grade=summary["overall_grade"],
            class_rank=grading.class_rank(summary["overall_percentage"], peers),
            total_students=len(peers) + 1,
            remarks=data.get("remarks"),
            generated_by=actor.id,
            generated_at=utcnow(),
        )
        self.db.add(card)
        self.db.commit()
        self.db.refresh(card)
        logger.info(
            "Generated report card for %s (%s): %.2f%% rank %s/%s",
            student.student_id, semester.name, summary["overall_percentage"], card.class_rank, card.total_students,
        )
        return card

    def list(
        self,
        params: PageParams,
        viewer: User,
        student_id: Optional[str] = None,
        semester_id: Optional[str] = None,
        class_id: Optional[str] = None,
    ) -> Tuple[List[ReportCard], Dict]:
        query = self.db.query(ReportCard)
        student_scope = scope_student_ids(self.db, viewer)
        if student_scope is not None:
            query = query.filter(ReportCard.student_id.in_(student_scope))
        class_scope = scope_class_ids(self.db, viewer)
        if class_scope is not None:
            query = query.filter(ReportCard.class_id.in_(class_scope))
        if student_id:
            query = query.filter(ReportCard.student_id == self.get_or_404(student_id, model=Student, name="Student").id)
        if semester_id:
            query = query.filter(
                ReportCard.semester_id == self.get_or_404(semester_id, model=Semester, name="Semester").id
            )
        if class_id:
            query = query.filter(ReportCard.class_id == self.get_or_404(class_id, model=Class, name="Class").id)
        return self.paginate(query, params, default_sort=ReportCard.generated_at)

    def get(self, card_id: str, viewer: User) -> ReportCard:
        card = self.get_or_404(card_id)
        assert_student_access(self.db, viewer, card.student)
        return card

    def get_detail(self, card_id: str, viewer: User) -> Dict:
        card = self.get(card_id, viewer)
        rows = self._grade_rows(card.student_id, card.semester_id)
        summary = grading.summarize_grades(rows)
        semester = card.semester
        return {
            "reportCard": card,
            "student": {
                "id": str(card.student.id),
                "studentId": card.student.student_id,
                "name": card.student.user.full_name,
            },
            "class": {"id": str(card.class_.id), "name": card.class_.name, "grade": card.class_.grade, "section": card.class_.section},
            "semester": {"id": str(semester.id), "name": semester.name},
            "academicYear": {"id": str(semester.academic_year.id), "name": semester.academic_year.name},
            "subjects": camelize(summary["subjects"]),
            "grades": camelize([{k: v for k, v in row.items() if k != "subject_id"} for row in rows]),
        }

    def update(self, card_id: str, data: Dict, actor: User) -> ReportCard:
        card = self.get_or_404(card_id)
        self._assert_can_generate(actor, card.student)
        if data.get("remarks") is None:
            raise AppError("No fields to update", 400)
        card.remarks = data["remarks"]
        card.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(card)
        return card

    def delete(self, card_id: str) -> None:
        card = self.get_or_404(card_id)
        self.db.delete(card)
        self.db.commit()

    def regenerate(self, card_id: str, actor: User) -> ReportCard:
        """Recompute one card in place. Other cards in the class keep their stored rank."""
        card = self.get_or_404(card_id)
        self._assert_can_generate(actor, card.student)
        rows = self._grade_rows(card.student_id, card.semester_id)
        if not rows:
            raise AppError("No grades found for recalculation", 400)
        summary = grading.summarize_grades(rows)
        peers = self._peer_percentages(card.class_id, card.semester_id, exclude_id=card.id)
        card.overall_percentage = summary["overall_percentage"]
        card.overall_grade = summary["overall_grade"]
        card.class_rank = grading.class_rank(summary["overall_percentage"], peers)
        card.total_students = len(peers) + 1
        card.generated_by = actor.id
        card.generated_at = utcnow()
        card.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(card)
        return card

    def recalculate_ranks(self, class_id: str, semester_id: str) -> Dict:
        class_ = self.get_or_404(class_id, model=Class, name="Class")
        semester = self.get_or_404(semester_id, model=Semester, name="Semester")
        cards = (
            self.db.query(ReportCard)
            .filter(ReportCard.class_id == class_.id, ReportCard.semester_id == semester.id)
            .all()
        )
        ranks = grading.rank_all({card.id: float(card.overall_percentage) for card in cards})
        with self.transaction():
            for card in cards:
                card.class_rank = ranks[card.id]
                card.total_students = len(cards)
                card.updated_at = utcnow()
        logger.info("Re-ranked %d report cards for class %s, %s", len(cards), class_.name, semester.name)
        return {"classId": str(class_.id), "semesterId": str(semester.id), "updated": len(cards)}
