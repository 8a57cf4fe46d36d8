import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_

from app.core.errors import AppError
from app.models.academics import AcademicYear, Class, ClassSubject, Subject
from app.models.auth import User
from app.models.users import Student, Teacher
from app.services.base import BaseService, PageParams
from app.services.cache_service import CacheKeys

logger = logging.getLogger(__name__)


class ClassService(BaseService):
    model = Class
    entity_name = "Class"
    sort_fields = {
        "name": Class.name,
        "grade": Class.grade,
        "section": Class.section,
        "capacity": Class.capacity,
        "current_enrollment": Class.current_enrollment,
        "created_at": Class.created_at,
    }

    def _check_unique_section(self, grade: str, section: str, academic_year_id, exclude_id=None) -> None:
        criteria = [
            Class.grade == grade,
            Class.section == section,
            Class.academic_year_id == academic_year_id,
            Class.is_active.is_(True),
        ]
        if exclude_id is not None:
            criteria.append(Class.id != exclude_id)
        if self.exists(Class, *criteria):
            raise AppError(
                f"Class {grade}-{section} already exists for this academic year", 409
            )

    def create(self, data: Dict) -> Class:
        year = self.get_or_404(data["academic_year_id"], model=AcademicYear, name="Academic year", active_only=True)
        if data.get("teacher_id"):
            teacher = self.get_or_404(data["teacher_id"], model=Teacher, name="Teacher", active_only=True)
            if self.exists(Class, Class.teacher_id == teacher.id, Class.is_active.is_(True)):
                raise AppError("Teacher is already assigned as homeroom teacher to another class", 409)
        self._check_unique_section(data["grade"], data["section"], year.id)

        class_ = Class(alt_id=self.next_alt_id(), current_enrollment=0, **data)
        self.db.add(class_)
        self.db.commit()
        self.db.refresh(class_)
        self.invalidate(f"{CacheKeys.CLASSES}*")
        logger.info("Created class %s (%s-%s)", class_.name, class_.grade, class_.section)
        return class_

    def list(
        self,
        params: PageParams,
        grade: Optional[str] = None,
        academic_year_id: Optional[str] = None,
        teacher_id: Optional[str] = None,
        search: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> Tuple[List[Class], Dict]:
        query = self.db.query(Class)
        if is_active is not None:
            query = query.filter(Class.is_active.is_(is_active))
        if grade:
            query = query.filter(Class.grade == grade)
        if academic_year_id:
            year = self.get_or_404(academic_year_id, model=AcademicYear, name="Academic year")
            query = query.filter(Class.academic_year_id == year.id)
        if teacher_id:
            teacher = self.get_or_404(teacher_id, model=Teacher, name="Teacher")
            query = query.filter(Class.teacher_id == teacher.id)
        if search:
            term = f"%{search}%"
            query = query.filter(or_(Class.name.ilike(term), Class.room.ilike(term)))
        return self.paginate(query, params, default_sort=Class.grade)

    def get_detail(self, class_id: str) -> Dict:
        class_ = self.get_or_404(class_id)
        subjects = (
            self.db.query(ClassSubject, Subject)
            .join(Subject, Subject.id == ClassSubject.subject_id)
            .filter(ClassSubject.class_id == class_.id)
            .order_by(Subject.name)
            .all()
        )
        homeroom = None
        if class_.teacher is not None:
            homeroom = {
                "id": str(class_.teacher.id),
                "employeeId": class_.teacher.employee_id,
                "name": class_.teacher.user.full_name,
            }
        return {
            "class": class_,
            "academicYear": {"id": str(class_.academic_year.id), "name": class_.academic_year.name},
            "homeroomTeacher": homeroom,
            "subjects": [
                {
                    "id": str(subject.id),
                    "name": subject.name,
                    "code": subject.code,
                    "creditHours": subject.credit_hours,
                    "teacherId": str(cs.teacher_id) if cs.teacher_id else None,
                }
                for cs, subject in subjects
            ],
            "students": [
                {"id": str(s.id), "studentId": s.student_id, "name": s.user.full_name}
                for s in sorted(
                    (s for s in class_.students if s.is_active), key=lambda s: (s.user.last_name, s.user.first_name)
                )
            ],
            "availableSeats": max(class_.capacity - class_.current_enrollment, 0),
        }

    def get_students(self, class_id: str, params: PageParams) -> Tuple[List[Student], Dict]:
        class_ = self.get_or_404(class_id)
        query = (
            self.db.query(Student)
            .join(User, User.id == Student.user_id)
            .filter(Student.class_id == class_.id, Student.is_active.is_(True))
        )
        return self.paginate(query, params, default_sort=User.last_name)

    def update(self, class_id: str, data: Dict) -> Class:
        class_ = self.get_or_404(class_id)
        capacity = data.get("capacity")
        if capacity is not None and capacity < class_.current_enrollment:
            raise AppError(
                f"Capacity cannot be less than current enrollment ({class_.current_enrollment})", 400
            )
        grade = data.get("grade") or class_.grade
        section = data.get("section") or class_.section
        if (grade, section) != (class_.grade, class_.section):
            self._check_unique_section(grade, section, class_.academic_year_id, exclude_id=class_.id)
        self.apply_updates(class_, data)
        self.db.commit()
        self.db.refresh(class_)
        self.invalidate(f"{CacheKeys.CLASSES}*")
        return class_

    def delete(self, class_id: str) -> None:
        class_ = self.get_or_404(class_id, active_only=True)
        if self.exists(Student, Student.class_id == class_.id, Student.is_active.is_(True)):
            raise AppError("Cannot delete class with active students", 409)
        class_.is_active = False
        class_.teacher_id = None
        self.db.commit()
        self.invalidate(f"{CacheKeys.CLASSES}*")

    def add_subject(self, class_id: str, subject_id: str) -> ClassSubject:
        class_ = self.get_or_404(class_id, active_only=True)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject", active_only=True)
        if self.exists(ClassSubject, ClassSubject.class_id == class_.id, ClassSubject.subject_id == subject.id):
            raise AppError("Subject is already part of this class", 409)
        link = ClassSubject(class_id=class_.id, subject_id=subject.id)
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return link

    def remove_subject(self, class_id: str, subject_id: str) -> None:
        class_ = self.get_or_404(class_id)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject")
        link = (
            self.db.query(ClassSubject)
            .filter(ClassSubject.class_id == class_.id, ClassSubject.subject_id == subject.id)
            .first()
        )
        if not link:
            raise AppError("Subject is not part of this class", 404)
        self.db.delete(link)
        self.db.commit()
