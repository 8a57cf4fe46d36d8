import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy import or_

from app.core.errors import AppError
from app.models.academics import Class, ClassSubject, Subject
from app.models.auth import User
from app.models.enums import UserRole
from app.models.users import Teacher, TeacherSubject
from app.services import workload
from app.services.base import BaseService, PageParams, camelize
from app.services.cache_service import CacheKeys, CacheTTL
from app.services.user_service import UserService
from app.utils.dates import utcnow

logger = logging.getLogger(__name__)

TEACHER_FIELDS = ("qualification", "experience_years", "specialization", "salary")


class TeacherService(BaseService):
    model = Teacher
    entity_name = "Teacher"
    sort_fields = {
        "employee_id": Teacher.employee_id,
        "joining_date": Teacher.joining_date,
        "experience_years": Teacher.experience_years,
        "created_at": Teacher.created_at,
        "first_name": User.first_name,
        "last_name": User.last_name,
    }

    def __init__(self, db, cache=None, email=None):
        super().__init__(db, cache)
        self.email = email
        self.users = UserService(db)

    def create(self, data: Dict) -> Teacher:
        with self.transaction():
            if self.exists(Teacher, Teacher.employee_id == data["employee_id"]):
                raise AppError("Employee ID already exists", 409)
            user = self.users.create_user(data, UserRole.teacher, data["password"])
            teacher = Teacher(
                alt_id=self.next_alt_id(),
                user_id=user.id,
                employee_id=data["employee_id"],
                joining_date=data["joining_date"],
                experience_years=data.get("experience_years") or 0,
                qualification=data.get("qualification"),
                specialization=data.get("specialization"),
                salary=data.get("salary"),
                is_active=True,
            )
            self.db.add(teacher)
        self.db.refresh(teacher)
        logger.info("Created teacher %s", teacher.employee_id)
        if self.email:
            self.email.send_welcome_email(user.email, user.full_name, "teacher")
        return teacher

    def list(
        self,
        params: PageParams,
        search: Optional[str] = None,
        specialization: Optional[str] = None,
        is_active: Optional[bool] = True,
    ) -> Tuple[List[Teacher], Dict]:
        query = self.db.query(Teacher).join(User, User.id == Teacher.user_id)
        if is_active is not None:
            query = query.filter(Teacher.is_active.is_(is_active))
        if specialization:
            query = query.filter(Teacher.specialization.ilike(f"%{specialization}%"))
        if search:
            term = f"%{search}%"
            query = query.filter(
                or_(
                    User.first_name.ilike(term),
                    User.last_name.ilike(term),
                    User.email.ilike(term),
                    Teacher.employee_id.ilike(term),
                )
            )
        return self.paginate(query, params, default_sort=Teacher.created_at)

    def _assignments(self, teacher: Teacher):
        return (
            self.db.query(ClassSubject, Class, Subject)
            .join(Class, Class.id == ClassSubject.class_id)
            .join(Subject, Subject.id == ClassSubject.subject_id)
            .filter(ClassSubject.teacher_id == teacher.id, Class.is_active.is_(True))
            .order_by(Class.grade, Class.section, Subject.name)
            .all()
        )

    def _homeroom_classes(self, teacher: Teacher) -> List[Class]:
        return (
            self.db.query(Class)
            .filter(Class.teacher_id == teacher.id, Class.is_active.is_(True))
            .all()
        )

    def get_detail(self, teacher_id: str) -> Dict:
        teacher = self.get_or_404(teacher_id)
        subjects = (
            self.db.query(Subject)
            .join(TeacherSubject, TeacherSubject.subject_id == Subject.id)
            .filter(TeacherSubject.teacher_id == teacher.id)
            .order_by(Subject.name)
            .all()
        )
        return {
            "teacher": teacher,
            "subjects": [{"id": str(s.id), "name": s.name, "code": s.code} for s in subjects],
            "homeroomClasses": [
                {"id": str(c.id), "name": c.name, "grade": c.grade, "section": c.section}
                for c in self._homeroom_classes(teacher)
            ],
            "assignments": [self._assignment_dict(cs, c, s) for cs, c, s in self._assignments(teacher)],
        }

    @staticmethod
    def _assignment_dict(cs: ClassSubject, class_: Class, subject: Subject) -> Dict:
        return {
            "id": str(cs.id),
            "teacherId": str(cs.teacher_id) if cs.teacher_id else None,
            "classId": str(class_.id),
            "className": class_.name,
            "grade": class_.grade,
            "section": class_.section,
            "subjectId": str(subject.id),
            "subjectName": subject.name,
            "creditHours": subject.credit_hours,
        }

    def update(self, teacher_id: str, data: Dict) -> Teacher:
        teacher = self.get_or_404(teacher_id)
        with self.transaction():
            user_changes = self.users.update_user_fields(teacher.user, data)
            changes = {k: data[k] for k in TEACHER_FIELDS if data.get(k) is not None}
            if not user_changes and not changes:
                raise AppError("No fields to update", 400)
            for key, value in changes.items():
                setattr(teacher, key, value)
            teacher.updated_at = utcnow()
        self.db.refresh(teacher)
        return teacher

    def delete(self, teacher_id: str) -> None:
        teacher = self.get_or_404(teacher_id, active_only=True)
        if self._homeroom_classes(teacher):
            raise AppError("Cannot delete teacher assigned as homeroom teacher to active classes", 409)
        with self.transaction():
            self.db.query(ClassSubject).filter(ClassSubject.teacher_id == teacher.id).update(
                {"teacher_id": None}, synchronize_session=False
            )
            teacher.is_active = False
            teacher.user.is_active = False
        self.invalidate(f"{CacheKeys.TEACHER_WORKLOAD}*")
        logger.info("Deactivated teacher %s", teacher.employee_id)

    # qualifications

    def assign_subject(self, teacher_id, subject_id) -> TeacherSubject:
        teacher = self.get_or_404(teacher_id, active_only=True)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject", active_only=True)
        if self.exists(TeacherSubject, TeacherSubject.teacher_id == teacher.id, TeacherSubject.subject_id == subject.id):
            raise AppError("Teacher is already assigned to this subject", 409)
        link = TeacherSubject(teacher_id=teacher.id, subject_id=subject.id)
        self.db.add(link)
        self.db.commit()
        self.db.refresh(link)
        return link

    def remove_subject(self, teacher_id, subject_id) -> None:
        teacher = self.get_or_404(teacher_id)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject")
        link = (
            self.db.query(TeacherSubject)
            .filter(TeacherSubject.teacher_id == teacher.id, TeacherSubject.subject_id == subject.id)
            .first()
        )
        if not link:
            raise AppError("Teacher is not assigned to this subject", 404)
        teaching = (
            self.db.query(ClassSubject.id)
            .join(Class, Class.id == ClassSubject.class_id)
            .filter(
                ClassSubject.teacher_id == teacher.id,
                ClassSubject.subject_id == subject.id,
                Class.is_active.is_(True),
            )
            .first()
        )
        if teaching:
            raise AppError("Cannot remove subject while the teacher teaches it in active classes", 409)
        self.db.delete(link)
        self.db.commit()

    # homeroom

    def assign_homeroom(self, teacher_id, class_id) -> Class:
        teacher = self.get_or_404(teacher_id, active_only=True)
        class_ = self.get_or_404(class_id, model=Class, name="Class", active_only=True)
        if class_.teacher_id == teacher.id:
            raise AppError("Teacher is already the homeroom teacher of this class", 409)
        if any(c.id != class_.id for c in self._homeroom_classes(teacher)):
            raise AppError("Teacher is already assigned as homeroom teacher to another class", 409)
        if class_.teacher_id is not None:
            raise AppError("Class already has a homeroom teacher assigned", 409)
        class_.teacher_id = teacher.id
        class_.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(class_)
        self.invalidate(f"{CacheKeys.TEACHER_WORKLOAD}*", f"{CacheKeys.CLASSES}*")
        return class_

    def remove_homeroom(self, class_id) -> None:
        class_ = self.get_or_404(class_id, model=Class, name="Class")
        if class_.teacher_id is None:
            raise AppError("Class has no homeroom teacher assigned", 404)
        class_.teacher_id = None
        class_.updated_at = utcnow()
        self.db.commit()
        self.invalidate(f"{CacheKeys.TEACHER_WORKLOAD}*", f"{CacheKeys.CLASSES}*")

    # workload

    def _load_figures(self, teacher: Teacher, target_grade: Optional[str] = None) -> Dict:
        assignments = self._assignments(teacher)
        hours = workload.weekly_hours(
            bool(self._homeroom_classes(teacher)),
            [subject.credit_hours for _, _, subject in assignments],
        )
        same_grade = 0
        if target_grade is not None:
            same_grade = len({c.id for _, c, _ in assignments if c.grade == target_grade})
        return {"assignments": assignments, "count": len(assignments), "hours": hours, "same_grade": same_grade}

    def get_workload(self, teacher_id: str) -> Dict:
        teacher = self.get_or_404(teacher_id)
        return self.cached(CacheKeys.TEACHER_WORKLOAD, (teacher.id,), lambda: self._workload(teacher), CacheTTL.SHORT)

    def _workload(self, teacher: Teacher) -> Dict:
        figures = self._load_figures(teacher)
        homeroom = self._homeroom_classes(teacher)
        hours = figures["hours"]
        return {
            "teacherId": str(teacher.id),
            "teacherName": teacher.user.full_name,
            "totalAssignments": figures["count"],
            "homeroomClasses": [{"id": str(c.id), "name": c.name} for c in homeroom],
            "weeklyHours": hours,
            "workloadIntensity": workload.workload_intensity(hours),
            "status": workload.workload_status(hours),
            "assignments": [self._assignment_dict(cs, c, s) for cs, c, s in figures["assignments"]],
        }

    def check_conflicts(self, teacher_id, class_id, subject_id) -> Dict:
        teacher = self.get_or_404(teacher_id, active_only=True)
        class_ = self.get_or_404(class_id, model=Class, name="Class", active_only=True)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject", active_only=True)
        figures = self._load_figures(teacher, class_.grade)
        already = self.exists(
            ClassSubject,
            ClassSubject.class_id == class_.id,
            ClassSubject.subject_id == subject.id,
            ClassSubject.teacher_id == teacher.id,
        )
        qualified = self.exists(
            TeacherSubject, TeacherSubject.teacher_id == teacher.id, TeacherSubject.subject_id == subject.id
        )
        result = workload.check_conflicts(
            assignment_count=figures["count"],
            current_hours=figures["hours"],
            new_subject_hours=workload.subject_hours(subject.credit_hours),
            same_grade_sections=figures["same_grade"],
            is_qualified=qualified,
            already_assigned=already,
        )
        return {
            "teacherId": str(teacher.id),
            "classId": str(class_.id),
            "subjectId": str(subject.id),
            "canAssign": result["can_assign"],
            "conflicts": result["conflicts"],
            "warnings": result["warnings"],
            "currentAssignments": result["current_assignments"],
            "currentHours": result["current_hours"],
            "projectedHours": result["projected_hours"],
            "sameGradeSections": result["same_grade_sections"],
        }

    def suggest_teachers(self, class_id, subject_id) -> List[Dict]:
        class_ = self.get_or_404(class_id, model=Class, name="Class", active_only=True)
        subject = self.get_or_404(subject_id, model=Subject, name="Subject", active_only=True)
        candidates = (
            self.db.query(Teacher)
            .join(TeacherSubject, TeacherSubject.teacher_id == Teacher.id)
            .filter(TeacherSubject.subject_id == subject.id, Teacher.is_active.is_(True))
            .all()
        )
        new_hours = workload.subject_hours(subject.credit_hours)
        rows = []
        for teacher in candidates:
            figures = self._load_figures(teacher, class_.grade)
            rows.append(
                {
                    "teacher_id": str(teacher.id),
                    "teacher_name": teacher.user.full_name,
                    "employee_id": teacher.employee_id,
                    "assignment_count": figures["count"],
                    "current_hours": figures["hours"],
                    "projected_hours": figures["hours"] + new_hours,
                    "same_grade_sections": figures["same_grade"],
                }
            )
        return camelize(workload.rank_candidates(rows))

    # class-subject assignments

    def assign_class_subject(self, teacher_id, class_id, subject_id) -> Dict:
        check = self.check_conflicts(teacher_id, class_id, subject_id)
        if not check["canAssign"]:
            raise AppError(
                "Assignment conflicts with workload rules",
                409,
                code="ASSIGNMENT_CONFLICT",
                context={"conflicts": check["conflicts"], "warnings": check["warnings"]},
            )
        teacher = self.get_or_404(teacher_id)
        class_ = self.get_or_404(class_id, model=Class, name="Class")
        subject = self.get_or_404(subject_id, model=Subject, name="Subject")
        link = (
            self.db.query(ClassSubject)
            .filter(ClassSubject.class_id == class_.id, ClassSubject.subject_id == subject.id)
            .first()
        )
        if link is None:
            link = ClassSubject(class_id=class_.id, subject_id=subject.id, teacher_id=teacher.id)
            self.db.add(link)
        else:
            link.teacher_id = teacher.id
            link.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(link)
        self.invalidate(f"{CacheKeys.TEACHER_WORKLOAD}*")
        return {"assignment": self._assignment_dict(link, class_, subject), "warnings": check["warnings"]}

    def remove_class_subject(self, class_id, subject_id) -> None:
        class_ = self.get_or_404(class_id, model=Class, name="Class")
        subject = self.get_or_404(subject_id, model=Subject, name="Subject")
        link = (
            self.db.query(ClassSubject)
            .filter(ClassSubject.class_id == class_.id, ClassSubject.subject_id == subject.id)
            .first()
        )
        if link is None or link.teacher_id is None:
            raise AppError("No teacher is assigned to this class subject", 404)
        link.teacher_id = None
        link.updated_at = utcnow()
        self.db.commit()
        self.invalidate(f"{CacheKeys.TEACHER_WORKLOAD}*")

    def list_assignments(self, params: PageParams, teacher_id: Optional[str] = None) -> Tuple[List[Dict], Dict]:
        query = (
            self.db.query(ClassSubject, Class, Subject)
            .join(Class, Class.id == ClassSubject.class_id)
            .join(Subject, Subject.id == ClassSubject.subject_id)
            .filter(ClassSubject.teacher_id.isnot(None), Class.is_active.is_(True))
        )
        if teacher_id:
            teacher = self.get_or_404(teacher_id)
            query = query.filter(ClassSubject.teacher_id == teacher.id)
        rows, meta = self.paginate(query, params, default_sort=ClassSubject.created_at)
        return [self._assignment_dict(cs, c, s) for cs, c, s in rows], meta
