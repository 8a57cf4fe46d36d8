"""Row-level access rules shared by the student-facing services."""
from typing import List, Optional

from sqlalchemy.orm import Session

from app.core.errors import AppError
from app.models.academics import Class, ClassSubject
from app.models.auth import User
from app.models.enums import UserRole
from app.models.users import Student, StudentParent, Teacher


def teacher_for_user(db: Session, user: User) -> Optional[Teacher]:
    return db.query(Teacher).filter(Teacher.user_id == user.id, Teacher.is_active.is_(True)).first()


def student_for_user(db: Session, user: User) -> Optional[Student]:
    return db.query(Student).filter(Student.user_id == user.id).first()


def child_student_ids(db: Session, parent_user_id) -> List:
    rows = db.query(StudentParent.student_id).filter(StudentParent.parent_user_id == parent_user_id).all()
    return [row[0] for row in rows]


def teaches_class(db: Session, teacher: Teacher, class_id, subject_id=None) -> bool:
    """True when the teacher teaches a subject (or the given subject) in the class."""
    query = db.query(ClassSubject.id).filter(
        ClassSubject.class_id == class_id, ClassSubject.teacher_id == teacher.id
    )
    if subject_id is not None:
        query = query.filter(ClassSubject.subject_id == subject_id)
    return query.first() is not None


def is_homeroom_teacher(db: Session, teacher: Teacher, class_id) -> bool:
    return (
        db.query(Class.id).filter(Class.id == class_id, Class.teacher_id == teacher.id).first()
        is not None
    )


def assert_student_access(db: Session, user: User, student: Student, action: str = "view") -> None:
    if user.role in (UserRole.admin, UserRole.staff):
        return
    if user.role == UserRole.student:
        if student.user_id != user.id:
            raise AppError(f"You can only {action} your own records", 403)
        return
    if user.role == UserRole.parent:
        if student.id not in child_student_ids(db, user.id):
            raise AppError(f"You can only {action} your child's records", 403)
        return
    if user.role == UserRole.teacher:
        teacher = teacher_for_user(db, user)
        if teacher and student.class_id and (
            teaches_class(db, teacher, student.class_id) or is_homeroom_teacher(db, teacher, student.class_id)
        ):
            return
        raise AppError(f"You are not authorized to {action} this student's records", 403)
    raise AppError("Access denied", 403)


def scope_student_ids(db: Session, user: User) -> Optional[List]:
    """Student ids a non-staff user may list; None means no restriction."""
    if user.role == UserRole.student:
        student = student_for_user(db, user)
        return [student.id] if student else []
    if user.role == UserRole.parent:
        return child_student_ids(db, user.id)
    return None


def scope_class_ids(db: Session, user: User) -> Optional[List]:
    """Classes a teacher works with; None for roles without a class restriction."""
    if user.role != UserRole.teacher:
        return None
    teacher = teacher_for_user(db, user)
    if teacher is None:
        return []
    taught = {row[0] for row in db.query(ClassSubject.class_id).filter(ClassSubject.teacher_id == teacher.id)}
    homeroom = {row[0] for row in db.query(Class.id).filter(Class.teacher_id == teacher.id)}
    return list(taught | homeroom)
