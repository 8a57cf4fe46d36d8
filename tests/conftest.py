import itertools
import os
import tempfile
from datetime import date

_workdir = tempfile.mkdtemp(prefix="school-api-tests-")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["UPLOAD_DIR"] = os.path.join(_workdir, "uploads")
os.environ["EXPORT_DIR"] = os.path.join(_workdir, "exports")
os.environ["SMTP_HOST"] = ""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import security
from app.core.database import Base, get_db
from app.main import app
from app.models import (
    AcademicYear,
    AssessmentType,
    Class,
    ClassSubject,
    FeeCategory,
    Semester,
    Student,
    StudentClassHistory,
    StudentFee,
    Subject,
    Teacher,
    TeacherSubject,
    User,
)
from app.models.enums import FeeFrequency, FeeStatus, UserRole

PASSWORD = "Password123!"
PASSWORD_HASH = security.get_password_hash(PASSWORD)

_serial = itertools.count(1)


class School:
    """Baseline records most tests build on."""

    def __init__(self, db):
        self.db = db
        self.admin = make_user(db, UserRole.admin, "admin@greenfield.edu", "Ada", "Admin")
        self.staff_user = make_user(db, UserRole.staff, "office@greenfield.edu", "Sam", "Office")
        self.teacher_user = make_user(db, UserRole.teacher, "tina.teach@greenfield.edu", "Tina", "Teach")
        self.teacher = Teacher(
            alt_id=next(_serial),
            user_id=self.teacher_user.id,
            employee_id="EMP-001",
            joining_date=date(2020, 8, 1),
            experience_years=5,
            is_active=True,
        )
        db.add(self.teacher)

        self.year = AcademicYear(
            alt_id=next(_serial),
            name="2025-2026",
            start_date=date(2025, 8, 1),
            end_date=date(2026, 6, 30),
            is_active=True,
        )
        db.add(self.year)
        db.flush()

        self.semester = Semester(
            alt_id=next(_serial),
            academic_year_id=self.year.id,
            name="Fall",
            start_date=date(2025, 8, 1),
            end_date=date(2025, 12, 20),
            is_active=True,
        )
        self.class_ = make_class(db, self.year, "5", "A")
        self.subject = Subject(
            alt_id=next(_serial), name="Mathematics", code="MATH101", credit_hours=4, is_active=True
        )
        self.midterm = AssessmentType(name="Midterm", weightage=40, is_active=True)
        self.final = AssessmentType(name="Final", weightage=60, is_active=True)
        db.add_all([self.semester, self.subject, self.midterm, self.final])
        db.flush()

        db.add(TeacherSubject(teacher_id=self.teacher.id, subject_id=self.subject.id))
        db.add(ClassSubject(class_id=self.class_.id, subject_id=self.subject.id, teacher_id=self.teacher.id))
        db.commit()


def make_user(db, role, email, first_name="Test", last_name="User"):
    user = User(
        alt_id=next(_serial),
        first_name=first_name,
        last_name=last_name,
        email=email,
        password_hash=PASSWORD_HASH,
        role=role,
        is_active=True,
    )
    db.add(user)
    db.flush()
    return user


def make_class(db, year, grade, section, capacity=30, current_enrollment=0):
    class_ = Class(
        alt_id=next(_serial),
        name=f"Grade {grade}{section}",
        grade=grade,
        section=section,
        capacity=capacity,
        current_enrollment=current_enrollment,
        academic_year_id=year.id,
        is_active=True,
    )
    db.add(class_)
    db.flush()
    return class_


def make_student(db, class_, first_name="Ava", last_name="Stone", guardian_email=None):
    n = next(_serial)
    user = make_user(db, UserRole.student, f"student{n}@greenfield.edu", first_name, last_name)
    student = Student(
        alt_id=n,
        user_id=user.id,
        student_id=f"STU-2025-{n:03d}",
        class_id=class_.id,
        enrollment_date=date(2025, 8, 15),
        guardian_email=guardian_email,
        is_active=True,
    )
    db.add(student)
    db.flush()
    class_.current_enrollment += 1
    db.add(StudentClassHistory(student_id=student.id, class_id=class_.id, start_date=date(2025, 8, 15)))
    db.commit()
    return student


def make_student_fee(db, school, student, amount=1000, due_date=date(2030, 1, 31), status=FeeStatus.pending):
    category = FeeCategory(
        alt_id=next(_serial),
        name=f"Tuition {next(_serial)}",
        amount=amount,
        frequency=FeeFrequency.semester,
        academic_year_id=school.year.id,
        is_active=True,
    )
    db.add(category)
    db.flush()
    fee = StudentFee(
        student_id=student.id,
        fee_category_id=category.id,
        amount=amount,
        discount=0,
        due_date=due_date,
        status=status,
    )
    db.add(fee)
    db.commit()
    return fee


def auth_headers(user):
    return {"Authorization": f"Bearer {security.create_access_token(user.id)}"}


@pytest.fixture
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def school(db):
    return School(db)
